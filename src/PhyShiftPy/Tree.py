#! /usr/bin/env python
# -*- coding: utf-8 -*-

##############################################################################
##  -- PhyShiftPy --
##  Library for the Placement of Rate-Shift Events on Phylogenetic Trees
##
##  Copyright 2025 Mark Kessler, Luay Nakhleh.
##  All rights reserved.
##
##  See "LICENSE.txt" for terms and conditions of usage.
##
##  If you use this work or any portion thereof in published work,
##  please cite it as:
##
##     Mark Kessler, Luay Nakhleh. 2025.
##
##############################################################################

"""
Author : Mark Kessler
Last Stable Edit : 3/11/25
First Included in Version : 1.0.0
Docs   - [x]
Tests  - [x]
Design - [x]
"""

from __future__ import annotations
import bisect
import logging
from io import StringIO
from pathlib import Path
from typing import Any, Iterator

import networkx as nx
from Bio import Phylo
from Bio.Phylo.NewickIO import NewickError

from .BranchHistory import BranchHistory

logger = logging.getLogger(__name__)

# Sentinel used in event data files for "no second species"
NA : str = "NA"

#########################
#### EXCEPTION CLASS ####
#########################

class TreeError(Exception):
    """
    Error raised when a tree cannot be built, or when a lookup into a tree
    (by name or by map coordinate) cannot be resolved.
    """
    def __init__(self, message : str = "Error in a Tree instance") -> None:
        """
        Initialize the error with a message.

        Args:
            message (str, optional): Custom error message. Defaults to
                                     "Error in a Tree instance".
        Returns:
            N/A
        """
        self.message = message
        super().__init__(self.message)

##############
#### NODE ####
##############

class Node:
    """
    A vertex of a fixed, rooted, binary tree.

    Nodes live in an arena owned by a Tree, and refer to their ancestor and
    descendants by arena index rather than by reference. Each node owns the
    branch that leads into it, along with that branch's BranchHistory.
    """

    def __init__(self,
                 index : int,
                 arena : list[Node],
                 name : str,
                 branch_length : float = 0.0) -> None:
        """
        Initialize a node. Only a Tree should create nodes.

        Args:
            index (int): Position of this node in the tree's arena.
            arena (list[Node]): The tree's node arena.
            name (str): Unique node name.
            branch_length (float, optional): Length of the incoming branch.
                                             Defaults to 0.0.
        Returns:
            N/A
        """
        self.index : int = index
        self._arena : list[Node] = arena
        self._name : str = name
        self._branch_length : float = branch_length

        self._anc : int | None = None
        self._lf_desc : int | None = None
        self._rt_desc : int | None = None

        self._time : float = 0.0
        self._map_start : float = 0.0
        self._map_end : float = 0.0

        self._history : BranchHistory = BranchHistory(self)
        self._attributes : dict[str, Any] = {}

    def __repr__(self) -> str:
        return f"Node({self._name})"

    def get_name(self) -> str:
        """
        Returns:
            str: The name of this node.
        """
        return self._name

    def get_anc(self) -> Node | None:
        """
        Returns:
            Node | None: The ancestor of this node, or None for the root.
        """
        return None if self._anc is None else self._arena[self._anc]

    def get_lf_desc(self) -> Node | None:
        """
        Returns:
            Node | None: The left descendant, or None for a tip.
        """
        return None if self._lf_desc is None else self._arena[self._lf_desc]

    def get_rt_desc(self) -> Node | None:
        """
        Returns:
            Node | None: The right descendant, or None for a tip.
        """
        return None if self._rt_desc is None else self._arena[self._rt_desc]

    def get_children(self) -> list[Node]:
        """
        Returns:
            list[Node]: The descendants of this node, left first.
        """
        return [child for child in (self.get_lf_desc(), self.get_rt_desc())
                if child is not None]

    def get_time(self) -> float:
        """
        Returns:
            float: The distance of this node from the root.
        """
        return self._time

    def get_branch_length(self) -> float:
        """
        Returns:
            float: Length of the branch leading into this node (0 at root).
        """
        return self._branch_length

    def get_map_start(self) -> float:
        """
        Returns:
            float: Map coordinate of the rootward end of this node's branch.
        """
        return self._map_start

    def get_map_end(self) -> float:
        """
        Returns:
            float: Map coordinate of this node (the tipward end of its
                   branch).
        """
        return self._map_end

    def get_branch_history(self) -> BranchHistory:
        """
        Returns:
            BranchHistory: The events living on this node's branch.
        """
        return self._history

    def is_root(self) -> bool:
        return self._anc is None

    def is_tip(self) -> bool:
        return self._lf_desc is None and self._rt_desc is None

    def set_attribute(self, key : str, value : Any) -> None:
        """
        Store a model-derived value (e.g. a mean branch rate) on this node.

        Args:
            key (str): attribute name
            value (Any): attribute value
        Returns:
            N/A
        """
        self._attributes[key] = value

    def attribute_value(self, key : str) -> Any:
        """
        Args:
            key (str): attribute name
        Returns:
            Any: the stored value, or None if never set.
        """
        return self._attributes.get(key)

##############
#### TREE ####
##############

class Tree:
    """
    A rooted binary tree with a fixed topology, and a coordinate map that
    assigns every point on every branch a scalar position.

    Nodes are laid out in pre-order. The root owns a zero-length segment at
    coordinate 0, and every other node owns the half-open interval
    (map_start, map_end] where map_end = map_start + branch length. Within a
    branch, map coordinates grow towards the tips.
    """

    def __init__(self) -> None:
        """
        Initialize an empty tree. Use Tree.from_newick or Tree.from_file.

        Args:
            N/A
        Returns:
            N/A
        """
        self._nodes : list[Node] = []
        self._names : dict[str, Node] = {}
        self._root : int | None = None

        # Map segments of every non root node, in pre-order
        self._segment_starts : list[float] = []
        self._segment_nodes : list[Node] = []
        self._total_map_length : float = 0.0

    @classmethod
    def from_newick(cls, newick_str : str) -> Tree:
        """
        Build a tree from a newick string.

        Raises:
            TreeError: If the string cannot be parsed, is not strictly binary,
                       lacks branch lengths, or has duplicate/unnamed tips.
        Args:
            newick_str (str): a newick string, ie "((A:1,B:1):1,C:2);"
        Returns:
            Tree: The parsed tree.
        """
        try:
            phylo_tree = Phylo.read(StringIO(newick_str.strip()), "newick")
        except (NewickError, ValueError) as err:
            logger.error("Could not parse newick string: %s", err)
            raise TreeError(f"Could not parse newick string: {err}") from err

        return cls._from_phylo(phylo_tree)

    @classmethod
    def from_file(cls, filename : str | Path) -> Tree:
        """
        Build a tree from a file holding one newick string.

        Raises:
            TreeError: If the file cannot be read or parsed.
        Args:
            filename (str | Path): path to the newick file.
        Returns:
            Tree: The parsed tree.
        """
        try:
            newick_str = Path(filename).read_text()
        except OSError as err:
            logger.error("<<%s>> is a bad file name.", filename)
            raise TreeError(f"<<{filename}>> is a bad file name.") from err

        return cls.from_newick(newick_str)

    @classmethod
    def _from_phylo(cls, phylo_tree : Any) -> Tree:
        """
        Walk a biopython tree in pre-order and copy it into a node arena.

        Args:
            phylo_tree (Any): The biopython library tree data structure.
        Returns:
            Tree: The equivalent Tree.
        """
        tree = cls()
        internal_count = 0
        stack : list[tuple[Any, Node | None]] = [(phylo_tree.root, None)]

        while stack:
            clade, parent = stack.pop()
            children = clade.clades

            if len(children) not in (0, 2):
                raise TreeError("Tree is not strictly binary: a node has "
                                f"{len(children)} children")

            name = clade.name
            if not name:
                if len(children) == 0:
                    raise TreeError("Every tip of the tree must be named")
                name = "Internal" + str(internal_count)
                internal_count += 1

            if parent is None:
                length = 0.0
            elif clade.branch_length is None:
                raise TreeError(f"Branch leading to {name} has no length")
            else:
                length = float(clade.branch_length)
                if length < 0:
                    raise TreeError(f"Branch leading to {name} has a "
                                    "negative length")

            node = tree._add_node(name, length, parent)

            # Right child goes on the stack first so the left is visited first
            for child in reversed(children):
                stack.append((child, node))

        if len(tree._nodes) < 3:
            raise TreeError("A tree needs at least two tips")

        tree._set_tree_map()
        return tree

    def _add_node(self,
                  name : str,
                  branch_length : float,
                  parent : Node | None) -> Node:
        if name in self._names:
            raise TreeError(f"Duplicate node name: {name}")

        node = Node(len(self._nodes), self._nodes, name, branch_length)
        self._nodes.append(node)
        self._names[name] = node

        if parent is None:
            self._root = node.index
        else:
            node._anc = parent.index
            node._time = parent._time + branch_length
            if parent._lf_desc is None:
                parent._lf_desc = node.index
            else:
                parent._rt_desc = node.index
        return node

    def _set_tree_map(self) -> None:
        """
        Lay out every branch on the coordinate map, in pre-order.
        """
        cursor = 0.0
        for node in self._nodes:
            if node.is_root():
                node._map_start = 0.0
                node._map_end = 0.0
                continue
            node._map_start = cursor
            cursor += node.get_branch_length()
            node._map_end = cursor
            self._segment_starts.append(node._map_start)
            self._segment_nodes.append(node)
        self._total_map_length = cursor

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes)

    def get_root(self) -> Node:
        """
        Returns:
            Node: The root of the tree.
        """
        return self._nodes[self._root]

    def get_nodes(self) -> list[Node]:
        """
        Returns:
            list[Node]: Every node of the tree, in pre-order.
        """
        return list(self._nodes)

    def get_tips(self) -> list[Node]:
        """
        Returns:
            list[Node]: The tips of the tree, left to right.
        """
        return [node for node in self._nodes if node.is_tip()]

    def number_of_nodes(self) -> int:
        return len(self._nodes)

    def get_node_by_name(self, name : str) -> Node:
        """
        Look a node up by name.

        Raises:
            TreeError: If no node has that name.
        Args:
            name (str): a node name.
        Returns:
            Node: The named node.
        """
        try:
            return self._names[name]
        except KeyError:
            logger.error("Node <<%s>> is not in the tree.", name)
            raise TreeError(f"Node <<{name}>> is not in the tree.") from None

    def get_node_mrca(self, name1 : str, name2 : str) -> Node:
        """
        Find the most recent common ancestor of two named nodes.

        Raises:
            TreeError: If either name cannot be resolved.
        Args:
            name1 (str): a node name.
            name2 (str): another node name.
        Returns:
            Node: The MRCA of the two nodes.
        """
        first = self.get_node_by_name(name1)
        second = self.get_node_by_name(name2)

        ancestors : set[int] = set()
        cur : Node | None = first
        while cur is not None:
            ancestors.add(cur.index)
            cur = cur.get_anc()

        cur = second
        while cur.index not in ancestors:
            cur = cur.get_anc()
        return cur

    def max_root_to_tip_length(self) -> float:
        """
        Returns:
            float: The largest distance from the root to any tip.
        """
        return max(tip.get_time() for tip in self.get_tips())

    def get_total_map_length(self) -> float:
        """
        Returns:
            float: The length of the coordinate map (the sum of all branch
                   lengths).
        """
        return self._total_map_length

    def map_event_to_tree(self, x : float) -> Node:
        """
        Find the node whose branch contains map coordinate x.

        Raises:
            TreeError: If x is outside [0, total map length].
        Args:
            x (float): a map coordinate.
        Returns:
            Node: The node owning x.
        """
        if x < 0.0 or x > self._total_map_length:
            raise TreeError(f"Map coordinate {x} is outside of "
                            f"[0, {self._total_map_length}]")

        # Last segment that starts strictly before x
        pos = bisect.bisect_left(self._segment_starts, x) - 1
        return self._segment_nodes[max(pos, 0)]

    def representative_tips(self, node : Node) -> tuple[str, str]:
        """
        Give a pair of tip names that identifies a node. For an internal node,
        the MRCA of the two tips is the node. For a tip, the second name is
        "NA".

        Args:
            node (Node): a node of this tree.
        Returns:
            tuple[str, str]: the two species names.
        """
        if node.is_tip():
            return node.get_name(), NA

        def leftmost(cur : Node) -> Node:
            while not cur.is_tip():
                cur = cur.get_lf_desc()
            return cur

        return (leftmost(node.get_lf_desc()).get_name(),
                leftmost(node.get_rt_desc()).get_name())

    def to_networkx(self) -> nx.DiGraph:
        """
        Export the topology as a directed networkx graph (parent -> child),
        with branch lengths stored as the "length" edge attribute.

        Returns:
            nx.DiGraph: The exported graph.
        """
        graph = nx.DiGraph()
        for node in self._nodes:
            graph.add_node(node.get_name(), time = node.get_time())
            if not node.is_root():
                graph.add_edge(node.get_anc().get_name(),
                               node.get_name(),
                               length = node.get_branch_length())
        return graph
