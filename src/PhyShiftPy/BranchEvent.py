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
Design - [ ]
"""

from __future__ import annotations
import numpy as np

from .Tree import Node, Tree


class BranchEventError(Exception):
    """
    Error raised when an event is asked to do something its position does not
    allow (ie reverting without a saved position).
    """
    def __init__(self, message : str = "Error in a BranchEvent") -> None:
        self.message = message
        super().__init__(self.message)


class BranchEvent:
    """
    A rate-shift point on the tree: a node (whose branch holds the event) and
    a map time on that branch. Model specific parameters live on subclasses.

    Events compare and hash by identity. Each event also remembers the
    position it had before its most recent move, so the move can be undone.
    """

    def __init__(self,
                 map_time : float,
                 node : Node,
                 tree : Tree,
                 rng : np.random.Generator) -> None:
        """
        Initialize an event at a map position.

        Args:
            map_time (float): Map coordinate of the event.
            node (Node): The node whose branch contains map_time.
            tree (Tree): The tree the event lives on.
            rng (np.random.Generator): Random number generator used by moves.
        Returns:
            N/A
        """
        self._map_time : float = map_time
        self._node : Node = node
        self._tree : Tree = tree
        self._rng : np.random.Generator = rng

        self._old_map_time : float | None = None
        self._old_node : Node | None = None

        # Orders events that share a map time; set once, on first insertion
        # into a branch history, and kept across moves and reinsertion
        self.tie_sequence : int | None = None

    def __repr__(self) -> str:
        name = type(self).__name__
        return f"{name}({self._node.get_name()}, {self._map_time:.6g})"

    def get_event_node(self) -> Node:
        return self._node

    def get_map_time(self) -> float:
        return self._map_time

    def get_ancestor_delta(self) -> float:
        """
        Returns:
            float: Distance of the event from the rootward end of its branch.
        """
        return self._map_time - self._node.get_map_start()

    def get_absolute_time(self) -> float:
        """
        Returns:
            float: Distance of the event from the root.
        """
        anc = self._node.get_anc()
        if anc is None:
            return self._node.get_time()
        return anc.get_time() + self.get_ancestor_delta()

    def _save_map_position(self) -> None:
        self._old_map_time = self._map_time
        self._old_node = self._node

    def move_event_local(self, step : float) -> None:
        """
        Slide the event 'step' units along the tree. Positive steps go
        tipward, negative steps go rootward.

        Passing a node re-homes the event: tipward into one of the two
        descendant branches (chosen uniformly), rootward into the ancestor's
        branch. A walk that hits a tip turns around. A walk that passes
        above a child of the root continues tipward down the sibling branch.

        Args:
            step (float): signed distance to move.
        Returns:
            N/A
        """
        self._save_map_position()

        node = self._node
        pos = self._map_time
        remaining = step

        while True:
            if remaining >= 0.0:
                room = node.get_map_end() - pos
                if remaining <= room:
                    pos += remaining
                    break
                remaining -= room
                if node.is_tip():
                    # reflect off the tip
                    pos = node.get_map_end()
                    remaining = -remaining
                else:
                    if self._rng.random() < 0.5:
                        node = node.get_lf_desc()
                    else:
                        node = node.get_rt_desc()
                    pos = node.get_map_start()
            else:
                room = pos - node.get_map_start()
                if -remaining < room:
                    pos += remaining
                    break
                remaining += room
                anc = node.get_anc()
                if anc.is_root():
                    # go over the root and down the other side
                    if anc.get_lf_desc() is node:
                        node = anc.get_rt_desc()
                    else:
                        node = anc.get_lf_desc()
                    pos = node.get_map_start()
                    remaining = -remaining
                else:
                    node = anc
                    pos = anc.get_map_end()

        self._node = node
        self._map_time = pos

    def move_event_global(self) -> None:
        """
        Place the event uniformly at random anywhere on the tree.

        Args:
            N/A
        Returns:
            N/A
        """
        self._save_map_position()
        self._map_time = self._rng.uniform(0.0,
                                           self._tree.get_total_map_length())
        self._node = self._tree.map_event_to_tree(self._map_time)

    def revert_old_map_position(self) -> None:
        """
        Put the event back where it was before its last move.

        Raises:
            BranchEventError: If the event has never been moved.
        Args:
            N/A
        Returns:
            N/A
        """
        if self._old_node is None:
            raise BranchEventError("Event has no previous position to "
                                   "revert to")
        self._map_time = self._old_map_time
        self._node = self._old_node

    def get_parameters(self) -> tuple[float, ...]:
        """
        Returns:
            tuple[float, ...]: Model specific parameters, in file order.
        """
        return ()
