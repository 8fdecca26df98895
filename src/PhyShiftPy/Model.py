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
import logging
import math
from dataclasses import dataclass
from enum import Enum, auto, unique
from pathlib import Path
from typing import Sequence

import numpy as np

from .BranchEvent import BranchEvent
from .EventData import EventDataError, read_event_data, write_event_data
from .EventRegistry import EventRegistry
from .Prior import Prior
from .Settings import Settings
from .Tree import NA, Node, Tree

logger = logging.getLogger(__name__)

#########################
#### EXCEPTION CLASS ####
#########################

class ModelError(Exception):
    """
    Error raised when the model is used against its contract: selecting an
    event when none exist, proposing while a proposal is outstanding,
    reverting with nothing to revert, or a broken effective event invariant.
    """
    def __init__(self, message : str = "Error in the event model") -> None:
        """
        Initialize the error with a message.

        Args:
            message (str, optional): Custom error message. Defaults to
                                     "Error in the event model".
        Returns:
            N/A
        """
        self.message = message
        super().__init__(self.message)

########################
#### PROPOSAL STATE ####
########################

@unique
class ProposalKind(Enum):
    CLEAN = auto()
    ADD = auto()
    DELETE = auto()
    MOVE = auto()
    RATE = auto()


@dataclass(frozen=True)
class ProposalState:
    """
    The one outstanding (neither committed nor reverted) proposal of a model.
    A CLEAN state means there is nothing to commit or revert.
    """
    kind : ProposalKind = ProposalKind.CLEAN
    event : BranchEvent | None = None
    previous_node : Node | None = None
    previous_map_time : float | None = None
    registry_index : int | None = None
    previous_rate : float | None = None

    def is_clean(self) -> bool:
        return self.kind is ProposalKind.CLEAN

###############
#### MODEL ####
###############

class Model:
    """
    The event configuration of one chain: the root event, every other event
    (held in a registry and in the branch histories of the tree), the event
    rate, and the proposal/commit/revert bookkeeping.

    After every operation, each node's node_event is the most tipward event on
    its own branch, or its ancestor's node_event if its branch is empty.

    Subclasses supply the model specific parts: how events are created, how
    parameters are read, and what per-branch values are derived from the
    events.
    """

    # Number and names of the model specific parameters, in event data file
    # order
    N_PARAMS : int = 0
    PARAMETER_NAMES : tuple[str, ...] = ()

    def __init__(self,
                 rng : np.random.Generator,
                 tree : Tree,
                 settings : Settings,
                 prior : Prior | None = None) -> None:
        """
        Initialize a model with only the root event.

        Args:
            rng (np.random.Generator): the chain's random number generator.
            tree (Tree): the (fixed) tree.
            settings (Settings): run settings.
            prior (Prior | None, optional): priors on event parameters.
                                            Defaults to a Prior built from
                                            'settings'.
        Returns:
            N/A
        """
        self._rng : np.random.Generator = rng
        self._tree : Tree = tree
        self._settings : Settings = settings
        self._prior : Prior = Prior(rng, settings) if prior is None else prior

        # Event location scale is relative to the maximum root-to-tip length
        self._scale : float = settings.update_event_location_scale * \
                              tree.max_root_to_tip_length()

        self._update_event_rate_scale : float = settings.update_event_rate_scale
        self._local_global_move_ratio : float = settings.local_global_move_ratio

        # Initial event rate gives the prior expected number of events
        self._event_rate : float = 1.0 / settings.poisson_rate_prior

        self._accept_count : int = 0
        self._reject_count : int = 0

        self._event_collection : EventRegistry = EventRegistry()
        self._proposal : ProposalState = ProposalState()

        root = tree.get_root()
        self._root_event : BranchEvent = self.new_root_event()
        root.get_branch_history().set_node_event(self._root_event)
        root.get_branch_history().set_ancestral_node_event(self._root_event)
        self.forward_set_branch_histories(self._root_event)
        self.set_mean_branch_parameters()

    ############################
    #### MODEL SPECIFIC API ####
    ############################

    def new_root_event(self) -> BranchEvent:
        """
        *ABSTRACT METHOD*

        Returns:
            BranchEvent: the event that governs the whole tree by default.
        """
        raise NotImplementedError("Model subclasses must implement \
new_root_event")

    def new_branch_event_with_random_parameters(self,
                                                x : float) -> BranchEvent:
        """
        *ABSTRACT METHOD*

        Args:
            x (float): map coordinate of the new event.
        Returns:
            BranchEvent: an event at x with parameters drawn from the prior.
        """
        raise NotImplementedError("Model subclasses must implement \
new_branch_event_with_random_parameters")

    def new_branch_event_with_parameters(self,
                                         node : Node,
                                         x : float,
                                         params : Sequence[float]) \
                                         -> BranchEvent:
        """
        *ABSTRACT METHOD*

        Args:
            node (Node): the node whose branch holds x.
            x (float): map coordinate of the new event.
            params (Sequence[float]): model specific parameters, file order.
        Returns:
            BranchEvent: the new event.
        """
        raise NotImplementedError("Model subclasses must implement \
new_branch_event_with_parameters")

    def set_root_event_parameters(self, params : Sequence[float]) -> None:
        """
        *ABSTRACT METHOD*

        Args:
            params (Sequence[float]): model specific parameters, file order.
        Returns:
            N/A
        """
        raise NotImplementedError("Model subclasses must implement \
set_root_event_parameters")

    def set_mean_branch_parameters(self) -> None:
        """
        Recompute any per-branch values derived from the events. The base
        model derives nothing.
        """

    def number_of_parameters(self) -> int:
        return self.N_PARAMS

    ###################
    #### ACCESSORS ####
    ###################

    def get_tree(self) -> Tree:
        return self._tree

    def get_root_event(self) -> BranchEvent:
        return self._root_event

    def get_events(self) -> list[BranchEvent]:
        """
        Returns:
            list[BranchEvent]: every non root event, in registry order.
        """
        return list(self._event_collection)

    def get_number_of_events(self) -> int:
        return len(self._event_collection)

    def get_event_rate(self) -> float:
        return self._event_rate

    def get_proposal(self) -> ProposalState:
        return self._proposal

    def get_local_global_move_ratio(self) -> float:
        return self._local_global_move_ratio

    def get_scale(self) -> float:
        """
        Returns:
            float: the local move jitter bound, in tree length units.
        """
        return self._scale

    ############################
    #### PROPAGATION ENGINE ####
    ############################

    def forward_set_branch_histories(self, event : BranchEvent) -> None:
        """
        Restore every node's effective event after 'event' was inserted,
        removed, or moved within its branch history.

        If another event sits more tipward on the same branch, nothing below
        can have changed and nothing is done.

        Args:
            event (BranchEvent): the event to propagate from.
        Returns:
            N/A
        """
        node = event.get_event_node()

        if event is self._root_event:
            for child in node.get_children():
                self.forward_set_histories_recursive(child)
        elif event is node.get_branch_history().get_last_event():
            # event is the most tipward event on its branch
            node.get_branch_history().set_node_event(event)
            for child in node.get_children():
                self.forward_set_histories_recursive(child)

    def forward_set_histories_recursive(self, p : Node) -> None:
        """
        Push the ancestor's node event down from p until every path reaches a
        branch that holds its own events (or a tip). Uses an explicit stack so
        very deep trees do not exhaust the recursion limit.

        Args:
            p (Node): a non root node.
        Returns:
            N/A
        """
        stack : list[Node] = [p]
        while stack:
            node = stack.pop()
            last_event = node.get_anc().get_branch_history().get_node_event()

            history = node.get_branch_history()
            history.set_ancestral_node_event(last_event)

            # A branch with its own events shields everything below it
            if history.get_number_of_branch_events() == 0:
                history.set_node_event(last_event)
                stack.extend(reversed(node.get_children()))

    def count_events_in_branch_histories(self, p : Node | None = None) -> int:
        """
        Count the events physically stored on the branches of a subtree.

        Args:
            p (Node | None, optional): subtree root. Defaults to the root.
        Returns:
            int: the number of events.
        """
        stack = [self._tree.get_root() if p is None else p]
        count = 0
        while stack:
            node = stack.pop()
            count += node.get_branch_history().get_number_of_branch_events()
            stack.extend(node.get_children())
        return count

    def compute_node_events(self) -> dict[Node, BranchEvent]:
        """
        Derive every node's effective event from scratch, ignoring the cached
        values in the branch histories.

        Returns:
            dict[Node, BranchEvent]: node -> effective event.
        """
        expected : dict[Node, BranchEvent] = {}
        for node in self._tree.get_nodes():
            if node.is_root():
                expected[node] = self._root_event
                continue
            last = node.get_branch_history().get_last_event()
            expected[node] = expected[node.get_anc()] if last is None else last
        return expected

    def check_branch_histories(self) -> None:
        """
        Compare the cached effective events against a full recomputation, and
        the registry against the events stored on branches.

        Raises:
            ModelError: describing the first inconsistency found.
        Args:
            N/A
        Returns:
            N/A
        """
        expected = self.compute_node_events()
        stored : list[BranchEvent] = []

        for node in self._tree.get_nodes():
            history = node.get_branch_history()
            if history.get_node_event() is not expected[node]:
                self._corrupt(f"{node!r} has node event \
{history.get_node_event()!r}, expected {expected[node]!r}")

            if not node.is_root():
                anc_event = expected[node.get_anc()]
                if history.get_ancestral_node_event() is not anc_event:
                    self._corrupt(f"{node!r} has ancestral node event \
{history.get_ancestral_node_event()!r}, expected {anc_event!r}")

            for event in history:
                if event.get_event_node() is not node:
                    self._corrupt(f"{event!r} is stored on the branch of \
{node!r}")
                stored.append(event)

        if len(stored) != len(self._event_collection) or \
           any(event not in self._event_collection for event in stored):
            self._corrupt("Registry and branch histories disagree")

    def _corrupt(self, message : str) -> None:
        logger.error(message)
        raise ModelError(message)

    ########################
    #### MOVE PROPOSALS ####
    ########################

    def _assert_clean(self, operation : str) -> None:
        if not self._proposal.is_clean():
            logger.error("Cannot %s: a %s proposal is outstanding",
                         operation, self._proposal.kind.name)
            raise ModelError(f"Cannot {operation}: a \
{self._proposal.kind.name} proposal has not been committed or reverted")

    def add_event_to_tree(self, x : float | None = None) -> BranchEvent:
        """
        Add a new event with parameters drawn from the prior.

        Raises:
            ModelError: If a proposal is outstanding.
        Args:
            x (float | None, optional): map coordinate of the new event.
                                        Defaults to a uniform draw over the
                                        whole tree.
        Returns:
            BranchEvent: the new event.
        """
        self._assert_clean("add an event")

        if x is None:
            x = self._rng.uniform(self._tree.get_root().get_map_start(),
                                  self._tree.get_total_map_length())

        new_event = self.new_branch_event_with_random_parameters(x)
        new_event.get_event_node().get_branch_history(). \
            add_event_to_branch_history(new_event)

        self._event_collection.add(new_event)
        self.forward_set_branch_histories(new_event)
        self.set_mean_branch_parameters()

        self._proposal = ProposalState(ProposalKind.ADD, new_event)
        return new_event

    def delete_event_from_tree(self, event : BranchEvent) -> None:
        """
        Remove an event from the tree. The branches it governed fall back to
        the next event rootward.

        Raises:
            ModelError: If a proposal is outstanding, or the event is the root
                        event or not on the tree.
        Args:
            event (BranchEvent): a registered event.
        Returns:
            N/A
        """
        self._assert_clean("delete an event")
        if event not in self._event_collection:
            logger.error("%r is not on the tree", event)
            raise ModelError(f"{event!r} is not on the tree")

        node = event.get_event_node()
        history = node.get_branch_history()
        previous_event = history.get_last_event(event)

        history.pop_event_off_branch_history(event)
        index = self._event_collection.remove(event)

        self.forward_set_branch_histories(previous_event)
        self.set_mean_branch_parameters()

        self._proposal = ProposalState(ProposalKind.DELETE,
                                       event,
                                       previous_node = node,
                                       previous_map_time = event.get_map_time(),
                                       registry_index = index)

    def delete_random_event_from_tree(self) -> BranchEvent | None:
        """
        Remove a uniformly chosen event. Does nothing if there are no events.

        Returns:
            BranchEvent | None: the removed event, if any.
        """
        self._assert_clean("delete an event")
        if self.get_number_of_events() == 0:
            return None
        event = self.choose_event_at_random()
        self.delete_event_from_tree(event)
        return event

    def choose_event_at_random(self) -> BranchEvent:
        """
        Pick one registered event uniformly at random.

        Raises:
            ModelError: If there are no events. Callers must check
                        get_number_of_events() first.
        Args:
            N/A
        Returns:
            BranchEvent: the chosen event.
        """
        num_events = len(self._event_collection)
        if num_events == 0:
            logger.error("Number of events is zero.")
            raise ModelError("Number of events is zero.")

        chosen = int(self._rng.random() * num_events)
        return self._event_collection[chosen]

    def event_local_move(self) -> None:
        self.event_move(True)

    def event_global_move(self) -> None:
        self.event_move(False)

    def propose_event_move(self) -> None:
        """
        Make a local move with probability ratio / (ratio + 1), otherwise a
        global move, where ratio is the local/global move ratio.
        """
        ratio = self._local_global_move_ratio
        self.event_move(self._rng.random() < ratio / (ratio + 1.0))

    def event_move(self, local : bool) -> None:
        """
        Move a random event, locally (a short slide along the tree) or
        globally (anywhere on the tree). Does nothing if there are no events.

        The move stays outstanding until commit_proposal() or
        revert_moved_event_to_previous() is called.

        Raises:
            ModelError: If a proposal is outstanding.
        Args:
            local (bool): True for a local move, False for a global move.
        Returns:
            N/A
        """
        self._assert_clean("move an event")
        if self.get_number_of_events() == 0:
            return

        chosen_event = self.choose_event_at_random()
        old_node = chosen_event.get_event_node()
        old_map_time = chosen_event.get_map_time()

        # Histories must be set forward from the event rootward of the
        # chosen one, whatever happens to it.
        previous_event = old_node.get_branch_history(). \
            get_last_event(chosen_event)

        old_node.get_branch_history().pop_event_off_branch_history(chosen_event)

        if local:
            step = self._rng.uniform(0.0, self._scale) - 0.5 * self._scale
            chosen_event.move_event_local(step)
        else:
            chosen_event.move_event_global()

        chosen_event.get_event_node().get_branch_history(). \
            add_event_to_branch_history(chosen_event)

        self.forward_set_branch_histories(previous_event)
        self.forward_set_branch_histories(chosen_event)
        self.set_mean_branch_parameters()

        logger.debug("%s move: %s/%.6g -> %r", "Local" if local else "Global",
                     old_node.get_name(), old_map_time, chosen_event)

        self._proposal = ProposalState(ProposalKind.MOVE,
                                       chosen_event,
                                       previous_node = old_node,
                                       previous_map_time = old_map_time)

    def revert_moved_event_to_previous(self) -> None:
        """
        Undo the outstanding event move, restoring the event's node and map
        time and every node's effective event.

        Raises:
            ModelError: If the outstanding proposal is not an event move.
        Args:
            N/A
        Returns:
            N/A
        """
        if self._proposal.kind is not ProposalKind.MOVE:
            logger.error("No event move to revert (proposal is %s)",
                         self._proposal.kind.name)
            raise ModelError(f"No event move to revert (proposal is \
{self._proposal.kind.name})")

        moved_event = self._proposal.event
        history = moved_event.get_event_node().get_branch_history()

        # Event rootward of the moved event's current position
        new_last_event = history.get_last_event(moved_event)
        history.pop_event_off_branch_history(moved_event)

        moved_event.revert_old_map_position()
        moved_event.get_event_node().get_branch_history(). \
            add_event_to_branch_history(moved_event)

        # Repair the vacated position, then the restored one
        self.forward_set_branch_histories(new_last_event)
        self.forward_set_branch_histories(moved_event)

        self._proposal = ProposalState()
        self.set_mean_branch_parameters()

    def update_event_rate(self) -> float:
        """
        Propose a multiplicative change to the event rate:
        rate * exp(scale * (U - 0.5)).

        Raises:
            ModelError: If a proposal is outstanding.
        Args:
            N/A
        Returns:
            float: the proposed event rate.
        """
        self._assert_clean("update the event rate")
        old_rate = self._event_rate
        self._event_rate = old_rate * math.exp(
            self._update_event_rate_scale * (self._rng.random() - 0.5))
        self._proposal = ProposalState(ProposalKind.RATE,
                                       previous_rate = old_rate)
        return self._event_rate

    def log_prior_event_rate(self) -> float:
        return self._prior.event_rate_log_prior(self._event_rate)

    ##############################
    #### COMMIT / REVERT / MH ####
    ##############################

    def commit_proposal(self) -> None:
        """
        Keep the outstanding proposal.

        Raises:
            ModelError: If there is nothing to commit.
        """
        if self._proposal.is_clean():
            logger.error("No proposal to commit")
            raise ModelError("No proposal to commit")
        self._proposal = ProposalState()

    def revert_proposal(self) -> None:
        """
        Undo the outstanding proposal, whatever its kind.

        Raises:
            ModelError: If there is nothing to revert.
        """
        proposal = self._proposal
        kind = proposal.kind

        if kind is ProposalKind.CLEAN:
            logger.error("No proposal to revert")
            raise ModelError("No proposal to revert")
        elif kind is ProposalKind.MOVE:
            self.revert_moved_event_to_previous()
            return
        elif kind is ProposalKind.RATE:
            self._event_rate = proposal.previous_rate
        elif kind is ProposalKind.ADD:
            event = proposal.event
            history = event.get_event_node().get_branch_history()
            previous_event = history.get_last_event(event)
            history.pop_event_off_branch_history(event)
            self._event_collection.remove(event)
            self.forward_set_branch_histories(previous_event)
            self.set_mean_branch_parameters()
        elif kind is ProposalKind.DELETE:
            event = proposal.event
            event.get_event_node().get_branch_history(). \
                add_event_to_branch_history(event)
            self._event_collection.insert(proposal.registry_index, event)
            self.forward_set_branch_histories(event)
            self.set_mean_branch_parameters()

        self._proposal = ProposalState()

    def accept_proposal(self) -> None:
        self.commit_proposal()
        self._accept_count += 1

    def reject_proposal(self) -> None:
        self.revert_proposal()
        self._reject_count += 1

    def get_acceptance_rate(self) -> float:
        total = self._accept_count + self._reject_count
        if total == 0:
            return 0.0
        return self._accept_count / total

    def reset_mh_statistics(self) -> None:
        self._accept_count = 0
        self._reject_count = 0

    ########################
    #### INITIALIZATION ####
    ########################

    def _node_for_species(self, species1 : str, species2 : str) -> Node:
        # Records with species1 == NA are rejected while parsing
        if species2 != NA:
            return self._tree.get_node_mrca(species1, species2)
        return self._tree.get_node_by_name(species1)

    def initialize_model_from_event_data_file(self,
                                              filename : str | Path | None
                                              = None) -> None:
        """
        Add the events listed in an event data file. A record that resolves to
        the root sets the root event's parameters instead.

        Raises:
            EventDataError: If the file is unreadable, a record is malformed,
                            or an event time lies outside its branch.
            TreeError: If a species name is not in the tree.
            ModelError: If a proposal is outstanding.
        Args:
            filename (str | Path | None, optional): event data file. Defaults
                                                    to the event_data_infile
                                                    setting.
        Returns:
            N/A
        """
        self._assert_clean("initialize from an event data file")
        if filename is None:
            filename = self._settings.event_data_infile

        logger.info("Initializing model from <<%s>>", filename)
        records = read_event_data(filename, self.number_of_parameters())

        for record in records:
            x = self._node_for_species(record.species1, record.species2)

            if x is self._tree.get_root():
                self.set_root_event_parameters(record.parameters)
                self.set_mean_branch_parameters()
                continue

            delta_t = x.get_time() - record.event_time
            new_map_time = x.get_map_end() - delta_t
            if not (x.get_map_start() <= new_map_time <= x.get_map_end()):
                logger.error("Event time %g is not on the branch leading to "
                             "%s", record.event_time, x.get_name())
                raise EventDataError(f"Event time {record.event_time} is not \
on the branch leading to {x.get_name()}")

            new_event = self.new_branch_event_with_parameters(
                x, new_map_time, record.parameters)
            new_event.get_event_node().get_branch_history(). \
                add_event_to_branch_history(new_event)

            self._event_collection.add(new_event)
            self.forward_set_branch_histories(new_event)
            self.set_mean_branch_parameters()

        logger.info("Read a total of %d events.", len(records))
        logger.info("Added %d pre-defined events to tree, plus root event.",
                    len(self._event_collection))

    def write_event_data_file(self, filename : str | Path) -> None:
        """
        Write the current events to a file that
        initialize_model_from_event_data_file can read back.

        Args:
            filename (str | Path): output path.
        Returns:
            N/A
        """
        write_event_data(self, filename)
