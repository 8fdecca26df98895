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
import itertools
from typing import TYPE_CHECKING, Iterator

from sortedcontainers import SortedKeyList

if TYPE_CHECKING:
    from .BranchEvent import BranchEvent
    from .Tree import Node

# Shared by every history, so tie order is global insertion order
_tie_counter = itertools.count()

def _event_key(event : BranchEvent) -> tuple[float, int]:
    return (event.get_map_time(), event.tie_sequence)


class BranchHistory:
    """
    The events that live on one branch, kept in map order (rootward first),
    plus two cached pointers:

    node_event -- the event in effect at the node (the tipward end of the
                  branch).
    ancestral_node_event -- the event in effect at the rootward end of the
                            branch, inherited from the ancestor.

    Events at the same map time are ordered by when they were first added to
    any branch. An event that is removed and added back (ie a reverted move or
    delete) returns to its old place among its ties.
    """

    def __init__(self, node : Node | None = None) -> None:
        """
        Initialize an empty branch history.

        Args:
            node (Node | None, optional): The node whose branch this is.
                                          Defaults to None.
        Returns:
            N/A
        """
        self._node : Node | None = node
        self._events : SortedKeyList = SortedKeyList(key = _event_key)

        self._node_event : BranchEvent | None = None
        self._ancestral_node_event : BranchEvent | None = None

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[BranchEvent]:
        return iter(list(self._events))

    def __contains__(self, event : BranchEvent) -> bool:
        return event.tie_sequence is not None and event in self._events

    def _position(self, event : BranchEvent) -> int:
        if event.tie_sequence is None or event not in self._events:
            raise ValueError(f"{event!r} is not on the branch of \
{self._node!r}")
        return self._events.index(event)

    def add_event_to_branch_history(self, event : BranchEvent) -> None:
        """
        Insert an event in map order.

        Args:
            event (BranchEvent): The event to insert.
        Returns:
            N/A
        """
        if event.tie_sequence is None:
            event.tie_sequence = next(_tie_counter)
        self._events.add(event)

    def pop_event_off_branch_history(self, event : BranchEvent) -> None:
        """
        Remove an event from this branch.

        Raises:
            ValueError: If the event is not on this branch.
        Args:
            event (BranchEvent): The event to remove.
        Returns:
            N/A
        """
        del self._events[self._position(event)]

    def get_last_event(self,
                       before : BranchEvent | None = None) -> BranchEvent | None:
        """
        With no argument, return the most tipward event on this branch (or
        None if the branch is empty).

        Given an event on this branch, return the event immediately rootward
        of it. If it is the most rootward event on the branch, that is the
        ancestral node event.

        Raises:
            ValueError: If 'before' is not on this branch.
        Args:
            before (BranchEvent | None, optional): An event on this branch.
                                                   Defaults to None.
        Returns:
            BranchEvent | None: The requested event.
        """
        if before is None:
            return self._events[-1] if self._events else None

        pos = self._position(before)
        if pos == 0:
            return self._ancestral_node_event
        return self._events[pos - 1]

    def get_number_of_branch_events(self) -> int:
        return len(self._events)

    def get_node_event(self) -> BranchEvent | None:
        return self._node_event

    def set_node_event(self, event : BranchEvent) -> None:
        self._node_event = event

    def get_ancestral_node_event(self) -> BranchEvent | None:
        return self._ancestral_node_event

    def set_ancestral_node_event(self, event : BranchEvent) -> None:
        self._ancestral_node_event = event
