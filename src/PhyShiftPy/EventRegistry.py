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
"""

from __future__ import annotations
from typing import TYPE_CHECKING, Iterator

if TYPE_CHECKING:
    from .BranchEvent import BranchEvent


class EventRegistry:
    """
    Every live (non root) event of a model, unique by identity.

    Iteration order is insertion order, and does not change when an event is
    moved. Random draws index into this order, so two chains seeded alike make
    the same choices.
    """

    def __init__(self) -> None:
        self._events : list[BranchEvent] = []
        self._ids : set[int] = set()

    def __len__(self) -> int:
        return len(self._events)

    def __iter__(self) -> Iterator[BranchEvent]:
        return iter(list(self._events))

    def __contains__(self, event : BranchEvent) -> bool:
        return id(event) in self._ids

    def __getitem__(self, index : int) -> BranchEvent:
        return self._events[index]

    def add(self, event : BranchEvent) -> None:
        """
        Register an event at the end of the order.

        Raises:
            ValueError: If the event is already registered.
        Args:
            event (BranchEvent): a new event.
        Returns:
            N/A
        """
        self.insert(len(self._events), event)

    def insert(self, index : int, event : BranchEvent) -> None:
        """
        Register an event at a given position in the order. Used to put a
        deleted event back exactly where it was.

        Raises:
            ValueError: If the event is already registered.
        Args:
            index (int): position in the iteration order.
            event (BranchEvent): a new event.
        Returns:
            N/A
        """
        if id(event) in self._ids:
            raise ValueError(f"{event!r} is already registered")
        self._events.insert(index, event)
        self._ids.add(id(event))

    def remove(self, event : BranchEvent) -> int:
        """
        Unregister an event.

        Raises:
            ValueError: If the event is not registered.
        Args:
            event (BranchEvent): a registered event.
        Returns:
            int: the position the event held in the order.
        """
        if id(event) not in self._ids:
            raise ValueError(f"{event!r} is not registered")

        index = next(pos for pos, cur in enumerate(self._events)
                     if cur is event)
        del self._events[index]
        self._ids.discard(id(event))
        return index
