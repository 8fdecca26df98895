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
Speciation/extinction model. Each event starts a new regime in which

    lambda(t) = lam_init * exp(lam_shift * (t - t_event))
    mu(t)     = mu_init  * exp(mu_shift  * (t - t_event))

where t is the distance from the root and t_event the time of the event.

Author : Mark Kessler
Last Stable Edit : 3/11/25
First Included in Version : 1.0.0
Docs   - [x]
Tests  - [x]
Design - [ ]
"""

from __future__ import annotations
import logging
import math
from typing import Sequence

import numpy as np

from .BranchEvent import BranchEvent
from .Model import Model, ModelError
from .Tree import Node, Tree

logger = logging.getLogger(__name__)

##########################
#### HELPER FUNCTIONS ####
##########################

def _integrated_rate(init : float,
                     shift : float,
                     start : float,
                     end : float) -> float:
    """
    Integral of init * exp(shift * s) for s in [start, end].
    """
    if shift == 0.0:
        return init * (end - start)
    return init * math.exp(shift * start) * \
           float(np.expm1(shift * (end - start))) / shift

#####################
#### SPEX EVENTS ####
#####################

class SpExBranchEvent(BranchEvent):
    """
    A BranchEvent carrying speciation and extinction parameters.
    """

    def __init__(self,
                 map_time : float,
                 node : Node,
                 tree : Tree,
                 rng : np.random.Generator,
                 lam_init : float,
                 lam_shift : float,
                 mu_init : float,
                 mu_shift : float) -> None:
        """
        Args:
            map_time (float): Map coordinate of the event.
            node (Node): The node whose branch contains map_time.
            tree (Tree): The tree the event lives on.
            rng (np.random.Generator): Random number generator used by moves.
            lam_init (float): speciation rate at the event.
            lam_shift (float): exponential change of the speciation rate.
            mu_init (float): extinction rate at the event.
            mu_shift (float): exponential change of the extinction rate.
        Returns:
            N/A
        """
        super().__init__(map_time, node, tree, rng)
        self.lam_init : float = lam_init
        self.lam_shift : float = lam_shift
        self.mu_init : float = mu_init
        self.mu_shift : float = mu_shift

    def get_parameters(self) -> tuple[float, ...]:
        return (self.lam_init, self.lam_shift, self.mu_init, self.mu_shift)

    def set_parameters(self, params : Sequence[float]) -> None:
        self.lam_init, self.lam_shift, self.mu_init, self.mu_shift = \
            (float(param) for param in params)

    def speciation_rate(self, t : float) -> float:
        """
        Args:
            t (float): a time (distance from the root) at or after the event.
        Returns:
            float: lambda(t) under this event's regime.
        """
        return self.lam_init * \
               math.exp(self.lam_shift * (t - self.get_absolute_time()))

    def extinction_rate(self, t : float) -> float:
        return self.mu_init * \
               math.exp(self.mu_shift * (t - self.get_absolute_time()))

    def integrated_speciation_rate(self, start : float, end : float) -> float:
        """
        Args:
            start (float): start time of an interval governed by this event.
            end (float): end time of the interval.
        Returns:
            float: the integral of lambda(t) over [start, end].
        """
        t_event = self.get_absolute_time()
        return _integrated_rate(self.lam_init, self.lam_shift,
                                start - t_event, end - t_event)

    def integrated_extinction_rate(self, start : float, end : float) -> float:
        t_event = self.get_absolute_time()
        return _integrated_rate(self.mu_init, self.mu_shift,
                                start - t_event, end - t_event)

####################
#### SPEX MODEL ####
####################

class SpExModel(Model):
    """
    Model whose events are SpExBranchEvents. After every change to the events
    each node holds the mean speciation and extinction rates along its branch
    as the "mean_speciation_rate" and "mean_extinction_rate" attributes.
    """

    N_PARAMS : int = 4
    PARAMETER_NAMES : tuple[str, ...] = ("lam_init",
                                         "lam_shift",
                                         "mu_init",
                                         "mu_shift")

    def new_root_event(self) -> SpExBranchEvent:
        root = self._tree.get_root()
        return SpExBranchEvent(root.get_map_start(),
                               root,
                               self._tree,
                               self._rng,
                               self._settings.lambda_init_0,
                               self._settings.lambda_shift_0,
                               self._settings.mu_init_0,
                               self._settings.mu_shift_0)

    def new_branch_event_with_random_parameters(self,
                                                x : float) -> SpExBranchEvent:
        """
        Create an event at map coordinate x. The initial rates and the
        speciation shift are drawn from the prior, and the extinction shift is
        the mu_shift_0 setting.

        Args:
            x (float): map coordinate of the new event.
        Returns:
            SpExBranchEvent: the new (unregistered) event.
        """
        node = self._tree.map_event_to_tree(x)
        return SpExBranchEvent(x,
                               node,
                               self._tree,
                               self._rng,
                               self._prior.generate_lambda_init_from_prior(),
                               self._prior.generate_lambda_shift_from_prior(),
                               self._prior.generate_mu_init_from_prior(),
                               self._settings.mu_shift_0)

    def _check_parameter_count(self, params : Sequence[float]) -> None:
        if len(params) != self.N_PARAMS:
            logger.error("SpEx events take %d parameters, got %d",
                         self.N_PARAMS, len(params))
            raise ModelError(f"SpEx events take {self.N_PARAMS} parameters, \
got {len(params)}")

    def new_branch_event_with_parameters(self,
                                         node : Node,
                                         x : float,
                                         params : Sequence[float]) \
                                         -> SpExBranchEvent:
        self._check_parameter_count(params)
        return SpExBranchEvent(x, node, self._tree, self._rng,
                               *(float(param) for param in params))

    def set_root_event_parameters(self, params : Sequence[float]) -> None:
        self._check_parameter_count(params)
        self._root_event.set_parameters(params)
        logger.debug("Root event parameters set to %s",
                     self._root_event.get_parameters())

    def set_mean_branch_parameters(self) -> None:
        """
        Average lambda(t) and mu(t) over every branch. A branch is split at
        each of its events: the part above the first event follows the
        ancestral node event, every later part follows the event that starts
        it. Zero length branches take the instantaneous rates.

        Args:
            N/A
        Returns:
            N/A
        """
        for node in self._tree.get_nodes():
            history = node.get_branch_history()

            if node.is_root():
                event = history.get_node_event()
                node.set_attribute("mean_speciation_rate", event.lam_init)
                node.set_attribute("mean_extinction_rate", event.mu_init)
                continue

            start = node.get_anc().get_time()
            end = node.get_time()
            length = end - start

            if length == 0.0:
                event = history.get_node_event()
                node.set_attribute("mean_speciation_rate",
                                   event.speciation_rate(end))
                node.set_attribute("mean_extinction_rate",
                                   event.extinction_rate(end))
                continue

            lam_total = 0.0
            mu_total = 0.0
            current = history.get_ancestral_node_event()
            seg_start = start
            for event in history:
                seg_end = event.get_absolute_time()
                lam_total += current.integrated_speciation_rate(seg_start,
                                                                seg_end)
                mu_total += current.integrated_extinction_rate(seg_start,
                                                               seg_end)
                current = event
                seg_start = seg_end

            lam_total += current.integrated_speciation_rate(seg_start, end)
            mu_total += current.integrated_extinction_rate(seg_start, end)

            node.set_attribute("mean_speciation_rate", lam_total / length)
            node.set_attribute("mean_extinction_rate", mu_total / length)

    def log_prior_event_parameters(self) -> float:
        """
        Returns:
            float: the summed log prior density of the drawn parameters of
                   every non root event.
        """
        total = 0.0
        for event in self._event_collection:
            total += self._prior.lambda_init_log_prior(event.lam_init)
            total += self._prior.lambda_shift_log_prior(event.lam_shift)
            total += self._prior.mu_init_log_prior(event.mu_init)
        return total
