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
import numpy as np
import scipy.stats

from .Settings import Settings


class Prior:
    """
    Priors on event parameters and on the event rate.

    Initial rates are exponential, shift parameters are normal with mean 0,
    and the event rate has an exponential prior whose rate is the Poisson
    rate prior.
    """

    def __init__(self, rng : np.random.Generator, settings : Settings) -> None:
        """
        Args:
            rng (np.random.Generator): the chain's random number generator.
            settings (Settings): run settings holding the prior parameters.
        Returns:
            N/A
        """
        self.rng : np.random.Generator = rng
        self.lambda_init = scipy.stats.expon(scale = 1.0 /
                                             settings.lambda_init_prior)
        self.lambda_shift = scipy.stats.norm(loc = 0.0,
                                             scale = settings.lambda_shift_prior)
        self.mu_init = scipy.stats.expon(scale = 1.0 / settings.mu_init_prior)
        self.event_rate = scipy.stats.expon(scale = 1.0 /
                                            settings.poisson_rate_prior)

    def generate_lambda_init_from_prior(self) -> float:
        return float(self.lambda_init.rvs(random_state = self.rng))

    def generate_lambda_shift_from_prior(self) -> float:
        return float(self.lambda_shift.rvs(random_state = self.rng))

    def generate_mu_init_from_prior(self) -> float:
        return float(self.mu_init.rvs(random_state = self.rng))

    def lambda_init_log_prior(self, value : float) -> float:
        return float(self.lambda_init.logpdf(value))

    def lambda_shift_log_prior(self, value : float) -> float:
        return float(self.lambda_shift.logpdf(value))

    def mu_init_log_prior(self, value : float) -> float:
        return float(self.mu_init.logpdf(value))

    def event_rate_log_prior(self, rate : float) -> float:
        """
        Args:
            rate (float): an event rate.
        Returns:
            float: the log density of 'rate' under its exponential prior.
        """
        return float(self.event_rate.logpdf(rate))
