#! /usr/bin/env python
# -*- coding: utf-8 -*-

##############################################################################
##  -- PhyShiftPy --
##  Library for the Placement of Rate-Shift Events on Phylogenetic Trees
##
##  Copyright 2025 Mark Kessler, Luay Nakhleh.
##  All rights reserved.
##############################################################################

"""
PhyShiftPy - Rate-Shift Event Placement on Phylogenetic Trees

Event bookkeeping and proposal moves for reversible-jump MCMC samplers that
place rate-shift events on a fixed tree.
"""

# Tree and per-branch event storage
from .Tree import Tree, Node, TreeError
from .BranchHistory import BranchHistory
from .BranchEvent import BranchEvent, BranchEventError
from .EventRegistry import EventRegistry

# Configuration, priors and event data files
from .Settings import Settings, SettingsError
from .Prior import Prior
from .EventData import (
    EventDataError,
    EventRecord,
    read_event_data,
    write_event_data
)

# Models
from .Model import Model, ModelError, ProposalKind, ProposalState
from .SpExModel import SpExModel, SpExBranchEvent

__version__ = "1.0.0"
__author__ = "Mark Kessler"
