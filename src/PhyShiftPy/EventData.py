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
Reading and writing event data files.

An event data file holds one event per line:

    species1 species2 event_time <model specific parameters>

species2 is "NA" when the event sits on the branch leading to species1. When
both names are given, the event sits on the branch leading to their most
recent common ancestor. event_time is the distance of the event from the
root. Lines starting with '#' are comments.

Author : Mark Kessler
Last Stable Edit : 3/11/25
First Included in Version : 1.0.0
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .Tree import NA

if TYPE_CHECKING:
    from .Model import Model

logger = logging.getLogger(__name__)

#########################
#### EXCEPTION CLASS ####
#########################

class EventDataError(Exception):
    """
    Error raised when an event data file cannot be read, or holds a malformed
    record.
    """
    def __init__(self, message : str = "Error reading event data") -> None:
        """
        Initialize the error with a message.

        Args:
            message (str, optional): Custom error message. Defaults to
                                     "Error reading event data".
        Returns:
            N/A
        """
        self.message = message
        super().__init__(self.message)

################
#### RECORD ####
################

@dataclass(frozen=True)
class EventRecord:
    species1 : str
    species2 : str
    event_time : float
    parameters : tuple[float, ...]

    def to_line(self) -> str:
        fields = [self.species1, self.species2, repr(float(self.event_time))]
        fields.extend(repr(float(param)) for param in self.parameters)
        return " ".join(fields)

#################
#### READING ####
#################

def parse_event_record(line : str,
                       n_params : int,
                       where : str = "") -> EventRecord:
    """
    Parse one whitespace separated record.

    Raises:
        EventDataError: If the record has the wrong number of fields, a number
                        cannot be parsed, or the first species is "NA".
    Args:
        line (str): a record.
        n_params (int): number of model specific parameters expected.
        where (str, optional): location prefix for error messages.
    Returns:
        EventRecord: the parsed record.
    """
    fields = line.split()
    if len(fields) != 3 + n_params:
        raise EventDataError(f"{where}expected {3 + n_params} fields, found "
                             f"{len(fields)}")

    species1, species2 = fields[0], fields[1]
    if species1 == NA:
        raise EventDataError(f"{where}either both species are NA or the "
                             "second species is NA")

    try:
        event_time = float(fields[2])
        parameters = tuple(float(field) for field in fields[3:])
    except ValueError as err:
        raise EventDataError(f"{where}{err}") from err

    return EventRecord(species1, species2, event_time, parameters)


def read_event_data(filename : str | Path, n_params : int) -> list[EventRecord]:
    """
    Read every record of an event data file.

    Raises:
        EventDataError: If the file cannot be opened or a record is malformed.
    Args:
        filename (str | Path): path to the event data file.
        n_params (int): number of model specific parameters per record.
    Returns:
        list[EventRecord]: the records, in file order.
    """
    try:
        with open(filename) as handle:
            lines = handle.readlines()
    except OSError as err:
        logger.error("<<%s>> is a bad file name.", filename)
        raise EventDataError(f"<<{filename}>> is a bad file name.") from err

    records : list[EventRecord] = []
    for line_no, line in enumerate(lines, start = 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        try:
            records.append(parse_event_record(line, n_params,
                                              f"{filename}, line {line_no}: "))
        except EventDataError as err:
            logger.error(err.message)
            raise
    return records

#################
#### WRITING ####
#################

def event_records(model : Model) -> list[EventRecord]:
    """
    Describe the root event and every registered event of a model as
    records, root first, then in registry order.

    Args:
        model (Model): a model.
    Returns:
        list[EventRecord]: one record per event.
    """
    tree = model.get_tree()
    records : list[EventRecord] = []
    for event in [model.get_root_event()] + model.get_events():
        species1, species2 = tree.representative_tips(event.get_event_node())
        records.append(EventRecord(species1,
                                   species2,
                                   event.get_absolute_time(),
                                   tuple(event.get_parameters())))
    return records


def write_event_data(model : Model, filename : str | Path) -> None:
    """
    Write a model's events to an event data file that
    Model.initialize_model_from_event_data_file can read back.

    Args:
        model (Model): a model.
        filename (str | Path): output path.
    Returns:
        N/A
    """
    header = ["species1", "species2", "event_time"]
    header.extend(model.PARAMETER_NAMES)

    with open(filename, "w") as handle:
        handle.write("# " + " ".join(header) + "\n")
        for record in event_records(model):
            handle.write(record.to_line() + "\n")
