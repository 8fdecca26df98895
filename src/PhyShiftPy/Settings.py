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
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

#########################
#### EXCEPTION CLASS ####
#########################

class SettingsError(Exception):
    """
    Error raised for unknown keys, or values that cannot be converted to the
    type a setting requires.
    """
    def __init__(self, message : str = "Error in the run settings") -> None:
        """
        Initialize the error with a message.

        Args:
            message (str, optional): Custom error message. Defaults to
                                     "Error in the run settings".
        Returns:
            N/A
        """
        self.message = message
        super().__init__(self.message)

##########################
#### HELPER FUNCTIONS ####
##########################

# A '#' starts a comment at the beginning of a line or after whitespace
_COMMENT = re.compile(r"(^|\s)#.*$")

def _describe(err : ValidationError) -> str:
    return "; ".join(f"{'.'.join(str(loc) for loc in error['loc'])}: "
                     f"{error['msg']}" for error in err.errors())

##################
#### SETTINGS ####
##################

class Settings(BaseModel):
    """
    Run settings read once when a Model is built: move tuning, priors,
    root event parameters and the event data input file.

    Values come from the defaults, then a control file (if any), then
    keyword overrides. Keys may be given in snake_case or in the camelCase
    used by control files (updateEventLocationScale, lambdaInit0).
    """

    model_config = ConfigDict(alias_generator = to_camel,
                              populate_by_name = True,
                              validate_assignment = True,
                              extra = "forbid")

    # Moves
    update_event_location_scale : float = Field(0.05, ge = 0)
    update_event_rate_scale : float = Field(4.0, ge = 0)
    local_global_move_ratio : float = Field(10.0, ge = 0)

    # Priors
    poisson_rate_prior : float = Field(1.0, gt = 0)
    lambda_init_prior : float = Field(1.0, gt = 0)
    lambda_shift_prior : float = Field(0.05, gt = 0)
    mu_init_prior : float = Field(1.0, gt = 0)

    # Root event
    lambda_init_0 : float = Field(0.032, ge = 0)
    lambda_shift_0 : float = 0.0
    mu_init_0 : float = Field(0.005, ge = 0)
    mu_shift_0 : float = 0.0

    event_data_infile : str = "event_data_in.txt"

    def __init__(self, **overrides : Any) -> None:
        """
        Initialize settings from the defaults plus keyword overrides.

        Raises:
            SettingsError: If an override names an unknown setting, or has a
                           value of the wrong type or out of range.
        Args:
            **overrides (Any): setting name -> value.
        Returns:
            N/A
        """
        try:
            super().__init__(**overrides)
        except ValidationError as err:
            logger.error("Invalid settings: %s", _describe(err))
            raise SettingsError(f"Invalid settings: {_describe(err)}") \
                from err

    @classmethod
    def from_file(cls, filename : str | Path, **overrides : Any) -> Settings:
        """
        Read a control file made of "key = value" lines. Blank lines and
        comments are ignored.

        Raises:
            SettingsError: If the file cannot be read, a line is malformed, or
                           a key/value is invalid.
        Args:
            filename (str | Path): path to the control file.
            **overrides (Any): settings that take priority over the file.
        Returns:
            Settings: the parsed settings.
        """
        try:
            lines = Path(filename).read_text().splitlines()
        except OSError as err:
            logger.error("<<%s>> is a bad file name.", filename)
            raise SettingsError(f"<<{filename}>> is a bad file name.") from err

        values : dict[str, Any] = {}
        for line_no, line in enumerate(lines, start = 1):
            line = _COMMENT.sub("", line).strip()
            if not line:
                continue
            if "=" not in line:
                logger.error("%s, line %d: expected 'key = value'",
                             filename, line_no)
                raise SettingsError(f"{filename}, line {line_no}: expected \
'key = value'")
            key, value = line.split("=", 1)
            values[cls._field_name(key.strip())] = value.strip()

        for key, value in overrides.items():
            values[cls._field_name(key)] = value

        settings = cls(**values)
        logger.info("Read settings from <<%s>>", filename)
        return settings

    @classmethod
    def _field_name(cls, key : str) -> str:
        """
        Map a camelCase alias to its field name, so file values and keyword
        overrides for the same setting do not collide. Unknown keys are
        returned unchanged and rejected on validation.
        """
        for name, field in cls.model_fields.items():
            if key == field.alias:
                return name
        return key

    def set(self, key : str, value : Any) -> None:
        """
        Set one setting, converting the value to the setting's type.

        Raises:
            SettingsError: unknown key, unconvertible or out of range value.
        Args:
            key (str): a setting name (snake_case or camelCase).
            value (Any): the new value.
        Returns:
            N/A
        """
        name = self._field_name(key)
        if name not in type(self).model_fields:
            logger.error("Unknown setting: %s", key)
            raise SettingsError(f"Unknown setting: {key}")
        try:
            setattr(self, name, value)
        except ValidationError as err:
            logger.error("Invalid setting: %s", _describe(err))
            raise SettingsError(f"Invalid setting: {_describe(err)}") \
                from err

    def as_dict(self) -> dict[str, Any]:
        """
        Returns:
            dict[str, Any]: every setting name mapped to its current value.
        """
        return self.model_dump()
