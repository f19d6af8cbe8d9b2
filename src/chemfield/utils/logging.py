""" Logging functionality for ChemField.

Logging of computational times is controlled by the configuration file chemfield.cfg,
which should be placed in the current working directory (where the python script is
initiated). All logging-related information is located in a section in the cfg-file
with heading logging; see sample file below.

By default, timing is switched off. It can be turned on by setting the keyword
'active' to True.

Functions are classified as relevant for the following (overlapping) categories

    all: Used to log all methods.
    ad: Operations on sensitivity values.
    equilibrium: Gibbs energy minimization and inverse problems.
    kinetics: Rates and kinetic time stepping.
    field: Field-wide evaluations of the chemical solver.
    thermo: Evaluation of thermodynamic properties.

Example logging section of chemfield.cfg:

    [logging]
    # Activate logging. Without this, the rest of the section has no effect
    active: True
    # To only log specific sections, use e.g.
    sections: field
    # multiple sections are separated by commas:
    sections: field, equilibrium

Note that the regular messages of ChemField are emitted through the standard
:mod:`logging` module with loggers named after the modules (``chemfield.*``) and are
configured by the user as usual.

"""

from __future__ import annotations

import functools
import inspect
import logging
import os
import time
from typing import Callable

import chemfield as cf

__all__ = ["time_logger"]


# Try to access configuration information, as activated by the import of ChemField
try:
    config: dict = cf.config["logging"]
    raw_sections = config.get("sections", "all")
    active_sections = [s.strip().lower() for s in raw_sections.split(",")]
    logger_is_active = config.get("active", "false").strip().lower() == "true"
    always_log = "all" in active_sections

except KeyError:
    config = {}
    active_sections = ["all"]
    logger_is_active = False
    always_log = True

t_logger = logging.getLogger("Timer")
t_logger.setLevel(logging.INFO)


if logger_is_active and not t_logger.hasHandlers():
    # Add handler to write to file.
    time_handler = logging.FileHandler("ChemFieldTimings.log")
    time_handler.setLevel(logging.INFO)
    time_formatter = logging.Formatter("%(message)s")
    time_handler.setFormatter(time_formatter)
    t_logger.addHandler(time_handler)

# Find where in the file path the directory 'chemfield' is located.
# Used below to strip away the common parts of file names.
separator = os.sep
path_length = __file__.split(separator).index("chemfield")


def time_logger(sections: list[str]) -> Callable:
    """A decorator that measures ellapsed time for a function."""

    def inner_func(func):
        @functools.wraps(func)
        def log_time(*args, **kwargs):
            if not logger_is_active:
                return func(*args, **kwargs)
            elif always_log or any([s in active_sections for s in sections]):
                fn = separator.join(
                    inspect.getfile(func).split(separator)[path_length + 1 :]
                )
                name = f"{func.__name__} in file {fn}."

                t_logger.log(level=logging.INFO, msg=f"Calling {name}")

                start_time = time.perf_counter()
                value = func(*args, **kwargs)
                run_time = time.perf_counter() - start_time

                t_logger.log(
                    level=logging.INFO,
                    msg=f"Finished {name} Elapsed time: {run_time:.8f} s",
                )
                return value
            else:
                return func(*args, **kwargs)

        return log_time

    return inner_func
