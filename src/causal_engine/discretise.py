"""
Discretisation of raw sample tables.

Measured data often arrives as real numbers, while every node of a network
takes integer values. A control file names, per sample-table row, how that
row's readings are mapped onto integers before learning:

    # row     method      [threshold]
    Rain      threshold   2.5
    Temp      round
    Wind      floor

Methods are ``none`` (values must already be integers), ``round`` (halves
round up), ``floor``, ``ceil`` and ``threshold`` (1 at or above the
threshold, 0 below it). Rows without a rule use ``none``. The missing marker
``-1`` is kept as it is under every method.

Usage:
    rules = read_control_file("control.txt")
    samples = load_samples("samples.txt", control="control.txt", deleted_samples=[3])
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Mapping, Optional, Union

import numpy as np

from .errors import MalformedInputError
from .matrix import LabeledMatrix
from .network import _read_lines
from .node import MISSING

logger = logging.getLogger(__name__)


class DiscretisationMethod(Enum):
    """Mapping from a raw reading to an integer value."""
    NONE = "none"
    ROUND = "round"
    FLOOR = "floor"
    CEIL = "ceil"
    THRESHOLD = "threshold"


@dataclass(frozen=True)
class DiscretisationRule:
    method: DiscretisationMethod
    threshold: Optional[float] = None

    def apply(self, value: float) -> int:
        if value == MISSING:
            return MISSING
        if self.method is DiscretisationMethod.THRESHOLD:
            return 1 if value >= self.threshold else 0
        if self.method is DiscretisationMethod.ROUND:
            return int(math.floor(value + 0.5))
        if self.method is DiscretisationMethod.FLOOR:
            return int(math.floor(value))
        if self.method is DiscretisationMethod.CEIL:
            return int(math.ceil(value))
        if not float(value).is_integer():
            raise ValueError(f"{value:g} is not an integer value")
        return int(value)


def read_control_file(path: Union[str, Path]) -> Dict[str, DiscretisationRule]:
    """
    Read ``<row name> <method> [threshold]`` lines; ``#`` starts a comment line.

    Raises:
        MalformedInputError: If the file is missing, a method is unknown, a
            threshold is missing or not a number, or a row is listed twice
    """
    rules: Dict[str, DiscretisationRule] = {}
    for number, tokens in _read_lines(path):
        if tokens[0].startswith("#"):
            continue
        if len(tokens) < 2:
            raise MalformedInputError(f"{path}:{number}: expected '<row> <method> [threshold]'")
        name, method_name = tokens[0], tokens[1].lower()
        try:
            method = DiscretisationMethod(method_name)
        except ValueError:
            known = ", ".join(m.value for m in DiscretisationMethod)
            raise MalformedInputError(
                f"{path}:{number}: unknown method '{tokens[1]}' (expected one of {known})"
            ) from None

        threshold = None
        if method is DiscretisationMethod.THRESHOLD:
            if len(tokens) < 3:
                raise MalformedInputError(f"{path}:{number}: method 'threshold' needs a value")
            try:
                threshold = float(tokens[2])
            except ValueError:
                raise MalformedInputError(f"{path}:{number}: '{tokens[2]}' is not a number") from None

        if name in rules:
            raise MalformedInputError(f"{path}:{number}: row '{name}' already has a rule")
        rules[name] = DiscretisationRule(method, threshold)
    return rules


def discretise(samples: LabeledMatrix, rules: Mapping[str, DiscretisationRule]) -> LabeledMatrix:
    """
    Integer copy of a raw sample table, with each row mapped by its rule.

    Raises:
        MalformedInputError: If a row without a rounding rule holds a non-integer
    """
    unknown = sorted(set(rules) - set(samples.row_names))
    if unknown:
        logger.warning(f"Discretisation rules for unknown rows ignored: {unknown}")

    default = DiscretisationRule(DiscretisationMethod.NONE)
    data = samples.to_numpy()
    result = np.empty(data.shape, dtype=int)
    for row in range(samples.row_count):
        name = samples.row_names[row] if row < len(samples.row_names) else str(row)
        rule = rules.get(name, default)
        try:
            result[row, :] = [rule.apply(float(value)) for value in data[row, :]]
        except ValueError as e:
            raise MalformedInputError(f"Row '{name}': {e}; give it a rule in the control file") from None

    matrix = LabeledMatrix(samples.row_count, samples.col_count, dtype=int)
    matrix._data = result
    if samples.row_names:
        matrix.set_row_names(samples.row_names)
    if samples.col_names:
        matrix.set_col_names(samples.col_names)
    return matrix


def load_samples(
    path: Union[str, Path],
    control: Optional[Union[str, Path]] = None,
    col_names: bool = True,
    deleted_samples: Iterable[int] = (),
) -> LabeledMatrix:
    """
    Read a raw sample table and discretise it for learning.

    Args:
        path: Sample table, one named row per node and one column per sample
        control: Optional control file with per-row rules
        col_names: The table starts with a header of sample names
        deleted_samples: 0-based sample columns to leave out

    Raises:
        MalformedInputError: If either file cannot be read or a value cannot be mapped
    """
    raw = LabeledMatrix.from_file(path, col_names=col_names, row_names=True,
                                  dtype=float, deleted_samples=deleted_samples)
    rules = read_control_file(control) if control else {}
    samples = discretise(raw, rules)
    logger.info(
        f"Loaded {samples.col_count} samples of {samples.row_count} variables from {path}"
        + (f" ({len(rules)} discretisation rules)" if rules else "")
    )
    return samples
