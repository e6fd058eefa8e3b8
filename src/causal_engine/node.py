"""
Discrete random variable of a Bayesian network.

A node owns its conditional probability table (CPT) and the observation
counts the CPT is learned from. Both tables share the same rows: one row per
joint value combination of the parents the node was learned against, in
``itertools.product`` order (first parent varies slowest).
"""

from __future__ import annotations

import itertools
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .errors import NotFoundError
from .matrix import NA_NAME, LabeledMatrix


# Marker for a missing value in raw sample tables
MISSING = -1

# Row name of the single CPT row of a node without parents
ROOT_ROW = "prior"


class Node:
    """One discrete random variable: identity, learned parents, CPT and counts."""

    def __init__(self, node_id: int, name: str):
        self.id = int(node_id)
        self.name = str(name)
        self.parent_ids: List[int] = []
        self.parent_values: List[List[int]] = []
        self._parent_value_index: List[Dict[int, int]] = []
        self.cpt = LabeledMatrix(dtype=np.float32)
        self.observations = LabeledMatrix(dtype=np.float64)
        self._backup: Optional[LabeledMatrix] = None

    def __repr__(self) -> str:
        return f"Node(id={self.id}, name={self.name!r}, parents={self.parent_ids})"

    @property
    def values(self) -> List[int]:
        """The node's own values, in CPT column order."""
        return [int(name) for name in self.cpt.col_names]

    @property
    def has_cpt(self) -> bool:
        return self.cpt.row_count > 0 and self.cpt.col_count > 0

    def get_number_of_parents(self) -> int:
        return len(self.parent_ids)

    def get_number_of_parent_values(self) -> int:
        return self.cpt.row_count

    def get_number_of_unique_values_excluding_na(self) -> int:
        return self.cpt.col_count

    def shape_tables(
        self,
        values: Sequence[int],
        parent_ids: Sequence[int],
        parent_values: Sequence[Sequence[int]],
        parent_names: Sequence[str],
        with_na: bool,
    ) -> None:
        """
        (Re)create the CPT and observation tables for the given parent structure.

        The CPT starts uniform; counts start at zero. An ``"NA"`` column leads
        the observation table when the node has missing samples.
        """
        self.parent_ids = [int(p) for p in parent_ids]
        self.parent_values = [[int(v) for v in domain] for domain in parent_values]
        self._parent_value_index = [
            {value: position for position, value in enumerate(domain)}
            for domain in self.parent_values
        ]

        if self.parent_ids:
            rows = [
                ",".join(f"{name}={value}" for name, value in zip(parent_names, combination))
                for combination in itertools.product(*self.parent_values)
            ]
        else:
            rows = [ROOT_ROW]

        value_names = [str(int(v)) for v in values]
        uniform = 1.0 / len(value_names) if value_names else 0.0
        self.cpt = LabeledMatrix.from_names(rows, value_names, uniform, np.float32)
        columns = ([NA_NAME] if with_na else []) + value_names
        self.observations = LabeledMatrix.from_names(rows, columns, 0.0, np.float64)
        self._backup = None

    def row_index(self, parent_assignment: Sequence[int]) -> int:
        """CPT row of a joint assignment of the learned parents (in ``parent_ids`` order)."""
        row = 0
        for position, value in enumerate(parent_assignment):
            index = self._parent_value_index[position].get(int(value))
            if index is None:
                raise NotFoundError(
                    f"Value {value} is not a value of parent {self.parent_ids[position]} of node {self.name}"
                )
            row = row * len(self.parent_values[position]) + index
        return row

    def parent_assignment(self, row: int) -> Tuple[int, ...]:
        """Inverse of ``row_index``: the parent values a CPT row stands for."""
        assignment = []
        for domain in reversed(self.parent_values):
            row, index = divmod(row, len(domain))
            assignment.append(domain[index])
        return tuple(reversed(assignment))

    def col_index(self, value: int) -> int:
        """CPT column of one of the node's own values."""
        col = self.cpt.find_col(str(int(value)))
        if col is None:
            raise NotFoundError(f"Value {value} is not a value of node {self.name}")
        return col

    def get_probability(self, row: int, col: int) -> float:
        return self.cpt.get(row, col)

    def set_probability(self, probability: float, row: int, col: int) -> None:
        self.cpt.set(probability, row, col)

    def probability_of(self, value: int, parent_assignment: Sequence[int] = ()) -> float:
        """P(node = value | learned parents = parent_assignment)."""
        return self.cpt.get(self.row_index(parent_assignment), self.col_index(value))

    def count(self, value: int, parent_assignment: Sequence[int]) -> None:
        """Add one sample to the observation counts."""
        row = self.row_index(parent_assignment)
        col = self.observations.find_col(NA_NAME if value == MISSING else str(int(value)))
        if col is None:
            raise NotFoundError(f"Value {value} is not a value of node {self.name}")
        self.observations.set(self.observations.get(row, col) + 1, row, col)

    def save_backup(self) -> None:
        """Snapshot the observation counts."""
        self._backup = self.observations.copy()

    def load_backup(self) -> None:
        """Restore the observation counts saved by ``save_backup``."""
        if self._backup is not None:
            self.observations = self._backup.copy()

    def copy_as(self, node_id: int, name: str, parent_ids: Sequence[int]) -> "Node":
        """Copy this node's tables under a new identity and learned parents."""
        twin = Node(node_id, name)
        twin.parent_ids = [int(p) for p in parent_ids]
        twin.parent_values = [list(domain) for domain in self.parent_values]
        twin._parent_value_index = [dict(index) for index in self._parent_value_index]
        twin.cpt = self.cpt.copy()
        twin.observations = self.observations.copy()
        twin._backup = self._backup.copy() if self._backup is not None else None
        return twin
