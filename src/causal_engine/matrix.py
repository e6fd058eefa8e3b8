"""
Labeled two-dimensional matrix.

A dense numpy-backed table whose cells can be addressed either by
``(row, col)`` index or by row/column name. Used for adjacency matrices,
conditional probability tables, observation counts and raw sample tables.

Usage:
    m = LabeledMatrix.from_names(["a", "b"], ["x", "y"], initial_value=0, dtype=int)
    m.set(3, 0, 1)
    m.get_by_names("a", "y")   # -> 3
    m["b", "x"] = 7
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np

from .errors import MalformedInputError, NotFoundError, OutOfRangeError, ShrinkRejectedError


NA_NAME = "NA"


class LabeledMatrix:
    """Dense matrix with unique, insertion-ordered row and column names."""

    def __init__(
        self,
        row_count: int = 0,
        col_count: int = 0,
        initial_value: Any = 0,
        dtype: Any = float,
        row_names: Optional[Sequence[str]] = None,
        col_names: Optional[Sequence[str]] = None,
    ):
        self.dtype = np.dtype(dtype)
        self._data = np.full((row_count, col_count), initial_value, dtype=self.dtype)
        self._row_names: List[str] = []
        self._col_names: List[str] = []
        self._row_index: Dict[str, int] = {}
        self._col_index: Dict[str, int] = {}
        if row_names is not None:
            self.set_row_names(row_names)
        if col_names is not None:
            self.set_col_names(col_names)

    @classmethod
    def from_names(
        cls,
        row_names: Sequence[str],
        col_names: Sequence[str],
        initial_value: Any = 0,
        dtype: Any = float,
    ) -> "LabeledMatrix":
        """Create a matrix sized by its name sequences."""
        return cls(len(row_names), len(col_names), initial_value, dtype, row_names, col_names)

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        col_names: bool = True,
        row_names: bool = True,
        dtype: Any = int,
        deleted_samples: Iterable[int] = (),
    ) -> "LabeledMatrix":
        """
        Read a whitespace-delimited matrix file.

        The optional header row holds the column names; it may carry an extra
        leading corner token, which is dropped. The optional first column of
        every data row holds the row name.

        Args:
            path: File to read
            col_names: First line is a header of column names
            row_names: First token of each data line is the row name
            dtype: Element type of the matrix
            deleted_samples: 0-based data column indices to leave out

        Raises:
            MalformedInputError: If the file is missing, a cell cannot be parsed,
                or a row's token count differs from the column count
        """
        path = Path(path)
        if not path.is_file():
            raise MalformedInputError(f"File not found: {path}")

        with open(path, "r") as f:
            lines = [(number, line.split()) for number, line in enumerate(f, start=1)]
        lines = [(number, tokens) for number, tokens in lines if tokens]

        header: List[str] = []
        if col_names and lines:
            header = lines.pop(0)[1]

        offset = 1 if row_names else 0
        if col_names:
            col_count = len(header)
            if row_names and lines and len(header) == len(lines[0][1]):
                header = header[1:]
                col_count -= 1
        else:
            col_count = len(lines[0][1]) - offset if lines else 0

        deleted = sorted(set(deleted_samples))
        if deleted and (deleted[0] < 0 or deleted[-1] >= col_count):
            raise MalformedInputError(
                f"Attempted to delete samples {deleted} from a matrix with {col_count} columns"
            )
        kept = [col for col in range(col_count) if col not in set(deleted)]

        dtype = np.dtype(dtype)
        names: List[str] = []
        rows: List[List[Any]] = []
        for number, tokens in lines:
            cells = tokens[offset:]
            if len(cells) != col_count:
                raise MalformedInputError(
                    f"Row {number} does not contain the specified number of samples"
                )
            try:
                parsed = [dtype.type(cells[col]) for col in kept]
            except ValueError as e:
                raise MalformedInputError(f"Row {number}: {e}") from e
            if row_names:
                names.append(tokens[0])
            rows.append(parsed)

        matrix = cls(len(rows), len(kept), dtype=dtype)
        if rows:
            matrix._data = np.array(rows, dtype=dtype).reshape(len(rows), len(kept))
        if row_names:
            matrix.set_row_names(names)
        if col_names:
            matrix.set_col_names([header[col] for col in kept])
        return matrix

    # ------------------------------------------------------------------
    # Dimensions and names
    # ------------------------------------------------------------------

    @property
    def row_count(self) -> int:
        return self._data.shape[0]

    @property
    def col_count(self) -> int:
        return self._data.shape[1]

    @property
    def shape(self):
        return self._data.shape

    @property
    def row_names(self) -> List[str]:
        return list(self._row_names)

    @property
    def col_names(self) -> List[str]:
        return list(self._col_names)

    def set_row_names(self, names: Sequence[str]) -> None:
        """Assign row names and rebuild the row lookup."""
        self._row_names, self._row_index = self._build_index(names, self.row_count, "row")

    def set_col_names(self, names: Sequence[str]) -> None:
        """Assign column names and rebuild the column lookup."""
        self._col_names, self._col_index = self._build_index(names, self.col_count, "column")

    @staticmethod
    def _build_index(names: Sequence[str], size: int, axis: str):
        names = [str(n) for n in names]
        if len(names) != size:
            raise MalformedInputError(f"Expected {size} {axis} names, got {len(names)}")
        index = {name: position for position, name in enumerate(names)}
        if len(index) != len(names):
            raise MalformedInputError(f"Duplicate {axis} names in {names}")
        return names, index

    def find_row(self, name: str) -> Optional[int]:
        """Return the index of a row name, or None if absent."""
        return self._row_index.get(name)

    def find_col(self, name: str) -> Optional[int]:
        """Return the index of a column name, or None if absent."""
        return self._col_index.get(name)

    def has_na_row(self) -> bool:
        return self.find_row(NA_NAME) is not None

    def has_na_col(self) -> bool:
        return self.find_col(NA_NAME) is not None

    # ------------------------------------------------------------------
    # Element access
    # ------------------------------------------------------------------

    def _check(self, row: int, col: int) -> None:
        if not (0 <= row < self.row_count and 0 <= col < self.col_count):
            raise OutOfRangeError(
                f"Invalid matrix position ({row}, {col}) for a "
                f"{self.row_count}x{self.col_count} matrix"
            )

    def _row_position(self, name: str) -> int:
        row = self.find_row(name)
        if row is None:
            raise NotFoundError(f"Row '{name}' not found")
        return row

    def _col_position(self, name: str) -> int:
        col = self.find_col(name)
        if col is None:
            raise NotFoundError(f"Column '{name}' not found")
        return col

    def get(self, row: int, col: int) -> Any:
        self._check(row, col)
        return self._data[row, col].item()

    def set(self, value: Any, row: int, col: int) -> None:
        self._check(row, col)
        self._data[row, col] = value

    def get_by_names(self, row_name: str, col_name: str) -> Any:
        return self._data[self._row_position(row_name), self._col_position(col_name)].item()

    def set_by_names(self, value: Any, row_name: str, col_name: str) -> None:
        self._data[self._row_position(row_name), self._col_position(col_name)] = value

    def _resolve(self, key) -> tuple:
        row, col = key
        if isinstance(row, str):
            row = self._row_position(row)
        if isinstance(col, str):
            col = self._col_position(col)
        self._check(row, col)
        return row, col

    def __getitem__(self, key) -> Any:
        row, col = self._resolve(key)
        return self._data[row, col].item()

    def __setitem__(self, key, value: Any) -> None:
        row, col = self._resolve(key)
        self._data[row, col] = value

    def row_values(self, row: int) -> List[Any]:
        self._check_row(row)
        return self._data[row, :].tolist()

    def col_values(self, col: int) -> List[Any]:
        self._check_col(col)
        return self._data[:, col].tolist()

    def _check_row(self, row: int) -> None:
        if not 0 <= row < self.row_count:
            raise OutOfRangeError(f"Invalid row {row} for a matrix with {self.row_count} rows")

    def _check_col(self, col: int) -> None:
        if not 0 <= col < self.col_count:
            raise OutOfRangeError(f"Invalid column {col} for a matrix with {self.col_count} columns")

    def to_numpy(self) -> np.ndarray:
        return self._data.copy()

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def row_sum(self, row: int) -> Any:
        self._check_row(row)
        return self._data[row, :].sum().item()

    def col_sum(self, col: int) -> Any:
        self._check_col(col)
        return self._data[:, col].sum().item()

    def unique_row_values(self, row: int, exclude: Any = None) -> List[Any]:
        """Sorted distinct values of a row, optionally without a sentinel."""
        self._check_row(row)
        return self._unique(self._data[row, :], exclude)

    def unique_col_values(self, col: int, exclude: Any = None) -> List[Any]:
        """Sorted distinct values of a column, optionally without a sentinel."""
        self._check_col(col)
        return self._unique(self._data[:, col], exclude)

    @staticmethod
    def _unique(values: np.ndarray, exclude: Any) -> List[Any]:
        if exclude is not None:
            values = values[values != exclude]
        return np.unique(values).tolist()

    def contains(self, value: Any) -> bool:
        return bool((self._data == value).any())

    def row_contains(self, row: int, value: Any) -> bool:
        return self.count_in_row(row, value) > 0

    def col_contains(self, col: int, value: Any) -> bool:
        return self.count_in_col(col, value) > 0

    def count_in_row(self, row: int, value: Any) -> int:
        self._check_row(row)
        return int((self._data[row, :] == value).sum())

    def count_in_col(self, col: int, value: Any) -> int:
        self._check_col(col)
        return int((self._data[:, col] == value).sum())

    # ------------------------------------------------------------------
    # Shape changes
    # ------------------------------------------------------------------

    def resize(self, row_count: int, col_count: int, initial_value: Any = 0) -> None:
        """
        Grow the matrix, keeping every existing cell at its coordinates.

        New cells are set to ``initial_value``. Names are kept; rows and
        columns added here stay unnamed until names are assigned again.

        Raises:
            ShrinkRejectedError: If either dimension would shrink
        """
        if row_count < self.row_count or col_count < self.col_count:
            raise ShrinkRejectedError(
                f"Matrices can not be shrunk: {self.row_count}x{self.col_count} "
                f"-> {row_count}x{col_count}"
            )
        grown = np.full((row_count, col_count), initial_value, dtype=self.dtype)
        grown[:self.row_count, :self.col_count] = self._data
        self._data = grown

    def clear(self) -> None:
        """Reset to an empty 0x0 matrix without names."""
        self._data = np.empty((0, 0), dtype=self.dtype)
        self._row_names, self._col_names = [], []
        self._row_index, self._col_index = {}, {}

    def copy(self) -> "LabeledMatrix":
        clone = LabeledMatrix(dtype=self.dtype)
        clone._data = self._data.copy()
        clone._row_names = list(self._row_names)
        clone._col_names = list(self._col_names)
        clone._row_index = dict(self._row_index)
        clone._col_index = dict(self._col_index)
        return clone

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _format(self, value: Any) -> str:
        if self.dtype.kind == "f":
            return f"{value:g}"
        return str(value)

    def __str__(self) -> str:
        lines = ["\t".join([""] + self._col_names)]
        for row in range(self.row_count):
            name = self._row_names[row] if row < len(self._row_names) else ""
            lines.append("\t".join([name] + [self._format(v) for v in self._data[row, :].tolist()]))
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"LabeledMatrix({self.row_count}x{self.col_count}, dtype={self.dtype})"

    def write(self, path: Union[str, Path]) -> None:
        """Write the tab-separated dump to a file."""
        with open(path, "w") as f:
            f.write(str(self) + "\n")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LabeledMatrix):
            return NotImplemented
        return (
            self._row_names == other._row_names
            and self._col_names == other._col_names
            and self._data.shape == other._data.shape
            and bool((self._data == other._data).all())
        )

    __hash__ = None
