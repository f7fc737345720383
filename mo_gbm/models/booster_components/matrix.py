"""
Matrix View

A read-only, row-major view over a flat numeric buffer shared by training
and prediction calls.
"""

from typing import Sequence, Tuple, Union
import numpy as np

from .errors import ShapeError


class Matrix:
    """
    行優先のフラットなバッファに対する読み取り専用ビュー

    value(r, c) = buffer[r * cols + c]

    バッファが連続した float64 の numpy 配列であればコピーせずに参照する。
    呼び出し側がバッファを所有し、Matrix は書き込み不可のビューのみを公開する。

    Attributes:
    -----------
    rows : int
        行数
    cols : int
        列数
    """

    def __init__(self, data: Union[np.ndarray, Sequence[float]], rows: int, cols: int):
        if rows < 0 or cols < 0:
            raise ShapeError(f"rows and cols must be non-negative, got rows={rows}, cols={cols}")

        buffer = np.asarray(data, dtype=np.float64)
        if buffer.ndim != 1:
            buffer = buffer.reshape(-1)
        if buffer.shape[0] != rows * cols:
            raise ShapeError(
                f"Buffer of length {buffer.shape[0]} does not match rows * cols = {rows} * {cols} = {rows * cols}"
            )

        self._rows = rows
        self._cols = cols
        view = buffer.reshape(rows, cols)
        view.flags.writeable = False
        self._data = view

    @classmethod
    def from_array(cls, array: np.ndarray) -> "Matrix":
        """
        2次元配列から Matrix を作成

        Parameters:
        -----------
        array : array-like, shape=(n_rows, n_cols)
            入力配列（1次元の場合は1列として扱う）

        Returns:
        --------
        matrix : Matrix
        """
        array = np.asarray(array, dtype=np.float64)
        if array.ndim == 1:
            array = array.reshape(-1, 1)
        if array.ndim != 2:
            raise ShapeError(f"Expected a 2D array, got {array.ndim}D")
        rows, cols = array.shape
        return cls(np.ascontiguousarray(array).reshape(-1), rows, cols)

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def shape(self) -> Tuple[int, int]:
        return self._rows, self._cols

    def get(self, row: int, col: int) -> float:
        if not (0 <= row < self._rows and 0 <= col < self._cols):
            raise IndexError(f"Index ({row}, {col}) out of bounds for matrix of shape {self.shape}")
        return float(self._data[row, col])

    def get_row(self, row: int) -> np.ndarray:
        if not 0 <= row < self._rows:
            raise IndexError(f"Row {row} out of bounds for matrix with {self._rows} rows")
        return self._data[row]

    def get_col(self, col: int) -> np.ndarray:
        if not 0 <= col < self._cols:
            raise IndexError(f"Column {col} out of bounds for matrix with {self._cols} columns")
        return self._data[:, col]

    def as_array(self) -> np.ndarray:
        """Read-only 2D view of shape (rows, cols)."""
        return self._data

    def __repr__(self) -> str:
        return f"Matrix(rows={self._rows}, cols={self._cols})"
