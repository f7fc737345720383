"""Matrix のテスト"""

import numpy as np
import pytest

from mo_gbm import Matrix, ShapeError


def test_row_major_layout():
    m = Matrix([1.0, 2.0, 3.0, 4.0, 5.0, 6.0], rows=2, cols=3)
    assert m.rows == 2
    assert m.cols == 3
    assert m.shape == (2, 3)
    for r in range(2):
        for c in range(3):
            assert m.get(r, c) == float(r * 3 + c + 1)
    np.testing.assert_array_equal(m.get_row(1), [4.0, 5.0, 6.0])
    np.testing.assert_array_equal(m.get_col(2), [3.0, 6.0])


def test_length_mismatch_raises_shape_error():
    with pytest.raises(ShapeError):
        Matrix([1.0, 2.0, 3.0], rows=2, cols=2)
    # 組み込み例外としても捕捉できる
    with pytest.raises(ValueError):
        Matrix(np.zeros(5), rows=2, cols=3)


def test_negative_dimensions_rejected():
    with pytest.raises(ShapeError):
        Matrix([], rows=-1, cols=0)


def test_out_of_bounds_access():
    m = Matrix(np.arange(4.0), rows=2, cols=2)
    with pytest.raises(IndexError):
        m.get(2, 0)
    with pytest.raises(IndexError):
        m.get_col(5)


def test_view_is_read_only():
    m = Matrix.from_array(np.arange(6.0).reshape(2, 3))
    with pytest.raises(ValueError):
        m.as_array()[0, 0] = 42.0


def test_from_array_treats_1d_as_single_column():
    m = Matrix.from_array(np.array([1.0, 2.0, 3.0]))
    assert m.shape == (3, 1)
    np.testing.assert_array_equal(m.get_col(0), [1.0, 2.0, 3.0])


def test_from_array_rejects_3d():
    with pytest.raises(ShapeError):
        Matrix.from_array(np.zeros((2, 2, 2)))


def test_empty_matrix():
    m = Matrix(np.empty(0), rows=0, cols=3)
    assert m.shape == (0, 3)
