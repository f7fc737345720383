"""
テスト共通のフィクスチャ
"""

import matplotlib
matplotlib.use("Agg")

import numpy as np
import pytest


@pytest.fixture
def regression_data():
    """2出力の回帰データ（4特徴量、120サンプル）"""
    rng = np.random.default_rng(0)
    X = rng.standard_normal((120, 4))
    y = np.column_stack([
        2.0 * X[:, 0] + X[:, 1],
        -X[:, 2] + 0.5 * X[:, 3],
    ])
    return X, y


@pytest.fixture
def classification_data():
    """3出力の二値ラベル（LogLoss 用）"""
    rng = np.random.default_rng(1)
    X = rng.standard_normal((150, 3))
    y = np.column_stack([
        (X[:, 0] > 0).astype(float),
        (X[:, 1] > 0.5).astype(float),
        (X[:, 0] + X[:, 2] > 0).astype(float),
    ])
    return X, y
