"""
モデルインターフェース確認用モジュール

このモジュールは、多出力ブースターの共通インターフェース（fit / predict /
evaluate）を合成データで確認するためのユーティリティを提供します。
"""

import logging
import time
from typing import Any, Dict, Optional, Tuple

import numpy as np

from ..models.multi_output import MultiOutputBooster

logger = logging.getLogger(__name__)


def generate_simple_data(n_samples: int = 1000, n_features: int = 10, n_outputs: int = 2,
                         test_size: float = 0.2, classification: bool = False,
                         random_state: Optional[int] = None) -> Tuple:
    """
    簡単な多出力データを生成

    各出力は共通の特徴と出力固有の特徴の線形結合にノイズを加えたもの。

    Parameters:
    -----------
    n_samples : int, default=1000
        サンプル数
    n_features : int, default=10
        特徴量の数（4以上）
    n_outputs : int, default=2
        出力数
    test_size : float, default=0.2
        テストデータの割合
    classification : bool, default=False
        True なら各出力を 0/1 ラベルに変換（LogLoss 用）
    random_state : int, optional
        乱数シード

    Returns:
    --------
    X_train : array-like, shape=(n_samples * (1 - test_size), n_features)
    y_train : array-like, shape=(n_samples * (1 - test_size), n_outputs)
    X_test : array-like, shape=(n_samples * test_size, n_features)
    y_test : array-like, shape=(n_samples * test_size, n_outputs)
    """
    if n_features < 4:
        raise ValueError(f"n_features must be at least 4, got {n_features}")

    rng = np.random.default_rng(random_state)
    X = rng.standard_normal((n_samples, n_features))
    y = np.zeros((n_samples, n_outputs))

    shared_features = rng.choice(n_features, size=n_features // 2, replace=False)
    own_candidates = np.setdiff1d(np.arange(n_features), shared_features)

    for i in range(n_outputs):
        own_features = rng.choice(own_candidates, size=n_features // 4, replace=False)
        used_features = np.concatenate([shared_features, own_features])
        weights = rng.standard_normal(len(used_features))
        y[:, i] = X[:, used_features] @ weights + rng.standard_normal(n_samples) * 0.1

    if classification:
        y = (y > np.median(y, axis=0)).astype(np.float64)

    n_test = int(n_samples * test_size)
    n_train = n_samples - n_test

    return X[:n_train], y[:n_train], X[n_train:], y[n_train:]


def check_model_interface(model_params: Optional[Dict[str, Any]] = None,
                          n_samples: int = 1000, n_features: int = 10, n_outputs: int = 2,
                          random_state: int = 42) -> Dict[str, Any]:
    """
    合成データで学習・予測・評価を行い、時間と指標をまとめる

    Parameters:
    -----------
    model_params : dict, optional
        MultiOutputBooster のパラメータ（既定は SquaredLoss, budget=0.5）
    n_samples, n_features, n_outputs : int
        合成データの大きさ
    random_state : int, default=42
        乱数シード

    Returns:
    --------
    results : dict
        'model_class', 'train_time', 'predict_time', 'number_of_trees', 'evaluation'
    """
    if model_params is None:
        model_params = {'objective': 'SquaredLoss', 'budget': 0.5}

    classification = model_params.get('objective', 'LogLoss') == 'LogLoss'
    X_train, y_train, X_test, y_test = generate_simple_data(
        n_samples=n_samples,
        n_features=n_features,
        n_outputs=n_outputs,
        classification=classification,
        random_state=random_state
    )

    model = MultiOutputBooster(**model_params)

    start_time = time.perf_counter()
    model.fit(X_train, y_train)
    train_time = time.perf_counter() - start_time

    start_time = time.perf_counter()
    model.predict(X_test)
    predict_time = time.perf_counter() - start_time

    eval_results = model.evaluate(X_test, y_test, metrics=['mse', 'rmse', 'mae', 'r2'])
    logger.info(
        f"{type(model).__name__}: train {train_time:.2f}s, predict {predict_time:.4f}s, "
        f"mse_avg {eval_results['mse_avg']:.4f}"
    )

    return {
        'model_class': type(model).__name__,
        'train_time': train_time,
        'predict_time': predict_time,
        'number_of_trees': model.number_of_trees,
        'evaluation': eval_results
    }
