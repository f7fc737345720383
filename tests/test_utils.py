"""ユーティリティ（データ生成・インターフェース確認・可視化）のテスト"""

import numpy as np
import pandas as pd
import pytest

from mo_gbm.utils.model_interface import check_model_interface, generate_simple_data
from mo_gbm.utils.visualization import plot_number_of_trees, plot_output_metrics


def test_generate_simple_data_shapes():
    X_train, y_train, X_test, y_test = generate_simple_data(
        n_samples=100, n_features=6, n_outputs=3, test_size=0.2, random_state=42
    )
    assert X_train.shape == (80, 6)
    assert y_train.shape == (80, 3)
    assert X_test.shape == (20, 6)
    assert y_test.shape == (20, 3)


def test_generate_simple_data_is_reproducible():
    first = generate_simple_data(n_samples=50, random_state=7)
    second = generate_simple_data(n_samples=50, random_state=7)
    for a, b in zip(first, second):
        np.testing.assert_array_equal(a, b)


def test_generate_classification_labels():
    _, y_train, _, _ = generate_simple_data(n_samples=60, classification=True, random_state=1)
    assert set(np.unique(y_train)) <= {0.0, 1.0}


def test_generate_simple_data_needs_features():
    with pytest.raises(ValueError):
        generate_simple_data(n_features=3)


def test_check_model_interface():
    results = check_model_interface(n_samples=200, n_features=6, n_outputs=2)
    assert results['model_class'] == 'MultiOutputBooster'
    assert results['train_time'] >= 0
    assert results['number_of_trees'].shape == (2,)
    assert results['evaluation']['mse'].shape == (2,)


def test_check_model_interface_log_loss():
    results = check_model_interface({'objective': 'LogLoss', 'budget': 0.25}, n_samples=120, n_features=5)
    assert np.all(np.isfinite(results['evaluation']['mae']))


def test_plot_number_of_trees(tmp_path):
    path = tmp_path / "trees.png"
    plot_number_of_trees(np.array([5, 12, 3]), save_path=str(path))
    assert path.exists()


def test_plot_output_metrics(tmp_path):
    evaluation = {
        'mse': np.array([0.1, 0.2]),
        'mse_avg': 0.15,
        'r2': np.array([0.9, 0.8]),
        'r2_avg': 0.85,
    }
    path = tmp_path / "metrics.png"
    df = plot_output_metrics(evaluation, output_names=['price', 'demand'], save_path=str(path))
    assert path.exists()
    assert isinstance(df, pd.DataFrame)
    assert list(df.index) == ['mse', 'r2']
    assert list(df.columns) == ['price', 'demand']

    with pytest.raises(ValueError):
        plot_output_metrics({'mse_avg': 0.1})
