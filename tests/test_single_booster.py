"""単一出力ブースター（木の構築・目的関数・欠損値・制約）のテスト"""

import logging

import numpy as np
import pytest

from mo_gbm import (
    BoosterConfig,
    ConfigError,
    DeserializeError,
    NotFittedError,
    ShapeError,
    SingleOutputBooster,
)
from mo_gbm.models.booster_components import GradientComputer, Objective


def _squared(**params):
    return SingleOutputBooster(BoosterConfig.from_params(objective="SquaredLoss", **params))


def test_squared_loss_fit_reduces_error(regression_data):
    X, y = regression_data
    booster = _squared().fit(X, y[:, 0])
    pred = booster.predict(X)
    assert booster.base_score == pytest.approx(np.mean(y[:, 0]))
    assert len(booster.get_prediction_trees()) > 0
    assert np.mean((pred - y[:, 0]) ** 2) < 0.5 * np.var(y[:, 0])


def test_log_loss_probabilities(classification_data):
    X, y = classification_data
    booster = SingleOutputBooster().fit(X, y[:, 0])
    proba = booster.predict_proba(X)
    assert np.all((proba > 0) & (proba < 1))
    assert np.mean((proba > 0.5) == (y[:, 0] == 1)) > 0.9


def test_log_loss_rejects_targets_outside_unit_interval():
    booster = SingleOutputBooster()
    with pytest.raises(ValueError):
        booster.fit(np.zeros((4, 1)), np.array([0.0, 1.0, 2.0, 0.0]))
    assert not booster.is_fitted


def test_quantile_and_huber_base_scores():
    X = np.random.default_rng(0).standard_normal((10, 2))
    y = np.arange(1.0, 11.0)

    squared = _squared().fit(X, y, budget=0.01)
    assert squared.base_score == pytest.approx(5.5)

    quantile = SingleOutputBooster(BoosterConfig(objective="QuantileLoss")).fit(X, y, alpha=0.9, budget=0.01)
    assert quantile.base_score == 9.0

    huber = SingleOutputBooster(BoosterConfig(objective="HuberLoss")).fit(X, y, budget=0.01)
    assert huber.base_score == 5.0


def test_gradient_computer_alpha_defaults():
    assert GradientComputer(Objective.QUANTILE_LOSS).quantile == 0.5
    assert GradientComputer(Objective.HUBER_LOSS).huber_delta == 1.0
    assert GradientComputer(Objective.HUBER_LOSS, alpha=2.5).huber_delta == 2.5


def test_budget_controls_number_of_rounds(regression_data):
    X, y = regression_data
    assert len(_squared().fit(X, y[:, 0], budget=0.01).trees) == 1
    assert len(_squared().fit(X, y[:, 0], budget=0.25).trees) <= 5
    with pytest.raises(ValueError):
        _squared().fit(X, y[:, 0], budget=0)


def test_timeout_stops_after_first_tree(regression_data):
    X, y = regression_data
    booster = _squared().fit(X, y[:, 0], budget=5.0, timeout=0.0)
    assert len(booster.trees) == 1


def test_sample_weight_shapes_base_score():
    X = np.zeros((4, 1))
    y = np.array([1.0, 1.0, 5.0, 5.0])
    booster = _squared().fit(X, y, sample_weight=np.array([1.0, 1.0, 0.0, 0.0]), budget=0.01)
    assert booster.base_score == pytest.approx(1.0)

    with pytest.raises(ShapeError):
        _squared().fit(X, y, sample_weight=np.ones(3))
    with pytest.raises(ValueError):
        _squared().fit(X, y, sample_weight=np.array([1.0, -1.0, 1.0, 1.0]))


def test_continued_training_keeps_existing_trees(regression_data):
    X, y = regression_data
    booster = _squared().fit(X, y[:, 0], budget=0.25)
    first_trees = list(booster.trees)
    base_score = booster.base_score

    booster.fit(X, y[:, 0], budget=0.25, reset=False)
    assert booster.trees[:len(first_trees)] == first_trees
    assert len(booster.trees) >= len(first_trees)
    assert booster.base_score == base_score

    booster.fit(X, y[:, 0], budget=0.01, reset=True)
    assert len(booster.trees) == 1

    with pytest.raises(ShapeError):
        booster.fit(X[:, :2], y[:, 0], reset=False)


def test_predict_errors(regression_data):
    X, y = regression_data
    with pytest.raises(NotFittedError):
        SingleOutputBooster().predict(X)

    booster = _squared().fit(X, y[:, 0], budget=0.1)
    with pytest.raises(ShapeError):
        booster.predict(X[:, :3])


def test_feature_out_of_range_in_config(regression_data):
    X, y = regression_data
    with pytest.raises(ConfigError):
        _squared(monotone_constraints={4: 1}).fit(X, y[:, 0])
    with pytest.raises(ConfigError):
        _squared().fit(X, y[:, 0], categorical_features=[7])


def test_monotone_constraint_is_respected():
    rng = np.random.default_rng(3)
    X = rng.uniform(-2, 2, size=(300, 2))
    y = np.sin(3 * X[:, 0]) + 0.5 * X[:, 0] + 0.3 * X[:, 1] + rng.normal(0, 0.1, 300)

    grid = np.linspace(-2.5, 2.5, 101)
    for force in (False, True):
        booster = _squared(
            monotone_constraints={0: 1}, force_children_to_bound_parent=force
        ).fit(X, y)
        for x1 in (-1.0, 0.0, 1.5):
            pred = booster.predict(np.column_stack([grid, np.full_like(grid, x1)]))
            assert np.all(np.diff(pred) >= -1e-10)

    booster = _squared(monotone_constraints={0: -1}).fit(X, y)
    pred = booster.predict(np.column_stack([grid, np.zeros_like(grid)]))
    assert np.all(np.diff(pred) <= 1e-10)


def test_missing_values_learn_their_own_direction():
    rng = np.random.default_rng(4)
    X = rng.standard_normal((200, 2))
    missing_rows = rng.random(200) < 0.3
    X[missing_rows, 0] = np.nan
    y = np.where(missing_rows, 10.0, X[:, 1] * 0.1)

    booster = _squared().fit(X, y)
    pred = booster.predict(X)
    assert np.all(np.isfinite(pred))
    assert np.mean(pred[missing_rows]) > np.mean(pred[~missing_rows]) + 5


def test_custom_missing_sentinel():
    X = np.array([[-1.0], [-1.0], [2.0], [3.0]] * 10)
    y = np.where(X[:, 0] == -1.0, 4.0, 0.0)
    booster = _squared(missing=-1.0).fit(X, y)
    root = booster.trees[0].root
    assert not root.is_leaf
    assert root.split_value == -np.inf
    assert root.missing_left


def test_missing_split_only_when_allowed():
    X = np.where(np.arange(40) % 2 == 0, np.nan, 1.0).reshape(-1, 1)
    y = np.where(np.isnan(X[:, 0]), 1.0, 0.0)

    booster = _squared().fit(X, y)
    root = booster.trees[0].root
    assert not root.is_leaf
    assert root.split_value == -np.inf
    assert root.missing_left
    pred = booster.predict(X)
    assert np.all(pred[np.isnan(X[:, 0])] > pred[~np.isnan(X[:, 0])])

    booster = _squared(allow_missing_splits=False).fit(X, y)
    assert len(booster.trees) == 1
    assert booster.trees[0].root.is_leaf


def test_missing_branch_on_every_split(regression_data):
    X, y = regression_data
    X = X.copy()
    X[::5, 0] = np.nan
    booster = _squared(create_missing_branch=True).fit(X, y[:, 0], budget=0.25)
    split_nodes = [n for t in booster.trees for n in t.nodes() if not n.is_leaf]
    assert split_nodes
    assert all(n.missing is not None for n in split_nodes)
    assert np.all(np.isfinite(booster.predict(X)))


def test_terminate_missing_features_gives_leaf_missing_child(regression_data):
    X, y = regression_data
    X = X.copy()
    X[::4, 0] = np.nan
    booster = _squared(create_missing_branch=True, terminate_missing_features={0}).fit(X, y[:, 0], budget=0.25)
    for tree in booster.trees:
        for node in tree.nodes():
            if not node.is_leaf and node.split_feature == 0:
                assert node.missing.is_leaf


def test_missing_node_treatments(regression_data):
    X, y = regression_data
    booster = _squared(create_missing_branch=True, missing_node_treatment="AssignToParent").fit(
        X, y[:, 0], budget=0.1
    )
    for tree in booster.trees:
        for node in tree.nodes():
            if not node.is_leaf:
                assert node.missing.is_leaf
                assert node.missing.weight_value == node.weight_value

    booster = _squared(create_missing_branch=True, missing_node_treatment="AverageNodeWeight").fit(
        X, y[:, 0], budget=0.1
    )
    for tree in booster.trees:
        for node in tree.nodes():
            if not node.is_leaf:
                h_left, h_right = node.left.hessian_sum, node.right.hessian_sum
                expected = (h_left * node.left.weight_value + h_right * node.right.weight_value) / (h_left + h_right)
                assert node.missing.weight_value == pytest.approx(expected)

    booster = _squared(create_missing_branch=True, missing_node_treatment="None").fit(X, y[:, 0], budget=0.1)
    for tree in booster.trees:
        for node in tree.nodes():
            if not node.is_leaf:
                assert node.missing.weight_value == 0.0


def test_categorical_split_groups_categories():
    codes = np.tile([0.0, 1.0, 2.0, 3.0], 25)
    X = codes.reshape(-1, 1)
    y = np.where(codes % 2 == 0, 1.0, -1.0)

    booster = _squared().fit(X, y, categorical_features={0})
    root = booster.trees[0].root
    assert sorted(root.left_categories) == [0, 2]
    pred = booster.predict(np.array([[0.0], [1.0], [2.0], [3.0]]))
    assert pred[0] > 0 and pred[2] > 0
    assert pred[1] < 0 and pred[3] < 0


def test_categorical_codes_must_be_non_negative_integers():
    X = np.array([[0.0], [1.5], [2.0], [1.0]])
    with pytest.raises(ValueError):
        _squared().fit(X, np.arange(4.0), categorical_features=[0])


def test_log_iterations(regression_data, caplog):
    X, y = regression_data
    caplog.set_level(logging.INFO, logger="mo_gbm")
    _squared(log_iterations=1).fit(X, y[:, 0], budget=0.1)
    messages = [r.getMessage() for r in caplog.records]
    assert any(m.startswith("Iteration 1/2, MSE:") for m in messages)

    caplog.clear()
    _squared().fit(X, y[:, 0], budget=0.1)
    assert not any(m.startswith("Iteration") for m in (r.getMessage() for r in caplog.records))


def test_feature_importance(regression_data):
    X, y = regression_data
    booster = _squared().fit(X, y[:, 0], budget=0.5)
    importance = booster.feature_importance()
    assert importance.shape == (4,)
    assert importance.sum() == pytest.approx(1.0)
    # y[:, 0] は特徴0と1だけに依存する
    assert importance[0] > importance[2] and importance[0] > importance[3]


def test_json_round_trip(regression_data):
    X, y = regression_data
    X = X.copy()
    X[::7, 1] = np.nan
    booster = _squared(create_missing_branch=True).fit(X, y[:, 0], budget=0.25)
    loaded = SingleOutputBooster.from_json(booster.json_dump())
    np.testing.assert_array_equal(loaded.predict(X), booster.predict(X))
    assert loaded.config == booster.config


def test_save_and_load(regression_data, tmp_path):
    X, y = regression_data
    booster = _squared().fit(X, y[:, 1], budget=0.25)
    path = str(tmp_path / "single.mogbm")
    booster.save_booster(path)
    loaded = SingleOutputBooster.load_booster(path)
    np.testing.assert_array_equal(loaded.predict(X), booster.predict(X))


def test_malformed_document():
    with pytest.raises(DeserializeError):
        SingleOutputBooster.from_json('{"format": "mo_gbm", "format_version": 1, "kind": "single_output"}')
