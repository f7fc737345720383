"""
Single-Output Booster

This module contains the SingleOutputBooster class: one gradient-boosted
tree ensemble trained on one target column. Multi-output collections own
one instance per output and only use the public contract below.
"""

import logging
import math
import time
from typing import Any, Dict, Iterable, List, Optional, Union

import numpy as np

from .config import BoosterConfig, Objective
from .errors import ConfigError, DeserializeError, NotFittedError, ShapeError
from .gradient_computer import GradientComputer
from .matrix import Matrix
from . import persistence
from .tree_builder import TreeBuilder
from .tree_node import Tree

logger = logging.getLogger(__name__)


def as_matrix(X: Union[Matrix, np.ndarray]) -> Matrix:
    if isinstance(X, Matrix):
        return X
    return Matrix.from_array(X)


class SingleOutputBooster:
    """
    単一出力の勾配ブースティング決定木

    budget からブースティング反復回数を決める:
    n_rounds = max(1, ceil(budget * ROUNDS_PER_BUDGET))

    Attributes:
    -----------
    config : BoosterConfig
        共有設定（コレクションから設定される）
    base_score : float
        初期予測値
    trees : list of Tree
        学習済みの木のリスト（順序付き）
    n_features : int or None
        学習時の特徴量数
    categorical_features : set of int
        学習時に指定されたカテゴリ特徴
    """

    ROUNDS_PER_BUDGET = 20
    LEARNING_RATE = 0.3
    MAX_DEPTH = 6
    MIN_SAMPLES_LEAF = 1
    LAMBDA_REG = 1.0

    def __init__(self, config: Optional[BoosterConfig] = None):
        self.config = config if config is not None else BoosterConfig()
        self.base_score = 0.0
        self.trees: List[Tree] = []
        self.n_features: Optional[int] = None
        self.categorical_features = frozenset()
        self.learning_rate = self.LEARNING_RATE

    @property
    def is_fitted(self) -> bool:
        return self.n_features is not None

    def get_prediction_trees(self) -> List[Tree]:
        return list(self.trees)

    def fit(
        self,
        X: Union[Matrix, np.ndarray],
        y: np.ndarray,
        sample_weight: Optional[np.ndarray] = None,
        alpha: Optional[float] = None,
        budget: float = 1.0,
        reset: Optional[bool] = None,
        categorical_features: Optional[Iterable[int]] = None,
        timeout: Optional[float] = None
    ) -> "SingleOutputBooster":
        """
        モデルを学習

        State is only replaced once training finishes, so a failing call
        leaves the booster as it was.

        Parameters:
        -----------
        X : Matrix or array-like, shape=(n_samples, n_features)
            入力特徴量
        y : array-like, shape=(n_samples,)
            ターゲット値
        sample_weight : array-like, shape=(n_samples,), optional
            サンプル重み
        alpha : float, optional
            QuantileLoss の分位点 / HuberLoss の delta
        budget : float, default=1.0
            学習量（反復回数）を決める値
        reset : bool, optional
            True（既定）なら既存の木を破棄、False なら既存の木の上に追加学習
        categorical_features : set of int, optional
            カテゴリ特徴のインデックス（値は非負の整数コード）
        timeout : float, optional
            学習時間の上限（秒）。木を1本追加するごとに確認する

        Returns:
        --------
        self : SingleOutputBooster
        """
        start_time = time.monotonic()
        matrix = as_matrix(X)
        X_arr = matrix.as_array()
        n_samples, n_features = matrix.shape

        y = np.asarray(y, dtype=np.float64).reshape(-1)
        if y.shape[0] != n_samples:
            raise ShapeError(f"X ({n_samples} samples) and y ({y.shape[0]} samples) have different numbers of samples")
        if n_samples == 0:
            raise ShapeError("Cannot fit on an empty matrix")
        if np.any(~np.isfinite(y)):
            raise ValueError("y contains inf or NaN values")
        if self.config.objective == Objective.LOG_LOSS and np.any((y < 0) | (y > 1)):
            raise ValueError("LogLoss targets must lie in [0, 1]")

        if sample_weight is None:
            weights = np.ones(n_samples)
        else:
            weights = np.asarray(sample_weight, dtype=np.float64).reshape(-1)
            if weights.shape[0] != n_samples:
                raise ShapeError(f"sample_weight has {weights.shape[0]} entries, expected {n_samples}")
            if np.any(weights < 0) or np.any(~np.isfinite(weights)):
                raise ValueError("sample_weight must be finite and non-negative")

        if budget is None or not math.isfinite(budget) or budget <= 0:
            raise ValueError(f"budget must be a positive number, got {budget!r}")

        self.config.validate_for_features(n_features)
        categorical = self._validate_categorical(X_arr, categorical_features)

        reset = True if reset is None else reset
        continuing = not reset and self.is_fitted
        if continuing and self.n_features != n_features:
            raise ShapeError(
                f"Cannot continue training: model was fitted with {self.n_features} features, got {n_features}"
            )

        gradient_computer = GradientComputer(self.config.objective, alpha)
        missing_mask = self.config.is_missing(X_arr)

        if continuing:
            base_score = self.base_score
            trees = list(self.trees)
            y_pred = self._predict_raw(X_arr, missing_mask, base_score, trees)
        else:
            base_score = gradient_computer.compute_base_score(y, weights)
            trees = []
            y_pred = np.full(n_samples, base_score)

        builder = TreeBuilder(
            self.config,
            learning_rate=self.learning_rate,
            max_depth=self.MAX_DEPTH,
            min_samples_leaf=self.MIN_SAMPLES_LEAF,
            lambda_reg=self.LAMBDA_REG,
        )
        n_rounds = max(1, int(math.ceil(budget * self.ROUNDS_PER_BUDGET)))
        log_every = self.config.log_iterations

        for i in range(n_rounds):
            gradients, hessians = gradient_computer.compute_gradients_hessians(y, y_pred, weights)
            tree = builder.build_tree(X_arr, missing_mask, gradients, hessians, categorical)

            # 分割できない木は以降も改善しないので打ち切る
            if tree.root.is_leaf and i > 0:
                logger.debug(f"No further split found after {i} iterations, stopping")
                break

            trees.append(tree)
            y_pred += tree.predict(X_arr, missing_mask)

            if log_every and ((i + 1) % log_every == 0 or i == n_rounds - 1):
                loss_name, loss_value = gradient_computer.compute_loss(y, y_pred, weights)
                elapsed_time = time.monotonic() - start_time
                logger.info(f"Iteration {i + 1}/{n_rounds}, {loss_name}: {loss_value:.6f}, Time: {elapsed_time:.2f}s")

            if timeout is not None and time.monotonic() - start_time >= timeout:
                logger.debug(f"Timeout of {timeout}s reached after {i + 1} iterations")
                break

        self.base_score = float(base_score)
        self.trees = trees
        self.n_features = n_features
        self.categorical_features = categorical
        return self

    def _validate_categorical(self, X: np.ndarray, categorical_features: Optional[Iterable[int]]) -> frozenset:
        if categorical_features is None:
            return frozenset()
        categorical = frozenset(int(f) for f in categorical_features)
        for feature in categorical:
            if not 0 <= feature < X.shape[1]:
                raise ConfigError(
                    f"categorical_features references feature {feature}, but data has {X.shape[1]} features"
                )
            values = X[:, feature]
            values = values[~self.config.is_missing(values)]
            if np.any(values < 0) or np.any(values != np.floor(values)):
                raise ValueError(f"Categorical feature {feature} must hold non-negative integer codes")
        return categorical

    def _predict_raw(self, X: np.ndarray, missing_mask: np.ndarray, base_score: float, trees: List[Tree]) -> np.ndarray:
        y_pred = np.full(X.shape[0], base_score, dtype=np.float64)
        for tree in trees:
            y_pred += tree.predict(X, missing_mask)
        return y_pred

    def predict(self, X: Union[Matrix, np.ndarray]) -> np.ndarray:
        """
        学習済みモデルで予測（生スコア）

        Returns:
        --------
        y_pred : array-like, shape=(n_samples,)
        """
        if not self.is_fitted:
            raise NotFittedError("Model has not been fitted yet")
        matrix = as_matrix(X)
        if matrix.cols != self.n_features:
            raise ShapeError(f"X has {matrix.cols} features, but model was fitted with {self.n_features} features")
        X_arr = matrix.as_array()
        return self._predict_raw(X_arr, self.config.is_missing(X_arr), self.base_score, self.trees)

    def predict_proba(self, X: Union[Matrix, np.ndarray]) -> np.ndarray:
        """
        確率予測（生スコアにシグモイドを適用）

        Returns:
        --------
        probabilities : array-like, shape=(n_samples,)
        """
        return GradientComputer(self.config.objective).transform(self.predict(X))

    def feature_importance(self) -> np.ndarray:
        """Total split gain per feature, normalised to sum to 1."""
        if not self.is_fitted:
            raise NotFittedError("Model has not been fitted yet")
        importance = np.zeros(self.n_features)
        for tree in self.trees:
            for node in tree.nodes():
                if not node.is_leaf:
                    importance[node.split_feature] += node.split_gain
        total = np.sum(importance)
        if total > 0:
            importance = importance / total
        return importance

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_score": self.base_score,
            "n_features": self.n_features,
            "learning_rate": self.learning_rate,
            "categorical_features": sorted(self.categorical_features),
            "trees": [tree.to_dict() for tree in self.trees],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], config: Optional[BoosterConfig] = None) -> "SingleOutputBooster":
        booster = cls(config)
        booster.base_score = float(data["base_score"])
        booster.n_features = None if data["n_features"] is None else int(data["n_features"])
        booster.learning_rate = float(data["learning_rate"])
        booster.categorical_features = frozenset(int(f) for f in data["categorical_features"])
        booster.trees = [Tree.from_dict(tree) for tree in data["trees"]]
        return booster

    def to_document(self) -> Dict[str, Any]:
        return persistence.stamp(
            {"config": self.config.to_document(), "booster": self.to_dict()}, kind="single_output"
        )

    @classmethod
    def from_document(cls, document: Any) -> "SingleOutputBooster":
        document = persistence.check_header(document, kind="single_output")
        try:
            config = BoosterConfig.from_document(document["config"])
            return cls.from_dict(document["booster"], config)
        except (KeyError, TypeError, ValueError) as e:
            raise DeserializeError(f"Malformed booster document: {e!r}") from e

    def save_booster(self, path: str) -> None:
        persistence.save_document(self.to_document(), path)

    @classmethod
    def load_booster(cls, path: str) -> "SingleOutputBooster":
        return cls.from_document(persistence.load_document(path))

    def json_dump(self) -> str:
        return persistence.dumps_document(self.to_document())

    @classmethod
    def from_json(cls, json_str: str) -> "SingleOutputBooster":
        return cls.from_document(persistence.loads_document(json_str))
