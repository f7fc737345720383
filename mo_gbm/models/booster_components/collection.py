"""
Booster Collection

This module contains the BoosterCollection class: N single-output boosters
sharing one configuration, plus a string metadata store. Fitting and
prediction are delegated to the coordinators; persistence covers the
configuration, every booster and the metadata as one document.
"""

import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

import numpy as np

from .config import BoosterConfig, Constraint, MissingNodeTreatment, Objective
from .errors import ConfigError, DeserializeError, NotFoundError
from .fit_coordinator import FitCoordinator
from .matrix import Matrix
from . import persistence
from .predict_coordinator import PredictCoordinator
from .single_booster import SingleOutputBooster

logger = logging.getLogger(__name__)


class BoosterCollection:
    """
    出力ごとに独立したブースターの集合

    全ブースターは常に同じ BoosterConfig を参照する。設定の変更は新しい設定値を
    検証・構築してから全ブースターへ一度に差し替える（失敗時は何も変わらない）。

    Changing the configuration while ``fit`` or ``predict`` is running on the
    same collection is not supported; callers must synchronise externally.

    Attributes:
    -----------
    n_boosters : int
        出力数（コレクションの寿命の間は固定）
    config : BoosterConfig
        共有設定
    boosters : tuple of SingleOutputBooster
        出力順に並んだブースター
    metadata : dict
        ユーザー定義のメタデータ（文字列 → 文字列）
    """

    def __init__(self, n_boosters: int, config: Optional[BoosterConfig] = None):
        if isinstance(n_boosters, bool) or not isinstance(n_boosters, (int, np.integer)) or n_boosters < 1:
            raise ConfigError(f"n_boosters must be a positive integer, got {n_boosters!r}")
        self._n_boosters = int(n_boosters)
        self._config = config if config is not None else BoosterConfig()
        self._boosters = [SingleOutputBooster(self._config) for _ in range(self._n_boosters)]
        self._metadata: Dict[str, str] = {}

    @classmethod
    def from_params(cls, n_boosters: int, **params) -> "BoosterCollection":
        """
        文字列の列挙値や整数の制約マップなどプレーンな値からコレクションを作成

        Parameters:
        -----------
        n_boosters : int
            出力数
        **params : dict
            BoosterConfig のフィールド（get_params() の戻り値をそのまま渡せる）
        """
        return cls(n_boosters, BoosterConfig.from_params(**params))

    @property
    def n_boosters(self) -> int:
        return self._n_boosters

    def __len__(self) -> int:
        return self._n_boosters

    @property
    def config(self) -> BoosterConfig:
        return self._config

    @property
    def boosters(self) -> Tuple[SingleOutputBooster, ...]:
        return tuple(self._boosters)

    @property
    def metadata(self) -> Dict[str, str]:
        return dict(self._metadata)

    @property
    def base_score(self) -> np.ndarray:
        return np.array([b.base_score for b in self._boosters], dtype=np.float64)

    @property
    def number_of_trees(self) -> np.ndarray:
        return np.array([len(b.get_prediction_trees()) for b in self._boosters], dtype=np.int64)

    @property
    def is_fitted(self) -> bool:
        return all(b.is_fitted for b in self._boosters)

    # 設定の変更

    def _reconfigure(self, **changes) -> None:
        new_config = self._config.replace(**changes)
        for booster in self._boosters:
            booster.config = new_config
        self._config = new_config
        logger.debug(f"Reconfigured {self._n_boosters} boosters: {sorted(changes)}")

    def set_objective(self, value: Union[str, Objective]) -> None:
        self._reconfigure(objective=value)

    def set_num_threads(self, value: Optional[int]) -> None:
        self._reconfigure(num_threads=value)

    def set_monotone_constraints(self, value: Optional[Mapping[int, Union[int, Constraint]]]) -> None:
        self._reconfigure(monotone_constraints=value)

    def set_force_children_to_bound_parent(self, value: bool) -> None:
        self._reconfigure(force_children_to_bound_parent=value)

    def set_missing(self, value: float) -> None:
        self._reconfigure(missing=value)

    def set_allow_missing_splits(self, value: bool) -> None:
        self._reconfigure(allow_missing_splits=value)

    def set_create_missing_branch(self, value: bool) -> None:
        self._reconfigure(create_missing_branch=value)

    def set_terminate_missing_features(self, value: Optional[Iterable[int]]) -> None:
        self._reconfigure(terminate_missing_features=value)

    def set_missing_node_treatment(self, value: Union[str, MissingNodeTreatment]) -> None:
        self._reconfigure(missing_node_treatment=value)

    def set_log_iterations(self, value: int) -> None:
        self._reconfigure(log_iterations=value)

    def set_params(self, **params) -> "BoosterCollection":
        """Change several configuration fields in one all-or-nothing step."""
        self._reconfigure(**params)
        return self

    def get_params(self) -> Dict[str, Any]:
        """
        現在の設定のスナップショット

        Returns:
        --------
        params : dict
            from_params(n_boosters, **params) で同じ振る舞いのコレクションを作れる
        """
        return self._config.to_params()

    # メタデータ

    def insert_metadata(self, key: str, value: str) -> None:
        if not isinstance(key, str) or not isinstance(value, str):
            raise TypeError(f"Metadata keys and values must be strings, got {type(key).__name__} -> {type(value).__name__}")
        self._metadata[key] = value

    def get_metadata(self, key: str) -> str:
        try:
            return self._metadata[key]
        except KeyError:
            raise NotFoundError(f"No value associated with provided key {key}") from None

    # 学習・予測

    def fit(
        self,
        features: Union[Matrix, np.ndarray],
        targets: Union[Matrix, np.ndarray],
        sample_weight: Optional[np.ndarray] = None,
        alpha: Optional[float] = None,
        budget: float = 1.0,
        reset: Optional[bool] = None,
        categorical_features: Optional[Iterable[int]] = None,
        timeout: Optional[float] = None,
        parallel: bool = True
    ) -> "BoosterCollection":
        """See FitCoordinator.fit."""
        FitCoordinator(self).fit(
            features,
            targets,
            sample_weight=sample_weight,
            alpha=alpha,
            budget=budget,
            reset=reset,
            categorical_features=categorical_features,
            timeout=timeout,
            parallel=parallel,
        )
        return self

    def predict(self, features: Union[Matrix, np.ndarray], parallel: bool = True) -> np.ndarray:
        return PredictCoordinator(self).predict(features, parallel=parallel)

    def predict_proba(self, features: Union[Matrix, np.ndarray], parallel: bool = True) -> np.ndarray:
        return PredictCoordinator(self).predict_proba(features, parallel=parallel)

    def feature_importance(self) -> np.ndarray:
        """Per-output feature importance, shape (n_boosters, n_features)."""
        return np.vstack([b.feature_importance() for b in self._boosters])

    # 永続化

    def to_document(self) -> Dict[str, Any]:
        return persistence.stamp(
            {
                "n_boosters": self._n_boosters,
                "config": self._config.to_document(),
                "boosters": [b.to_dict() for b in self._boosters],
                "metadata": dict(self._metadata),
            },
            kind="multi_output",
        )

    @classmethod
    def from_document(cls, document: Any) -> "BoosterCollection":
        document = persistence.check_header(document, kind="multi_output")
        try:
            collection = cls(int(document["n_boosters"]), BoosterConfig.from_document(document["config"]))
            boosters = document["boosters"]
            if len(boosters) != collection.n_boosters:
                raise ValueError(
                    f"Document declares {collection.n_boosters} boosters but holds {len(boosters)}"
                )
            collection._boosters = [
                SingleOutputBooster.from_dict(data, collection.config) for data in boosters
            ]
            metadata = document["metadata"]
            for key, value in metadata.items():
                collection.insert_metadata(key, value)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise DeserializeError(f"Malformed multi-output booster document: {e!r}") from e
        return collection

    def save_booster(self, path: str) -> None:
        """Write the whole collection to ``path`` in binary form."""
        persistence.save_document(self.to_document(), path)

    @classmethod
    def load_booster(cls, path: str) -> "BoosterCollection":
        return cls.from_document(persistence.load_document(path))

    def json_dump(self) -> str:
        return persistence.dumps_document(self.to_document())

    @classmethod
    def from_json(cls, json_str: str) -> "BoosterCollection":
        return cls.from_document(persistence.loads_document(json_str))

    def __repr__(self) -> str:
        return f"BoosterCollection(n_boosters={self._n_boosters}, objective={self._config.objective.value!r})"
