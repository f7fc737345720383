"""
Multi-Output Booster (scikit-learn interface)
=============================================

BoosterCollection を scikit-learn の推定器として扱うためのラッパー。

Key Features:
- numpy 配列と pandas DataFrame の両方を入力として受け付ける
- pandas の category 列を自動検出し整数コードに変換
- 予測は (n_samples, n_outputs) の2次元配列で返す
- 学習済みモデルの set_params は共有設定を全ブースターへ再適用する
"""

import json
import logging
import math
from typing import Any, Dict, Iterable, List, Optional, Union

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, RegressorMixin
from sklearn.utils.validation import check_array, check_is_fitted

from .base import MultiOutputBase
from .booster_components import BoosterCollection, DeserializeError, Matrix, NotFoundError, SerializeError

logger = logging.getLogger(__name__)

# BoosterConfig に渡すコンストラクタ引数
CONFIG_PARAMS = (
    'objective',
    'num_threads',
    'monotone_constraints',
    'force_children_to_bound_parent',
    'missing',
    'allow_missing_splits',
    'create_missing_branch',
    'terminate_missing_features',
    'missing_node_treatment',
    'log_iterations',
)

# 学習時の前処理状態。保存時にコレクションのメタデータへ JSON で書き込む
PREPROCESSING_ATTRS = ('feature_names_in_', 'cat_mapping_', 'categorical_features_')


class MultiOutputBooster(MultiOutputBase, RegressorMixin, BaseEstimator):
    """
    多出力勾配ブースティング推定器

    各出力に独立したブースターを持ち、全ブースターが同じ設定を共有する。

    Parameters:
    -----------
    objective : str, default='LogLoss'
        'LogLoss', 'SquaredLoss', 'QuantileLoss', 'HuberLoss'
    budget : float, default=1.0
        学習量。大きいほど木が増える
    num_threads : int, optional
        並列学習・予測に使うスレッド数（None なら全コア）
    monotone_constraints : dict, optional
        特徴インデックス（DataFrame の場合は列名も可）→ -1, 0, 1
    force_children_to_bound_parent : bool, default=False
        単調制約で兄弟ノードの境界に親の重みを使う
    missing : float, default=np.nan
        欠損値として扱う値
    allow_missing_splits : bool, default=True
        欠損/非欠損による分割を候補に含める
    create_missing_branch : bool, default=False
        各分割に欠損値専用の子ノードを作る
    terminate_missing_features : iterable of int, optional
        欠損ノードを葉で打ち切る特徴
    missing_node_treatment : str, default='None'
        'None', 'AssignToParent', 'AverageLeafWeight', 'AverageNodeWeight'
    log_iterations : int, default=0
        何本ごとに学習ログを出すか（0 で無効）
    parallel : bool, default=True
        出力ごとに並列で学習・予測する
    """

    def __init__(self,
                 objective: str = 'LogLoss',
                 budget: float = 1.0,
                 num_threads: Optional[int] = None,
                 monotone_constraints: Optional[Dict[Any, int]] = None,
                 force_children_to_bound_parent: bool = False,
                 missing: float = np.nan,
                 allow_missing_splits: bool = True,
                 create_missing_branch: bool = False,
                 terminate_missing_features: Optional[Iterable[Any]] = None,
                 missing_node_treatment: str = 'None',
                 log_iterations: int = 0,
                 parallel: bool = True):
        self.objective = objective
        self.budget = budget
        self.num_threads = num_threads
        self.monotone_constraints = monotone_constraints
        self.force_children_to_bound_parent = force_children_to_bound_parent
        self.missing = missing
        self.allow_missing_splits = allow_missing_splits
        self.create_missing_branch = create_missing_branch
        self.terminate_missing_features = terminate_missing_features
        self.missing_node_treatment = missing_node_treatment
        self.log_iterations = log_iterations
        self.parallel = parallel

    # 入力変換

    def _feature_index(self, feature: Any) -> int:
        names = getattr(self, 'feature_names_in_', None)
        if isinstance(feature, str):
            if names is None or feature not in names:
                raise ValueError(f"Unknown feature name: {feature}")
            return names.index(feature)
        return int(feature)

    def _config_params(self) -> Dict[str, Any]:
        params = {name: getattr(self, name) for name in CONFIG_PARAMS}
        if params['monotone_constraints'] is not None:
            params['monotone_constraints'] = {
                self._feature_index(f): c for f, c in params['monotone_constraints'].items()
            }
        if params['terminate_missing_features'] is not None:
            params['terminate_missing_features'] = {
                self._feature_index(f) for f in params['terminate_missing_features']
            }
        return params

    def _missing_code(self) -> float:
        return np.nan if self.missing is None or (isinstance(self.missing, float) and math.isnan(self.missing)) else self.missing

    def _prepare_frame(self, X: pd.DataFrame, fitting: bool, categorical_features: Any) -> np.ndarray:
        """DataFrame を数値配列に変換（category 列は整数コード）"""
        columns = [str(c) for c in X.columns]
        if fitting:
            self.feature_names_in_ = columns
            if isinstance(categorical_features, str) and categorical_features == 'auto':
                categorical = [i for i, c in enumerate(X.columns) if isinstance(X[c].dtype, pd.CategoricalDtype)]
            elif categorical_features is None:
                categorical = []
            else:
                categorical = sorted(self._feature_index(f) for f in categorical_features)
            self.cat_mapping_ = {}
            for i in categorical:
                column = X.iloc[:, i]
                if isinstance(column.dtype, pd.CategoricalDtype):
                    self.cat_mapping_[i] = column.cat.categories.tolist()
            self.categorical_features_ = categorical
        else:
            expected = getattr(self, 'feature_names_in_', None)
            if expected is not None and columns != expected:
                raise ValueError(f"X has feature names {columns}, but model was fitted with {expected}")

        encoded = {}
        for i, c in enumerate(X.columns):
            column = X[c]
            if i in self.cat_mapping_:
                codes = pd.Categorical(column, categories=self.cat_mapping_[i]).codes.astype(np.float64)
                codes[codes < 0] = self._missing_code()
                encoded[i] = codes
            elif isinstance(column.dtype, pd.CategoricalDtype):
                codes = column.cat.codes.to_numpy().astype(np.float64)
                codes[codes < 0] = self._missing_code()
                encoded[i] = codes
            else:
                encoded[i] = column.to_numpy(dtype=np.float64, na_value=np.nan)
        return np.column_stack([encoded[i] for i in range(len(columns))]) if columns else np.empty((len(X), 0))

    def _prepare_features(self, X, fitting: bool = False, categorical_features: Any = None) -> np.ndarray:
        if isinstance(X, pd.DataFrame):
            X = self._prepare_frame(X, fitting, categorical_features)
        elif fitting:
            if hasattr(self, 'feature_names_in_'):
                del self.feature_names_in_
            self.cat_mapping_ = {}
            if categorical_features is None or (isinstance(categorical_features, str) and categorical_features == 'auto'):
                self.categorical_features_ = []
            else:
                self.categorical_features_ = sorted(self._feature_index(f) for f in categorical_features)
        return check_array(X, dtype=np.float64, ensure_all_finite=False)

    # 学習・予測

    def fit(self,
            X,
            y,
            sample_weight: Optional[np.ndarray] = None,
            alpha: Optional[float] = None,
            reset: Optional[bool] = None,
            categorical_features: Union[str, Iterable[Any], None] = 'auto',
            timeout: Optional[float] = None) -> 'MultiOutputBooster':
        """
        モデルを学習

        Parameters:
        -----------
        X : array-like or DataFrame, shape=(n_samples, n_features)
            入力特徴量
        y : array-like, shape=(n_samples, n_outputs)
            出力ごとのターゲット値（1次元なら出力数1）
        sample_weight : array-like, shape=(n_samples,), optional
            サンプル重み（全出力で共有）
        alpha : float, optional
            QuantileLoss の分位点 / HuberLoss の delta
        reset : bool, optional
            False なら既存の木の上に追加学習
        categorical_features : 'auto', iterable or None, default='auto'
            カテゴリ特徴。'auto' では DataFrame の category 列を使用
        timeout : float, optional
            出力ごとの学習時間の上限（秒）

        Returns:
        --------
        self : MultiOutputBooster
        """
        continuing = reset is False and hasattr(self, 'collection_')
        # 失敗時に前処理状態を元に戻す
        previous = {name: self.__dict__[name] for name in PREPROCESSING_ATTRS if name in self.__dict__}
        try:
            if continuing:
                X = self._prepare_features(X)
            else:
                X = self._prepare_features(X, fitting=True, categorical_features=categorical_features)
            X, y = self._validate_targets(
                X, check_array(y, dtype=np.float64, ensure_2d=False), self.n_outputs_ if continuing else None
            )

            if continuing:
                collection = self.collection_
            else:
                collection = BoosterCollection.from_params(y.shape[1], **self._config_params())
                for key, value in self._carried_metadata().items():
                    collection.insert_metadata(key, value)

            logger.debug(f"Fitting {y.shape[1]} outputs on {X.shape[0]} samples, {X.shape[1]} features")
            collection.fit(
                Matrix.from_array(X),
                Matrix.from_array(y),
                sample_weight=sample_weight,
                alpha=alpha,
                budget=self.budget,
                reset=reset,
                categorical_features=self.categorical_features_,
                timeout=timeout,
                parallel=self.parallel,
            )
        except Exception:
            for name in PREPROCESSING_ATTRS:
                if name in previous:
                    setattr(self, name, previous[name])
                elif name in self.__dict__:
                    delattr(self, name)
            raise

        self.collection_ = collection
        self.n_outputs_ = y.shape[1]
        self.n_features_in_ = X.shape[1]
        self.__dict__.pop('_pending_metadata', None)
        return self

    def _carried_metadata(self) -> Dict[str, str]:
        """新しいコレクションへ引き継ぐユーザーメタデータ"""
        metadata = {}
        if hasattr(self, 'collection_'):
            metadata.update(
                (k, v) for k, v in self.collection_.metadata.items() if k not in PREPROCESSING_ATTRS
            )
        metadata.update(self.__dict__.get('_pending_metadata', {}))
        return metadata

    def _reshape(self, flat: np.ndarray, n_samples: int) -> np.ndarray:
        # 出力優先の並びを (n_samples, n_outputs) に変換
        return flat.reshape(self.n_outputs_, n_samples).T

    def predict(self, X) -> np.ndarray:
        """
        生スコアを予測

        Returns:
        --------
        y_pred : array-like, shape=(n_samples, n_outputs)
        """
        check_is_fitted(self, ['collection_'])
        X = self._prepare_features(X)
        return self._reshape(self.collection_.predict(Matrix.from_array(X), parallel=self.parallel), X.shape[0])

    def predict_proba(self, X) -> np.ndarray:
        """
        各出力の陽性確率を予測

        Returns:
        --------
        probabilities : array-like, shape=(n_samples, n_outputs)
        """
        check_is_fitted(self, ['collection_'])
        X = self._prepare_features(X)
        return self._reshape(self.collection_.predict_proba(Matrix.from_array(X), parallel=self.parallel), X.shape[0])

    def set_params(self, **params) -> 'MultiOutputBooster':
        """
        パラメータを設定

        学習済みの場合、設定に関わるパラメータは全ブースターにも反映される。
        反映に失敗した場合は推定器もブースターも変更されない。
        """
        if hasattr(self, 'collection_'):
            valid = self.get_params(deep=False)
            for key in params:
                if key not in valid:
                    raise ValueError(f"Invalid parameter: {key}")
            changes = {k: v for k, v in params.items() if k in CONFIG_PARAMS}
            if changes:
                previous = {k: getattr(self, k) for k in changes}
                for key, value in changes.items():
                    setattr(self, key, value)
                try:
                    converted = self._config_params()
                    self.collection_.set_params(**{k: converted[k] for k in changes})
                except Exception:
                    for key, value in previous.items():
                        setattr(self, key, value)
                    raise
        return super().set_params(**params)

    # 学習済みモデルの情報

    @property
    def base_score(self) -> np.ndarray:
        check_is_fitted(self, ['collection_'])
        return self.collection_.base_score

    @property
    def number_of_trees(self) -> np.ndarray:
        check_is_fitted(self, ['collection_'])
        return self.collection_.number_of_trees

    @property
    def feature_importances_(self) -> np.ndarray:
        """Split-gain importance averaged over outputs, normalised to sum to 1."""
        check_is_fitted(self, ['collection_'])
        importance = np.mean(self.collection_.feature_importance(), axis=0)
        total = np.sum(importance)
        return importance / total if total > 0 else importance

    def trees_to_dataframe(self) -> pd.DataFrame:
        """
        全出力の全ノードを1つの DataFrame にまとめる

        Returns:
        --------
        df : DataFrame
            1行1ノード。output, tree, node, depth, feature, split_value,
            left_categories, missing_left, gain, weight, cover, n_samples,
            is_leaf, left, right, missing の列を持つ
        """
        check_is_fitted(self, ['collection_'])
        names = getattr(self, 'feature_names_in_', None)
        rows: List[Dict[str, Any]] = []
        for output, booster in enumerate(self.collection_.boosters):
            for tree_index, tree in enumerate(booster.get_prediction_trees()):
                for node in tree.nodes():
                    data = node.to_dict()
                    feature = data['split_feature']
                    if feature is not None and names is not None:
                        feature = names[feature]
                    rows.append({
                        'output': output,
                        'tree': tree_index,
                        'node': data['num'],
                        'depth': data['depth'],
                        'feature': feature,
                        'split_value': data['split_value'],
                        'left_categories': data['left_categories'],
                        'missing_left': data['missing_left'],
                        'gain': data['split_gain'],
                        'weight': data['weight_value'],
                        'cover': data['hessian_sum'],
                        'n_samples': data['n_samples'],
                        'is_leaf': data['is_leaf'],
                        'left': data['left_child'],
                        'right': data['right_child'],
                        'missing': data['missing_child'],
                    })
        return pd.DataFrame(rows)

    # メタデータ・永続化

    def insert_metadata(self, key: str, value: str) -> None:
        """
        メタデータを追加（学習前でも可）

        学習前に追加した値は fit 時に新しいコレクションへ引き継がれる。
        """
        if hasattr(self, 'collection_'):
            self.collection_.insert_metadata(key, value)
            return
        if not isinstance(key, str) or not isinstance(value, str):
            raise TypeError(f"Metadata keys and values must be strings, got {type(key).__name__} -> {type(value).__name__}")
        self.__dict__.setdefault('_pending_metadata', {})[key] = value

    def get_metadata(self, key: str) -> str:
        if hasattr(self, 'collection_'):
            return self.collection_.get_metadata(key)
        try:
            return self.__dict__.get('_pending_metadata', {})[key]
        except KeyError:
            raise NotFoundError(f"No value associated with provided key {key}") from None

    def _store_preprocessing(self) -> None:
        # 読み込み後も同じ列名・カテゴリ符号で予測できるようにする
        try:
            if hasattr(self, 'feature_names_in_'):
                self.collection_.insert_metadata('feature_names_in_', json.dumps(self.feature_names_in_))
            self.collection_.insert_metadata(
                'cat_mapping_', json.dumps({str(i): cats for i, cats in self.cat_mapping_.items()})
            )
            self.collection_.insert_metadata('categorical_features_', json.dumps(self.categorical_features_))
        except (TypeError, ValueError) as e:
            raise SerializeError(f"Could not serialize preprocessing state: {e}") from e

    def save_booster(self, path: str) -> None:
        """Save the fitted collection; reload with ``load_booster``."""
        check_is_fitted(self, ['collection_'])
        self._store_preprocessing()
        self.collection_.save_booster(path)

    def json_dump(self) -> str:
        check_is_fitted(self, ['collection_'])
        self._store_preprocessing()
        return self.collection_.json_dump()

    @classmethod
    def _from_collection(cls, collection: BoosterCollection) -> 'MultiOutputBooster':
        params = collection.get_params()
        model = cls(
            objective=params['objective'],
            num_threads=params['num_threads'],
            monotone_constraints=params['monotone_constraints'] or None,
            force_children_to_bound_parent=params['force_children_to_bound_parent'],
            missing=params['missing'],
            allow_missing_splits=params['allow_missing_splits'],
            create_missing_branch=params['create_missing_branch'],
            terminate_missing_features=params['terminate_missing_features'] or None,
            missing_node_treatment=params['missing_node_treatment'],
            log_iterations=params['log_iterations'],
        )
        model.collection_ = collection
        model.n_outputs_ = collection.n_boosters
        model.cat_mapping_ = {}
        model.categorical_features_ = []
        boosters = collection.boosters
        if boosters[0].is_fitted:
            model.n_features_in_ = boosters[0].n_features
            model.categorical_features_ = sorted(boosters[0].categorical_features)

        metadata = collection.metadata
        try:
            if 'feature_names_in_' in metadata:
                model.feature_names_in_ = [str(name) for name in json.loads(metadata['feature_names_in_'])]
            if 'cat_mapping_' in metadata:
                model.cat_mapping_ = {int(i): list(cats) for i, cats in json.loads(metadata['cat_mapping_']).items()}
            if 'categorical_features_' in metadata:
                model.categorical_features_ = [int(i) for i in json.loads(metadata['categorical_features_'])]
        except (TypeError, ValueError, AttributeError) as e:
            raise DeserializeError(f"Malformed preprocessing metadata: {e!r}") from e
        return model

    @classmethod
    def load_booster(cls, path: str) -> 'MultiOutputBooster':
        return cls._from_collection(BoosterCollection.load_booster(path))

    @classmethod
    def from_json(cls, json_str: str) -> 'MultiOutputBooster':
        return cls._from_collection(BoosterCollection.from_json(json_str))
