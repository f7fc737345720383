"""
Fit Coordinator

This module slices a shared target matrix into per-output columns and
drives the fitting of every booster in a collection, sequentially or on a
bounded thread pool with one task per output.
"""

import logging
import os
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional, Union

import numpy as np

from .errors import ConfigError, FitError, ShapeError
from .matrix import Matrix
from .single_booster import as_matrix

if TYPE_CHECKING:
    from .collection import BoosterCollection

logger = logging.getLogger(__name__)


def worker_count(num_threads: Optional[int], n_tasks: int) -> int:
    """Pool size: the configured thread count (or all cores), capped by the task count."""
    available = num_threads or os.cpu_count() or 1
    return max(1, min(available, n_tasks))


class FitCoordinator:
    """
    コレクション内の全ブースターの学習を統括するクラス

    The budget and timeout are handed unchanged to every output; they are
    independent training runs, not a shared pool.

    Once an output fails no new outputs are started. Outputs that already
    finished keep their new fitted state and the failure is raised as a
    FitError listing completed and failed outputs. Outputs that were not
    started keep their previous state.
    """

    def __init__(self, collection: "BoosterCollection"):
        self.collection = collection

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
    ) -> None:
        """
        全出力のブースターを学習

        Parameters:
        -----------
        features : Matrix, shape=(R, C)
            入力特徴量
        targets : Matrix, shape=(R, N)
            出力ごとのターゲット値（列 i が出力 i）
        sample_weight : array-like, shape=(R,), optional
            全出力で共有するサンプル重み
        alpha, budget, reset, categorical_features, timeout :
            各ブースターの fit にそのまま渡す
        parallel : bool, default=True
            出力ごとに並列に学習するかどうか

        Raises:
        -------
        ShapeError
            行数・出力数・重みの長さが一致しない（どのブースターも変更されない）
        ConfigError
            特徴インデックスが特徴量数の範囲外（どのブースターも変更されない）
        FitError
            いずれかの出力の学習に失敗した
        """
        features = as_matrix(features)
        targets = as_matrix(targets)
        n_outputs = self.collection.n_boosters

        # 検証はすべてブースターに触れる前に行う
        if targets.rows != features.rows:
            raise ShapeError(
                f"features ({features.rows} rows) and targets ({targets.rows} rows) have different numbers of rows"
            )
        if targets.cols != n_outputs:
            raise ShapeError(f"targets has {targets.cols} columns, but collection has {n_outputs} outputs")
        if sample_weight is not None:
            sample_weight = np.asarray(sample_weight, dtype=np.float64).reshape(-1)
            if sample_weight.shape[0] != features.rows:
                raise ShapeError(f"sample_weight has {sample_weight.shape[0]} entries, expected {features.rows}")
        self.collection.config.validate_for_features(features.cols)
        if categorical_features is not None:
            categorical_features = frozenset(int(f) for f in categorical_features)
            for feature in categorical_features:
                if not 0 <= feature < features.cols:
                    raise ConfigError(
                        f"categorical_features references feature {feature}, but data has {features.cols} features"
                    )

        columns = [np.ascontiguousarray(targets.get_col(i)) for i in range(n_outputs)]
        boosters = self.collection.boosters

        def fit_one(i: int) -> int:
            boosters[i].fit(
                features,
                columns[i],
                sample_weight=sample_weight,
                alpha=alpha,
                budget=budget,
                reset=reset,
                categorical_features=categorical_features,
                timeout=timeout,
            )
            return i

        completed: List[int] = []
        failures: Dict[int, Exception] = {}

        if parallel and n_outputs > 1:
            n_workers = worker_count(self.collection.config.num_threads, n_outputs)
            logger.debug(f"Fitting {n_outputs} outputs on {n_workers} workers")
            with ThreadPoolExecutor(max_workers=n_workers) as executor:
                futures = {executor.submit(fit_one, i): i for i in range(n_outputs)}
                done, pending = wait(futures, return_when=FIRST_EXCEPTION)
                for future in pending:
                    future.cancel()
            for future, i in futures.items():
                if future.cancelled():
                    continue
                error = future.exception()
                if error is None:
                    completed.append(i)
                else:
                    failures[i] = error
        else:
            logger.debug(f"Fitting {n_outputs} outputs sequentially")
            for i in range(n_outputs):
                try:
                    fit_one(i)
                except Exception as e:
                    failures[i] = e
                    break
                completed.append(i)

        if failures:
            first = min(failures)
            logger.info(f"Training failed for output(s) {sorted(failures)}; completed outputs: {sorted(completed)}")
            raise FitError(first, failures[first], sorted(failures), sorted(completed)) from failures[first]
