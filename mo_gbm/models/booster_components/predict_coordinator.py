"""
Predict Coordinator

This module runs every booster of a collection over one shared feature
matrix and assembles the results into a single output-major flat array:
result[i * R + r] is the prediction of booster i for row r.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING, Union

import numpy as np

from .fit_coordinator import worker_count
from .matrix import Matrix
from .single_booster import as_matrix

if TYPE_CHECKING:
    from .collection import BoosterCollection

logger = logging.getLogger(__name__)


class PredictCoordinator:
    """
    コレクション内の全ブースターの予測を統括するクラス

    並列・逐次のどちらでも同じ値を返す（並列化で変わるのはレイテンシのみ）。
    """

    def __init__(self, collection: "BoosterCollection"):
        self.collection = collection

    def predict(self, features: Union[Matrix, np.ndarray], parallel: bool = True) -> np.ndarray:
        """
        生スコアを予測

        Returns:
        --------
        predictions : array-like, shape=(R * N,)
            出力優先（output-major）の順で並んだ予測値
        """
        return self._run(features, "predict", parallel)

    def predict_proba(self, features: Union[Matrix, np.ndarray], parallel: bool = True) -> np.ndarray:
        """
        確率を予測（predict と同じ並び）
        """
        return self._run(features, "predict_proba", parallel)

    def _run(self, features: Union[Matrix, np.ndarray], method: str, parallel: bool) -> np.ndarray:
        features = as_matrix(features)
        n_rows = features.rows
        boosters = self.collection.boosters
        n_outputs = len(boosters)
        result = np.empty(n_outputs * n_rows, dtype=np.float64)

        def predict_one(i: int) -> None:
            # 各タスクは自分の区間だけに書き込む
            result[i * n_rows:(i + 1) * n_rows] = getattr(boosters[i], method)(features)

        if parallel and n_outputs > 1:
            n_workers = worker_count(self.collection.config.num_threads, n_outputs)
            logger.debug(f"Running {method} for {n_outputs} outputs on {n_workers} workers")
            with ThreadPoolExecutor(max_workers=n_workers) as executor:
                # map re-raises the first failure in output order
                list(executor.map(predict_one, range(n_outputs)))
        else:
            for i in range(n_outputs):
                predict_one(i)

        return result
