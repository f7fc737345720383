"""
多出力モデル基底クラスモジュール

このモジュールは、多出力勾配ブースティングモデルの抽象基底クラスを提供します。
入力検証と出力ごとの評価指標の計算を共通化します。
"""

from abc import ABC, abstractmethod
import numpy as np
from typing import Dict, List, Optional, Tuple


class MultiOutputBase(ABC):
    """
    多出力モデルの抽象基底クラス

    サブクラスは fit と predict を実装し、``n_outputs_`` を学習時に設定する。
    """

    @abstractmethod
    def fit(self, X, y, **kwargs) -> 'MultiOutputBase':
        """
        多出力データでモデルを学習

        Parameters:
        -----------
        X : array-like, shape=(n_samples, n_features)
            入力特徴量
        y : array-like, shape=(n_samples, n_outputs)
            出力ごとのターゲット値
        """

    @abstractmethod
    def predict(self, X) -> np.ndarray:
        """
        学習済みモデルで予測

        Returns:
        --------
        y_pred : array-like, shape=(n_samples, n_outputs)
        """

    def _validate_targets(self, X: np.ndarray, y: np.ndarray, n_outputs: Optional[int] = None) -> Tuple[np.ndarray, np.ndarray]:
        """
        ターゲットを2次元に揃え、サンプル数と出力数を確認

        Parameters:
        -----------
        n_outputs : int, optional
            期待する出力数（None なら確認しない）

        Returns:
        --------
        X : np.ndarray
        y : np.ndarray, shape=(n_samples, n_outputs)
        """
        y = np.asarray(y, dtype=np.float64)
        if y.ndim == 1:
            y = y.reshape(-1, 1)

        if X.shape[0] != y.shape[0]:
            raise ValueError(f"X ({X.shape[0]} samples) and y ({y.shape[0]} samples) have different numbers of samples")

        if n_outputs is not None and n_outputs != y.shape[1]:
            raise ValueError(f"y has {y.shape[1]} outputs, but model was fitted with {n_outputs} outputs")

        return X, y

    def evaluate(self, X, y, metrics: Optional[List[str]] = None) -> Dict[str, np.ndarray]:
        """
        出力ごとにモデルを評価

        Parameters:
        -----------
        X : array-like, shape=(n_samples, n_features)
            入力特徴量
        y : array-like, shape=(n_samples, n_outputs)
            真のターゲット値
        metrics : list of str, default=['mse']
            'mse', 'rmse', 'mae', 'r2' から選択

        Returns:
        --------
        results : dict
            指標名 → 出力ごとの値、および '<指標名>_avg' → 平均値
        """
        if metrics is None:
            metrics = ['mse']

        y_pred = self.predict(X)
        _, y = self._validate_targets(y_pred, y, y_pred.shape[1])

        results = {}
        for metric in metrics:
            name = metric.lower()
            if name == 'mse':
                values = np.mean((y - y_pred) ** 2, axis=0)
            elif name == 'rmse':
                values = np.sqrt(np.mean((y - y_pred) ** 2, axis=0))
            elif name == 'mae':
                values = np.mean(np.abs(y - y_pred), axis=0)
            elif name == 'r2':
                ss_tot = np.sum((y - np.mean(y, axis=0)) ** 2, axis=0)
                ss_res = np.sum((y - y_pred) ** 2, axis=0)
                # 定数ターゲットでは R² は定義されない
                with np.errstate(divide='ignore', invalid='ignore'):
                    values = np.where(ss_tot > 0, 1 - ss_res / ss_tot, np.nan)
            else:
                raise ValueError(f"Unknown metric: {metric}")

            results[name] = values
            results[f'{name}_avg'] = float(np.mean(values))

        return results
