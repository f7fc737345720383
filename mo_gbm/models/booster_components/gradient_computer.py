"""
Gradient Computer

This module handles base score, gradient and hessian computation for the
objectives supported by a single-output booster.
"""

import numpy as np
from typing import Optional, Tuple

from .config import Objective


def _sigmoid(x: np.ndarray) -> np.ndarray:
    return 1.0 / (1.0 + np.exp(-np.clip(x, -500, 500)))


def _weighted_quantile(values: np.ndarray, weights: np.ndarray, q: float) -> float:
    order = np.argsort(values, kind="mergesort")
    sorted_values = values[order]
    cumulative = np.cumsum(weights[order])
    if cumulative[-1] <= 0:
        return float(np.quantile(values, q))
    idx = np.searchsorted(cumulative, q * cumulative[-1], side="left")
    return float(sorted_values[min(idx, len(sorted_values) - 1)])


class GradientComputer:
    """
    勾配とヘシアンの計算を担当するクラス

    Attributes:
    -----------
    objective : Objective
        目的関数の種類
    alpha : float or None
        QuantileLoss では分位点、HuberLoss では delta として使う
    """

    DEFAULT_QUANTILE = 0.5
    DEFAULT_HUBER_DELTA = 1.0

    def __init__(self, objective: Objective = Objective.LOG_LOSS, alpha: Optional[float] = None):
        self.objective = Objective.parse(objective)
        self.alpha = alpha

    @property
    def quantile(self) -> float:
        return self.DEFAULT_QUANTILE if self.alpha is None else float(self.alpha)

    @property
    def huber_delta(self) -> float:
        return self.DEFAULT_HUBER_DELTA if self.alpha is None else float(self.alpha)

    def compute_base_score(self, y: np.ndarray, sample_weight: np.ndarray) -> float:
        """
        初期予測値（ベーススコア）を計算

        Parameters:
        -----------
        y : array-like, shape=(n_samples,)
            ターゲット値
        sample_weight : array-like, shape=(n_samples,)
            サンプル重み

        Returns:
        --------
        base_score : float
        """
        total_weight = np.sum(sample_weight)
        if total_weight <= 0:
            mean = float(np.mean(y))
        else:
            mean = float(np.sum(y * sample_weight) / total_weight)

        if self.objective == Objective.LOG_LOSS:
            # ロジット変換
            p = np.clip(mean, 1e-7, 1 - 1e-7)
            return float(np.log(p / (1 - p)))
        if self.objective == Objective.SQUARED_LOSS:
            return mean
        if self.objective == Objective.QUANTILE_LOSS:
            return _weighted_quantile(y, sample_weight, self.quantile)
        if self.objective == Objective.HUBER_LOSS:
            return _weighted_quantile(y, sample_weight, 0.5)
        raise ValueError(f"Unsupported objective: {self.objective}")

    def compute_gradients_hessians(
        self,
        y: np.ndarray,
        y_pred: np.ndarray,
        sample_weight: np.ndarray
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        勾配とヘシアンを計算

        Parameters:
        -----------
        y : array-like, shape=(n_samples,)
            真のターゲット値
        y_pred : array-like, shape=(n_samples,)
            現在の予測値（生スコア）
        sample_weight : array-like, shape=(n_samples,)
            サンプル重み

        Returns:
        --------
        gradients : array-like, shape=(n_samples,)
        hessians : array-like, shape=(n_samples,)
        """
        if self.objective == Objective.LOG_LOSS:
            prob = _sigmoid(y_pred)
            gradients = prob - y
            hessians = np.maximum(prob * (1 - prob), 1e-16)
        elif self.objective == Objective.SQUARED_LOSS:
            gradients = y_pred - y
            hessians = np.ones_like(gradients)
        elif self.objective == Objective.QUANTILE_LOSS:
            q = self.quantile
            gradients = np.where(y > y_pred, -q, 1.0 - q)
            hessians = np.ones_like(gradients)
        elif self.objective == Objective.HUBER_LOSS:
            delta = self.huber_delta
            residual = y_pred - y
            gradients = np.where(np.abs(residual) <= delta, residual, delta * np.sign(residual))
            hessians = np.ones_like(gradients)
        else:
            raise ValueError(f"Unsupported objective: {self.objective}")

        return gradients * sample_weight, hessians * sample_weight

    def compute_loss(self, y: np.ndarray, y_pred: np.ndarray, sample_weight: np.ndarray) -> Tuple[str, float]:
        """Weighted mean training loss and its display name."""
        total_weight = np.sum(sample_weight)
        if total_weight <= 0:
            total_weight = 1.0

        if self.objective == Objective.LOG_LOSS:
            prob = np.clip(_sigmoid(y_pred), 1e-7, 1 - 1e-7)
            losses = -(y * np.log(prob) + (1 - y) * np.log(1 - prob))
            name = "LogLoss"
        elif self.objective == Objective.SQUARED_LOSS:
            losses = (y - y_pred) ** 2
            name = "MSE"
        elif self.objective == Objective.QUANTILE_LOSS:
            q = self.quantile
            residual = y - y_pred
            losses = np.where(residual >= 0, q * residual, (q - 1) * residual)
            name = "QuantileLoss"
        else:
            delta = self.huber_delta
            residual = np.abs(y - y_pred)
            losses = np.where(residual <= delta, 0.5 * residual ** 2, delta * (residual - 0.5 * delta))
            name = "HuberLoss"

        return name, float(np.sum(losses * sample_weight) / total_weight)

    def transform(self, raw: np.ndarray) -> np.ndarray:
        """Map raw scores to probabilities."""
        return _sigmoid(raw)
