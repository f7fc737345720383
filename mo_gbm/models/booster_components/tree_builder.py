"""
Tree Builder

This module handles the construction of a single boosted tree from gradients
and hessians, including split finding over numeric and categorical features,
missing-value routing, and monotone constraint bounds.
"""

import numpy as np
from typing import Any, Dict, FrozenSet, Optional

from .config import BoosterConfig, Constraint, MissingNodeTreatment
from .tree_node import DecisionTreeNode, Tree


class TreeBuilder:
    """
    決定木構築を担当するクラス

    Attributes:
    -----------
    config : BoosterConfig
        欠損値・単調性制約の扱いを決める共有設定
    learning_rate : float
        ノード重みに掛ける学習率
    max_depth : int
        最大深度
    min_samples_leaf : int
        リーフノードに必要な最小サンプル数
    lambda_reg : float
        L2正則化パラメータ
    node_counter : int
        ノードカウンター
    """

    def __init__(
        self,
        config: BoosterConfig,
        learning_rate: float = 0.3,
        max_depth: int = 6,
        min_samples_leaf: int = 1,
        lambda_reg: float = 1.0,
        min_split_gain: float = 1e-12
    ):
        self.config = config
        self.learning_rate = learning_rate
        self.max_depth = max_depth
        self.min_samples_leaf = min_samples_leaf
        self.lambda_reg = lambda_reg
        self.min_split_gain = min_split_gain
        self.node_counter = 0

    def build_tree(
        self,
        X: np.ndarray,
        missing_mask: np.ndarray,
        gradients: np.ndarray,
        hessians: np.ndarray,
        categorical_features: Optional[FrozenSet[int]] = None
    ) -> Tree:
        """
        決定木を構築

        Parameters:
        -----------
        X : array-like, shape=(n_samples, n_features)
            入力特徴量
        missing_mask : array-like, shape=(n_samples, n_features)
            欠損値マスク
        gradients : array-like, shape=(n_samples,)
            勾配（サンプル重み適用済み）
        hessians : array-like, shape=(n_samples,)
            ヘシアン（サンプル重み適用済み）
        categorical_features : set of int, optional
            カテゴリ特徴のインデックス

        Returns:
        --------
        tree : Tree
            構築された木
        """
        self._X = X
        self._missing_mask = missing_mask
        self._gradients = gradients
        self._hessians = hessians
        self._categorical = categorical_features or frozenset()

        self.node_counter = 0
        root = self._new_node(depth=0)
        self._build_tree_recursive(root, np.arange(X.shape[0]), 0, -np.inf, np.inf)
        return Tree(root)

    def _new_node(self, depth: int) -> DecisionTreeNode:
        node = DecisionTreeNode(node_id=self.node_counter, depth=depth)
        self.node_counter += 1
        return node

    def _score(self, G, H):
        return G ** 2 / (H + self.lambda_reg)

    def _weight(self, G, H, lower: float = -np.inf, upper: float = np.inf):
        # w* = -G / (H + λ)、学習率を掛けて制約範囲にクリップ
        return np.clip(-G / (H + self.lambda_reg) * self.learning_rate, lower, upper)

    def _build_tree_recursive(
        self,
        node: DecisionTreeNode,
        indices: np.ndarray,
        depth: int,
        lower: float,
        upper: float
    ) -> None:
        G = float(np.sum(self._gradients[indices]))
        H = float(np.sum(self._hessians[indices]))

        node.n_samples = indices.shape[0]
        node.hessian_sum = H
        node.weight_value = float(self._weight(G, H, lower, upper))

        # 終了条件のチェック
        if depth >= self.max_depth or indices.shape[0] < 2 * self.min_samples_leaf:
            return

        split = self._search_best_split(indices, G, H, lower, upper)
        if split is None:
            return

        node.is_leaf = False
        node.split_feature = split["feature"]
        node.split_value = split["split_value"]
        node.left_categories = split["left_categories"]
        node.missing_left = split["missing_left"]
        node.split_gain = split["gain"]

        left_idx, right_idx, missing_idx = self._partition(indices, split)
        left_lower, left_upper, right_lower, right_upper = self._child_bounds(
            node, left_idx, right_idx, lower, upper
        )

        node.left = self._new_node(depth + 1)
        self._build_tree_recursive(node.left, left_idx, depth + 1, left_lower, left_upper)
        node.right = self._new_node(depth + 1)
        self._build_tree_recursive(node.right, right_idx, depth + 1, right_lower, right_upper)

        if self.config.create_missing_branch:
            node.missing = self._new_node(depth + 1)
            if missing_idx.shape[0] > 0 and node.split_feature not in self.config.terminate_missing_features:
                self._build_tree_recursive(node.missing, missing_idx, depth + 1, lower, upper)
            else:
                Gm = float(np.sum(self._gradients[missing_idx]))
                Hm = float(np.sum(self._hessians[missing_idx]))
                node.missing.n_samples = missing_idx.shape[0]
                node.missing.hessian_sum = Hm
                node.missing.weight_value = float(self._weight(Gm, Hm, lower, upper))
            if node.missing.is_leaf:
                self._apply_missing_node_treatment(node)

    def _partition(self, indices: np.ndarray, split: Dict[str, Any]):
        x = self._X[indices, split["feature"]]
        is_missing = self._missing_mask[indices, split["feature"]]

        if split["left_categories"] is not None:
            goes_left = np.isin(x, split["left_categories"])
        else:
            goes_left = x <= split["split_value"]
        goes_left &= ~is_missing

        if self.config.create_missing_branch:
            return indices[goes_left], indices[~goes_left & ~is_missing], indices[is_missing]

        if split["missing_left"]:
            goes_left |= is_missing
        return indices[goes_left], indices[~goes_left], indices[:0]

    def _child_bounds(self, node: DecisionTreeNode, left_idx, right_idx, lower: float, upper: float):
        feature = node.split_feature
        constraint = self.config.monotone_constraints.get(feature, Constraint.UNCONSTRAINED)
        if (constraint == Constraint.UNCONSTRAINED
                or node.left_categories is not None
                or node.split_value == -np.inf):
            return lower, upper, lower, upper

        if self.config.force_children_to_bound_parent:
            mid = node.weight_value
        else:
            wl = self._weight(np.sum(self._gradients[left_idx]), np.sum(self._hessians[left_idx]), lower, upper)
            wr = self._weight(np.sum(self._gradients[right_idx]), np.sum(self._hessians[right_idx]), lower, upper)
            mid = float((wl + wr) / 2)

        if constraint == Constraint.POSITIVE:
            return lower, mid, mid, upper
        return mid, upper, lower, mid

    def _apply_missing_node_treatment(self, node: DecisionTreeNode) -> None:
        treatment = self.config.missing_node_treatment
        if treatment == MissingNodeTreatment.NONE:
            return
        if treatment == MissingNodeTreatment.ASSIGN_TO_PARENT:
            node.missing.weight_value = node.weight_value
        elif treatment == MissingNodeTreatment.AVERAGE_LEAF_WEIGHT:
            leaves = [n.weight_value for n in Tree(node.left).nodes() + Tree(node.right).nodes() if n.is_leaf]
            node.missing.weight_value = float(np.mean(leaves))
        elif treatment == MissingNodeTreatment.AVERAGE_NODE_WEIGHT:
            h_left, h_right = node.left.hessian_sum, node.right.hessian_sum
            if h_left + h_right > 0:
                node.missing.weight_value = float(
                    (h_left * node.left.weight_value + h_right * node.right.weight_value) / (h_left + h_right)
                )
            else:
                node.missing.weight_value = float((node.left.weight_value + node.right.weight_value) / 2)

    def _search_best_split(
        self,
        indices: np.ndarray,
        G: float,
        H: float,
        lower: float,
        upper: float
    ) -> Optional[Dict[str, Any]]:
        """
        最適な分割を探索

        Returns:
        --------
        best_split : dict or None
            feature, gain, split_value, left_categories, missing_left
        """
        best = None
        for feature in range(self._X.shape[1]):
            candidate = self._evaluate_feature(indices, feature, G, H, lower, upper)
            if candidate is not None and (best is None or candidate["gain"] > best["gain"]):
                best = candidate

        if best is None or best["gain"] <= self.min_split_gain:
            return None
        return best

    def _evaluate_feature(
        self,
        indices: np.ndarray,
        feature: int,
        G: float,
        H: float,
        lower: float,
        upper: float
    ) -> Optional[Dict[str, Any]]:
        x = self._X[indices, feature]
        is_missing = self._missing_mask[indices, feature]
        g = self._gradients[indices]
        h = self._hessians[indices]
        present = ~is_missing
        is_categorical = feature in self._categorical
        min_leaf = self.min_samples_leaf

        n_missing = int(np.sum(is_missing))
        n_present = indices.shape[0] - n_missing
        Gm, Hm = float(np.sum(g[is_missing])), float(np.sum(h[is_missing]))
        Gp, Hp = G - Gm, H - Hm
        parent_score = self._score(G, H)

        best = None

        # 値（カテゴリ）ごとに勾配を集計し、隣接する境界を分割候補とする
        keys, inverse = np.unique(x[present], return_inverse=True)
        if keys.shape[0] >= 2:
            gs = np.bincount(inverse, weights=g[present])
            hs = np.bincount(inverse, weights=h[present])
            cs = np.bincount(inverse)
            if is_categorical:
                order = np.argsort(gs / (hs + self.lambda_reg), kind="mergesort")
                keys, gs, hs, cs = keys[order], gs[order], hs[order], cs[order]

            GL, HL, CL = np.cumsum(gs)[:-1], np.cumsum(hs)[:-1], np.cumsum(cs)[:-1]
            GR, HR, CR = Gp - GL, Hp - HL, n_present - CL

            if self.config.create_missing_branch:
                missing_left = np.zeros(GL.shape[0], dtype=bool)
                gains = self._score(GL, HL) + self._score(GR, HR) + self._score(Gm, Hm) - parent_score
                left_count, right_count = CL, CR
                wl, wr = self._weight(GL, HL, lower, upper), self._weight(GR, HR, lower, upper)
            else:
                gain_missing_left = self._score(GL + Gm, HL + Hm) + self._score(GR, HR) - parent_score
                gain_missing_right = self._score(GL, HL) + self._score(GR + Gm, HR + Hm) - parent_score
                missing_left = gain_missing_left > gain_missing_right
                gains = np.where(missing_left, gain_missing_left, gain_missing_right)
                left_count = CL + missing_left * n_missing
                right_count = CR + (~missing_left) * n_missing
                wl = self._weight(GL + missing_left * Gm, HL + missing_left * Hm, lower, upper)
                wr = self._weight(GR + (~missing_left) * Gm, HR + (~missing_left) * Hm, lower, upper)

            valid = (left_count >= min_leaf) & (right_count >= min_leaf)
            constraint = self.config.monotone_constraints.get(feature, Constraint.UNCONSTRAINED)
            if not is_categorical and constraint == Constraint.POSITIVE:
                valid &= wl <= wr
            elif not is_categorical and constraint == Constraint.NEGATIVE:
                valid &= wl >= wr

            gains = np.where(valid, 0.5 * gains, -np.inf)
            k = int(np.argmax(gains))
            if np.isfinite(gains[k]):
                best = {
                    "feature": feature,
                    "gain": float(gains[k]),
                    "split_value": None if is_categorical else float((keys[k] + keys[k + 1]) / 2),
                    "left_categories": [int(c) for c in keys[:k + 1]] if is_categorical else None,
                    "missing_left": bool(missing_left[k]),
                }

        # 欠損値 vs 非欠損値の分割
        if (self.config.allow_missing_splits
                and not self.config.create_missing_branch
                and n_missing >= min_leaf
                and n_present >= min_leaf):
            gain = 0.5 * (self._score(Gm, Hm) + self._score(Gp, Hp) - parent_score)
            if best is None or gain > best["gain"]:
                best = {
                    "feature": feature,
                    "gain": float(gain),
                    "split_value": None if is_categorical else -np.inf,
                    "left_categories": [] if is_categorical else None,
                    "missing_left": True,
                }

        return best
