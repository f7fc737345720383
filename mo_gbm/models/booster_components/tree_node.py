"""
Decision Tree Node Implementation

This module contains the DecisionTreeNode class that represents individual
nodes of a boosted tree, and the Tree wrapper that owns a root node and
converts it to and from a flat, serialisable node list.
"""

from typing import Any, Dict, List, Optional
import numpy as np


class DecisionTreeNode:
    """
    決定木のノードクラス

    Attributes:
    -----------
    node_id : int
        ノードID（木の中で一意）
    depth : int
        ノードの深さ
    weight_value : float
        ノードの重み（学習率適用済み）。リーフでは予測値として使う
    hessian_sum : float
        このノードのヘシアン合計
    n_samples : int
        このノードのサンプル数
    is_leaf : bool
        リーフノードかどうか
    split_feature : int or None
        分割に使用する特徴のインデックス
    split_value : float or None
        数値分割の閾値（x <= split_value なら左）
    left_categories : list of int or None
        カテゴリ分割の場合に左へ進むカテゴリ
    missing_left : bool
        欠損値ブランチがない場合に欠損値を左へ送るかどうか
    split_gain : float
        分割による利得
    left, right, missing : DecisionTreeNode or None
        子ノード（missing は欠損値専用ブランチ）
    """

    def __init__(self, node_id: int = 0, depth: int = 0):
        self.node_id = node_id
        self.depth = depth
        self.weight_value = 0.0
        self.hessian_sum = 0.0
        self.n_samples = 0
        self.is_leaf = True
        self.split_feature = None
        self.split_value = None
        self.left_categories = None
        self.missing_left = False
        self.split_gain = 0.0
        self.left = None
        self.right = None
        self.missing = None

    def predict(self, X: np.ndarray, missing_mask: np.ndarray, indices: np.ndarray, out: np.ndarray) -> None:
        """
        このノードを根とする部分木で予測し、out[indices] に書き込む

        Parameters:
        -----------
        X : array-like, shape=(n_samples, n_features)
            入力特徴量
        missing_mask : array-like, shape=(n_samples, n_features)
            欠損値マスク
        indices : array-like
            このノードに到達した行のインデックス
        out : array-like, shape=(n_samples,)
            出力先
        """
        if indices.shape[0] == 0:
            return
        if self.is_leaf:
            out[indices] = self.weight_value
            return

        values = X[indices, self.split_feature]
        is_missing = missing_mask[indices, self.split_feature]

        if self.left_categories is not None:
            goes_left = np.isin(values, self.left_categories)
        else:
            goes_left = values <= self.split_value
        goes_left &= ~is_missing

        if self.missing is not None:
            self.missing.predict(X, missing_mask, indices[is_missing], out)
            goes_right = ~goes_left & ~is_missing
        else:
            if self.missing_left:
                goes_left |= is_missing
            goes_right = ~goes_left

        self.left.predict(X, missing_mask, indices[goes_left], out)
        self.right.predict(X, missing_mask, indices[goes_right], out)

    def children(self) -> List["DecisionTreeNode"]:
        return [c for c in (self.left, self.right, self.missing) if c is not None]

    def get_depth(self) -> int:
        if self.is_leaf:
            return 0
        return 1 + max(child.get_depth() for child in self.children())

    def count_nodes(self) -> int:
        if self.is_leaf:
            return 1
        return 1 + sum(child.count_nodes() for child in self.children())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "num": self.node_id,
            "depth": self.depth,
            "weight_value": float(self.weight_value),
            "hessian_sum": float(self.hessian_sum),
            "n_samples": int(self.n_samples),
            "is_leaf": self.is_leaf,
            "split_feature": None if self.split_feature is None else int(self.split_feature),
            "split_value": None if self.split_value is None else float(self.split_value),
            "left_categories": None if self.left_categories is None else [int(c) for c in self.left_categories],
            "missing_left": self.missing_left,
            "split_gain": float(self.split_gain),
            "left_child": None if self.left is None else self.left.node_id,
            "right_child": None if self.right is None else self.right.node_id,
            "missing_child": None if self.missing is None else self.missing.node_id,
        }

    def __str__(self) -> str:
        if self.is_leaf:
            return f"Leaf(id={self.node_id}, depth={self.depth}, samples={self.n_samples}, weight={self.weight_value:.4f})"
        if self.left_categories is not None:
            return f"Node(id={self.node_id}, depth={self.depth}, samples={self.n_samples}, feature={self.split_feature}, categories={self.left_categories})"
        return f"Node(id={self.node_id}, depth={self.depth}, samples={self.n_samples}, feature={self.split_feature}, threshold={self.split_value:.4f})"

    def __repr__(self) -> str:
        return self.__str__()


class Tree:
    """
    One boosted tree: a root node plus flat (de)serialisation.
    """

    def __init__(self, root: DecisionTreeNode):
        self.root = root

    def predict(self, X: np.ndarray, missing_mask: np.ndarray) -> np.ndarray:
        out = np.zeros(X.shape[0])
        self.root.predict(X, missing_mask, np.arange(X.shape[0]), out)
        return out

    def nodes(self) -> List[DecisionTreeNode]:
        """Nodes in depth-first order, root first."""
        result = []
        stack = [self.root]
        while stack:
            node = stack.pop()
            result.append(node)
            stack.extend(reversed(node.children()))
        return result

    def get_depth(self) -> int:
        return self.root.get_depth()

    def count_nodes(self) -> int:
        return self.root.count_nodes()

    def n_leaves(self) -> int:
        return sum(1 for node in self.nodes() if node.is_leaf)

    def to_dict(self) -> Dict[str, Any]:
        return {"nodes": [node.to_dict() for node in self.nodes()]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tree":
        records = data["nodes"]
        if not records:
            raise ValueError("Tree document has no nodes")

        by_id = {}
        for record in records:
            node = DecisionTreeNode(node_id=int(record["num"]), depth=int(record["depth"]))
            node.weight_value = float(record["weight_value"])
            node.hessian_sum = float(record["hessian_sum"])
            node.n_samples = int(record["n_samples"])
            node.is_leaf = bool(record["is_leaf"])
            node.split_feature = record["split_feature"]
            node.split_value = None if record["split_value"] is None else float(record["split_value"])
            cats = record["left_categories"]
            node.left_categories = None if cats is None else [int(c) for c in cats]
            node.missing_left = bool(record["missing_left"])
            node.split_gain = float(record["split_gain"])
            by_id[node.node_id] = node

        for record in records:
            node = by_id[int(record["num"])]
            for key, attr in (("left_child", "left"), ("right_child", "right"), ("missing_child", "missing")):
                child_id = record[key]
                if child_id is not None:
                    setattr(node, attr, by_id[int(child_id)])
            if not node.is_leaf and (node.left is None or node.right is None):
                raise ValueError(f"Split node {node.node_id} is missing a child")

        return cls(by_id[int(records[0]["num"])])
