"""
学習結果の可視化ユーティリティモジュール

このモジュールは、多出力ブースターの学習結果（出力ごとの木の本数・評価指標）を
可視化して保存するための関数を提供します。
"""

from typing import Dict, List, Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns


def plot_number_of_trees(number_of_trees: np.ndarray,
                         output_names: Optional[List[str]] = None,
                         title: str = "Number of Trees per Output",
                         save_path: Optional[str] = None) -> plt.Figure:
    """
    出力ごとの木の本数を棒グラフにする

    Parameters:
    -----------
    number_of_trees : array-like, shape=(n_outputs,)
        BoosterCollection.number_of_trees の値
    output_names : list of str, optional
        出力名（既定は output_0, output_1, ...）
    title : str
        プロットのタイトル
    save_path : str, optional
        保存先のパス

    Returns:
    --------
    fig : matplotlib Figure
    """
    counts = np.asarray(number_of_trees)
    if output_names is None:
        output_names = [f"output_{i}" for i in range(len(counts))]

    fig, ax = plt.subplots(figsize=(max(6, len(counts) * 0.8), 4))
    sns.barplot(x=output_names, y=counts, ax=ax, color="steelblue")
    ax.set_title(title)
    ax.set_ylabel('Trees')
    fig.tight_layout()

    if save_path:
        fig.savefig(save_path, dpi=150, bbox_inches='tight')
    plt.close(fig)
    return fig


def plot_output_metrics(evaluation: Dict[str, np.ndarray],
                        output_names: Optional[List[str]] = None,
                        title: str = "Evaluation per Output",
                        save_path: Optional[str] = None) -> pd.DataFrame:
    """
    出力ごとの評価指標をヒートマップにする

    Parameters:
    -----------
    evaluation : dict
        MultiOutputBooster.evaluate の戻り値（'_avg' のキーは無視）
    output_names : list of str, optional
        出力名
    title : str
        プロットのタイトル
    save_path : str, optional
        保存先のパス

    Returns:
    --------
    df : DataFrame
        行が指標、列が出力の表（プロットに使ったもの）
    """
    data = {name: np.asarray(values) for name, values in evaluation.items() if not name.endswith('_avg')}
    if not data:
        raise ValueError("evaluation holds no per-output metrics")

    n_outputs = len(next(iter(data.values())))
    if output_names is None:
        output_names = [f"output_{i}" for i in range(n_outputs)]

    df = pd.DataFrame(data, index=output_names).T

    plt.figure(figsize=(max(6, n_outputs * 1.2), 1 + len(df) * 0.8))
    sns.heatmap(df, annot=True, fmt=".4f", cmap="YlGnBu")
    plt.title(title)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
    plt.close()

    return df
