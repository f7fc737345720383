"""
Error Types

This module defines the exception hierarchy raised by the multi-output
booster. Each error also derives from the builtin exception that callers
would naturally catch (ValueError, KeyError, OSError, RuntimeError).
"""

from typing import List, Optional


class MOGBMError(Exception):
    """Base class for all mo_gbm errors."""


class ShapeError(MOGBMError, ValueError):
    """行列の次元（行数・列数・出力数）が期待値と一致しない"""


class ConfigError(MOGBMError, ValueError):
    """設定値が不正（未知の列挙文字列、不正な特徴インデックスなど）"""


class NotFittedError(MOGBMError, ValueError):
    """未学習のブースターで予測しようとした"""


class BoosterIOError(MOGBMError, OSError):
    """保存先・読み込み元のパスにアクセスできない"""


class SerializeError(MOGBMError, ValueError):
    """モデルをシリアライズできない"""


class DeserializeError(MOGBMError, ValueError):
    """保存形式が壊れている、またはバージョンが未対応"""


class NotFoundError(MOGBMError, KeyError):
    """メタデータのキーが存在しない"""

    def __str__(self) -> str:
        # KeyError quotes its argument, keep the message readable
        return str(self.args[0]) if self.args else ""


class FitError(MOGBMError, RuntimeError):
    """
    Training of one or more outputs failed.

    Outputs listed in ``completed_outputs`` finished successfully and keep
    their new fitted state; the collection is partially fitted.

    Attributes:
    -----------
    output_index : int
        Index of the first output whose training failed
    cause : Exception
        Underlying exception raised by that output's booster
    failed_outputs : list of int
        Every output index that failed during the call
    completed_outputs : list of int
        Every output index that finished successfully during the call
    """

    def __init__(self,
                 output_index: int,
                 cause: BaseException,
                 failed_outputs: Optional[List[int]] = None,
                 completed_outputs: Optional[List[int]] = None):
        self.output_index = output_index
        self.cause = cause
        self.failed_outputs = list(failed_outputs) if failed_outputs is not None else [output_index]
        self.completed_outputs = list(completed_outputs) if completed_outputs is not None else []
        super().__init__(
            f"Training failed for output {output_index}: {cause!r} "
            f"(failed outputs: {self.failed_outputs}, completed outputs: {self.completed_outputs})"
        )
