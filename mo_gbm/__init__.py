"""
mo_gbm: multi-output gradient boosted trees

出力ごとに独立した勾配ブースティング決定木を、共通の設定のもとで
まとめて学習・予測・保存するためのパッケージ。
"""

import logging

from .models.booster_components import (
    MOGBMError,
    ShapeError,
    ConfigError,
    NotFittedError,
    BoosterIOError,
    SerializeError,
    DeserializeError,
    NotFoundError,
    FitError,
    Matrix,
    BoosterConfig,
    Objective,
    MissingNodeTreatment,
    Constraint,
    SingleOutputBooster,
    BoosterCollection
)
from .models.multi_output import MultiOutputBooster

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    'MOGBMError',
    'ShapeError',
    'ConfigError',
    'NotFittedError',
    'BoosterIOError',
    'SerializeError',
    'DeserializeError',
    'NotFoundError',
    'FitError',
    'Matrix',
    'BoosterConfig',
    'Objective',
    'MissingNodeTreatment',
    'Constraint',
    'SingleOutputBooster',
    'BoosterCollection',
    'MultiOutputBooster'
]
