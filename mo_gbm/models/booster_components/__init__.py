"""
Booster Components Package

This package contains the building blocks of the multi-output booster:
the single-output tree engine, the shared configuration, the collection
that owns one booster per output, and the coordinators that fit and
predict across the collection.
"""

from .errors import (
    MOGBMError,
    ShapeError,
    ConfigError,
    NotFittedError,
    BoosterIOError,
    SerializeError,
    DeserializeError,
    NotFoundError,
    FitError
)
from .matrix import Matrix
from .config import BoosterConfig, Objective, MissingNodeTreatment, Constraint
from .tree_node import DecisionTreeNode, Tree
from .gradient_computer import GradientComputer
from .tree_builder import TreeBuilder
from .single_booster import SingleOutputBooster
from .fit_coordinator import FitCoordinator
from .predict_coordinator import PredictCoordinator
from .collection import BoosterCollection

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
    'DecisionTreeNode',
    'Tree',
    'GradientComputer',
    'TreeBuilder',
    'SingleOutputBooster',
    'FitCoordinator',
    'PredictCoordinator',
    'BoosterCollection'
]
