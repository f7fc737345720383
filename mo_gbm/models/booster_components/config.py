"""
Booster Configuration

This module contains the shared configuration applied identically to every
booster in a collection, together with the closed enumerations parsed from
user-facing strings.
"""

from dataclasses import dataclass, field, fields, replace as dataclass_replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Union
import math

import numpy as np

from .errors import ConfigError


class Objective(str, Enum):
    """目的関数の種類"""

    LOG_LOSS = "LogLoss"
    SQUARED_LOSS = "SquaredLoss"
    QUANTILE_LOSS = "QuantileLoss"
    HUBER_LOSS = "HuberLoss"

    @classmethod
    def parse(cls, value: Union[str, "Objective"]) -> "Objective":
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        raise ConfigError(
            f"Unknown objective: {value!r}. Use one of {[m.value for m in cls]}"
        )


class MissingNodeTreatment(str, Enum):
    """欠損値ノードの重みの決め方"""

    NONE = "None"
    ASSIGN_TO_PARENT = "AssignToParent"
    AVERAGE_LEAF_WEIGHT = "AverageLeafWeight"
    AVERAGE_NODE_WEIGHT = "AverageNodeWeight"

    @classmethod
    def parse(cls, value: Union[str, "MissingNodeTreatment"]) -> "MissingNodeTreatment":
        if isinstance(value, cls):
            return value
        for member in cls:
            if member.value == value:
                return member
        raise ConfigError(
            f"Unknown missing_node_treatment: {value!r}. Use one of {[m.value for m in cls]}"
        )


class Constraint(int, Enum):
    """単調性制約"""

    NEGATIVE = -1
    UNCONSTRAINED = 0
    POSITIVE = 1

    @classmethod
    def parse(cls, value: Union[int, str, "Constraint"]) -> "Constraint":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for member in cls:
                if member.name.lower() == value.lower():
                    return member
        elif not isinstance(value, bool):
            for member in cls:
                if member.value == value:
                    return member
        raise ConfigError(f"Invalid monotone constraint: {value!r}. Use -1, 0 or 1")


def _parse_feature_index(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise ConfigError(f"{what} feature index must be an integer, got {value!r}")
    try:
        index = int(value)
    except ValueError:
        raise ConfigError(f"{what} feature index must be an integer, got {value!r}") from None
    if index < 0:
        raise ConfigError(f"{what} feature index must be non-negative, got {index}")
    return index


def parse_monotone_constraints(value: Optional[Mapping[Any, Any]]) -> Dict[int, Constraint]:
    """
    Parse a feature index → constraint mapping.

    Keys may be ints (or int-like strings, as found in JSON documents);
    values may be -1/0/1, "positive"/"negative"/"unconstrained" or
    ``Constraint`` members.
    """
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"monotone_constraints must be a mapping, got {type(value).__name__}")
    return {
        _parse_feature_index(key, "monotone_constraints"): Constraint.parse(constraint)
        for key, constraint in value.items()
    }


def parse_feature_set(value: Optional[Iterable[Any]], what: str) -> FrozenSet[int]:
    if value is None:
        return frozenset()
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise ConfigError(f"{what} must be a collection of feature indices, got {value!r}")
    return frozenset(_parse_feature_index(v, what) for v in value)


@dataclass(frozen=True)
class BoosterConfig:
    """
    Hyper-parameters and feature policies shared by every booster.

    Parameters
    ----------
    objective:
        Loss minimised by each booster.
    num_threads:
        Size of the worker pool used for per-output work. ``None`` uses all
        available cores.
    monotone_constraints:
        Feature index → ``Constraint``. Indices are checked against the
        feature count when fitting.
    force_children_to_bound_parent:
        Restrict constrained siblings so the parent weight lies between them.
    missing:
        Sentinel value denoting a missing feature value. ``NaN`` matches NaN.
    allow_missing_splits:
        Allow splits that send all missing values down one branch and all
        non-missing values down the other.
    create_missing_branch:
        Grow a dedicated third branch for missing values at each split.
    terminate_missing_features:
        Features whose missing branch is always a leaf.
    missing_node_treatment:
        How the weight of a missing branch is set.
    log_iterations:
        Log training progress every ``log_iterations`` trees, ``0`` disables.
    """

    objective: Objective = Objective.LOG_LOSS
    num_threads: Optional[int] = None
    monotone_constraints: Dict[int, Constraint] = field(default_factory=dict)
    force_children_to_bound_parent: bool = False
    missing: float = math.nan
    allow_missing_splits: bool = True
    create_missing_branch: bool = False
    terminate_missing_features: FrozenSet[int] = frozenset()
    missing_node_treatment: MissingNodeTreatment = MissingNodeTreatment.NONE
    log_iterations: int = 0

    def __post_init__(self):
        # frozen dataclass: normalise through object.__setattr__
        object.__setattr__(self, "objective", Objective.parse(self.objective))
        object.__setattr__(
            self, "missing_node_treatment", MissingNodeTreatment.parse(self.missing_node_treatment)
        )
        object.__setattr__(
            self, "monotone_constraints", parse_monotone_constraints(self.monotone_constraints)
        )
        object.__setattr__(
            self,
            "terminate_missing_features",
            parse_feature_set(self.terminate_missing_features, "terminate_missing_features"),
        )

        if self.num_threads is not None:
            if isinstance(self.num_threads, bool) or not isinstance(self.num_threads, int) or self.num_threads < 1:
                raise ConfigError(f"num_threads must be a positive integer or None, got {self.num_threads!r}")
        if isinstance(self.log_iterations, bool) or not isinstance(self.log_iterations, int) or self.log_iterations < 0:
            raise ConfigError(f"log_iterations must be a non-negative integer, got {self.log_iterations!r}")
        try:
            missing = float(self.missing)
        except (TypeError, ValueError):
            raise ConfigError(f"missing must be a number, got {self.missing!r}") from None
        # single NaN object so params snapshots compare equal
        object.__setattr__(self, "missing", math.nan if math.isnan(missing) else missing)
        for name in ("force_children_to_bound_parent", "allow_missing_splits", "create_missing_branch"):
            value = getattr(self, name)
            if not isinstance(value, bool):
                raise ConfigError(f"{name} must be a bool, got {value!r}")

    @classmethod
    def from_params(cls, **params) -> "BoosterConfig":
        """
        Build a configuration from plain values (strings for enums, ints for
        constraints), e.g. the output of ``get_params()``.
        """
        known = {f.name for f in fields(cls)}
        unknown = set(params) - known
        if unknown:
            raise ConfigError(f"Unknown configuration parameter(s): {sorted(unknown)}")
        return cls(**params)

    def replace(self, **changes) -> "BoosterConfig":
        """Return a new validated configuration; ``self`` is left untouched."""
        known = {f.name for f in fields(self)}
        unknown = set(changes) - known
        if unknown:
            raise ConfigError(f"Unknown configuration parameter(s): {sorted(unknown)}")
        return dataclass_replace(self, **changes)

    def is_missing(self, values):
        """Boolean mask of entries equal to the missing sentinel."""
        if math.isnan(self.missing):
            return np.isnan(values)
        return values == self.missing

    def validate_for_features(self, n_features: int) -> None:
        """Check feature indices against the feature count known at fit time."""
        for feature in self.monotone_constraints:
            if feature >= n_features:
                raise ConfigError(
                    f"monotone_constraints references feature {feature}, but data has {n_features} features"
                )
        for feature in self.terminate_missing_features:
            if feature >= n_features:
                raise ConfigError(
                    f"terminate_missing_features references feature {feature}, but data has {n_features} features"
                )

    def to_params(self) -> Dict[str, Any]:
        """
        Plain-value snapshot: enum names as strings, constraints as ints.
        """
        return {
            "objective": self.objective.value,
            "num_threads": self.num_threads,
            "monotone_constraints": {f: int(c.value) for f, c in sorted(self.monotone_constraints.items())},
            "force_children_to_bound_parent": self.force_children_to_bound_parent,
            "missing": self.missing,
            "allow_missing_splits": self.allow_missing_splits,
            "create_missing_branch": self.create_missing_branch,
            "terminate_missing_features": set(self.terminate_missing_features),
            "missing_node_treatment": self.missing_node_treatment.value,
            "log_iterations": self.log_iterations,
        }

    def to_document(self) -> Dict[str, Any]:
        """JSON-friendly form of ``to_params()``."""
        params = self.to_params()
        params["monotone_constraints"] = {str(f): c for f, c in params["monotone_constraints"].items()}
        params["terminate_missing_features"] = sorted(params["terminate_missing_features"])
        return params

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "BoosterConfig":
        return cls.from_params(**dict(document))
