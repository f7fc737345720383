"""
Models Package

多出力勾配ブースティングのモデル群
"""

from .base import MultiOutputBase
from .multi_output import MultiOutputBooster
from .booster_components import BoosterCollection, SingleOutputBooster

__all__ = [
    'MultiOutputBase',
    'MultiOutputBooster',
    'BoosterCollection',
    'SingleOutputBooster'
]
