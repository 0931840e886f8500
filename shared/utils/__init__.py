from .money import to_money, percent_of, ZERO
from .patch import ModelPatch

__all__ = ['to_money', 'percent_of', 'ZERO', 'ModelPatch']
