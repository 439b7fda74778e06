# Update Algorithms Package
from .fsrs import SimplifiedFsrs
from .sm2 import Sm2Algorithm

__all__ = ["SimplifiedFsrs", "Sm2Algorithm"]
