"""Strategy engine -- continuous replacement and staged target-rate borrowing."""

from autofund.strategy.base import FundingStrategy
from autofund.strategy.desk import FundingDesk
from autofund.strategy.factory import create_strategy
from autofund.strategy.replace import ReplaceIfCheaperStrategy
from autofund.strategy.target import TargetRateStrategy

__all__ = [
    "FundingDesk",
    "FundingStrategy",
    "ReplaceIfCheaperStrategy",
    "TargetRateStrategy",
    "create_strategy",
]
