"""Strategy selection by configured name."""

from autofund.config import StrategySettings
from autofund.exceptions import UnknownStrategyError
from autofund.logging import get_logger
from autofund.strategy.base import FundingStrategy
from autofund.strategy.desk import FundingDesk
from autofund.strategy.replace import ReplaceIfCheaperStrategy
from autofund.strategy.target import TargetRateStrategy

logger = get_logger(__name__)

STRATEGIES: dict[str, type[FundingStrategy]] = {
    ReplaceIfCheaperStrategy.name: ReplaceIfCheaperStrategy,
    TargetRateStrategy.name: TargetRateStrategy,
}


def create_strategy(settings: StrategySettings, desk: FundingDesk) -> FundingStrategy:
    """Build the strategy named by ``settings.name``.

    Raises:
        UnknownStrategyError: If no strategy has that name.
    """
    strategy_cls = STRATEGIES.get(settings.name)
    if strategy_cls is None:
        raise UnknownStrategyError(
            f"Unknown strategy {settings.name!r}, expected one of {sorted(STRATEGIES)}"
        )

    logger.info("strategy_selected", strategy=settings.name, dry_run=settings.dry_run)
    return strategy_cls(desk)
