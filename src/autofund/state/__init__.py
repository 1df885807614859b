"""Domain state -- the live, event-driven view of the funding account."""

from autofund.state.store import FundingStateStore

__all__ = ["FundingStateStore"]
