"""Across bridge workflow: quoting, planning, execution and arrival."""

from .arrival import ArrivalPoller
from .executor import BridgeExecutor
from .planner import BridgePlanner
from .quotes import AcrossQuoteClient

__all__ = [
    "AcrossQuoteClient",
    "ArrivalPoller",
    "BridgeExecutor",
    "BridgePlanner",
]
