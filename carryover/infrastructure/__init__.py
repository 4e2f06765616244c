"""Infrastructure layer exports."""

from .inventory import InventoryFetcher
from .logs import UnitLog, append_change_lines, configure_logging
from .panel import PanelClient, redact

__all__ = [
    "InventoryFetcher",
    "PanelClient",
    "UnitLog",
    "append_change_lines",
    "configure_logging",
    "redact",
]
