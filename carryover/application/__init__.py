"""Application services."""

from .carryover import CarryOverService

__all__ = ["CarryOverService"]
