"""Bandwidth carry-over for virtual servers on a hosting control panel."""

__version__ = "0.1.0"
