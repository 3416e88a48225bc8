"""Offline practice table: unseeded shuffle, same reducer as networked games."""

from .table import HOUSE, PracticeTable

__all__ = ["HOUSE", "PracticeTable"]
