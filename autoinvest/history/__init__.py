"""Execution history."""

from autoinvest.history.log import HISTORY_KEY, HistoryLog

__all__ = [
    'HistoryLog',
    'HISTORY_KEY',
]
