"""
AutoInvest - recurring-order scheduling and execution engine.

Components:
- Ledger: cash balance and holdings with weighted-average-cost accounting
- Due-date calculator: frequency + reference time -> next due time
- OrderStore: recurring orders and their lifecycle
- ExecutionEngine: scans due orders and executes them against the ledger
- HistoryLog: append-only record of execution attempts
"""

__version__ = "1.0.0"
