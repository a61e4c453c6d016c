"""Cash and holdings ledger."""

from autoinvest.ledger.ledger import DUST_SHARES, LEDGER_KEY, Ledger

__all__ = [
    'Ledger',
    'DUST_SHARES',
    'LEDGER_KEY',
]
