"""Recurring order storage and lifecycle."""

from autoinvest.orders.store import ORDERS_KEY, OrderStore

__all__ = [
    'OrderStore',
    'ORDERS_KEY',
]
