"""
Database models for the portfolio tracker.
All SQLModel table definitions are centralized here.
"""

from models.transaction import Transaction, TransactionCreate

__all__ = [
    'Transaction',
    'TransactionCreate',
]
