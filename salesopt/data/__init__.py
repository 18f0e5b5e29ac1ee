"""
Synthetic Data Module
"""
from .generators import TransactionGenerator, generate_transactions, write_transactions_csv

__all__ = ["TransactionGenerator", "generate_transactions", "write_transactions_csv"]
