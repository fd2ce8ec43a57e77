"""
Finance Pro - Source Package

A personal finance tracker: bank accounts, stock holdings and income/expense
transactions, synced to Google Sheets or kept in local files.

DESIGN PRINCIPLES:
1. One owner of state: the ledger
2. Persistence is best-effort and never blocks a user action
3. AI suggests, the ledger decides
4. Every change must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Finance Pro Team"
