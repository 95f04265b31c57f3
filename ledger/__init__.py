"""
Personal Ledger - Source Package

Income, expense and investment entries by year and month, with period
summaries and completion tracking kept in step across local and remote
changes.

DESIGN PRINCIPLES:
1. The store is the single source of truth
2. Validate before any store call; fail early, fail visibly
3. Notify observers only after the store confirms a mutation
4. Summaries are derived on every refresh, never stored
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Personal Ledger Team"
