"""
Personal Budget Engine - Source Package

Aggregation and budget-guard core for a personal finance tracker:
transactions, income entries and budget caps in; totals, budget usage,
monthly summaries and overspend decisions out.

DESIGN PRINCIPLES:
1. Derived numbers are recomputed, never stored
2. No overspend is written without explicit confirmation
3. Fail early, fail visibly
4. Every mutation must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Personal Budget Engine Team"
