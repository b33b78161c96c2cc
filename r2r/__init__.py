"""
R2R - Source Package

A personal finance tracker: receipts, SMS and email text go in,
structured transactions come out, and the app turns them into
dashboards, budgets, tax exports, bill predictions and a chat assistant.

DESIGN PRINCIPLES:
1. The AI extracts and advises, the arithmetic stays deterministic
2. External failures degrade to empty results, never to crashes
3. Core analytics depend only on storage interfaces
4. Every significant step is auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "R2R Team"
