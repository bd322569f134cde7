"""Confluency client core.

Authentication state, user data initialization and navigation
reconciliation for the Confluency language-learning client.
"""

__version__ = "1.0.0"
