"""
Market Brief.

Budget-aware market report generation over unreliable news, price and
text-generation backends.
"""

__version__ = "0.1.0"
