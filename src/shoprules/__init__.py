"""
Shop Rules - tax resolution and stock packaging for an e-commerce store

Matches tax rates to a destination zone, applies them to line items and
shipments as adjustments, and groups inventory units into packages that
become shipments.
"""

__version__ = "0.1.0"

from . import stock
from . import taxation
from . import utils

__all__ = ["stock", "taxation", "utils"]
