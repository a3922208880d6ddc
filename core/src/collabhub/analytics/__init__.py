"""Reporting over the single table."""
from .metrics import MONTHLY_PRICES, PlatformMetrics

__all__ = ["PlatformMetrics", "MONTHLY_PRICES"]
