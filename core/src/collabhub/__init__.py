"""CollabHub core: single-table data access and reporting."""

__version__ = "0.1.0"

__all__ = ["__version__"]
