"""Library-query and shelf engine for the audioshelf media server."""

__version__ = "0.4.0"

__all__ = ["__version__"]
