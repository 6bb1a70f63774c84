"""StreamScene - edge request gateway for the StreamScene web application."""

__version__ = "0.1.0"

__all__ = ["__version__"]
