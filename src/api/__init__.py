"""Top-level `src.api` package.

Makes `src.api` a proper package so `from src.api.v1 import router` works
when running from the project root.
"""

__all__ = ["v1"]
