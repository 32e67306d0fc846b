"""run-vault package bootstrap.

Exposes lightweight metadata used by the CLI and packaging machinery.
"""
from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
