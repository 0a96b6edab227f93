"""
Todo Assistant backend package.

This module marks the 'src.assistant' directory as a Python package and
exposes the FastAPI app instance for convenience imports if desired.
"""

from .main import app  # noqa: F401
