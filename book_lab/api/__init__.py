"""
API module for Book Lab.
"""

from book_lab.api.server import create_app, start

__all__ = ["create_app", "start"]
