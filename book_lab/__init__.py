"""
Book Lab: a note, outline and book-writing assistant.

This package turns pasted notes into topic-linked records, drafts and refines
chapter outlines and chapter prose with an LLM, and exports finished books
to PDF.
"""

__version__ = "0.1.0"
__author__ = "Book Lab Team"
__email__ = "example@example.com"

from loguru import logger
import os
import sys

# Configure logger
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
logger.remove()
logger.add(
    sys.stderr,
    level=LOG_LEVEL,
    format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

# Import key components to make them available at the package level
from book_lab.core.config import Settings, load_config
from book_lab.services.service_factory import Services, create_services

__all__ = [
    "Settings",
    "load_config",
    "Services",
    "create_services",
]
