"""
Services for Book Lab: model gateway, content pipeline, chapter workflow and export.
"""

from book_lab.services.gateway import ModelGateway, create_gateway
from book_lab.services.pipeline import ContentPipeline

__all__ = ["ModelGateway", "create_gateway", "ContentPipeline"]
