"""
Category classifier plug-in.

Consulted only when a report is created without a category. Never blocks
report intake.
"""

from app.services.classifier.base import ClassifierProvider, Classification
from app.services.classifier.http_provider import HttpClassifierProvider
from app.services.classifier.mock_provider import MockClassifierProvider
from app.services.classifier.registry import ClassifierRegistry, classify_with_fallback

__all__ = [
    "ClassifierProvider",
    "Classification",
    "ClassifierRegistry",
    "HttpClassifierProvider",
    "MockClassifierProvider",
    "classify_with_fallback",
]
