"""
Classifier Registry.

Selects the classifier provider and falls back to the keyword mock when the
external service fails.
"""

from app.services.classifier.base import ClassifierProvider, Classification
from app.services.classifier.http_provider import HttpClassifierProvider
from app.services.classifier.mock_provider import MockClassifierProvider
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


class ClassifierRegistry:
    """
    Providers in priority order: external HTTP service (if configured), then mock.
    """

    def __init__(self, providers: Optional[List[ClassifierProvider]] = None):
        if providers is not None:
            self.providers = providers
            return

        self.providers = []
        http_provider = HttpClassifierProvider()
        if http_provider.is_enabled():
            self.providers.append(http_provider)
        self.providers.append(MockClassifierProvider())

    def classify_with_fallback(self, text: str, categories: Optional[List[Dict]] = None) -> Classification:
        """
        Classify using the first provider that answers without error.

        Always returns a Classification.
        """
        for provider in self.providers:
            if not provider.is_enabled():
                continue
            name = provider.get_model_info()["name"]
            result = provider.classify(text, categories)
            if result.error:
                logger.warning(f"Classifier {name} returned error: {result.error}")
                continue
            return result

        logger.error("⚠️ All classifiers failed, leaving report unclassified")
        return Classification(None, 0.0, model_name="none", error="all classifiers failed")


# Global registry instance (singleton)
_registry: Optional[ClassifierRegistry] = None


def get_classifier_registry() -> ClassifierRegistry:
    global _registry
    if _registry is None:
        _registry = ClassifierRegistry()
    return _registry


def classify_with_fallback(text: str, categories: Optional[List[Dict]] = None) -> Classification:
    """Main entry point for category suggestion."""
    return get_classifier_registry().classify_with_fallback(text, categories)
