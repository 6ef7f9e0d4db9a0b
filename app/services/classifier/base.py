"""
Category Classifier Base Interface.

Defines the contract for category classifiers consulted at report creation.
All classifier providers must implement this interface.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional
from datetime import datetime, timezone
import logging

logger = logging.getLogger(__name__)


class Classification:
    """
    Standardized classifier response.

    category_id is None when nothing matched; confidence is 0.0-1.0.
    alternatives holds runner-up suggestions, best first.
    """

    def __init__(
        self,
        category_id: Optional[str],
        confidence: float,
        alternatives: Optional[List[Dict]] = None,
        model_name: str = "",
        error: Optional[str] = None
    ):
        self.category_id = category_id
        self.confidence = confidence
        self.alternatives = alternatives or []
        self.model_name = model_name
        self.error = error
        self.classified_at = datetime.now(timezone.utc)

    def to_dict(self) -> Dict:
        """Convert to dictionary for storage on the report (advisory metadata)."""
        result = {
            "category_id": self.category_id,
            "confidence": self.confidence,
            "alternatives": self.alternatives,
            "model_name": self.model_name,
            "classified_at": self.classified_at.isoformat(),
        }
        if self.error:
            result["error"] = self.error
        return result


class ClassifierProvider(ABC):
    """
    Abstract base class for category classifiers.

    Providers must return a Classification even on failure (with error set)
    so report intake is never blocked by the classifier.
    """

    @abstractmethod
    def is_enabled(self) -> bool:
        """Check if this provider is configured and ready."""
        pass

    @abstractmethod
    def get_model_info(self) -> Dict[str, str]:
        """Dict with 'name' and 'version' keys."""
        pass

    @abstractmethod
    def classify(self, text: str, categories: Optional[List[Dict]] = None) -> Classification:
        """
        Suggest a category for free text.

        Args:
            text: Report description
            categories: Candidate categories as [{"id": ..., "name": ...}]; None means provider default

        Returns:
            Classification (may carry an error)
        """
        pass
