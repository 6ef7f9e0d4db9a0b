"""
Mock Classifier - rule-based fallback when no classifier service is configured.

Deterministic keyword matching. Always available and never fails.
"""

from app.services.classifier.base import ClassifierProvider, Classification
from typing import Dict, List, Optional
import logging

logger = logging.getLogger(__name__)


DEFAULT_KEYWORDS: Dict[str, List[str]] = {
    "roads": ["road", "pothole", "traffic", "footpath", "signal", "speed breaker"],
    "water": ["water", "leak", "pipeline", "tap", "supply", "drainage", "sewer"],
    "electricity": ["electricity", "power", "outage", "transformer", "wire", "streetlight"],
    "sanitation": ["garbage", "waste", "trash", "dump", "cleanliness", "toilet"],
    "parks": ["park", "tree", "garden", "playground"],
}


class MockClassifierProvider(ClassifierProvider):
    """
    Keyword classifier.

    Confidence grows with the number of keyword hits so a single vague word
    stays below the auto-assign threshold.
    """

    MODEL_NAME = "mock-keywords-v1"
    MODEL_VERSION = "1.0.0"

    def is_enabled(self) -> bool:
        """Mock provider is always enabled (fallback)."""
        return True

    def get_model_info(self) -> Dict[str, str]:
        return {"name": self.MODEL_NAME, "version": self.MODEL_VERSION}

    def _keyword_table(self, categories: Optional[List[Dict]]) -> Dict[str, List[str]]:
        if not categories:
            return DEFAULT_KEYWORDS
        table = {}
        for category in categories:
            category_id = str(category.get("id") or "")
            name = str(category.get("name") or "").lower()
            if not category_id:
                continue
            # Category names become keywords, plus the defaults for a matching id/name
            words = [w for w in name.replace("&", " ").split() if len(w) > 2]
            words += DEFAULT_KEYWORDS.get(category_id.lower(), []) + DEFAULT_KEYWORDS.get(name, [])
            table[category_id] = words
        return table

    def classify(self, text: str, categories: Optional[List[Dict]] = None) -> Classification:
        text_lower = (text or "").lower()
        scores = []
        for category_id, words in self._keyword_table(categories).items():
            hits = sum(1 for word in set(words) if word in text_lower)
            if hits:
                scores.append((category_id, min(0.4 + 0.15 * hits, 0.9)))

        if not scores:
            return Classification(None, 0.0, model_name=self.MODEL_NAME)

        scores.sort(key=lambda s: s[1], reverse=True)
        best_id, best_confidence = scores[0]
        alternatives = [{"category_id": cid, "confidence": conf} for cid, conf in scores[1:3]]
        return Classification(best_id, best_confidence, alternatives, model_name=self.MODEL_NAME)
