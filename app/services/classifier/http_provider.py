"""
HTTP Classifier Provider - external category classification service.

POSTs the report text to CLASSIFIER_URL and expects
{"categoryId" | "category_id", "confidence", "alternatives": [...]}.
Fails gracefully: errors come back inside the Classification.
"""

from app.services.classifier.base import ClassifierProvider, Classification
from app.core.errors import ClassifierError
from app.core.settings import settings
from typing import Dict, List, Optional
import logging
import requests

logger = logging.getLogger(__name__)


class HttpClassifierProvider(ClassifierProvider):
    """
    Client for the external classifier service.

    Requires CLASSIFIER_URL; CLASSIFIER_API_KEY is sent as a bearer token when set.
    """

    MODEL_NAME = "http-classifier"
    MODEL_VERSION = "1.0"

    def __init__(self, url: Optional[str] = None, api_key: Optional[str] = None, timeout: Optional[float] = None):
        self.url = url if url is not None else settings.CLASSIFIER_URL
        self.api_key = api_key if api_key is not None else settings.CLASSIFIER_API_KEY
        self.timeout = timeout or settings.CLASSIFIER_TIMEOUT_SECONDS
        self.enabled = bool(settings.CLASSIFIER_ENABLED and self.url and self.url.strip())

        if self.enabled:
            logger.info(f"✅ HTTP classifier initialized: {self.url}")
        else:
            logger.info("⚠️ HTTP classifier disabled: No CLASSIFIER_URL configured")

    def is_enabled(self) -> bool:
        return self.enabled

    def get_model_info(self) -> Dict[str, str]:
        return {"name": self.MODEL_NAME, "version": self.MODEL_VERSION}

    def classify(self, text: str, categories: Optional[List[Dict]] = None) -> Classification:
        if not self.enabled:
            return Classification(None, 0.0, model_name=self.MODEL_NAME, error="Classifier URL not configured")

        try:
            data = self._call_api(text, categories)
            return self._parse_response(data)
        except Exception as e:
            logger.warning(f"⚠️ Classifier call failed: {str(e)}")
            return Classification(None, 0.0, model_name=self.MODEL_NAME, error=f"Classifier error: {str(e)}")

    def _call_api(self, text: str, categories: Optional[List[Dict]]) -> Dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        payload = {"text": text[:2000]}
        if categories:
            payload["categories"] = categories

        response = requests.post(self.url, json=payload, headers=headers, timeout=self.timeout)
        if response.status_code != 200:
            raise ClassifierError(f"Classifier returned status {response.status_code}: {response.text}")
        return response.json()

    def _parse_response(self, data: Dict) -> Classification:
        category_id = data.get("categoryId", data.get("category_id"))
        confidence = float(data.get("confidence") or 0.0)
        if not 0.0 <= confidence <= 1.0:
            raise ClassifierError(f"confidence out of range: {confidence}")

        alternatives = []
        for alt in data.get("alternatives") or []:
            if isinstance(alt, dict):
                alt_id = alt.get("categoryId", alt.get("category_id"))
                alternatives.append({"category_id": alt_id, "confidence": float(alt.get("confidence") or 0.0)})
            else:
                alternatives.append({"category_id": str(alt), "confidence": None})

        return Classification(
            str(category_id) if category_id else None,
            confidence,
            alternatives,
            model_name=data.get("model") or self.MODEL_NAME,
        )
