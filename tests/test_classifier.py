import pytest

from app.services.classifier import (
    Classification,
    ClassifierProvider,
    ClassifierRegistry,
    HttpClassifierProvider,
    MockClassifierProvider,
)
from app.services.classifier import http_provider


class FakeResponse:
    def __init__(self, status_code=200, data=None, text=""):
        self.status_code = status_code
        self._data = data or {}
        self.text = text

    def json(self):
        return self._data


@pytest.fixture
def fake_post(monkeypatch):
    calls = []
    responses = []

    def _post(url, json=None, headers=None, timeout=None):
        calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        return responses.pop(0)

    monkeypatch.setattr(http_provider.requests, "post", _post)
    return calls, responses


def test_mock_classifier_scores_keyword_hits():
    result = MockClassifierProvider().classify("Huge pothole on the road near the signal")
    assert result.category_id == "roads"
    assert result.confidence == pytest.approx(0.85)
    assert result.error is None


def test_mock_classifier_without_match():
    result = MockClassifierProvider().classify("Something strange happened")
    assert result.category_id is None
    assert result.confidence == 0.0


def test_mock_classifier_uses_given_categories():
    categories = [{"id": "c-light", "name": "Street Lighting"}, {"id": "c-water", "name": "Water"}]
    result = MockClassifierProvider().classify("The street lighting is broken", categories)
    assert result.category_id == "c-light"
    assert result.confidence == pytest.approx(0.7)


def test_mock_classifier_lists_alternatives():
    result = MockClassifierProvider().classify("Garbage dumped next to the water pipeline leak")
    assert result.category_id == "water"
    assert [alt["category_id"] for alt in result.alternatives] == ["sanitation"]


def test_http_classifier_parses_response(fake_post):
    calls, responses = fake_post
    responses.append(FakeResponse(data={
        "categoryId": "water",
        "confidence": 0.82,
        "alternatives": [{"categoryId": "roads", "confidence": 0.1}],
    }))

    provider = HttpClassifierProvider(url="http://classifier.local/classify", api_key="secret", timeout=2.0)
    result = provider.classify("Water leaking", [{"id": "water", "name": "Water"}])

    assert result.category_id == "water"
    assert result.confidence == pytest.approx(0.82)
    assert result.alternatives == [{"category_id": "roads", "confidence": 0.1}]
    assert calls[0]["headers"]["Authorization"] == "Bearer secret"
    assert calls[0]["json"]["categories"] == [{"id": "water", "name": "Water"}]
    assert calls[0]["timeout"] == 2.0


@pytest.mark.parametrize("response", [
    FakeResponse(status_code=500, text="boom"),
    FakeResponse(data={"category_id": "water", "confidence": 7}),
])
def test_http_classifier_errors_come_back_as_values(fake_post, response):
    calls, responses = fake_post
    responses.append(response)

    result = HttpClassifierProvider(url="http://classifier.local/classify").classify("Water leaking")

    assert result.category_id is None
    assert result.error


def test_http_classifier_without_url_is_disabled():
    provider = HttpClassifierProvider(url="")
    assert not provider.is_enabled()
    assert provider.classify("anything").error


class BrokenProvider(ClassifierProvider):
    def is_enabled(self):
        return True

    def get_model_info(self):
        return {"name": "broken", "version": "0"}

    def classify(self, text, categories=None):
        return Classification(None, 0.0, model_name="broken", error="timeout")


def test_registry_falls_back_to_next_provider():
    result = ClassifierRegistry([BrokenProvider(), MockClassifierProvider()]).classify_with_fallback("Overflowing garbage bin")
    assert result.category_id == "sanitation"
    assert result.model_name == MockClassifierProvider.MODEL_NAME


def test_registry_reports_when_everything_fails():
    result = ClassifierRegistry([BrokenProvider()]).classify_with_fallback("anything")
    assert result.category_id is None
    assert result.error == "all classifiers failed"


def test_default_registry_ends_with_mock():
    assert isinstance(ClassifierRegistry().providers[-1], MockClassifierProvider)


def test_classification_to_dict():
    data = Classification("roads", 0.7, [{"category_id": "water", "confidence": 0.4}], model_name="m").to_dict()
    assert data["category_id"] == "roads"
    assert data["alternatives"][0]["category_id"] == "water"
    assert "error" not in data
