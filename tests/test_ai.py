import pytest
import requests

from carelink import config
from carelink.utils import ai


@pytest.fixture(autouse=True)
def api_key(monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", "test-key")


def test_parse_fenced_json():
    text = '''Here you go:
```json
[{"name": "Cetirizine", "description": "Antihistamine", "usage": "10mg once daily"}]
```'''
    assert ai.parse_suggestions(text) == [
        {"name": "Cetirizine", "description": "Antihistamine", "usage": "10mg once daily"},
    ]


def test_parse_bare_array_drops_incomplete_items():
    text = ('Sure [{"name": "ORS", "description": "Rehydration", "usage": "after each stool"},'
            ' {"name": "Mystery"}]')
    assert [s["name"] for s in ai.parse_suggestions(text)] == ["ORS"]


def test_parse_caps_suggestions():
    items = ",".join(f'{{"name": "M{i}", "description": "d", "usage": "u"}}' for i in range(6))
    assert len(ai.parse_suggestions(f"[{items}]")) == ai.MAX_SUGGESTIONS


@pytest.mark.parametrize("text", ["no json here", "{\"name\": \"x\"}", "[not valid"])
def test_parse_garbage(text):
    assert ai.parse_suggestions(text) == []


def test_query_classification():
    assert ai.needs_suggestions("What medicine helps with a cold?")
    assert not ai.needs_suggestions("How far is the hospital?")
    assert ai.is_medical_query("Is ibuprofen safe?")
    assert not ai.is_medical_query("What's the weather tomorrow?")


def test_invalid_mode():
    with pytest.raises(ValueError):
        ai.get_medical_response("hello", "astrology")


def test_missing_key(monkeypatch):
    monkeypatch.setattr(config, "GEMINI_API_KEY", "")
    with pytest.raises(ai.AIServiceError):
        ai.generate_content("hi")


def test_models_are_tried_in_order(monkeypatch):
    tried = []

    def flaky(model, prompt):
        tried.append(model)
        if model == ai.MODELS[0]:
            raise requests.exceptions.HTTPError("503")
        return f"answer from {model}"

    monkeypatch.setattr(ai, "_post_generate", flaky)
    assert ai.generate_content("hi") == f"answer from {ai.MODELS[1]}"
    assert tried == ai.MODELS[:2]


def test_all_models_failing(monkeypatch):
    def down(model, prompt):
        raise requests.exceptions.ConnectionError("offline")

    monkeypatch.setattr(ai, "_post_generate", down)
    with pytest.raises(ai.AIServiceError):
        ai.generate_content("hi")


def test_medicine_mode_adds_suggestions(monkeypatch):
    prompts = []

    def fake(prompt):
        prompts.append(prompt)
        if len(prompts) == 1:
            return "**Paracetamol** eases fever."
        return '[{"name": "Paracetamol", "description": "Antipyretic", "usage": "500mg every 6h"}]'

    monkeypatch.setattr(ai, "generate_content", fake)
    result = ai.get_medical_response("What medicine should I take for fever?", "medicine")

    assert result["response"] == "**Paracetamol** eases fever."
    assert result["suggestions"][0]["name"] == "Paracetamol"
    assert "What medicine should I take for fever?" in prompts[0]


def test_other_modes_skip_suggestions(monkeypatch):
    monkeypatch.setattr(ai, "generate_content", lambda prompt: "Drink water and rest.")
    result = ai.get_medical_response("Any medicine tips for staying healthy?", "health-tips")
    assert result == {"response": "Drink water and rest.", "suggestions": None}


def test_suggestion_failure_keeps_answer(monkeypatch):
    def fake(prompt):
        if prompt.startswith("Based on the following medical query"):
            raise ai.AIServiceError("quota")
        return "Take rest."

    monkeypatch.setattr(ai, "generate_content", fake)
    result = ai.get_medical_response("suggest something for a headache")
    assert result == {"response": "Take rest.", "suggestions": None}
