"""Gemini-backed medical assistant."""

import json
import logging
import re
from typing import List, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from carelink import config

logger = logging.getLogger(__name__)

BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"

# tried in order until one answers
MODELS = [
    "gemini-2.0-flash-exp",
    "gemini-2.0-flash",
    "gemini-1.5-flash",
    "gemini-1.5-pro",
]

GENERATION_CONFIG = {
    "temperature": 0.7,
    "topP": 0.9,
    "topK": 40,
    "maxOutputTokens": 500,
}

PROMPTS = {
    "medicine": """You are a medicine information specialist. Provide concise information about medicines ONLY.

User question: "{query}"

Focus on:
- Medicine name, generic name
- Uses/indications
- Dosage information
- Side effects (key ones only)
- Precautions/warnings
- When to consult a doctor

IMPORTANT: Keep response SHORT (2-4 sentences). Use **bold** for key terms. Be direct and factual.

If the question is not about a specific medicine, guide them to ask about a medicine name.

End with: "**Note:** This is educational only. Consult a doctor before taking any medicine.\"""",
    "symptoms": """You are a symptoms assessment assistant. Help users understand their symptoms.

User question: "{query}"

Focus on:
- What the symptoms might indicate (possible causes)
- When to seek immediate medical attention
- General guidance (NOT diagnosis)
- Self-care tips if appropriate
- Urgency level (mild/moderate/urgent)

IMPORTANT: Keep response SHORT (2-3 sentences). Use **bold** for urgent warnings. NEVER diagnose - only provide guidance.

Always emphasize: "**Important:** This is not a diagnosis. See a doctor for proper evaluation."

End with: "**Note:** For accurate diagnosis, please consult a healthcare professional.\"""",
    "health-tips": """You are a wellness and health tips advisor. Provide helpful health tips and wellness advice.

User question: "{query}"

Focus on:
- General health and wellness tips
- Preventive care advice
- Lifestyle recommendations
- Nutrition guidance
- Exercise/fitness tips
- Mental health wellness

IMPORTANT: Keep response SHORT (2-4 sentences). Use **bold** for important points. Be encouraging and practical.

End with: "**Note:** These are general tips. Consult a healthcare professional for personalized advice.\"""",
    "doctor": """You are a friendly virtual doctor doing a first consultation.

Patient says: "{query}"

Ask at most one clarifying question, explain the likely causes in plain words,
say clearly when the patient should go to a hospital or call emergency services,
and suggest safe self-care steps.

IMPORTANT: Keep response SHORT (3-5 sentences). Use **bold** for urgent warnings.

End with: "**Note:** This does not replace an in-person examination.\"""",
}

SUGGESTION_PROMPT = """Based on the following medical query and response, provide 2-4 relevant medicine suggestions in JSON format. Only suggest medicines if appropriate for the condition mentioned.

Query: {query}

Response: {response}

Provide suggestions in this exact JSON format (array of objects):
[
  {{
    "name": "Medicine Name",
    "description": "Brief description of what it does",
    "usage": "Dosage and frequency information"
  }}
]

If no medicines are appropriate, return an empty array: []

Return ONLY valid JSON, no additional text."""

SUGGESTION_TRIGGERS = [
    "medicine", "medication", "drug", "treatment", "what to take", "suggest",
    "recommend", "help with", "cure", "relief",
]

MEDICAL_KEYWORDS = [
    "medicine", "medication", "drug", "tablet", "capsule", "syrup", "injection",
    "dose", "dosage", "side effect", "symptom", "disease", "illness", "treatment",
    "cure", "therapy", "prescription", "pharmacy", "doctor", "health", "medical",
    "pain", "fever", "headache", "cold", "cough", "infection", "antibiotic",
    "vitamin", "supplement", "allergy", "diabetes", "blood pressure", "heart",
    "stomach", "liver", "kidney", "brain", "cancer", "surgery", "hospital",
    "paracetamol", "ibuprofen", "aspirin", "flu", "covid", "vaccine", "immunity",
]

MAX_SUGGESTIONS = 4


class AIServiceError(RuntimeError):
    pass


_session = None

def _get_session() -> requests.Session:
    global _session
    if _session is None:
        # rate limited calls back off exponentially: 3 attempts in total
        retry = Retry(
            total=2,
            backoff_factor=1,
            status_forcelist=[429],
            allowed_methods=frozenset(["POST"]),
        )
        _session = requests.Session()
        _session.mount("https://", HTTPAdapter(max_retries=retry))
        _session.headers.update({"Content-Type": "application/json"})
    return _session

def post_content(model: str, parts: List[dict], generation_config: dict, timeout: int = 30) -> str:
    """One generateContent call through the shared retrying session; returns the reply text."""
    url = f"{BASE_URL}/{model}:generateContent"
    body = {
        "contents": [{"parts": parts}],
        "generationConfig": generation_config,
    }
    response = _get_session().post(url, params={"key": config.GEMINI_API_KEY}, json=body, timeout=timeout)
    response.raise_for_status()
    data = response.json()
    try:
        return data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError) as e:
        raise AIServiceError(f"Unexpected response from {model}") from e

def _post_generate(model: str, prompt: str) -> str:
    return post_content(model, [{"text": prompt}], GENERATION_CONFIG)

def generate_content(prompt: str) -> str:
    if not config.GEMINI_API_KEY:
        raise AIServiceError("GEMINI_API_KEY is not set")

    last_error = None
    for model in MODELS:
        try:
            return _post_generate(model, prompt)
        except (requests.exceptions.RequestException, AIServiceError) as e:
            logger.warning(f"Model {model} failed: {e}")
            last_error = e
    raise AIServiceError(f"All Gemini models are unavailable: {last_error}")

def needs_suggestions(query: str) -> bool:
    lower = query.lower()
    return any(trigger in lower for trigger in SUGGESTION_TRIGGERS)

def is_medical_query(query: str) -> bool:
    lower = query.lower()
    return any(keyword in lower for keyword in MEDICAL_KEYWORDS)

def parse_suggestions(text: str) -> List[dict]:
    match = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text) or re.search(r"\[[\s\S]*\]", text)
    raw = (match.group(1) if match and match.lastindex else match.group(0)) if match else text.strip()
    try:
        items = json.loads(raw)
    except ValueError:
        logger.info("Could not parse AI suggestions")
        return []
    if not isinstance(items, list):
        return []
    valid = [
        {"name": s["name"], "description": s["description"], "usage": s["usage"]}
        for s in items
        if isinstance(s, dict) and s.get("name") and s.get("description") and s.get("usage")
    ]
    return valid[:MAX_SUGGESTIONS]

def generate_medicine_suggestions(query: str, response: str) -> List[dict]:
    if not needs_suggestions(query):
        return []
    try:
        text = generate_content(SUGGESTION_PROMPT.format(query=query, response=response))
    except AIServiceError as e:
        logger.error(f"Error generating medicine suggestions: {e}")
        return []
    return parse_suggestions(text)

def get_medical_response(query: str, mode: str = "medicine") -> dict:
    template: Optional[str] = PROMPTS.get(mode)
    if template is None:
        raise ValueError(f"Invalid mode specified: {mode}")

    text = generate_content(template.format(query=query))
    suggestions = generate_medicine_suggestions(query, text) if mode == "medicine" else []
    return {
        "response": text,
        "suggestions": suggestions or None,
    }
