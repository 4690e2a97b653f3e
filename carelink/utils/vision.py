"""Gemini vision analysis for skin photos and medicine/food labels.

Images arrive base64 encoded (optionally as a ``data:`` URL) and are sent as
``inline_data`` parts. Replies are asked for as bare JSON; anything that does
not parse falls back to a low-confidence default result instead of failing.
"""

import json
import logging
import re
from typing import List, Optional

import requests

from carelink import config
from carelink.utils import ai

logger = logging.getLogger(__name__)

RASH_MODEL = "gemini-2.0-flash-exp"
LABEL_MODEL = "gemini-2.0-flash"

IMAGE_GENERATION_CONFIG = {
    "temperature": 0.3,
    "topP": 0.9,
    "topK": 40,
    "maxOutputTokens": 2000,
}

RASH_PROMPT = """You are a medical AI assistant specializing in dermatology. Analyze this skin image and provide a detailed assessment.

- Identify potential conditions based on appearance, color, texture, and distribution
- Assess severity (mild, moderate, severe)
- If the condition is unclear, provide general guidance
- ALWAYS recommend consulting a healthcare professional for accurate diagnosis

Return a valid JSON object with this exact structure:
{
  "condition": "string (e.g. 'Contact Dermatitis', 'Eczema', 'Unknown Rash')",
  "severity": "mild | moderate | severe",
  "description": "What you observe",
  "possibleCauses": ["..."],
  "recommendations": ["..."],
  "urgency": "low | medium | high",
  "whenToSeeDoctor": ["..."],
  "symptoms": ["..."]
}

Provide 3-5 items for possibleCauses, recommendations and whenToSeeDoctor.
Return ONLY valid JSON, no markdown formatting or additional text."""

MEDICINE_LABEL_PROMPT = """You are a medical information AI analyzing a medicine packet or prescription. Extract ALL information from the image.
If something is not visible on the packet, use typical information for that medicine type.

Return ONLY a JSON object with this structure:
{
  "scanType": "medicine",
  "extractedText": "Full text extracted from the packet",
  "medicineInfo": {
    "name": "Brand name, or \\"Unknown Medicine\\" if not visible",
    "genericName": "Generic name",
    "uses": ["..."],
    "indications": ["..."],
    "sideEffects": ["..."],
    "contraindications": ["..."],
    "dosage": "Recommended dosage",
    "precautions": ["..."],
    "interactions": ["..."],
    "results": "Expected results when taking this medicine"
  },
  "warnings": ["..."],
  "isSafe": true
}

Never return empty arrays for uses, sideEffects or contraindications. No markdown, no code blocks."""

FOOD_LABEL_PROMPT = """You are a food safety AI analyzing a food product label. Extract ALL information from the image.

User's allergies to check:
{allergies}

Dietary restrictions: {restrictions}{restriction_note}

Health conditions to consider: {conditions}

Return ONLY a JSON object with this structure:
{{
  "scanType": "food",
  "extractedText": "Full text extracted from the label",
  "ingredients": ["..."],
  "allergens": [{{"allergen": "Peanuts", "severity": "high", "found": true}}],
  "nutritionScore": {{"grade": "A", "score": 85, "reasons": ["..."]}},
  "warnings": ["..."],
  "safeAlternatives": ["..."],
  "isSafe": true
}}

Mark "found": true for allergens present. Severity is "high" for life-threatening (peanuts, tree nuts, shellfish),
"medium" for serious (dairy, eggs), "low" otherwise. Grades: A 90-100, B 80-89, C 70-79, D 60-69, F below 60.
If any allergen is found or a restriction is violated set "isSafe": false. No markdown, no code blocks."""

RESTRICTION_NOTES = {
    "vegan": "\n- Check for animal products (meat, dairy, eggs, honey, gelatin, etc.)",
    "vegetarian": "\n- Check for meat products",
    "diabetic": "\n- Check sugar content (avoid if >10g per serving)",
}

DEFAULT_CONTRAINDICATIONS = ["Pregnant women", "Children under 12", "People with allergies to ingredients"]
DEFAULT_PRECAUTIONS = ["Take with food if stomach upset occurs", "Avoid alcohol", "Consult doctor if symptoms persist"]


def strip_data_url(image_b64: str) -> str:
    return image_b64.split(",", 1)[1] if "," in image_b64 else image_b64

def extract_json_object(text: str) -> Optional[dict]:
    cleaned = re.sub(r"```(?:json)?\s*", "", text.strip())
    match = re.search(r"\{[\s\S]*\}", cleaned)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None

def _list(value) -> List[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]

def _allergens(value) -> List[dict]:
    if not isinstance(value, list):
        return []
    return [a for a in value if isinstance(a, dict) and a.get("allergen")]

def analyze_image(image_b64: str, prompt: str, model: str) -> str:
    """Send one image plus prompt to Gemini and return the reply text.

    Rate limiting (HTTP 429) is retried with backoff by the shared session.
    """
    if not config.GEMINI_API_KEY:
        raise ai.AIServiceError("GEMINI_API_KEY is not set")

    parts = [
        {"inline_data": {"mime_type": "image/jpeg", "data": strip_data_url(image_b64)}},
        {"text": prompt},
    ]
    try:
        return ai.post_content(model, parts, IMAGE_GENERATION_CONFIG, timeout=60)
    except requests.exceptions.RetryError as e:
        raise ai.AIServiceError("API rate limit reached. Please wait a moment and try again.") from e
    except requests.exceptions.RequestException as e:
        raise ai.AIServiceError(f"Image analysis failed: {e}") from e


# Skin rash

def rash_fallback() -> dict:
    return {
        "analysis": {
            "condition": "Unknown Rash",
            "severity": "mild",
            "description": "Unable to analyze the image. Please ensure the image is clear and shows the affected area.",
            "possible_causes": ["Image quality may be insufficient", "Lighting conditions may affect analysis"],
            "recommendations": [
                "Take a clearer photo with good lighting",
                "Consult a dermatologist for accurate diagnosis",
                "Keep the area clean and dry",
            ],
            "urgency": "low",
            "when_to_see_doctor": [
                "If the rash spreads rapidly",
                "If you experience fever or other symptoms",
                "If the condition worsens",
            ],
            "symptoms": [],
        },
        "confidence": 0.3,
    }

def parse_rash_analysis(text: str) -> dict:
    parsed = extract_json_object(text)
    if parsed is None:
        logger.info("Could not parse rash analysis, using fallback")
        return rash_fallback()
    return {
        "analysis": {
            "condition": parsed.get("condition") or "Unknown Rash",
            "severity": parsed.get("severity") or "mild",
            "description": parsed.get("description") or "Unable to analyze image clearly",
            "possible_causes": _list(parsed.get("possibleCauses")),
            "recommendations": _list(parsed.get("recommendations")),
            "urgency": parsed.get("urgency") or "low",
            "when_to_see_doctor": _list(parsed.get("whenToSeeDoctor")),
            "symptoms": _list(parsed.get("symptoms")),
        },
        "confidence": parsed.get("confidence") or 0.7,
    }

def analyze_rash_image(image_b64: str) -> dict:
    return parse_rash_analysis(analyze_image(image_b64, RASH_PROMPT, RASH_MODEL))


# Medicine and food labels

def _medicine_info(info: dict) -> dict:
    name = info.get("name") or "Unknown Medicine"
    uses = _list(info.get("uses"))
    return {
        "name": name,
        "generic_name": info.get("genericName") or info.get("name") or "",
        "uses": uses,
        "indications": _list(info.get("indications")) or uses,
        "side_effects": _list(info.get("sideEffects")),
        "contraindications": _list(info.get("contraindications")) or list(DEFAULT_CONTRAINDICATIONS),
        "dosage": info.get("dosage") or "As prescribed by doctor",
        "precautions": _list(info.get("precautions")) or list(DEFAULT_PRECAUTIONS),
        "interactions": _list(info.get("interactions")),
        "results": info.get("results") or "Provides relief from symptoms as indicated",
    }

def parse_label_scan(text: str, is_medicine: bool) -> dict:
    parsed = extract_json_object(text)
    if parsed is None:
        logger.info("Could not parse label scan, using fallback")
        return {
            "scan_type": "medicine" if is_medicine else "food",
            "ingredients": [],
            "allergens": [],
            "nutrition_score": {"grade": "C", "score": 70, "reasons": ["Unable to fully analyze label"]},
            "medicine_info": _medicine_info({"name": "Unknown"}) if is_medicine else None,
            "warnings": ["Analysis incomplete. Please try again or check manually."],
            "safe_alternatives": [],
            "is_safe": True,
            "extracted_text": text,
        }

    score = parsed.get("nutritionScore")
    if not isinstance(score, dict):
        score = {}
    info = parsed.get("medicineInfo")
    return {
        "scan_type": parsed.get("scanType") or ("medicine" if is_medicine else "food"),
        "ingredients": _list(parsed.get("ingredients")),
        "allergens": _allergens(parsed.get("allergens")),
        "nutrition_score": {
            "grade": score.get("grade") or "C",
            "score": score.get("score") or 70,
            "reasons": _list(score.get("reasons")),
        },
        "medicine_info": _medicine_info(info) if isinstance(info, dict) else None,
        "warnings": _list(parsed.get("warnings")),
        "safe_alternatives": _list(parsed.get("safeAlternatives")),
        "is_safe": parsed.get("isSafe") is not False,
        "extracted_text": parsed.get("extractedText") or "",
    }

def _is_usable_medicine(result: dict) -> bool:
    info = result.get("medicine_info")
    return bool(info and info["name"] not in ("Unknown Medicine", "Unknown")
                and (info["uses"] or info["side_effects"]))

def food_prompt(allergies: List[str], restrictions: str, conditions: List[str]) -> str:
    return FOOD_LABEL_PROMPT.format(
        allergies="\n".join(f"- {a}" for a in allergies) if allergies else "None specified",
        restrictions=restrictions,
        restriction_note=RESTRICTION_NOTES.get(restrictions, ""),
        conditions=", ".join(conditions) or "None",
    )

def analyze_label_image(image_b64: str, allergies: Optional[List[str]] = None, restrictions: str = "none",
                        conditions: Optional[List[str]] = None) -> dict:
    """Read a medicine packet first; when that yields nothing usable, read it as a food label."""
    medicine = None
    try:
        medicine = parse_label_scan(analyze_image(image_b64, MEDICINE_LABEL_PROMPT, LABEL_MODEL), True)
        if _is_usable_medicine(medicine):
            return medicine
    except ai.AIServiceError as e:
        logger.warning(f"Medicine label analysis failed, trying food analysis: {e}")

    prompt = food_prompt(allergies or [], restrictions, conditions or [])
    try:
        return parse_label_scan(analyze_image(image_b64, prompt, LABEL_MODEL), False)
    except ai.AIServiceError:
        if medicine and medicine["medicine_info"]:
            return medicine
        raise
