import json
import re
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from jawab.logging_config import get_logger
from jawab.services.llm import LLMProvider

logger = get_logger("intent_service")


class Intent(str, Enum):
    BOOKING = "booking"
    FAQ = "faq"
    PRICING = "pricing"
    HOURS = "hours"
    LOCATION = "location"
    COMPLAINT = "complaint"
    OTHER = "other"


class IntentResult(BaseModel):
    intent: Intent = Intent.OTHER
    confidence: float = 0.0
    entities: Dict[str, str] = Field(default_factory=dict)

    @field_validator("intent", mode="before")
    @classmethod
    def _known_intent(cls, value):
        if isinstance(value, Intent):
            return value
        label = str(value or "").strip().lower()
        return label if label in Intent._value2member_map_ else Intent.OTHER

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value):
        try:
            confidence = float(value)
        except (TypeError, ValueError):
            return 0.0
        if confidence != confidence:  # NaN
            return 0.0
        return min(1.0, max(0.0, confidence))

    @field_validator("entities", mode="before")
    @classmethod
    def _string_entities(cls, value):
        if not isinstance(value, dict):
            return {}
        return {str(k): str(v) for k, v in value.items() if v not in (None, "")}


UNKNOWN_INTENT = IntentResult(intent=Intent.OTHER, confidence=0.0)

CLASSIFY_PROMPT = """Analyze this customer message and extract the intent.

Message: "{message}"

Respond in JSON format only:
{{
  "intent": "booking" | "faq" | "pricing" | "hours" | "location" | "complaint" | "other",
  "confidence": 0.0-1.0,
  "entities": {{
    "service": "if mentioned",
    "date": "if mentioned",
    "time": "if mentioned"
  }}
}}"""

JSON_BLOCK_PATTERN = re.compile(r"\{[\s\S]*\}")


def parse_intent_response(text: Optional[str]) -> IntentResult:
    """Parse the model's JSON answer. Anything unparseable is an unknown intent."""
    if not text:
        return UNKNOWN_INTENT
    match = JSON_BLOCK_PATTERN.search(text)
    if not match:
        return UNKNOWN_INTENT
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError:
        return UNKNOWN_INTENT
    if not isinstance(data, dict):
        return UNKNOWN_INTENT
    try:
        return IntentResult.model_validate(data)
    except ValidationError:
        return UNKNOWN_INTENT


def classify_intent(llm: LLMProvider, message: str) -> IntentResult:
    """Best-effort intent classification. Never raises."""
    if not message or not message.strip():
        return UNKNOWN_INTENT
    if not llm.is_configured:
        return UNKNOWN_INTENT

    try:
        raw = llm.complete(CLASSIFY_PROMPT.format(message=message.strip()))
    except Exception as e:
        logger.warning(f"Intent classification failed: {e}")
        return UNKNOWN_INTENT

    result = parse_intent_response(raw)
    logger.debug(f"Intent: {result.intent.value} ({result.confidence:.2f})")
    return result
