import time
from typing import Callable, List, Optional

from jawab.logging_config import get_logger
from jawab.services.alert_service import alert_error
from jawab.services.llm import LLMError, LLMProvider, LLMRateLimitError

logger = get_logger("ai_service")

GENERATION_FALLBACK = (
    "I'm currently experiencing high demand. Please try again in a moment, "
    "or call us directly for immediate assistance! 📞"
)

DEFAULT_MAX_ATTEMPTS = 3


def generate_reply(
    llm: LLMProvider,
    system_prompt: str,
    history: List[dict],
    user_message: str,
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    sleep: Callable[[float], None] = time.sleep,
    alert_context: Optional[dict] = None,
) -> str:
    """
    Generate the assistant reply for one turn.

    Rate limits are retried with exponential backoff (1s, 2s, ...). Any other
    provider failure, an exhausted retry budget, or an empty completion returns
    GENERATION_FALLBACK. This function never raises.
    """
    if not llm.is_configured:
        logger.warning("LLM provider not configured, returning fallback reply")
        return GENERATION_FALLBACK

    attempts = max(1, max_attempts)
    for attempt in range(attempts):
        try:
            reply = llm.chat(system_prompt, history, user_message)
        except LLMRateLimitError:
            if attempt < attempts - 1:
                wait_seconds = 2**attempt
                logger.warning(
                    f"LLM rate limited, waiting {wait_seconds}s before retry {attempt + 1}/{attempts}",
                    extra={"context": alert_context or {}},
                )
                sleep(wait_seconds)
                continue
            logger.error(f"LLM rate limited, retries exhausted after {attempts} attempts")
            alert_error("LLM rate limit: retries exhausted", alert_context)
            return GENERATION_FALLBACK
        except LLMError as e:
            logger.error(f"LLM generation failed: {e}", exc_info=True)
            alert_error("LLM generation failed", {**(alert_context or {}), "error": str(e)[:200]})
            return GENERATION_FALLBACK
        except Exception as e:
            logger.error(f"Unexpected LLM error: {e}", exc_info=True)
            alert_error("LLM generation crashed", {**(alert_context or {}), "error": str(e)[:200]})
            return GENERATION_FALLBACK

        if not reply or not reply.strip():
            logger.warning("LLM returned empty completion, using fallback reply")
            return GENERATION_FALLBACK
        return reply.strip()

    return GENERATION_FALLBACK
