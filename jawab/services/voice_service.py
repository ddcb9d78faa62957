"""Speech shaping and TwiML rendering for voice calls."""

import re
from typing import Optional

from twilio.twiml.voice_response import Gather, VoiceResponse

from jawab.config import settings
from jawab.models import Tenant

ARABIC = "ar"
ENGLISH = "en"

POLLY_VOICES = {
    ARABIC: ("Polly.Zeina", "ar-XA"),
    ENGLISH: ("Polly.Joanna", "en-US"),
}
GATHER_LANGUAGES = {ARABIC: "ar-SA", ENGLISH: "en-US"}

NO_INPUT_GOODBYE = {
    ARABIC: "لم أسمع شيء. مع السلامة!",
    ENGLISH: "I didn't hear anything. Goodbye!",
}

NOT_CONFIGURED_SPEECH = "Sorry, this number is not configured. Goodbye."
VOICE_ERROR_SPEECH = "عذراً، حصل خطأ. خليني أحولك لأحد من الفريق."

# Fixed English + Arabic list; other languages never end the call on their own.
END_CALL_PHRASES = (
    "goodbye",
    "bye",
    "مع السلامة",
    "شكراً",
    "thank you",
    "have a nice day",
    "see you",
    "thanks for calling",
)

ARABIC_SHARE_THRESHOLD = 0.3

EMOJI_PATTERN = re.compile(
    "["
    "\U0001F300-\U0001FAFF"
    "\U00002600-\U000027BF"
    "\U0001F000-\U0001F2FF"
    "\uFE0F\u200D"
    "]+"
)
BOLD_PATTERN = re.compile(r"\*\*([^*]+)\*\*")
ITALIC_PATTERN = re.compile(r"\*([^*\n]+)\*")
HEADING_PATTERN = re.compile(r"^\s*#{1,6}\s*", re.MULTILINE)
BULLET_PATTERN = re.compile(r"^\s*[-*•]\s+", re.MULTILINE)
URL_PATTERN = re.compile(r"https?://\S+")
HASHTAG_PATTERN = re.compile(r"#\w+")
STRAY_MARKDOWN_PATTERN = re.compile(r"[*_`#~]")
WHITESPACE_PATTERN = re.compile(r"\s+")
ARABIC_LETTER_PATTERN = re.compile(r"[\u0600-\u06FF]")


def clean_for_speech(text: Optional[str]) -> str:
    """Strip what a speech engine would read out literally."""
    if not text:
        return ""
    cleaned = EMOJI_PATTERN.sub("", text)
    cleaned = BOLD_PATTERN.sub(r"\1", cleaned)
    cleaned = ITALIC_PATTERN.sub(r"\1", cleaned)
    cleaned = HEADING_PATTERN.sub("", cleaned)
    cleaned = BULLET_PATTERN.sub("", cleaned)
    cleaned = URL_PATTERN.sub("", cleaned)
    cleaned = HASHTAG_PATTERN.sub("", cleaned)
    cleaned = STRAY_MARKDOWN_PATTERN.sub("", cleaned)
    return WHITESPACE_PATTERN.sub(" ", cleaned).strip()


def should_end_call(reply: Optional[str], user_text: Optional[str]) -> bool:
    lowered_reply = (reply or "").lower()
    lowered_input = (user_text or "").lower()
    return any(phrase in lowered_reply or phrase in lowered_input for phrase in END_CALL_PHRASES)


def detect_text_language(text: Optional[str]) -> str:
    """Arabic when more than 30% of non-space characters are Arabic letters."""
    chars = [ch for ch in (text or "") if not ch.isspace()]
    if not chars:
        return ENGLISH
    arabic = sum(1 for ch in chars if ARABIC_LETTER_PATTERN.match(ch))
    return ARABIC if arabic / len(chars) > ARABIC_SHARE_THRESHOLD else ENGLISH


def greeting_for(tenant: Tenant) -> tuple[str, str]:
    """Opening line and its language. Arabic unless the tenant prefers English."""
    if tenant.default_language == ENGLISH:
        return f"Hello! Welcome to {tenant.name}. How can I help you today?", ENGLISH
    name = tenant.name_ar or tenant.name
    return f"مرحباً! أهلاً بك في {name}. كيف أقدر أساعدك اليوم؟", ARABIC


def _say(node, text: str, language: str) -> None:
    voice, voice_language = POLLY_VOICES.get(language, POLLY_VOICES[ENGLISH])
    node.say(text, voice=voice, language=voice_language)


def build_voice_twiml(
    text: str,
    continue_gather: bool,
    language: str = ENGLISH,
    action: Optional[str] = None,
    timeout: Optional[int] = None,
) -> str:
    """Speak `text`. Either listen for the next utterance or hang up."""
    response = VoiceResponse()

    if not continue_gather:
        _say(response, text, language)
        response.hangup()
        return str(response)

    gather = Gather(
        input="speech",
        timeout=timeout or settings.voice_gather_timeout_seconds,
        speech_timeout="auto",
        action=action or settings.voice_action_path,
        method="POST",
        language=GATHER_LANGUAGES.get(language, GATHER_LANGUAGES[ENGLISH]),
    )
    _say(gather, text, language)
    response.append(gather)
    _say(response, NO_INPUT_GOODBYE.get(language, NO_INPUT_GOODBYE[ENGLISH]), language)
    response.hangup()
    return str(response)


def build_hangup_twiml(text: str, language: Optional[str] = None) -> str:
    response = VoiceResponse()
    if language:
        _say(response, text, language)
    else:
        response.say(text)
    response.hangup()
    return str(response)


def not_configured_twiml() -> str:
    return build_hangup_twiml(NOT_CONFIGURED_SPEECH)


def error_twiml() -> str:
    return build_hangup_twiml(VOICE_ERROR_SPEECH, ARABIC)
