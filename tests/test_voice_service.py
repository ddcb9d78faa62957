from jawab.models import Tenant
from jawab.services.voice_service import (
    build_hangup_twiml,
    build_voice_twiml,
    clean_for_speech,
    detect_text_language,
    error_twiml,
    greeting_for,
    not_configured_twiml,
    should_end_call,
)


class TestCleanForSpeech:
    def test_strips_markdown_emoji_urls_hashtags(self):
        assert clean_for_speech("**Book now!** 😊 Visit https://x.com #now") == "Book now! Visit"

    def test_strips_headings_and_bullets(self):
        text = "## Our prices\n- Haircut 150 AED\n* Facial 200 AED"
        assert clean_for_speech(text) == "Our prices Haircut 150 AED Facial 200 AED"

    def test_unwraps_italic(self):
        assert clean_for_speech("We are *really* open") == "We are really open"

    def test_keeps_arabic(self):
        assert clean_for_speech("أهلاً وسهلاً! 👋") == "أهلاً وسهلاً!"

    def test_empty(self):
        assert clean_for_speech(None) == ""


class TestShouldEndCall:
    def test_reply_goodbye(self):
        assert should_end_call("Thank you for calling, goodbye!", "ok") is True

    def test_user_thanks_in_arabic(self):
        assert should_end_call("تمام", "شكراً") is True

    def test_case_insensitive(self):
        assert should_end_call("See You soon", "") is True

    def test_ordinary_turn(self):
        assert should_end_call("What time works for you?", "Tomorrow at 5") is False


class TestDetectTextLanguage:
    def test_arabic(self):
        assert detect_text_language("مرحباً كيف حالك") == "ar"

    def test_english(self):
        assert detect_text_language("Hello, how are you?") == "en"

    def test_mostly_english_with_arabic_name(self):
        assert detect_text_language("Welcome to the salon at Dubai Marina, ask for سارة") == "en"

    def test_empty_defaults_to_english(self):
        assert detect_text_language("") == "en"


class TestGreeting:
    def test_arabic_default(self):
        text, language = greeting_for(Tenant(name="Glamour Salon", default_language="auto"))

        assert language == "ar"
        assert "أهلاً بك في Glamour Salon" in text

    def test_english_tenant(self):
        text, language = greeting_for(Tenant(name="Glamour Salon", default_language="en"))

        assert language == "en"
        assert text.startswith("Hello! Welcome to Glamour Salon")


class TestTwiml:
    def test_gather_twiml(self):
        xml = build_voice_twiml("How can I help?", continue_gather=True, language="en")

        assert "<Gather" in xml
        assert 'input="speech"' in xml
        assert 'speechTimeout="auto"' in xml
        assert 'action="/api/webhooks/voice"' in xml
        assert 'language="en-US"' in xml
        assert 'voice="Polly.Joanna"' in xml
        assert "I didn't hear anything. Goodbye!" in xml
        assert "<Hangup" in xml

    def test_arabic_gather_uses_arabic_voice(self):
        xml = build_voice_twiml("مرحباً", continue_gather=True, language="ar")

        assert 'language="ar-SA"' in xml
        assert 'voice="Polly.Zeina"' in xml
        assert "لم أسمع شيء" in xml

    def test_final_twiml_hangs_up_without_gather(self):
        xml = build_voice_twiml("Goodbye!", continue_gather=False, language="en")

        assert "<Gather" not in xml
        assert "<Hangup" in xml

    def test_text_is_escaped(self):
        xml = build_voice_twiml("Tom & Jerry <3", continue_gather=False)

        assert "Tom &amp; Jerry &lt;3" in xml

    def test_not_configured(self):
        xml = not_configured_twiml()

        assert "Sorry, this number is not configured. Goodbye." in xml
        assert "<Hangup" in xml

    def test_error_twiml_is_arabic(self):
        xml = error_twiml()

        assert "عذراً، حصل خطأ" in xml
        assert 'voice="Polly.Zeina"' in xml

    def test_plain_hangup(self):
        assert "<Say>Bye</Say>" in build_hangup_twiml("Bye")
