from datetime import datetime, timezone

from jawab.models import Tenant
from jawab.services.prompt_service import (
    NO_FAQS_TEXT,
    ChannelHint,
    build_system_prompt,
    format_hours,
    format_services,
)

FIXED_NOW = datetime(2025, 3, 3, 14, 30, tzinfo=timezone.utc)  # a Monday


def _tenant(**overrides):
    fields = {
        "name": "Glamour Salon",
        "location": "Dubai Marina",
        "address": "Marina Walk, Dubai",
        "services": [{"name": "Haircut", "name_ar": "قص الشعر", "price": 150, "duration": 45}],
        "hours": {"monday": {"open": "09:00", "close": "21:00"}, "friday": None},
        "custom_faqs": [{"question": "Do you take walk-ins?", "answer": "Yes, until 8pm."}],
        "tone": "friendly",
    }
    fields.update(overrides)
    return Tenant(**fields)


class TestFormatServices:
    def test_formats_line(self):
        assert format_services([{"name": "Haircut", "name_ar": "قص الشعر", "price": 150, "duration": 45}]) == (
            "- Haircut (قص الشعر): 150 AED (45 min)"
        )

    def test_uses_service_currency(self):
        assert format_services([{"name": "Facial", "price": 40.0, "duration": 30, "currency": "USD"}]) == (
            "- Facial: 40 USD (30 min)"
        )

    def test_empty_services_placeholder(self):
        assert "No services listed" in format_services([])


class TestFormatHours:
    def test_seven_lines_monday_first(self):
        lines = format_hours({"monday": {"open": "09:00", "close": "21:00"}, "friday": None}).splitlines()

        assert len(lines) == 7
        assert lines[0] == "Monday: 09:00 - 21:00"
        assert lines[4] == "Friday: Closed"
        assert lines[6] == "Sunday: Closed"

    def test_missing_hours(self):
        assert format_hours(None).count("Closed") == 7


class TestBuildSystemPrompt:
    def test_contains_tenant_facts(self):
        prompt = build_system_prompt(_tenant(), now=FIXED_NOW)

        assert "AI receptionist and sales assistant for Glamour Salon, located in Dubai Marina." in prompt
        assert "- Haircut (قص الشعر): 150 AED (45 min)" in prompt
        assert "Monday: 09:00 - 21:00" in prompt
        assert "Q: Do you take walk-ins?\nA: Yes, until 8pm." in prompt
        assert "Never make up information" in prompt
        assert "Never discuss competitors" in prompt
        assert "Today is Monday, March 3, 2025." in prompt
        assert "Current time: 02:30 PM." in prompt

    def test_deterministic_with_fixed_clock(self):
        assert build_system_prompt(_tenant(), now=FIXED_NOW) == build_system_prompt(_tenant(), now=FIXED_NOW)

    def test_missing_fields_do_not_fail(self):
        prompt = build_system_prompt(Tenant(name="Bare"), now=FIXED_NOW)

        assert NO_FAQS_TEXT in prompt
        assert "Sunday: Closed" in prompt
        assert "Tone: friendly" in prompt

    def test_voice_addendum(self):
        prompt = build_system_prompt(_tenant(), ChannelHint.VOICE, now=FIXED_NOW)

        assert "## Voice Call Special Instructions" in prompt
        assert "max 2-3 sentences" in prompt

    def test_public_comment_addendum(self):
        prompt = build_system_prompt(_tenant(), ChannelHint.PUBLIC_COMMENT, now=FIXED_NOW)

        assert "PUBLIC comment" in prompt
        assert "DM us for details!" in prompt

    def test_private_dm_names_platform(self):
        instagram = build_system_prompt(_tenant(), ChannelHint.PRIVATE_DM, now=FIXED_NOW, channel="instagram_dm")
        messenger = build_system_prompt(_tenant(), ChannelHint.PRIVATE_DM, now=FIXED_NOW, channel="messenger")

        assert "private Instagram DM" in instagram
        assert "private Messenger DM" in messenger

    def test_no_hint_no_addendum(self):
        prompt = build_system_prompt(_tenant(), now=FIXED_NOW)

        assert "Voice Call" not in prompt
        assert "PUBLIC comment" not in prompt

    def test_default_language_hint(self):
        prompt = build_system_prompt(_tenant(default_language="ar"), now=FIXED_NOW)

        assert "If the language is unclear, use Arabic" in prompt
