import pytest
from pydantic import TypeAdapter, ValidationError

from jawab.schemas import InboundMessage, MetaComment, VoiceInbound, WhatsAppInbound

inbound_adapter = TypeAdapter(InboundMessage)


class TestInboundMessage:
    def test_dispatches_on_kind(self):
        message = inbound_adapter.validate_python(
            {"kind": "whatsapp", "from_number": "+971501234567", "to_number": "+14155238886", "body": "Hi"}
        )

        assert isinstance(message, WhatsAppInbound)
        assert message.media_urls == []

    def test_comment(self):
        message = inbound_adapter.validate_python(
            {
                "kind": "meta_comment",
                "account_id": "1784",
                "platform": "instagram_comment",
                "sender_id": "u2",
                "text": "Price?",
                "comment_id": "c.1",
            }
        )

        assert isinstance(message, MetaComment)
        assert message.is_public

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            inbound_adapter.validate_python({"kind": "sms", "body": "Hi"})


class TestVoiceInbound:
    def test_new_call(self):
        inbound = VoiceInbound(call_sid="CA1")

        assert inbound.is_new_call
        assert inbound.user_text == ""

    def test_speech_wins_over_digits(self):
        inbound = VoiceInbound(call_sid="CA1", speech_result="Hello", digits="2")

        assert not inbound.is_new_call
        assert inbound.user_text == "Hello"

    def test_digits(self):
        assert VoiceInbound(call_sid="CA1", digits="3").user_text == "Pressed 3"
