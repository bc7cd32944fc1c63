import json
import logging

from app.logging_config import JSONFormatter, get_logger, mask_phone, scrub_context


def _record(msg="hello", context=None):
    record = logging.LogRecord("agape.test", logging.INFO, __file__, 1, msg, None, None)
    if context is not None:
        record.context = context
    return record


class TestMaskPhone:
    def test_keeps_last_four(self):
        assert mask_phone("5531999990000") == "*********0000"

    def test_short_and_empty(self):
        assert mask_phone("123") == "***"
        assert mask_phone(None) == ""


class TestScrubContext:
    def test_secrets_redacted_and_phone_masked(self):
        scrubbed = scrub_context({"token": "abc", "phone": "5531999990000", "intent": "greeting"})
        assert scrubbed == {"token": "***", "phone": "*********0000", "intent": "greeting"}

    def test_already_masked_phone_untouched(self):
        assert scrub_context({"phone": "*****0000"}) == {"phone": "*****0000"}


class TestJSONFormatter:
    def test_one_json_object(self):
        data = json.loads(JSONFormatter().format(_record(context={"phone": "5531999990000"})))
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["service"] == "agape-whatsapp-api"
        assert data["context"] == {"phone": "*********0000"}

    def test_without_context(self):
        data = json.loads(JSONFormatter().format(_record()))
        assert "context" not in data

    def test_logger_namespace(self):
        assert get_logger("webhook").name == "agape.webhook"
