"""Tests for log redaction."""

from conduit.utils.logging import _filter_sensitive


class TestFilterSensitive:
    def test_key_value_pairs_redacted(self):
        event = _filter_sensitive(None, "info", {"event": "x", "detail": "api_key=abc123"})
        assert event["detail"] == "api_key=***REDACTED***"

    def test_bare_provider_keys_redacted(self):
        event = _filter_sensitive(None, "info", {"event": "x", "url": "https://h/?k sk-ant-abcdefgh12345"})
        assert "sk-ant-abcdefgh12345" not in event["url"]
        assert "***REDACTED***" in event["url"]

    def test_non_strings_untouched(self):
        event = _filter_sensitive(None, "info", {"event": "x", "status": 401})
        assert event["status"] == 401

    def test_secret_headers_redacted(self):
        event = _filter_sensitive(None, "info", {
            "event": "x",
            "headers": {"Authorization": "Bearer abc", "x-api-key": "k", "Accept": "text/plain"},
            "api_key": "plain",
        })
        assert event["headers"] == {
            "Authorization": "***REDACTED***",
            "x-api-key": "***REDACTED***",
            "Accept": "text/plain",
        }
        assert event["api_key"] == "***REDACTED***"
