"""Tests for structured log formatting."""

import json
import logging
import sys

from liveshelf.core.logging import _build_json_payload, _JsonLineFormatter, _StructuredLogFilter


def _record(msg, *args, **extra):
    record = logging.LogRecord("liveshelf.test", logging.INFO, __file__, 10, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_bearer_tokens_are_redacted_from_messages():
    payload = _build_json_payload(
        _record("Calling upstream with %s", "Authorization: Bearer abc.def.ghi"),
        include_error=False,
    )

    assert "abc.def.ghi" not in payload["message"]
    assert "Bearer <redacted>" in payload["message"]


def test_session_cookies_are_redacted():
    payload = _build_json_payload(
        _record("cookie header", context_data={"raw": "ls_access=secret1; theme=dark"}),
        include_error=False,
    )

    assert payload["context_data"]["raw"] == "ls_access=<redacted>; theme=dark"


def test_sensitive_keys_are_masked():
    payload = _build_json_payload(
        _record(
            "http failure",
            http_details={"headers": {"Set-Cookie": "ls_refresh=x", "content-type": "image/png"}},
        ),
        include_error=False,
    )

    assert payload["http_details"]["headers"] == {
        "Set-Cookie": "<redacted>",
        "content-type": "image/png",
    }


def test_error_payload_carries_error_fields():
    try:
        raise ValueError("boom")
    except ValueError:
        record = logging.LogRecord(
            "liveshelf.test", logging.ERROR, __file__, 10, "failed", (), sys.exc_info()
        )

    payload = json.loads(_JsonLineFormatter(include_error=True).format(record))

    assert payload["error_type"] == "ValueError"
    assert payload["error_message"] == "boom"
    assert "stack_trace" in payload


def test_structured_filter_only_passes_records_with_context():
    structured = _StructuredLogFilter()

    assert structured.filter(_record("plain")) is False
    assert structured.filter(_record("with item", item_id="abc123")) is True
