from __future__ import annotations

import json
import logging

from audioshelf import logging_manager


def _record(**extra: object) -> logging.LogRecord:
    record = logging.LogRecord("audioshelf.test", logging.INFO, __file__, 1, "hello", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_log_context_is_scoped():
    logging_manager.clear_log_context()
    with logging_manager.log_context(library_id="lib-1", user_id=None):
        assert logging_manager.get_log_context() == {"library_id": "lib-1"}
        with logging_manager.log_context(user_id="user-1"):
            assert logging_manager.get_log_context() == {"library_id": "lib-1", "user_id": "user-1"}
        assert logging_manager.get_log_context() == {"library_id": "lib-1"}
    assert logging_manager.get_log_context() == {}


def test_context_filter_keeps_explicit_values():
    context_filter = logging_manager.LogContextFilter()
    record = _record(event="library.items.query")
    with logging_manager.log_context(library_id="lib-1", event="outer"):
        assert context_filter.filter(record) is True

    assert record.library_id == "lib-1"
    assert record.event == "library.items.query"


def test_json_formatter_promotes_known_fields():
    record = _record(library_id="lib-1", duration_ms=1.5, filter_group="genres")

    payload = json.loads(logging_manager.JSONLogFormatter().format(record))

    assert payload["message"] == "hello"
    assert payload["library_id"] == "lib-1"
    assert payload["duration_ms"] == 1.5
    assert payload["extra"]["filter_group"] == "genres"
    assert "library_id" not in payload["extra"]
