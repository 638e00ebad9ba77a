import io
import json
import logging

from harmony_planner.config import DEFAULT_TEMPLATES_DIR, get_settings, load_settings
from harmony_planner.logging_utils import (
    RequestContextFilter,
    StructuredFormatter,
    clear_request_context,
    current_request_id,
    log_event,
    set_request_context,
)


def test_settings_defaults(monkeypatch):
    for name in ("LOG_LEVEL", "LOG_FORMAT", "HARMONY_TEMPLATES_DIR", "HARMONY_PLANNER_WORKERS"):
        monkeypatch.delenv(name, raising=False)
    settings = load_settings()
    assert settings.log_level == "INFO"
    assert not settings.json_logs
    assert settings.templates_dir == DEFAULT_TEMPLATES_DIR
    assert settings.planner_workers == 1


def test_settings_from_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("LOG_FORMAT", "JSON")
    monkeypatch.setenv("HARMONY_TEMPLATES_DIR", str(tmp_path))
    monkeypatch.setenv("HARMONY_PLANNER_WORKERS", "4")
    settings = load_settings()
    assert settings.log_level == "DEBUG"
    assert settings.json_logs
    assert settings.templates_dir == tmp_path
    assert settings.planner_workers == 4


def test_worker_count_is_clamped_and_tolerates_garbage(monkeypatch):
    monkeypatch.setenv("HARMONY_PLANNER_WORKERS", "0")
    assert load_settings().planner_workers == 1
    monkeypatch.setenv("HARMONY_PLANNER_WORKERS", "many")
    assert load_settings().planner_workers == 1


def test_get_settings_is_cached():
    assert get_settings() is get_settings()


def _capture(json_output: bool):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter(json_output=json_output))
    handler.addFilter(RequestContextFilter())
    logger = logging.getLogger(f"tests.structured.{json_output}")
    logger.handlers = [handler]
    logger.propagate = False
    logger.setLevel(logging.DEBUG)
    return logger, stream


def test_json_formatter_includes_event_fields_and_request_context():
    logger, stream = _capture(json_output=True)
    set_request_context(request_id="req-1", route="/api/plan", method="POST")
    try:
        log_event(logger, "plan_completed", template_id="aaba_8", duration_ms=3)
    finally:
        clear_request_context()
    payload = json.loads(stream.getvalue())
    assert payload["event"] == "plan_completed"
    assert payload["template_id"] == "aaba_8"
    assert payload["duration_ms"] == 3
    assert payload["request_id"] == "req-1"
    assert payload["route"] == "/api/plan"
    assert payload["level"] == "INFO"


def test_text_formatter_renders_key_value_pairs():
    logger, stream = _capture(json_output=False)
    log_event(logger, "plan_failed", level=logging.WARNING, code="insufficient_depth")
    line = stream.getvalue().strip()
    assert "level=WARNING" in line
    assert "event=plan_failed" in line
    assert "code=insufficient_depth" in line
    assert "request_id=-" in line


def test_request_context_is_set_and_cleared():
    set_request_context(request_id="req-9", route="/api/styles", method="GET")
    assert current_request_id() == "req-9"
    clear_request_context()
    assert current_request_id() == "-"


def test_text_formatter_leads_with_context_then_extras():
    logger, stream = _capture(json_output=False)
    log_event(logger, "template_imported", template_id="tag_2")
    fields = [part.split("=", 1)[0] for part in stream.getvalue().split()]
    assert fields == ["timestamp", "level", "logger", "event", "request_id", "method", "route", "template_id"]
