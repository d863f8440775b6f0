import json
import logging
import sys

from sinco_maquinaria.core.logging import JSONContextFormatter, setup_logging


def _record(msg="hola", **extra):
    record = logging.LogRecord("sinco.test", logging.WARNING, "mod.py", 10, msg, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONContextFormatter:
    def test_basic_fields(self):
        payload = json.loads(JSONContextFormatter().format(_record("Grupo creado: ñ")))
        assert payload["level"] == "WARNING"
        assert payload["message"] == "Grupo creado: ñ"
        assert payload["name"] == "sinco.test"
        assert payload["timestamp"].endswith("Z")

    def test_stream_context_is_included_when_present(self):
        payload = json.loads(JSONContextFormatter().format(_record(stream_id="e-1", version=3)))
        assert payload["stream_id"] == "e-1"
        assert payload["version"] == 3
        assert "event_type" not in payload

    def test_exception_is_formatted(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record()
            record.exc_info = sys.exc_info()
        payload = json.loads(JSONContextFormatter().format(record))
        assert "ValueError: boom" in payload["exception"]


def test_setup_logging_installs_single_json_handler():
    setup_logging("DEBUG")
    setup_logging("INFO")
    logger = logging.getLogger("sinco")
    assert logger.level == logging.INFO
    assert len(logger.handlers) == 1
    assert isinstance(logger.handlers[0].formatter, JSONContextFormatter)
    assert logger.propagate is False
