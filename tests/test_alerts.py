import json
import logging

import pytest

from courier.alerts import AlertManager


def test_alerts_emit_json_lines_above_min_level(caplog) -> None:
    alerts = AlertManager(logging.getLogger("test.alerts"), min_level="warn")

    with caplog.at_level(logging.DEBUG, logger="test.alerts"):
        assert alerts.emit("INFO", "NOISE", "ignored") is None
        trace = alerts.error("INTERACTION_TIMEOUT", "missed deadline", {"handler_id": "approve"})

    assert len(caplog.records) == 1
    record = caplog.records[0]
    assert record.levelno == logging.ERROR
    body = json.loads(record.getMessage())
    assert body["trace_id"] == trace
    assert body["type"] == "INTERACTION_TIMEOUT"
    assert body["payload"] == {"handler_id": "approve"}


def test_unknown_min_level_is_rejected() -> None:
    with pytest.raises(ValueError):
        AlertManager(logging.getLogger("test.alerts"), min_level="WARNING")
