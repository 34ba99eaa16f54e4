from __future__ import annotations

import json
import logging
import uuid
from typing import Any

_LEVEL_ORDER = {"INFO": 20, "WARN": 30, "ERROR": 40, "CRITICAL": 50}


class AlertManager:
    """Structured JSON log lines for events an operator should see."""

    def __init__(self, logger: logging.Logger, min_level: str = "INFO") -> None:
        self.logger = logger
        self.min_level = min_level.upper()
        if self.min_level not in _LEVEL_ORDER:
            raise ValueError(f"Unknown alert level: {min_level}")

    def emit(
        self,
        level: str,
        event_type: str,
        msg: str,
        payload: dict[str, Any] | None = None,
        trace_id: str | None = None,
    ) -> str | None:
        lvl = level.upper()
        if _LEVEL_ORDER.get(lvl, 20) < _LEVEL_ORDER[self.min_level]:
            return None
        trace = trace_id or uuid.uuid4().hex[:12]
        body = {
            "trace_id": trace,
            "level": lvl,
            "type": event_type,
            "msg": msg,
            "payload": payload or {},
        }
        self.logger.log(_LEVEL_ORDER.get(lvl, 20), json.dumps(body, ensure_ascii=False, default=str))
        return trace

    def warn(self, event_type: str, msg: str, payload: dict[str, Any] | None = None) -> str | None:
        return self.emit("WARN", event_type, msg, payload)

    def error(self, event_type: str, msg: str, payload: dict[str, Any] | None = None) -> str | None:
        return self.emit("ERROR", event_type, msg, payload)
