import json
import logging
from typing import Any, Dict

from sessionlock.utils.logging_helpers import REQUIRED_LOG_KEYS, describe_owner
from sessionlock.utils.time_utils import now_utc


class ContextJsonFormatter(logging.Formatter):
    """Render lock log records as one JSON object per line.

    The lock context keys are always present at the top level, ``None`` when a
    record carries no value for them. Measurements such as the attempt number
    follow when set; any other extras go under ``context``.
    """

    #: Attributes every :class:`logging.LogRecord` carries.
    _RECORD_ATTRS = frozenset(
        vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
    ) | {"message", "asctime", "taskName"}

    _MEASUREMENT_KEYS = (
        "attempt",
        "delay",
        "result_code",
        "elapsed",
        "error_type",
        "error",
        "category",
    )

    def format(self, record: logging.LogRecord) -> str:
        fields = record.__dict__
        payload: Dict[str, Any] = {
            "timestamp": now_utc().isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in REQUIRED_LOG_KEYS:
            payload[key] = fields.get(key)
        payload["owner"] = describe_owner(payload["owner"])

        for key in self._MEASUREMENT_KEYS:
            if fields.get(key) is not None:
                payload[key] = fields[key]

        context = {
            key: value
            for key, value in fields.items()
            if key not in payload
            and key not in self._RECORD_ATTRS
            and not key.startswith("_")
        }
        if context:
            payload["context"] = context

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=repr)


def setup_logging(level: int = logging.INFO, debug_mode: bool = False) -> None:
    """Initialise root logging with the structured JSON formatter."""

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(ContextJsonFormatter())
        root_logger.addHandler(handler)

    root_logger.setLevel(logging.DEBUG if debug_mode else level)
