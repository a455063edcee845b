import json
import logging
import sys
from datetime import datetime, timezone

EXTRA_FIELDS = ("operation", "exchange_id", "record_kind", "network")


class JsonFormatter(logging.Formatter):
    def format(self, record):
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                payload[key] = getattr(record, key)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


def _json_handler(handler: logging.Handler) -> logging.Handler:
    handler.setFormatter(JsonFormatter())
    return handler


def configure_logging(settings):
    handlers = [_json_handler(logging.StreamHandler(sys.stdout))]
    if settings.log_file:
        handlers.append(_json_handler(logging.FileHandler(settings.log_file, mode="a")))

    root = logging.getLogger()
    root.setLevel(getattr(logging, settings.log_level.upper(), logging.INFO))
    root.handlers = handlers
