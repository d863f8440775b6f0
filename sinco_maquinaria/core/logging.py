import logging
import json
from datetime import datetime, timezone

from sinco_maquinaria.core.config import settings

_CONTEXT_FIELDS = ("stream_id", "event_type", "version")


class JSONContextFormatter(logging.Formatter):
    def format(self, record):
        log_obj = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "message": record.getMessage(),
            "name": record.name,
            "filename": record.filename,
        }
        for key in _CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                log_obj[key] = value

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, ensure_ascii=False, default=str)

def setup_logging(level: str | None = None):
    handler = logging.StreamHandler()
    handler.setFormatter(JSONContextFormatter())

    root_logger = logging.getLogger("sinco")
    root_logger.setLevel(level or settings.LOG_LEVEL)
    root_logger.handlers = [handler]
    root_logger.propagate = False
