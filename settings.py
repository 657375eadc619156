import os
import logging


ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./taskflow.db")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
TOKEN_TTL_HOURS = int(os.getenv("TOKEN_TTL_HOURS", "24"))
CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://localhost:5173").split(",")
    if origin.strip()
]

# Attributes every LogRecord carries; anything else came in through `extra=`
_RESERVED_RECORD_ATTRS = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


class ExtraFormatter(logging.Formatter):
    """Formatter that appends the `extra={...}` context as key=value pairs."""

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = {
            key: value for key, value in record.__dict__.items()
            if key not in _RESERVED_RECORD_ATTRS
        }
        if not context:
            return base
        pairs = " ".join(f"{key}={value!r}" for key, value in sorted(context.items()))
        return f"{base} | {pairs}"


def _build_logger() -> logging.Logger:
    log = logging.getLogger("taskflow")
    if not log.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(ExtraFormatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        log.addHandler(handler)
    log.setLevel(LOG_LEVEL)
    log.propagate = False
    return log


logger = _build_logger()
