from __future__ import annotations

import json
import logging
import time
import uuid
from datetime import datetime, timezone

# Attributes passed through `extra=` that are copied into the JSON line.
CONTEXT_FIELDS = (
    "request_id",
    "method",
    "path",
    "status_code",
    "duration_ms",
    "remote_addr",
    "user_id",
    "transaction_id",
    "linked_transaction_id",
    "session_id",
    "amount",
)


class JsonFormatter(logging.Formatter):
    """One JSON object per line; UUIDs and Decimals are written as strings."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for field in CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is None:
                continue
            payload[field] = value if isinstance(value, (bool, int, float)) else str(value)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False)


class RequestLogMiddleware:
    """Tag each request with an id (honouring `X-Request-ID`) and write one access line when it finishes."""

    def __init__(self, get_response):
        self.get_response = get_response
        self.logger = logging.getLogger("api.request")

    def __call__(self, request):
        request.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
        started = time.monotonic()

        response = self.get_response(request)

        user = getattr(request, "user", None)
        level = logging.ERROR if response.status_code >= 500 else logging.INFO
        self.logger.log(
            level,
            "request_completed",
            extra={
                "request_id": request.request_id,
                "method": request.method,
                "path": request.path,
                "status_code": response.status_code,
                "duration_ms": round((time.monotonic() - started) * 1000, 2),
                "remote_addr": request.META.get("REMOTE_ADDR"),
                "user_id": user.pk if user is not None and user.is_authenticated else None,
            },
        )
        response["X-Request-ID"] = request.request_id
        return response
