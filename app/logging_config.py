"""Logging setup: one root stream handler plus token redaction."""

from __future__ import annotations

import logging
import re

_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_PATTERNS = [
    re.compile(r"(?i)(bearer\s+)([A-Za-z0-9\-_.~+/]{8,})"),
    re.compile(r"(?i)((?:access_token|refresh_token|code_verifier|code)[\"']?\s*[:=]\s*[\"']?)([A-Za-z0-9\-_.~]{8,})"),
]


def mask(text: str) -> str:
    """Mask bearer tokens and OAuth secrets, keeping the first 4 chars."""
    for pattern in _PATTERNS:
        text = pattern.sub(lambda m: f"{m.group(1)}{m.group(2)[:4]}****", text)
    return text


class RedactTokensFilter(logging.Filter):
    """Rewrites the rendered message so no credential reaches a handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def configure_logging(level: str = "INFO") -> None:
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in root.handlers:
        if getattr(handler, "_true_shuffle", False):
            return
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler.addFilter(RedactTokensFilter())
    handler._true_shuffle = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    # httpx logs every request URL at INFO, which includes queue URIs.
    logging.getLogger("httpx").setLevel(logging.WARNING)
