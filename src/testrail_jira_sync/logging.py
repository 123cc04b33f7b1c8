"""Logging configuration with secret redaction."""

import logging
import re
from typing import ClassVar


class SecretRedactingFilter(logging.Filter):
    """Filter that redacts secrets from log messages."""

    SECRET_PATTERNS: ClassVar[list[tuple[re.Pattern[str], str]]] = [
        # Authorization headers (any scheme)
        (re.compile(r"(Authorization[\"']?:\s*[\"']?)[^\"',\]}]+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"Basic\s+[a-zA-Z0-9+/=]{8,}"), "Basic [REDACTED]"),
        (re.compile(r"Bearer\s+[a-zA-Z0-9_\-\.]+"), "Bearer [REDACTED]"),
        # Atlassian API tokens
        (re.compile(r"ATATT[a-zA-Z0-9_\-=]{20,}"), "[REDACTED_ATLASSIAN_TOKEN]"),
        (re.compile(r"(token[=:]\s*)[^\s,\]]+", re.IGNORECASE), r"\1[REDACTED]"),
        (re.compile(r"(api[_-]?key[=:]\s*)[^\s,\]]+", re.IGNORECASE), r"\1[REDACTED]"),
    ]

    def filter(self, record: logging.LogRecord) -> bool:
        """Filter and redact secrets from log record."""
        record.msg = self._redact(str(record.msg))
        if record.args:
            record.args = tuple(
                self._redact(arg) if isinstance(arg, str) else arg for arg in record.args
            )
        return True

    def _redact(self, text: str) -> str:
        """Redact secrets from text."""
        for pattern, replacement in self.SECRET_PATTERNS:
            text = pattern.sub(replacement, text)
        return text


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
) -> None:
    """Configure logging for the application.

    Args:
        verbose: Enable debug level logging.
        json_format: Use JSON format for logs (useful for schedulers that ship logs).
    """
    level = logging.DEBUG if verbose else logging.INFO

    if json_format:
        format_str = '{"time": "%(asctime)s", "level": "%(levelname)s", "name": "%(name)s", "message": "%(message)s"}'
    else:
        format_str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

    logging.basicConfig(
        level=level,
        format=format_str,
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    # basicConfig is a no-op once handlers exist
    root_logger.setLevel(level)
    redaction_filter = SecretRedactingFilter()

    for handler in root_logger.handlers:
        handler.addFilter(redaction_filter)

    # Request lines would otherwise be logged once per TestRail call
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
