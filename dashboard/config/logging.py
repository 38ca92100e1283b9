"""Logging setup and scrubbing of ``extra=`` fields.

Credentials show up in three places here: the GitHub and OpenAI keys from
settings, the ``Authorization`` header, and user info embedded in
``DATABASE_URL``. Large bodies (GraphQL documents, readme blobs, cached
payloads, knowledge notes) are logged by size only.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

MASK = "[masked]"

_CREDENTIAL_FIELD = re.compile(r"authorization|token|api_?key|password|secret|cookie", re.IGNORECASE)
_BULKY_FIELD = re.compile(r"^(query|variables|payload|readme|content|notes|body)$", re.IGNORECASE)

_CREDENTIAL_TEXT = (
    # GitHub classic and fine-grained tokens
    re.compile(r"\b(?:gh[pousr]_[A-Za-z0-9]{20,}|github_pat_[A-Za-z0-9_]{20,})\b"),
    # OpenAI keys
    re.compile(r"\bsk-[A-Za-z0-9_-]{16,}\b"),
)
_AUTH_SCHEME = re.compile(r"(?i)\b(bearer|token)(\s+)[^\s,;\"']+")
_URL_USERINFO = re.compile(r"(://[^/\s:@]+):[^@\s/]+@")


def configure_logging(level: str = "INFO") -> None:
    """Install the process-wide log handler. Called once by entrypoints."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT, force=True)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def sanitize_log_extra(**fields: Any) -> dict[str, Any]:
    """Scrubbed copy of *fields* for ``logger.<level>(..., extra=...)``."""
    return {name: _scrub(value, name) for name, value in fields.items()}


def scrub_text(text: str) -> str:
    """Mask tokens, API keys and URL passwords inside free text."""
    for pattern in _CREDENTIAL_TEXT:
        text = pattern.sub(MASK, text)
    text = _AUTH_SCHEME.sub(rf"\1\2{MASK}", text)
    return _URL_USERINFO.sub(rf"\1:{MASK}@", text)


def _scrub(value: Any, field: Optional[str] = None) -> Any:
    if field is not None:
        if _CREDENTIAL_FIELD.search(field):
            return MASK
        if _BULKY_FIELD.match(field) and value:
            return _size_of(value)

    if isinstance(value, str):
        return scrub_text(value)
    if isinstance(value, dict):
        return {str(key): _scrub(item, str(key)) for key, item in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_scrub(item) for item in value]
    return value


def _size_of(value: Any) -> str:
    if isinstance(value, str):
        return f"<{len(value)} chars>"
    if isinstance(value, (dict, list, tuple, set)):
        return f"<{len(value)} items>"
    return f"<{type(value).__name__}>"
