"""Session options with lenient normalization."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

DEFAULT_RETRY_MS = 2000

_FORBIDDEN_HEADER_CHARS = ("\r", "\n", "\0")


def _encodable(text: str) -> bool:
    """Header text must be latin-1 and free of line breaks and NUL."""
    if any(char in text for char in _FORBIDDEN_HEADER_CHARS):
        return False
    try:
        text.encode("latin-1")
    except UnicodeEncodeError:
        return False
    return True


class SessionOptions(BaseModel):
    """Options accepted by :class:`eventstream.session.Session`.

    Invalid values are replaced by their defaults instead of being rejected, so
    building a session never fails because of its options.
    """

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    headers: dict[str, str] = Field(default_factory=dict)
    retry: int = DEFAULT_RETRY_MS
    trust_client_event_id: bool = Field(default=True, alias="trustClientEventId")

    @field_validator("headers", mode="before")
    @classmethod
    def _normalize_headers(cls, value: Any) -> dict[str, str]:
        if not isinstance(value, Mapping):
            if value is not None:
                logger.warning("ignoring non-mapping headers option: %r", value)
            return {}
        headers: dict[str, str] = {}
        for name, header_value in value.items():
            if not isinstance(name, str) or not name.strip() or header_value is None:
                logger.warning("ignoring invalid header %r=%r", name, header_value)
                continue
            name, header_value = name.strip(), str(header_value)
            if not (_encodable(name) and _encodable(header_value)):
                logger.warning("ignoring header %r=%r; not encodable as an HTTP header", name, header_value)
                continue
            headers[name] = header_value
        return headers

    @field_validator("retry", mode="before")
    @classmethod
    def _normalize_retry(cls, value: Any) -> int:
        if isinstance(value, bool):
            return DEFAULT_RETRY_MS
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        if isinstance(value, str) and value.strip().isdigit():
            value = int(value.strip())
        if isinstance(value, int) and value > 0:
            return value
        if value is not None:
            logger.warning("ignoring invalid retry option %r; using %d ms", value, DEFAULT_RETRY_MS)
        return DEFAULT_RETRY_MS

    @field_validator("trust_client_event_id", mode="before")
    @classmethod
    def _normalize_trust(cls, value: Any) -> bool:
        if isinstance(value, bool):
            return value
        if value is not None:
            logger.warning("ignoring non-boolean trust_client_event_id %r", value)
        return True

    @classmethod
    def coerce(cls, options: Any = None) -> SessionOptions:
        """Build options from ``None``, a mapping, or an existing instance."""
        if isinstance(options, SessionOptions):
            return options
        if options is None:
            return cls()
        if not isinstance(options, Mapping):
            logger.warning("ignoring session options of type %s", type(options).__name__)
            return cls()
        try:
            return cls.model_validate(dict(options))
        except ValidationError as exc:
            logger.warning("invalid session options, using defaults: %s", exc)
            return cls()
