# chuk_ai_context_assembler/models/turn.py
"""Conversation turn and image reference models."""

from __future__ import annotations

import base64
import binascii
import re
from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

from chuk_ai_context_assembler.hashing import ImageHasher, compute_image_hash
from chuk_ai_context_assembler.models.enums import DATA_URL_PREFIX, Role

_DATA_URL_PATTERN = re.compile(r"^data:image/([a-zA-Z0-9.+-]*);base64,(.*)$", re.DOTALL)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so ages can always be computed."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# Image reference
# =============================================================================


class ImageRef(BaseModel):
    """
    Reference to binary image data plus a content hash.

    Two ImageRefs with equal ``hash`` are duplicates regardless of URL.
    A duplicate reference keeps its hash but has ``data`` dropped so the
    same bytes never travel downstream twice.
    """

    model_config = {"frozen": True}

    hash: str = Field(default="", description="Stable content digest")
    original_size: int = Field(default=0, ge=0, description="Size of the original payload in bytes")
    width: int | None = Field(default=None)
    height: int | None = Field(default=None)
    url: str | None = Field(default=None, description="Remote URL when data is not inline")
    data: bytes | None = Field(default=None, description="Inline image bytes")
    mime_type: str = Field(default="image/jpeg")
    is_duplicate: bool = Field(default=False, description="Earlier identical image exists in the window")

    @classmethod
    def from_bytes(
        cls,
        data: bytes,
        mime_type: str = "image/jpeg",
        hasher: ImageHasher | None = None,
        **kwargs,
    ) -> ImageRef:
        """Build a reference for inline bytes, hashing them."""
        return cls(
            hash=compute_image_hash(data, hasher),
            original_size=len(data),
            data=data,
            mime_type=mime_type,
            **kwargs,
        )

    @classmethod
    def from_data_url(cls, url: str, hasher: ImageHasher | None = None) -> ImageRef:
        """
        Parse a ``data:image/<fmt>;base64,<payload>`` URL.

        Raises ValueError if the URL is not a base64 image data URL.
        """
        match = _DATA_URL_PATTERN.match(url)
        if not match:
            raise ValueError("Invalid base64 image format")
        fmt, payload = match.groups()
        try:
            data = base64.b64decode(payload, validate=True)
        except binascii.Error as exc:
            raise ValueError(f"Invalid base64 payload: {exc}") from exc
        return cls.from_bytes(data, mime_type=f"image/{fmt or 'jpeg'}", hasher=hasher)

    @property
    def has_data(self) -> bool:
        return self.data is not None

    def to_data_url(self) -> str | None:
        """Inline data as a data URL, or the remote URL, or None for references."""
        if self.data is not None:
            encoded = base64.b64encode(self.data).decode("ascii")
            return f"{DATA_URL_PREFIX}{self.mime_type.split('/')[-1]};base64,{encoded}"
        return self.url

    def as_duplicate(self) -> ImageRef:
        """Reference marker for a repeated image: hash kept, bytes dropped."""
        return self.model_copy(update={"is_duplicate": True, "data": None})


# =============================================================================
# Raw turn
# =============================================================================


class RawTurn(BaseModel):
    """
    One conversational message as persisted by the asset store.

    Immutable once persisted. Timestamps strictly increase per user
    stream; ties are broken by insertion order.
    """

    model_config = {"frozen": True}

    id: str = Field(..., description="Opaque, stable turn identifier")
    user_id: str = Field(..., description="Owning user")
    conversation_id: str | None = Field(default=None)
    role: Role = Field(..., description="user or assistant")
    content: str = Field(default="", description="Message text")
    attachments: list[ImageRef] = Field(default_factory=list)
    timestamp: datetime = Field(..., description="When the turn was persisted")

    @field_validator("content", mode="before")
    @classmethod
    def _coerce_content(cls, value: object) -> object:
        return "" if value is None else value

    @field_validator("timestamp")
    @classmethod
    def _utc_timestamp(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @property
    def has_attachments(self) -> bool:
        return len(self.attachments) > 0

    def age_hours(self, now: datetime) -> float:
        """Age in hours relative to ``now`` (never negative)."""
        seconds = (ensure_utc(now) - self.timestamp).total_seconds()
        return max(0.0, seconds / 3600.0)
