# chuk_ai_context_assembler/models/image.py
"""Derived image representations: compressed thumbnails and processed attachments."""

from __future__ import annotations

import base64

from pydantic import BaseModel, Field

from chuk_ai_context_assembler.models.enums import DATA_URL_PREFIX, Resolution
from chuk_ai_context_assembler.models.turn import ImageRef


class CompressedImage(BaseModel):
    """
    Thumbnail derived from an original image.

    Non-authoritative: computed on demand and cached by hash. The asset
    store always holds the original.
    """

    model_config = {"frozen": True}

    thumbnail_data: bytes = Field(..., description="Encoded thumbnail bytes")
    thumbnail_size: int = Field(default=0, ge=0)
    width: int | None = Field(default=None)
    height: int | None = Field(default=None)
    format: str = Field(default="JPEG")
    quality: int = Field(default=60, ge=1, le=100)
    compression_ratio: float = Field(default=1.0, description="original_size / thumbnail_size")
    skipped: bool = Field(default=False, description="Original was small enough to pass through")
    is_duplicate_reference: bool = Field(default=False)

    @property
    def mime_type(self) -> str:
        return f"image/{self.format.lower()}"


class ProcessedImage(BaseModel):
    """
    An attachment after deduplication, compression and resolution selection.

    ``error`` is set when compression failed and the original was passed
    through unmodified.
    """

    ref: ImageRef
    compressed: CompressedImage | None = Field(default=None)
    resolution: Resolution = Field(default=Resolution.THUMBNAIL)
    error: str | None = Field(default=None, description="Compression failure, if any")

    @property
    def hash(self) -> str:
        return self.ref.hash

    @property
    def is_duplicate(self) -> bool:
        return self.resolution == Resolution.REFERENCE

    @property
    def fell_back(self) -> bool:
        return self.error is not None

    @property
    def data(self) -> bytes | None:
        """Bytes that will be sent for the selected resolution."""
        if self.resolution == Resolution.REFERENCE:
            return None
        if self.resolution == Resolution.THUMBNAIL and self.compressed is not None:
            return self.compressed.thumbnail_data
        return self.ref.data

    @property
    def mime_type(self) -> str:
        if (
            self.resolution == Resolution.THUMBNAIL
            and self.compressed is not None
            and not self.compressed.skipped
        ):
            return self.compressed.mime_type
        return self.ref.mime_type

    @property
    def size(self) -> int:
        data = self.data
        if data is not None:
            return len(data)
        return 0 if self.is_duplicate else self.ref.original_size

    def to_url(self) -> str | None:
        """Data URL for the selected bytes, the remote URL, or None for duplicates."""
        data = self.data
        if data is None:
            return None if self.is_duplicate else self.ref.url
        encoded = base64.b64encode(data).decode("ascii")
        return f"{DATA_URL_PREFIX}{self.mime_type.split('/')[-1]};base64,{encoded}"
