# chuk_ai_context_assembler/config.py
"""
Configuration for context assembly.

Defaults can be overridden through environment variables (optionally
loaded from a ``.env`` file) named ``CONTEXT_ASSEMBLER_<FIELD>``, and
per call through ``AssemblyConfig.with_overrides``.
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from chuk_ai_context_assembler.models.enums import DEFAULT_TRIGGER_KEYWORDS

load_dotenv()

logger = logging.getLogger(__name__)

ENV_PREFIX = "CONTEXT_ASSEMBLER_"


class AssemblyConfig(BaseModel):
    """Tunables for one assembly. Every field has a documented default."""

    # Selection
    max_messages: int = Field(default=20, ge=1, description="Maximum turns kept by the prioritizer")
    preserve_recent_n: int = Field(default=5, ge=0, description="Most recent turns always kept")
    min_importance_score: float = Field(default=20.0, ge=0.0, le=100.0)

    # Delta cache
    delta_cache_ttl_seconds: float = Field(default=1800.0, gt=0, description="30 minutes")
    max_delta_size: int = Field(default=10, ge=1, description="Maximum new turns per delta")

    # Images
    thumbnail_dimensions: tuple[int, int] = Field(default=(256, 256))
    compression_quality: int = Field(default=60, ge=1, le=100)
    skip_threshold_bytes: int = Field(default=50 * 1024, ge=0, description="Pass through images at or below")
    trigger_keywords: list[str] = Field(default_factory=lambda: list(DEFAULT_TRIGGER_KEYWORDS))
    max_images_per_turn: int = Field(default=4, ge=0, description="Full-resolution images per turn; the rest stay thumbnails")

    # Asset store window
    fetch_since_minutes: int = Field(default=24 * 60, ge=1)
    fetch_max_messages: int = Field(default=50, ge=1)

    # Token estimation
    chars_per_token: int = Field(default=4, ge=1)
    image_tokens_full: int = Field(default=765, ge=0)
    image_tokens_thumbnail: int = Field(default=85, ge=0)

    def with_overrides(self, overrides: dict[str, Any] | None = None) -> AssemblyConfig:
        """Return a validated copy with per-call overrides applied."""
        if not overrides:
            return self
        return AssemblyConfig.model_validate({**self.model_dump(), **overrides})

    @classmethod
    def from_env(cls, prefix: str = ENV_PREFIX) -> AssemblyConfig:
        """
        Build a config from ``<prefix><FIELD>`` environment variables.

        List and tuple fields accept JSON (``["a", "b"]``) or a comma
        separated string.
        """
        values: dict[str, Any] = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{prefix}{name.upper()}")
            if raw is None:
                continue
            values[name] = _parse_env_value(name, raw)
        if values:
            logger.debug("AssemblyConfig overrides from environment: %s", sorted(values))
        return cls.model_validate(values)


def _parse_env_value(name: str, raw: str) -> Any:
    if name not in ("trigger_keywords", "thumbnail_dimensions"):
        return raw
    raw = raw.strip()
    if raw.startswith("["):
        return json.loads(raw)
    if name == "thumbnail_dimensions":
        # "256x256" or "256,256"
        raw = raw.lower().replace("x", ",")
    return [p.strip() for p in raw.split(",") if p.strip()]


class DeltaCacheConfig(BaseModel):
    """Configuration for the per-user delta cache."""

    ttl_seconds: float = Field(default=1800.0, gt=0)
    max_entries: int = Field(default=1000, ge=1)
    num_shards: int = Field(default=16, ge=1)


class CompressionCacheConfig(BaseModel):
    """Configuration for the thumbnail cache keyed by image hash."""

    ttl_seconds: float = Field(default=3600.0, gt=0)
    max_entries: int = Field(default=512, ge=1)
    num_shards: int = Field(default=16, ge=1)


class SweeperConfig(BaseModel):
    """Configuration for the periodic cache sweeper."""

    interval_seconds: float = Field(default=300.0, gt=0, description="5 minutes")
