# chuk_ai_context_assembler/tokens.py
"""
Token cost estimation strategies.

The assembler only needs a monotone, roughly proportional cost per turn
to fit a budget, so the estimator is a swappable strategy:

- CharRatioEstimator: ``len(text) // chars_per_token`` (default, no I/O)
- TiktokenEstimator: exact BPE count for the text via tiktoken

Both charge images a flat cost by resolution: full 765 tokens,
thumbnail 85, duplicate reference 0.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

import tiktoken

from .models import ProcessedImage, Resolution, ScoredTurn

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "cl100k_base"


@runtime_checkable
class TokenEstimator(Protocol):
    """Estimates the token cost of text, images and whole turns."""

    def estimate_text(self, text: str) -> int: ...

    def estimate_image(self, image: ProcessedImage) -> int: ...

    def estimate_turn(self, turn: ScoredTurn) -> int: ...


class _ImageCostMixin:
    """Flat per-image costs shared by the estimators."""

    image_tokens_full: int
    image_tokens_thumbnail: int

    def estimate_image(self, image: ProcessedImage) -> int:
        if image.resolution == Resolution.REFERENCE:
            return 0
        if image.resolution == Resolution.THUMBNAIL:
            return self.image_tokens_thumbnail
        return self.image_tokens_full

    def estimate_images(self, images: Sequence[ProcessedImage]) -> int:
        return sum(self.estimate_image(image) for image in images)

    def estimate_turn(self, turn: ScoredTurn) -> int:
        return self.estimate_text(turn.content) + self.estimate_images(turn.images)  # type: ignore[attr-defined]


class CharRatioEstimator(_ImageCostMixin):
    """Characters divided by a fixed ratio (4 by default)."""

    def __init__(
        self,
        chars_per_token: int = 4,
        image_tokens_full: int = 765,
        image_tokens_thumbnail: int = 85,
    ) -> None:
        if chars_per_token < 1:
            raise ValueError("chars_per_token must be >= 1")
        self.chars_per_token = chars_per_token
        self.image_tokens_full = image_tokens_full
        self.image_tokens_thumbnail = image_tokens_thumbnail

    def estimate_text(self, text: str) -> int:
        if not text:
            return 0
        return len(text) // self.chars_per_token


class TiktokenEstimator(_ImageCostMixin):
    """
    Exact text token counts using a tiktoken encoding.

    The encoding is loaded on first use; pass ``encoding`` to supply one
    directly (any object with ``encode(text) -> list[int]``).
    """

    def __init__(
        self,
        encoding_name: str = DEFAULT_ENCODING,
        image_tokens_full: int = 765,
        image_tokens_thumbnail: int = 85,
        encoding: Any = None,
    ) -> None:
        self.encoding_name = encoding_name
        self.image_tokens_full = image_tokens_full
        self.image_tokens_thumbnail = image_tokens_thumbnail
        self._encoding = encoding

    @classmethod
    def for_model(cls, model: str, **kwargs: Any) -> TiktokenEstimator:
        """Estimator using the encoding tiktoken associates with ``model``."""
        try:
            encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            logger.debug("No tiktoken encoding registered for %s, using %s", model, DEFAULT_ENCODING)
            return cls(**kwargs)
        return cls(encoding_name=encoding.name, encoding=encoding, **kwargs)

    @property
    def encoding(self) -> Any:
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self.encoding_name)
        return self._encoding

    def estimate_text(self, text: str) -> int:
        if not text:
            return 0
        return len(self.encoding.encode(text))
