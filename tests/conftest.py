# tests/conftest.py
"""
Shared pytest fixtures for chuk_ai_context_assembler tests.

Turn and image factories are exposed as fixtures returning callables so
tests can build windows with explicit ages relative to a fixed ``now``.
"""

import io
import logging
from datetime import datetime, timedelta, timezone

import pytest
from PIL import Image

from chuk_ai_context_assembler.models import ImageRef, RawTurn, Role

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logging.getLogger("chuk_ai_context_assembler").setLevel(logging.DEBUG)

FIXED_NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def now() -> datetime:
    """Fixed reference time for scoring."""
    return FIXED_NOW


@pytest.fixture
def make_turn():
    """Factory: make_turn("t1", hours_ago=2, content="hi", role=Role.USER)."""

    def _make(
        turn_id: str,
        hours_ago: float = 0.0,
        content: str = "",
        role: Role = Role.USER,
        user_id: str = "user-1",
        attachments: list[ImageRef] | None = None,
    ) -> RawTurn:
        return RawTurn(
            id=turn_id,
            user_id=user_id,
            role=role,
            content=content,
            attachments=attachments or [],
            timestamp=FIXED_NOW - timedelta(hours=hours_ago),
        )

    return _make


@pytest.fixture
def make_window(make_turn):
    """Factory: n turns one minute apart, oldest first, alternating roles."""

    def _make(n: int, prefix: str = "t", user_id: str = "user-1", content: str = "message") -> list[RawTurn]:
        return [
            make_turn(
                f"{prefix}{i}",
                hours_ago=(n - i) / 60.0,
                content=f"{content} {i}",
                role=Role.USER if i % 2 == 0 else Role.ASSISTANT,
                user_id=user_id,
            )
            for i in range(n)
        ]

    return _make


def _encode_image(
    size: tuple[int, int],
    color: tuple[int, int, int],
    fmt: str,
    noise: bool,
    seed: int = 12345,
    quality: int = 85,
) -> bytes:
    img = Image.new("RGB", size, color)
    if noise:
        # Pseudo-random pixels so the encoded file is large
        pixels = img.load()
        for x in range(size[0]):
            for y in range(size[1]):
                seed = (seed * 1103515245 + 12345) & 0x7FFFFFFF
                pixels[x, y] = (seed & 0xFF, (seed >> 8) & 0xFF, (seed >> 16) & 0xFF)
    buffer = io.BytesIO()
    if fmt.upper() == "JPEG":
        img.save(buffer, format=fmt, quality=quality)
    else:
        img.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def make_image_bytes():
    """Factory: encoded image bytes of a given size and color."""

    def _make(
        size: tuple[int, int] = (64, 64),
        color: tuple[int, int, int] = (200, 30, 30),
        fmt: str = "PNG",
        noise: bool = False,
        seed: int = 12345,
    ) -> bytes:
        return _encode_image(size, color, fmt, noise, seed)

    return _make


@pytest.fixture
def make_image(make_image_bytes):
    """Factory: ImageRef with inline bytes and a computed hash."""

    def _make(
        size: tuple[int, int] = (64, 64),
        color: tuple[int, int, int] = (200, 30, 30),
        fmt: str = "PNG",
        noise: bool = False,
        seed: int = 12345,
    ) -> ImageRef:
        data = make_image_bytes(size=size, color=color, fmt=fmt, noise=noise, seed=seed)
        return ImageRef.from_bytes(data, mime_type=f"image/{fmt.lower()}", width=size[0], height=size[1])

    return _make


@pytest.fixture
def large_image(make_image):
    """Noisy 600x400 PNG, well above the 50KB pass-through threshold."""
    return make_image(size=(600, 400), noise=True)
