# chuk_ai_context_assembler/hashing.py
"""
Image content hashing.

Two strategies are provided:

- Sha256Hasher (default): digests the full payload. Exact, proportional
  to size.
- PrefixHasher: digests only the first 100 base64 characters of the
  payload. Cheap, but distinct images sharing a long common header
  (same encoder and quality, e.g. JPEG quantization tables) collide, so
  it is only suitable when payloads are known to differ early.

Both produce fixed-width hex keys so the caches stay uniform.
"""

from __future__ import annotations

import base64
import hashlib
from typing import Protocol, runtime_checkable

# Length of the base64 prefix used by the approximate image hash
IMAGE_HASH_PREFIX_CHARS = 100


@runtime_checkable
class ImageHasher(Protocol):
    """Maps image bytes to a stable content key."""

    def hash_bytes(self, data: bytes) -> str: ...


class PrefixHasher:
    """Approximate hash over a fixed-length base64 prefix of the payload."""

    def __init__(self, prefix_chars: int = IMAGE_HASH_PREFIX_CHARS) -> None:
        self.prefix_chars = prefix_chars

    def hash_bytes(self, data: bytes) -> str:
        # 3 raw bytes encode to 4 base64 chars
        raw_len = (self.prefix_chars * 3 + 3) // 4
        prefix = base64.b64encode(data[:raw_len])[: self.prefix_chars]
        return hashlib.sha256(prefix).hexdigest()[:32]


class Sha256Hasher:
    """Exact hash over the whole payload."""

    def hash_bytes(self, data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()[:32]


DEFAULT_HASHER: ImageHasher = Sha256Hasher()


def compute_image_hash(data: bytes, hasher: ImageHasher | None = None) -> str:
    """Hash image bytes with the given strategy (Sha256Hasher by default)."""
    return (hasher or DEFAULT_HASHER).hash_bytes(data)
