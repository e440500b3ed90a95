# chuk_ai_context_assembler/exceptions.py
"""
Exception hierarchy for context assembly.

Only StoreUnavailable and AssemblyCancelled ever reach callers of the
assembler. ImageProcessingFailed and CacheCorruption are recovered
locally; budget overruns by the recency floor are reported as a warning
on the assembled context, never raised.
"""

from __future__ import annotations


class ContextAssemblerError(Exception):
    """Base class for all context assembly errors."""


class StoreUnavailable(ContextAssemblerError):
    """The asset store could not return the user's turn window."""

    def __init__(self, user_id: str, message: str = "asset store fetch failed") -> None:
        self.user_id = user_id
        super().__init__(f"{message} (user_id={user_id})")


class AssemblyCancelled(ContextAssemblerError):
    """The caller cancelled the request while the store fetch was pending."""

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        super().__init__(f"context assembly cancelled (user_id={user_id})")


class ImageProcessingFailed(ContextAssemblerError):
    """Decoding or compressing a single image failed."""

    def __init__(self, image_hash: str, reason: str) -> None:
        self.image_hash = image_hash
        self.reason = reason
        super().__init__(f"image {image_hash or '<unhashed>'}: {reason}")


class CacheCorruption(ContextAssemblerError):
    """A delta cache entry could not be read back."""

    def __init__(self, key: str, reason: str) -> None:
        self.key = key
        self.reason = reason
        super().__init__(f"delta cache entry for {key!r} is invalid: {reason}")
