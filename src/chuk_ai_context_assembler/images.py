# chuk_ai_context_assembler/images.py
"""
Image attachment processing: deduplication, compression and resolution selection.

Pipeline for the attachments of one assembly:

    deduplicate(turns)          first occurrence of a hash kept verbatim,
                                later ones become reference markers
    select_resolution(text)     FULL when a word in the message starts with
                                a trigger keyword (asks for detail),
                                THUMBNAIL otherwise (pure)
    process(attachments, res)   thumbnail via Pillow (cached by hash),
                                original passed through on any failure

Compression never drops a user-supplied image: a decode or encode error
for one attachment yields the original bytes with ``error`` populated.

Usage::

    processor = ImageProcessor()
    turns = processor.deduplicate(window)
    resolution = select_resolution("analyze this in detail", config.trigger_keywords)
    processed = processor.process(turns[-1].attachments, resolution, config)
"""

from __future__ import annotations

import io
import logging
import re
import time
from collections.abc import Iterable, Sequence

from PIL import Image

from .cache import Clock, ShardedTTLCache
from .config import AssemblyConfig, CompressionCacheConfig
from .exceptions import ImageProcessingFailed
from .hashing import ImageHasher, compute_image_hash
from .models import (
    CacheStats,
    CompressedImage,
    ImageRef,
    ProcessedImage,
    RawTurn,
    Resolution,
)

logger = logging.getLogger(__name__)

THUMBNAIL_FORMAT = "JPEG"


# =============================================================================
# Pure helpers
# =============================================================================


def select_resolution(message: str | None, trigger_keywords: Iterable[str]) -> Resolution:
    """
    FULL if any trigger keyword starts a word of the message, else THUMBNAIL.

    Keywords match case-insensitively at the start of a word, so "details"
    and "reading" trigger but "already", "thread" and "context" do not.
    """
    if not message:
        return Resolution.THUMBNAIL
    if any(_keyword_pattern(keyword).search(message) for keyword in trigger_keywords if keyword):
        return Resolution.FULL
    return Resolution.THUMBNAIL


_KEYWORD_PATTERNS: dict[str, re.Pattern[str]] = {}


def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    pattern = _KEYWORD_PATTERNS.get(keyword)
    if pattern is None:
        pattern = re.compile(rf"\b{re.escape(keyword)}", re.IGNORECASE)
        _KEYWORD_PATTERNS[keyword] = pattern
    return pattern


def find_duplicate(
    candidate: ImageRef,
    existing: Iterable[ImageRef],
    hasher: ImageHasher | None = None,
) -> ImageRef | None:
    """Return the first earlier image with the same content hash, if any."""
    target = image_hash(candidate, hasher)
    if not target:
        return None
    for ref in existing:
        if image_hash(ref, hasher) == target:
            return ref
    return None


def image_hash(ref: ImageRef, hasher: ImageHasher | None = None) -> str:
    """Stored hash, or one computed from inline bytes. Empty for URL-only refs."""
    if ref.hash:
        return ref.hash
    if ref.data is not None:
        return compute_image_hash(ref.data, hasher)
    return ""


def compress_image(
    data: bytes,
    dimensions: tuple[int, int] = (256, 256),
    quality: int = 60,
    skip_threshold_bytes: int = 50 * 1024,
    digest: str = "",
) -> CompressedImage:
    """
    Fit the image inside ``dimensions`` (never enlarging) and re-encode as JPEG.

    Images already at or below ``skip_threshold_bytes`` and within
    ``dimensions`` are returned unchanged with ``skipped=True``.

    Raises:
        ImageProcessingFailed: the payload cannot be decoded or encoded.
    """
    max_width, max_height = dimensions
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            width, height = img.size

            if len(data) <= skip_threshold_bytes and width <= max_width and height <= max_height:
                return CompressedImage(
                    thumbnail_data=data,
                    thumbnail_size=len(data),
                    width=width,
                    height=height,
                    format=img.format or THUMBNAIL_FORMAT,
                    quality=quality,
                    compression_ratio=1.0,
                    skipped=True,
                )

            # JPEG has no alpha or palette
            thumb = img.convert("RGB") if img.mode not in ("RGB", "L") else img.copy()
            thumb.thumbnail((max_width, max_height))
            buffer = io.BytesIO()
            thumb.save(buffer, format=THUMBNAIL_FORMAT, quality=quality)
            encoded = buffer.getvalue()
            thumb_width, thumb_height = thumb.size
    except Exception as exc:
        # Pillow signals bad input with OSError, SyntaxError, ValueError and others
        raise ImageProcessingFailed(digest, str(exc)) from exc

    if not encoded:
        raise ImageProcessingFailed(digest, "encoder produced no data")

    ratio = len(data) / len(encoded)
    logger.debug(
        "Compressed image %s: %d -> %d bytes (%.1fx), %dx%d -> %dx%d",
        digest[:12],
        len(data),
        len(encoded),
        ratio,
        width,
        height,
        thumb_width,
        thumb_height,
    )
    return CompressedImage(
        thumbnail_data=encoded,
        thumbnail_size=len(encoded),
        width=thumb_width,
        height=thumb_height,
        format=THUMBNAIL_FORMAT,
        quality=quality,
        compression_ratio=ratio,
    )


# =============================================================================
# Processor
# =============================================================================


class ImageProcessor:
    """
    Hashes, deduplicates and compresses image attachments.

    Thumbnails are cached by (hash, dimensions, quality) in a sharded TTL
    cache; lookup and insert for one key happen under that key's shard
    lock so an image is compressed at most once per cache lifetime.
    """

    def __init__(
        self,
        cache_config: CompressionCacheConfig | None = None,
        hasher: ImageHasher | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.cache_config = cache_config or CompressionCacheConfig()
        self.hasher = hasher
        self._cache: ShardedTTLCache[CompressedImage] = ShardedTTLCache(
            ttl_seconds=self.cache_config.ttl_seconds,
            max_entries=self.cache_config.max_entries,
            num_shards=self.cache_config.num_shards,
            clock=clock or time.monotonic,
            name="compression_cache",
        )

    # ------------------------------------------------------------------
    # Deduplication
    # ------------------------------------------------------------------

    def deduplicate(self, turns: Sequence[RawTurn]) -> list[RawTurn]:
        """
        Replace repeated images with reference markers.

        Turns must be in chronological order. The first image with a given
        hash is kept verbatim (hash filled in if it was missing); later
        ones keep the hash but lose their bytes. Existing markers are left
        alone, so running this twice gives the same result as once.
        """
        seen: set[str] = set()
        result: list[RawTurn] = []
        duplicates = 0

        for turn in turns:
            if not turn.attachments:
                result.append(turn)
                continue

            attachments: list[ImageRef] = []
            changed = False
            for ref in turn.attachments:
                digest = image_hash(ref, self.hasher)
                if not digest or ref.is_duplicate:
                    attachments.append(ref)
                    continue
                if digest in seen:
                    attachments.append(ref.model_copy(update={"hash": digest}).as_duplicate())
                    duplicates += 1
                    changed = True
                    continue
                seen.add(digest)
                if ref.hash != digest:
                    ref = ref.model_copy(update={"hash": digest})
                    changed = True
                attachments.append(ref)

            result.append(turn.model_copy(update={"attachments": attachments}) if changed else turn)

        if duplicates:
            logger.debug("Replaced %d duplicate image(s) with references", duplicates)
        return result

    def find_duplicate(self, candidate: ImageRef, existing: Iterable[ImageRef]) -> ImageRef | None:
        return find_duplicate(candidate, existing, self.hasher)

    # ------------------------------------------------------------------
    # Compression
    # ------------------------------------------------------------------

    def compress(self, ref: ImageRef, config: AssemblyConfig | None = None) -> CompressedImage:
        """
        Thumbnail for an inline image, from cache when available.

        Raises:
            ImageProcessingFailed: no inline data, or the payload is corrupt.
        """
        cfg = config or AssemblyConfig()
        digest = image_hash(ref, self.hasher)
        if ref.data is None:
            raise ImageProcessingFailed(digest, "no inline data to compress")

        width, height = cfg.thumbnail_dimensions
        key = f"{digest}:{width}x{height}:q{cfg.compression_quality}"

        with self._cache.locked(key):
            cached = self._cache.get(key)
            if cached is not None:
                return cached
            compressed = compress_image(
                ref.data,
                dimensions=cfg.thumbnail_dimensions,
                quality=cfg.compression_quality,
                skip_threshold_bytes=cfg.skip_threshold_bytes,
                digest=digest,
            )
            self._cache.put(key, compressed)
            return compressed

    def process(
        self,
        attachments: Sequence[ImageRef],
        resolution: Resolution = Resolution.THUMBNAIL,
        config: AssemblyConfig | None = None,
    ) -> list[ProcessedImage]:
        """
        Prepare a turn's attachments for sending.

        - Duplicate markers become REFERENCE entries with no bytes.
        - FULL resolution sends originals untouched (cached thumbnails are
          ignored), capped at ``max_images_per_turn``; further images in
          the turn stay thumbnails.
        - THUMBNAIL compresses; on failure the original is passed through
          with ``error`` set.
        - URL-only images are passed through as-is.
        """
        cfg = config or AssemblyConfig()
        processed: list[ProcessedImage] = []
        full_budget = cfg.max_images_per_turn

        for ref in attachments:
            if ref.is_duplicate:
                processed.append(ProcessedImage(ref=ref, resolution=Resolution.REFERENCE))
                continue

            if ref.data is None:
                processed.append(ProcessedImage(ref=ref, resolution=resolution))
                continue

            if resolution == Resolution.FULL and full_budget > 0:
                full_budget -= 1
                processed.append(ProcessedImage(ref=ref, resolution=Resolution.FULL))
                continue

            try:
                compressed = self.compress(ref, cfg)
            except ImageProcessingFailed as exc:
                logger.warning("Image compression failed, sending original: %s", exc)
                processed.append(ProcessedImage(ref=ref, resolution=Resolution.FULL, error=exc.reason))
                continue
            processed.append(ProcessedImage(ref=ref, compressed=compressed, resolution=Resolution.THUMBNAIL))

        return processed

    # ------------------------------------------------------------------
    # Cache maintenance
    # ------------------------------------------------------------------

    def sweep(self) -> int:
        """Remove expired thumbnails. Returns how many were removed."""
        return self._cache.sweep()

    def clear_cache(self) -> None:
        self._cache.clear()

    def get_stats(self) -> CacheStats:
        return self._cache.get_stats()
