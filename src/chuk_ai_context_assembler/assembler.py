# chuk_ai_context_assembler/assembler.py
"""
Context assembly: the pipeline from a raw turn window to a budgeted context.

    window ─> sort ─> dedupe images ─> score ─> delta ─> prioritize
           ─> process images ─> estimate tokens ─> fit budget
           ─> restore dropped image originals ─> AssembledContext

Prioritization runs on the delta (plus the recency floor of the full
window), not on the whole window, so cost stays bounded when the cache
is warm. Output turns are always oldest first.

Deduplication runs on the whole window, but selection, the delta and the
budget can drop the turn that held an image's bytes. The earliest kept
reference to such an image gets the original back, so every image in
the output is sent at least once.

The caches are injected so one instance per process can be shared by
all requests; everything else in the pipeline is per call.

Usage::

    assembler = ContextAssembler(store=InMemoryAssetStore())
    context = await assembler.fetch_and_assemble(
        "user-1",
        TokenBudget(total_limit=4000),
        current_message="what do you see?",
    )
    messages = build_completion_messages(context)
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from .asset_store import AssetStore
from .config import AssemblyConfig, DeltaCacheConfig
from .delta_cache import DeltaCache
from .exceptions import AssemblyCancelled, ContextAssemblerError, StoreUnavailable
from .images import ImageProcessor, image_hash, select_resolution
from .models import (
    AssembledContext,
    AssemblyWarning,
    CacheStats,
    ImageRef,
    ImageUsage,
    RawTurn,
    Resolution,
    Role,
    ScoredTurn,
    TokenBudget,
    ensure_utc,
)
from .prioritizer import Prioritizer, SelectionOptions, split_floor
from .scoring import ImportanceScorer
from .tokens import CharRatioEstimator, TokenEstimator

logger = logging.getLogger(__name__)


class ContextAssembler:
    """
    Orchestrates scoring, selection, delta caching and image handling.

    Collaborators default to fresh instances built from ``config``; pass
    shared ones to reuse caches across assemblers.
    """

    def __init__(
        self,
        config: AssemblyConfig | None = None,
        store: AssetStore | None = None,
        scorer: ImportanceScorer | None = None,
        prioritizer: Prioritizer | None = None,
        image_processor: ImageProcessor | None = None,
        delta_cache: DeltaCache | None = None,
        estimator: TokenEstimator | None = None,
    ) -> None:
        self.config = config or AssemblyConfig()
        self.store = store
        self.scorer = scorer or ImportanceScorer()
        self.prioritizer = prioritizer or Prioritizer()
        self.image_processor = image_processor or ImageProcessor()
        self.delta_cache = delta_cache or DeltaCache(DeltaCacheConfig(ttl_seconds=self.config.delta_cache_ttl_seconds))
        self._estimator = estimator

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _estimator_for(self, cfg: AssemblyConfig) -> TokenEstimator:
        if self._estimator is not None:
            return self._estimator
        return CharRatioEstimator(
            chars_per_token=cfg.chars_per_token,
            image_tokens_full=cfg.image_tokens_full,
            image_tokens_thumbnail=cfg.image_tokens_thumbnail,
        )

    @staticmethod
    def _intent_text(window: Sequence[RawTurn], current_message: str | None) -> str | None:
        """The message whose wording decides image resolution."""
        if current_message is not None:
            return current_message
        for turn in reversed(window):
            if turn.role == Role.USER:
                return turn.content
        return None

    @staticmethod
    def _candidates(scored: list[ScoredTurn], delta_ids: Sequence[str], preserve_recent_n: int) -> list[ScoredTurn]:
        """Turns in the delta plus the window's recency floor, chronological."""
        wanted = set(delta_ids)
        floor, _ = split_floor(scored, preserve_recent_n)
        wanted.update(t.id for t in floor)
        return [t for t in scored if t.id in wanted]

    def _prepare(
        self,
        turns: list[ScoredTurn],
        resolution: Resolution,
        cfg: AssemblyConfig,
        estimator: TokenEstimator,
    ) -> list[ScoredTurn]:
        prepared: list[ScoredTurn] = []
        for turn in turns:
            images = self.image_processor.process(turn.turn.attachments, resolution, cfg)
            with_images = turn.model_copy(update={"images": images})
            prepared.append(with_images.model_copy(update={"token_estimate": estimator.estimate_turn(with_images)}))
        return prepared

    @staticmethod
    def _fit_budget(
        turns: list[ScoredTurn],
        limit: int,
        preserve_recent_n: int,
    ) -> tuple[list[ScoredTurn], list[str], bool]:
        """
        Drop turns until the estimate fits ``limit``.

        Non-floor turns go first, lowest score first and oldest first among
        equal scores. If the floor alone is over budget its oldest turns
        are dropped too, but the newest turn is always kept, and the result
        is flagged as truncated.
        """
        total = sum(t.token_estimate for t in turns)
        if total <= limit:
            return turns, [], False

        floor, rest = split_floor(turns, preserve_recent_n)
        dropped: set[str] = set()

        for turn in sorted(rest, key=lambda t: (t.importance_score, t.chronological_key)):
            if total <= limit:
                break
            dropped.add(turn.id)
            total -= turn.token_estimate

        truncated = False
        if total > limit:
            truncated = True
            for turn in floor[:-1]:
                if total <= limit:
                    break
                dropped.add(turn.id)
                total -= turn.token_estimate

        kept = [t for t in turns if t.id not in dropped]
        dropped_ids = [t.id for t in turns if t.id in dropped]
        return kept, dropped_ids, truncated

    def _originals(self, window: Sequence[RawTurn]) -> dict[str, ImageRef]:
        """First inline copy of each image in the window, keyed by hash."""
        originals: dict[str, ImageRef] = {}
        for turn in window:
            for ref in turn.attachments:
                if ref.data is None or ref.is_duplicate:
                    continue
                digest = image_hash(ref, self.image_processor.hasher)
                if digest and digest not in originals:
                    originals[digest] = ref if ref.hash == digest else ref.model_copy(update={"hash": digest})
        return originals

    def _restore_images(
        self,
        turns: list[ScoredTurn],
        originals: dict[str, ImageRef],
        resolution: Resolution,
        cfg: AssemblyConfig,
        estimator: TokenEstimator,
    ) -> list[ScoredTurn] | None:
        """
        Swap the earliest reference to each image whose bytes are not in
        ``turns`` for the original. Returns None when nothing was swapped.
        """
        sent = {image.hash for turn in turns for image in turn.images if not image.is_duplicate}
        result: list[ScoredTurn] = []
        restored = 0
        for turn in turns:
            attachments: list[ImageRef] = []
            for ref in turn.turn.attachments:
                if ref.is_duplicate and ref.hash not in sent and ref.hash in originals:
                    ref = originals[ref.hash]
                    sent.add(ref.hash)
                    restored += 1
                attachments.append(ref)
            if attachments != turn.turn.attachments:
                raw = turn.turn.model_copy(update={"attachments": attachments})
                turn = self._prepare([turn.model_copy(update={"turn": raw})], resolution, cfg, estimator)[0]
            result.append(turn)

        if not restored:
            return None
        logger.debug("Restored %d image(s) whose first occurrence was not kept", restored)
        return result

    @staticmethod
    def _image_usage(turns: Sequence[ScoredTurn], estimator: TokenEstimator) -> ImageUsage:
        images = [image for turn in turns for image in turn.images]
        return ImageUsage(
            image_count=sum(1 for i in images if not i.is_duplicate),
            duplicate_count=sum(1 for i in images if i.is_duplicate),
            fallback_count=sum(1 for i in images if i.fell_back),
            total_bytes=sum(i.size for i in images),
            estimated_tokens=sum(estimator.estimate_image(i) for i in images),
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def assemble(
        self,
        user_id: str,
        window: Sequence[RawTurn],
        budget: TokenBudget,
        current_message: str | None = None,
        now: datetime | None = None,
        overrides: dict[str, Any] | None = None,
        store: bool = True,
        force_full: bool = False,
    ) -> AssembledContext:
        """
        Assemble a budgeted context from a window of raw turns.

        Args:
            user_id: Owner of the window; keys the delta cache
            window: Turns in any order; sorted by timestamp (stable)
            budget: Externally computed token budget
            current_message: The request's prompt; decides image resolution
            now: Scoring reference time (defaults to the current UTC time)
            overrides: Per-call ``AssemblyConfig`` field overrides
            store: Record this window in the delta cache. With ``False`` the
                cache is only read, so repeated calls return the same context.
            force_full: Bypass the incremental path for this call

        Returns:
            AssembledContext with turns ordered oldest to newest
        """
        cfg = self.config.with_overrides(overrides)
        now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)
        estimator = self._estimator_for(cfg)

        ordered = sorted(window, key=lambda t: t.timestamp)
        turns = self.image_processor.deduplicate(ordered)
        scored = self.scorer.score_all(turns, now)

        ids = [t.id for t in turns]
        if store:
            delta = self.delta_cache.exchange(
                user_id, ids, cfg.max_delta_size, force_full, cfg.delta_cache_ttl_seconds
            )
        else:
            delta = self.delta_cache.diff(user_id, ids, cfg.max_delta_size, force_full, cfg.delta_cache_ttl_seconds)

        candidates = self._candidates(scored, delta.turn_ids, cfg.preserve_recent_n)
        selected = self.prioritizer.select(
            candidates,
            SelectionOptions(
                max_count=cfg.max_messages,
                min_score=cfg.min_importance_score,
                preserve_recent_n=cfg.preserve_recent_n,
            ),
        )

        resolution = select_resolution(self._intent_text(turns, current_message), cfg.trigger_keywords)
        prepared = self._prepare(selected, resolution, cfg, estimator)
        kept, _, truncated = self._fit_budget(prepared, budget.available, cfg.preserve_recent_n)

        originals = self._originals(ordered)
        while True:
            restored = self._restore_images(kept, originals, resolution, cfg, estimator)
            if restored is None:
                break
            kept, _, refit_truncated = self._fit_budget(restored, budget.available, cfg.preserve_recent_n)
            truncated = truncated or refit_truncated

        kept_ids = {t.id for t in kept}
        dropped_ids = [t.id for t in prepared if t.id not in kept_ids]
        total = sum(t.token_estimate for t in kept)

        warnings: list[AssemblyWarning] = []
        if truncated:
            warnings.append(AssemblyWarning.BUDGET_EXCEEDED_BY_FLOOR)
            logger.warning(
                "Recent turns exceed budget for %s: %d tokens over %d available, kept %d turn(s)",
                user_id,
                total,
                budget.available,
                len(kept),
            )
        image_usage = self._image_usage(kept, estimator)
        if image_usage.fallback_count:
            warnings.append(AssemblyWarning.IMAGE_FALLBACK)
        if delta.cache_corrupted:
            warnings.append(AssemblyWarning.CACHE_CORRUPTION)

        context = AssembledContext(
            user_id=user_id,
            turns=kept,
            total_tokens_estimate=total,
            budget=budget.available,
            strategy=delta.strategy,
            truncated=truncated,
            warnings=warnings,
            resolution=resolution,
            dropped_turn_ids=dropped_ids,
            window_size=len(turns),
            image_usage=image_usage,
        )

        logger.info(
            "Assembled context for %s: %d/%d turns, %d/%d tokens, strategy=%s, images=%s%s",
            user_id,
            len(kept),
            len(turns),
            total,
            budget.available,
            delta.strategy.value,
            resolution.value,
            " (truncated)" if truncated else "",
        )
        return context

    async def fetch_and_assemble(
        self,
        user_id: str,
        budget: TokenBudget,
        current_message: str | None = None,
        cancel_event: asyncio.Event | None = None,
        now: datetime | None = None,
        overrides: dict[str, Any] | None = None,
        store: bool = True,
        force_full: bool = False,
    ) -> AssembledContext:
        """
        Fetch the user's window from the asset store, then assemble.

        The store fetch is the only suspension point. Setting
        ``cancel_event`` while it is pending aborts with AssemblyCancelled.

        Raises:
            StoreUnavailable: the fetch failed
            AssemblyCancelled: ``cancel_event`` was set before the fetch finished
        """
        if self.store is None:
            raise ContextAssemblerError("no asset store configured")
        cfg = self.config.with_overrides(overrides)

        window = await self._fetch(self.store, user_id, cfg, cancel_event)
        # Store returns newest first; reversing keeps insertion order for equal timestamps
        window.reverse()
        return self.assemble(
            user_id,
            window,
            budget,
            current_message=current_message,
            now=now,
            overrides=overrides,
            store=store,
            force_full=force_full,
        )

    @staticmethod
    async def _fetch(
        store: AssetStore,
        user_id: str,
        cfg: AssemblyConfig,
        cancel_event: asyncio.Event | None,
    ) -> list[RawTurn]:
        if cancel_event is not None and cancel_event.is_set():
            raise AssemblyCancelled(user_id)

        fetch = asyncio.ensure_future(store.fetch(user_id, cfg.fetch_since_minutes, cfg.fetch_max_messages))
        if cancel_event is not None:
            waiter = asyncio.ensure_future(cancel_event.wait())
            try:
                await asyncio.wait({fetch, waiter}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                waiter.cancel()
                if not fetch.done():
                    fetch.cancel()
            if cancel_event.is_set():
                if fetch.done() and not fetch.cancelled():
                    # Retrieve so a failed fetch is not reported as unhandled
                    fetch.exception()
                logger.info("Context assembly cancelled for %s while fetching", user_id)
                raise AssemblyCancelled(user_id)

        try:
            turns = await fetch
        except StoreUnavailable:
            raise
        except Exception as exc:
            logger.warning("Asset store fetch failed for %s: %s", user_id, exc)
            raise StoreUnavailable(user_id, f"asset store fetch failed: {exc}") from exc
        return list(turns)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def sweep(self) -> int:
        """Expire stale entries from both caches. Returns how many were removed."""
        return self.delta_cache.sweep() + self.image_processor.sweep()

    def get_stats(self) -> dict[str, CacheStats]:
        return {
            "delta_cache": self.delta_cache.get_stats(),
            "compression_cache": self.image_processor.get_stats(),
        }
