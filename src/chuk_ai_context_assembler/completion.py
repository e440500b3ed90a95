# chuk_ai_context_assembler/completion.py
"""
Serialization of an assembled context for the completion call.

Turns become an ordered ``{"role", "content"}`` list. User turns with
images carry multi-part content::

    [{"type": "text", "text": "..."},
     {"type": "image_url", "image_url": {"url": "data:...", "detail": "low"}}]

``detail`` is ``low`` for thumbnails and ``high`` for full resolution.
Duplicate images are not re-sent; the text gets a note instead:
``" [Referred to N previous image(s)]"``.

The completion call itself is opaque: any async callable taking the
message list (``CompletionFn``).
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from .models import AssembledContext, ProcessedImage, Resolution, Role, ScoredTurn

logger = logging.getLogger(__name__)

CompletionFn = Callable[[list[dict[str, Any]]], Awaitable[Any]]
"""Callback: (messages) -> completion text or stream."""

SYSTEM_ROLE = "system"

_DETAIL = {
    Resolution.THUMBNAIL: "low",
    Resolution.FULL: "high",
}


def duplicate_note(count: int) -> str:
    return f" [Referred to {count} previous image(s)]"


def image_part(image: ProcessedImage) -> dict[str, Any] | None:
    """``image_url`` content part, or None when there is nothing to send."""
    url = image.to_url()
    if url is None:
        return None
    return {
        "type": "image_url",
        "image_url": {"url": url, "detail": _DETAIL.get(image.resolution, "auto")},
    }


def build_message(role: Role, text: str, images: Sequence[ProcessedImage] = ()) -> dict[str, Any]:
    """
    One chat message. Images are only attached to user messages; on
    assistant messages they are reduced to the duplicate-style note.
    """
    parts = [image_part(image) for image in images] if role == Role.USER else []
    sendable = [p for p in parts if p is not None]
    unsent = len(images) - len(sendable)

    content = text
    if unsent:
        content += duplicate_note(unsent)

    if not sendable:
        return {"role": role.value, "content": content}
    return {"role": role.value, "content": [{"type": "text", "text": content}, *sendable]}


def turn_to_message(turn: ScoredTurn) -> dict[str, Any]:
    return build_message(turn.role, turn.content, turn.images)


def build_completion_messages(
    context: AssembledContext,
    system_prompt: str | None = None,
    current_message: str | None = None,
    current_images: Sequence[ProcessedImage] = (),
) -> list[dict[str, Any]]:
    """
    Messages for the completion call, oldest first.

    ``current_message`` is appended as the final user message when the
    request's prompt is not already part of the assembled turns.
    """
    messages: list[dict[str, Any]] = []
    if system_prompt:
        messages.append({"role": SYSTEM_ROLE, "content": system_prompt})

    messages.extend(turn_to_message(turn) for turn in context.turns)

    if current_message is not None or current_images:
        messages.append(build_message(Role.USER, current_message or "", current_images))

    logger.debug(
        "Built %d completion messages for %s (strategy=%s)",
        len(messages),
        context.user_id,
        context.strategy.value,
    )
    return messages


async def run_completion(
    context: AssembledContext,
    completion_fn: CompletionFn,
    system_prompt: str | None = None,
    current_message: str | None = None,
    current_images: Sequence[ProcessedImage] = (),
) -> Any:
    """Serialize the context and hand it to the completion callable."""
    messages = build_completion_messages(context, system_prompt, current_message, current_images)
    return await completion_fn(messages)
