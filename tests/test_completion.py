# tests/test_completion.py
"""
Tests for completion message serialization.

Covers:
- Plain text messages in chronological order
- Multi-part content for user images (detail low/high)
- Duplicate notes instead of re-sent bytes
- Assistant images reduced to notes
- System prompt and current message
- run_completion hands messages to the callable
"""

import pytest

from chuk_ai_context_assembler.completion import (
    build_completion_messages,
    build_message,
    duplicate_note,
    run_completion,
)
from chuk_ai_context_assembler.models import (
    AssembledContext,
    ImageRef,
    ProcessedImage,
    Resolution,
    Role,
    ScoredTurn,
)


def _processed(resolution: Resolution, data: bytes | None = b"\x89PNG", url: str | None = None) -> ProcessedImage:
    ref = ImageRef(hash="h1", original_size=4, data=data, url=url, mime_type="image/png")
    if resolution == Resolution.REFERENCE:
        ref = ref.as_duplicate()
    return ProcessedImage(ref=ref, resolution=resolution)


def _context(*turns: ScoredTurn) -> AssembledContext:
    return AssembledContext(user_id="user-1", turns=list(turns))


class TestBuildMessage:
    """Single message serialization."""

    def test_plain_text(self):
        assert build_message(Role.USER, "hello") == {"role": "user", "content": "hello"}

    def test_user_image_parts(self):
        message = build_message(Role.USER, "look", [_processed(Resolution.FULL), _processed(Resolution.THUMBNAIL)])
        text, full, thumb = message["content"]
        assert text == {"type": "text", "text": "look"}
        assert full["type"] == "image_url"
        assert full["image_url"]["url"].startswith("data:image/png;base64,")
        assert full["image_url"]["detail"] == "high"
        assert thumb["image_url"]["detail"] == "low"

    def test_duplicate_note(self):
        message = build_message(Role.USER, "same again", [_processed(Resolution.REFERENCE)])
        assert message == {"role": "user", "content": "same again [Referred to 1 previous image(s)]"}

    def test_mixed_duplicate_and_new(self):
        message = build_message(
            Role.USER,
            "two",
            [_processed(Resolution.REFERENCE), _processed(Resolution.THUMBNAIL)],
        )
        assert message["content"][0]["text"] == "two" + duplicate_note(1)
        assert len(message["content"]) == 2

    def test_url_only_image(self):
        image = _processed(Resolution.THUMBNAIL, data=None, url="https://example.com/a.png")
        message = build_message(Role.USER, "remote", [image])
        assert message["content"][1]["image_url"]["url"] == "https://example.com/a.png"

    def test_assistant_images_become_notes(self):
        message = build_message(Role.ASSISTANT, "generated", [_processed(Resolution.FULL)])
        assert message == {"role": "assistant", "content": "generated [Referred to 1 previous image(s)]"}


class TestBuildCompletionMessages:
    """Whole-context serialization."""

    def test_order_system_and_current(self, make_turn):
        context = _context(
            ScoredTurn(turn=make_turn("t0", hours_ago=1, content="hi"), position=0),
            ScoredTurn(turn=make_turn("t1", content="hello!", role=Role.ASSISTANT), position=1),
        )
        messages = build_completion_messages(context, system_prompt="be brief", current_message="what now?")
        assert messages == [
            {"role": "system", "content": "be brief"},
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello!"},
            {"role": "user", "content": "what now?"},
        ]

    def test_current_images(self):
        messages = build_completion_messages(
            _context(),
            current_message="see",
            current_images=[_processed(Resolution.THUMBNAIL)],
        )
        assert messages[-1]["content"][0] == {"type": "text", "text": "see"}

    def test_empty_context(self):
        assert build_completion_messages(_context()) == []


class TestRunCompletion:
    """The completion callable receives the serialized messages."""

    @pytest.mark.asyncio
    async def test_passes_messages(self, make_turn):
        received = []

        async def complete(messages):
            received.append(messages)
            return "ok"

        context = _context(ScoredTurn(turn=make_turn("t0", content="hi")))
        result = await run_completion(context, complete, current_message="next")
        assert result == "ok"
        assert received == [[{"role": "user", "content": "hi"}, {"role": "user", "content": "next"}]]
