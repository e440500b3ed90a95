# chuk_ai_context_assembler/models/enums.py
"""Enums and constants for context assembly."""

from enum import Enum


class Role(str, Enum):
    """Author of a conversational turn."""

    USER = "user"
    ASSISTANT = "assistant"


class ContextStrategy(str, Enum):
    """
    How the turn set handed to the completion caller was derived.

    FULL and MINIMAL are cold-cache strategies (MINIMAL when the window
    is larger than the delta cap), INCREMENTAL and NO_CHANGES reuse the
    previously assembled context.
    """

    FULL = "full"
    INCREMENTAL = "incremental"
    MINIMAL = "minimal"
    NO_CHANGES = "no-changes"


class Resolution(str, Enum):
    """Which representation of an image is sent downstream."""

    THUMBNAIL = "thumbnail"
    FULL = "full"
    REFERENCE = "reference"  # duplicate; bytes dropped, hash kept


class ContextType(str, Enum):
    """Context sizing profile recommended for a conversation."""

    STANDARD = "standard"
    DETAILED = "detailed"
    MINIMAL = "minimal"
    FOCUSED = "focused"  # images attached; fewer, smaller turns


class AssemblyWarning(str, Enum):
    """Recovered degradations surfaced on AssembledContext for monitoring."""

    BUDGET_EXCEEDED_BY_FLOOR = "budget_exceeded_by_floor"
    IMAGE_FALLBACK = "image_fallback"
    CACHE_CORRUPTION = "cache_corruption"


# =============================================================================
# Constants
# =============================================================================

DATA_URL_PREFIX = "data:image/"

DEFAULT_TRIGGER_KEYWORDS: list[str] = [
    "analyze",
    "detail",
    "read",
    "text",
    "examine",
    "precise",
    "specific",
    "identify",
]
