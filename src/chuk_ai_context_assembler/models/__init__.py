# chuk_ai_context_assembler/models/__init__.py
"""
Core models for context assembly.

All public names are re-exported here so callers can use
``from chuk_ai_context_assembler.models import RawTurn``.
"""

# --- scored turns, budgets & results -----------------------------------------
from chuk_ai_context_assembler.models.context import (  # noqa: F401
    AssembledContext,
    DeltaResult,
    ScoredTurn,
    TokenBudget,
)

# --- enums & constants -------------------------------------------------------
from chuk_ai_context_assembler.models.enums import (  # noqa: F401
    DATA_URL_PREFIX,
    DEFAULT_TRIGGER_KEYWORDS,
    AssemblyWarning,
    ContextStrategy,
    ContextType,
    Resolution,
    Role,
)

# --- derived images -----------------------------------------------------------
from chuk_ai_context_assembler.models.image import (  # noqa: F401
    CompressedImage,
    ProcessedImage,
)

# --- stats --------------------------------------------------------------------
from chuk_ai_context_assembler.models.stats import (  # noqa: F401
    CacheStats,
    ImageUsage,
)

# --- turns --------------------------------------------------------------------
from chuk_ai_context_assembler.models.turn import (  # noqa: F401
    ImageRef,
    RawTurn,
    ensure_utc,
)

__all__ = [
    # enums
    "Role",
    "ContextStrategy",
    "ContextType",
    "Resolution",
    "AssemblyWarning",
    # constants
    "DATA_URL_PREFIX",
    "DEFAULT_TRIGGER_KEYWORDS",
    # turns
    "ImageRef",
    "RawTurn",
    "ensure_utc",
    # images
    "CompressedImage",
    "ProcessedImage",
    # context
    "ScoredTurn",
    "TokenBudget",
    "DeltaResult",
    "AssembledContext",
    # stats
    "CacheStats",
    "ImageUsage",
]
