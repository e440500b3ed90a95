# chuk_ai_context_assembler/__init__.py
"""
Bounded conversational context assembly for LLM completion calls.

On every chat turn the assembler picks which prior turns (and which
representation of their images) to send under a token budget:
- Importance scoring: recency, richness, emotion, engagement, relevance
- Prioritized selection with an always-kept floor of recent turns
- Incremental delta cache: only new turns plus a continuity boundary
- Image deduplication and thumbnail compression
- Budget fitting and chronological output
"""

from .assembler import ContextAssembler
from .asset_store import AssetStore, InMemoryAssetStore
from .budget import (
    BudgetAdvisor,
    BudgetAdvisorConfig,
    BudgetRecommendation,
    ConversationProfile,
)
from .cache import ShardedTTLCache
from .completion import CompletionFn, build_completion_messages, run_completion
from .config import (
    AssemblyConfig,
    CompressionCacheConfig,
    DeltaCacheConfig,
    SweeperConfig,
)
from .delta_cache import DeltaCache, DeltaCacheEntry, compute_delta
from .exceptions import (
    AssemblyCancelled,
    CacheCorruption,
    ContextAssemblerError,
    ImageProcessingFailed,
    StoreUnavailable,
)
from .hashing import ImageHasher, PrefixHasher, Sha256Hasher, compute_image_hash
from .images import ImageProcessor, compress_image, find_duplicate, select_resolution
from .models import (
    AssembledContext,
    AssemblyWarning,
    CacheStats,
    CompressedImage,
    ContextStrategy,
    ContextType,
    DeltaResult,
    ImageRef,
    ImageUsage,
    ProcessedImage,
    RawTurn,
    Resolution,
    Role,
    ScoredTurn,
    TokenBudget,
)
from .prioritizer import Prioritizer, SelectionOptions
from .scoring import ImportanceScorer, ScoringTables, ScoringWeights
from .sweeper import CacheSweeper
from .tokens import CharRatioEstimator, TiktokenEstimator, TokenEstimator

__all__ = [
    # Enums
    "AssemblyWarning",
    "ContextStrategy",
    "ContextType",
    "Resolution",
    "Role",
    # Models
    "AssembledContext",
    "CacheStats",
    "CompressedImage",
    "DeltaResult",
    "ImageRef",
    "ImageUsage",
    "ProcessedImage",
    "RawTurn",
    "ScoredTurn",
    "TokenBudget",
    # Configuration
    "AssemblyConfig",
    "CompressionCacheConfig",
    "DeltaCacheConfig",
    "SweeperConfig",
    # Components
    "ContextAssembler",
    "DeltaCache",
    "DeltaCacheEntry",
    "ImageProcessor",
    "ImportanceScorer",
    "Prioritizer",
    "SelectionOptions",
    "ScoringTables",
    "ScoringWeights",
    "ShardedTTLCache",
    "CacheSweeper",
    # Budget
    "BudgetAdvisor",
    "BudgetAdvisorConfig",
    "BudgetRecommendation",
    "ConversationProfile",
    # Tokens
    "TokenEstimator",
    "CharRatioEstimator",
    "TiktokenEstimator",
    # Hashing
    "ImageHasher",
    "PrefixHasher",
    "Sha256Hasher",
    "compute_image_hash",
    # Functions
    "compute_delta",
    "compress_image",
    "find_duplicate",
    "select_resolution",
    "build_completion_messages",
    "run_completion",
    "CompletionFn",
    # Stores
    "AssetStore",
    "InMemoryAssetStore",
    # Exceptions
    "ContextAssemblerError",
    "StoreUnavailable",
    "AssemblyCancelled",
    "ImageProcessingFailed",
    "CacheCorruption",
]
