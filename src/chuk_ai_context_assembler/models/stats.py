# chuk_ai_context_assembler/models/stats.py
"""Statistics models for caches and image usage."""

from pydantic import BaseModel, Field


class CacheStats(BaseModel):
    """Statistics for a sharded TTL cache."""

    size: int = Field(default=0, description="Current number of entries")
    max_size: int = Field(default=0, description="Maximum entries")
    ttl_seconds: float = Field(default=0.0)
    hits: int = Field(default=0)
    misses: int = Field(default=0)
    evictions: int = Field(default=0, description="Removed under capacity pressure")
    expirations: int = Field(default=0, description="Removed because the TTL elapsed")

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return self.hits / total

    @property
    def utilization(self) -> float:
        if self.max_size <= 0:
            return 0.0
        return min(1.0, self.size / self.max_size)


class ImageUsage(BaseModel):
    """Images included in an assembled context and their estimated cost."""

    image_count: int = Field(default=0)
    duplicate_count: int = Field(default=0)
    fallback_count: int = Field(default=0, description="Images passed through after a compression error")
    total_bytes: int = Field(default=0)
    estimated_tokens: int = Field(default=0)
