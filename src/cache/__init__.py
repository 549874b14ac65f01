from .metrics_cache import CachedValue, MetricsCache

__all__ = [
    "CachedValue",
    "MetricsCache",
]
