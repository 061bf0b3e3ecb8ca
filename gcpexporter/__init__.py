"""Models, metrics, rate limiters and in-memory or Redis stores for a GitLab CI pipelines exporter."""

__version__ = "0.1.0"

__all__ = ["metrics", "models", "ratelimit", "redis_store", "store"]