"""Application configuration."""

from .settings import BUYBACK_SLUGS, ENTITIES, Settings

__all__ = ["BUYBACK_SLUGS", "ENTITIES", "Settings"]
