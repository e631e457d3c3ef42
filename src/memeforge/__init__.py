"""Memeforge - AI meme generator backed by a hosted text-to-image model."""

__version__ = "0.1.0"

from memeforge.core.config import MemeforgeConfig, config
from memeforge.core.orchestrator import BatchGenerationOrchestrator

__all__ = [
    "BatchGenerationOrchestrator",
    "MemeforgeConfig",
    "config",
]
