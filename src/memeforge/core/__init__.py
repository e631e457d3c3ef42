"""Core functionality for meme generation.

This module provides the core components of Memeforge:

- **RetryingRequester**: one HTTP request with per-attempt timeout and bounded retries
- **BatchGenerationOrchestrator**: drives a batch of requests and publishes job snapshots
- **GenerationJob / ImageResult**: immutable run snapshots and generated images
- **MemeforgeConfig**: configuration management using Pydantic Settings
- **config**: global configuration instance (loads from environment variables)

Architecture Overview
---------------------
1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - All settings prefixed with MEMEFORGE_ in .env files

2. **Request Layer** (requester.py, errors.py):
   - Retry with linear backoff, per-attempt timeout
   - Typed errors carrying status codes and timeout markers

3. **Orchestration Layer** (orchestrator.py, models.py, prompt_builder.py):
   - Prompt normalisation and payload construction
   - Sequential (or bounded-concurrency) batch with an outer deadline per image
   - Failure classification into user-facing categories

4. **Support Utilities**:
   - downloads.py: Save generated images as PNG files

Usage Example
-------------
    from memeforge.core import BatchGenerationOrchestrator, config, save_image

    orchestrator = BatchGenerationOrchestrator(config)
    job = await orchestrator.generate("a cat wearing sunglasses")
    for image in job.images:
        save_image(image, None, config.outputs_dir)
"""

from memeforge.core.config import MemeforgeConfig, config
from memeforge.core.downloads import save_image
from memeforge.core.errors import ErrorCategory, GenerationFailure, classify_error
from memeforge.core.models import GenerationJob, ImageResult, InferenceRequest, JobStatus
from memeforge.core.orchestrator import BatchGenerationOrchestrator
from memeforge.core.requester import RetryingRequester

__all__ = [
    "BatchGenerationOrchestrator",
    "ErrorCategory",
    "GenerationFailure",
    "GenerationJob",
    "ImageResult",
    "InferenceRequest",
    "JobStatus",
    "MemeforgeConfig",
    "RetryingRequester",
    "classify_error",
    "config",
    "save_image",
]
