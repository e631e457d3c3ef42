"""Configuration management for Memeforge.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the MEMEFORGE_ prefix,
allowing easy customization without code changes.

Environment Variable Loading
-----------------------------
Configuration values are loaded in the following priority order:
1. Environment variables (MEMEFORGE_* prefix)
2. .env file in the project root
3. Default values defined in MemeforgeConfig

The HuggingFace credential is also accepted under the un-prefixed
``HUGGINGFACE_API_KEY`` name, which is what most HuggingFace tooling reads.

Example .env file:
    MEMEFORGE_HUGGINGFACE_API_KEY=hf_...
    MEMEFORGE_MODEL_ID=CompVis/stable-diffusion-v1-4
    MEMEFORGE_MAX_RETRIES=3
    MEMEFORGE_OUTPUTS_DIR=outputs

Global Configuration Instance
------------------------------
A global `config` instance is created automatically at module import time.
Components that need the credential read it from the config object at call
time, so tests can swap the instance without re-importing modules.

Usage Example
-------------
    from memeforge.core.config import config

    print(config.inference_url)
    print(config.has_valid_credential())

Retry and Deadline Settings
---------------------------
Each image request is bounded twice:
- max_retries / attempt_timeout_s: per-request retry budget, one timeout per attempt
- batch_deadline_s: hard deadline for one image, raced against the retrying call

The backoff between attempts is linear, ``min(0.5 * (i + 1), 2.0)`` seconds.
"""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Placeholder value shipped in the example .env file
PLACEHOLDER_API_KEY = "hf_xxx"

DEFAULT_STYLE_SUFFIX = " (meme style, funny, humorous, high quality)"


class MemeforgeConfig(BaseSettings):
    """Main configuration for Memeforge.

    Values are loaded from environment variables with the MEMEFORGE_ prefix,
    with fallback to defaults defined here.

    Attributes
    ----------
    Inference Endpoint:
        huggingface_api_key : SecretStr | None
            Bearer token for the HuggingFace Inference API
        api_base_url : str
            Base URL of the hosted inference API
        model_id : str
            HuggingFace model ID appended to api_base_url

    Generation Settings:
        total_images : int
            Number of images produced per run (4 in the standard UI)
        num_inference_steps : int
            Diffusion steps requested from the remote model
        guidance_scale : float
            Classifier-free guidance scale
        width, height : int
            Output image dimensions in pixels
        style_suffix : str
            Suffix appended to prompts that are not plain ASCII letters

    Resilience:
        max_retries : int
            Attempts per image request (initial call included)
        attempt_timeout_s : float
            Timeout applied to each attempt
        batch_deadline_s : float
            Hard deadline for one image, raced against the retrying call
        concurrency : int
            Image requests allowed in flight at once (1 = sequential)
        non_retriable_statuses : list[int]
            HTTP statuses that fail fast instead of being retried

    Paths and Server:
        outputs_dir : Path
            Directory where downloaded images are written
        server_host, server_port : str, int
            Bind address for the web server
        log_level : str
            Root logging level

    Notes
    -----
    - outputs_dir is created automatically if it doesn't exist
    - The API key is a SecretStr and never appears in model_dump() output
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="MEMEFORGE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Inference endpoint
    huggingface_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "huggingface_api_key",
            "MEMEFORGE_HUGGINGFACE_API_KEY",
            "HUGGINGFACE_API_KEY",
        ),
        description="HuggingFace API token (https://huggingface.co/settings/tokens)",
    )
    api_base_url: str = Field(
        default="https://api-inference.huggingface.co/models",
        description="Base URL of the hosted inference API",
    )
    model_id: str = Field(
        default="CompVis/stable-diffusion-v1-4",
        description="HuggingFace model ID for text-to-image generation",
    )

    # Generation settings
    total_images: int = Field(default=4, ge=1, le=16)
    num_inference_steps: int = Field(default=30, ge=1, le=150)
    guidance_scale: float = Field(default=7.5, ge=0.0, le=30.0)
    width: int = Field(default=512, ge=64, le=2048)
    height: int = Field(default=512, ge=64, le=2048)
    style_suffix: str = Field(
        default=DEFAULT_STYLE_SUFFIX,
        description="Appended to prompts that are not letters and whitespace only",
    )

    # Resilience
    max_retries: int = Field(default=3, ge=1, le=10)
    attempt_timeout_s: float = Field(default=30.0, gt=0.0)
    batch_deadline_s: float = Field(default=60.0, gt=0.0)
    concurrency: int = Field(
        default=1,
        ge=1,
        le=16,
        description="Image requests in flight at once (1 keeps generation sequential)",
    )
    non_retriable_statuses: list[int] = Field(
        default_factory=list,
        description="HTTP statuses that fail fast (empty = retry every non-2xx)",
    )

    # Paths
    outputs_dir: Path = Field(
        default=Path("outputs"),
        description="Directory to save downloaded images",
    )

    # Server settings
    server_host: str = Field(
        default="0.0.0.0",
        description="Server bind address (0.0.0.0 for local network)",
    )
    server_port: int = Field(default=7860, ge=1024, le=65535)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")

    def __init__(self, **kwargs):
        """Initialize configuration and create the outputs directory.

        Args:
            **kwargs: Configuration overrides (typically from environment variables)
        """
        super().__init__(**kwargs)

        self.outputs_dir.mkdir(parents=True, exist_ok=True)

    @property
    def inference_url(self) -> str:
        """Full URL of the model inference endpoint."""
        return f"{self.api_base_url.rstrip('/')}/{self.model_id}"

    def api_key_value(self) -> str | None:
        """Return the raw API key, or None if unset."""
        if self.huggingface_api_key is None:
            return None
        return self.huggingface_api_key.get_secret_value()

    def has_valid_credential(self) -> bool:
        """Check that an API key is configured and is not the placeholder.

        Returns:
            True if a usable credential is present
        """
        key = self.api_key_value()
        return bool(key and key.strip() and key.strip() != PLACEHOLDER_API_KEY)


# Global configuration instance
# Loads values from environment variables (MEMEFORGE_* prefix) and .env file.
config = MemeforgeConfig()
