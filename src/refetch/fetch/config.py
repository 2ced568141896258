"""Configuration models for the fetch layer."""

from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field

from refetch.fetch.constants import (
    DEFAULT_MAX_RESPONSE_SIZE_BYTES,
    MAX_META_REDIRECTS,
)
from refetch.version import __version__


DEFAULT_CACHE_DIR_NAME = ".refetch-cache"


def _default_cache_dir() -> Path:
    return Path.cwd() / DEFAULT_CACHE_DIR_NAME


class FetchConfig(BaseModel):
    """Configuration for the fetch engine.

    Central configuration for cache location, concurrency, and transport
    defaults shared by every fetch issued through one fetcher.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    cache_dir: Path = Field(
        default_factory=_default_cache_dir,
        description="Directory holding one cache record per resource",
    )
    max_concurrency: Annotated[
        int, Field(ge=1, description="Maximum fetches in flight at once")
    ] = 1
    user_agent: Annotated[str, Field(min_length=1, max_length=500)] = (
        f"Mozilla/5.0 (compatible; refetch/{__version__})"
    )
    timeout_seconds: Annotated[float, Field(gt=0.0, le=600.0)] = 30.0
    max_response_size_bytes: Annotated[int, Field(ge=1024, le=1024 * 1024 * 1024)] = (
        DEFAULT_MAX_RESPONSE_SIZE_BYTES
    )
    max_meta_redirects: Annotated[int, Field(ge=0, le=20)] = MAX_META_REDIRECTS
