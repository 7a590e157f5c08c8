"""Environment-driven settings for the command line tool."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from dsp_patch.arrange import DEFAULT_ITERATIONS, DEFAULT_SEED


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DSP_PATCH_", extra="ignore")

    debug: bool = False

    # Directory searched for bare graph names.
    graph_dir: Path = Field(default_factory=Path.cwd)

    arrange_iterations: int = Field(default=DEFAULT_ITERATIONS, ge=0)
    arrange_seed: int = DEFAULT_SEED


@lru_cache
def get_settings() -> Settings:
    return Settings()
