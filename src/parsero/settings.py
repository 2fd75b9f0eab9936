"""
parsero.settings

Central configuration model (Pydantic Settings).

Responsibilities:
- Provide env-driven defaults for the orchestration engine (iteration ceiling, verbosity).
- Carry caller-owned metadata (service/agent names) that ends up in log context.
- Offer a cached settings instance for callers that do not build their own.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, PositiveInt
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Engine configuration:
    - Every field can be overridden through `PARSERO_*` environment variables
    - An explicit instance passed to `Agent` always wins over the cached one
    """

    model_config = SettingsConfigDict(env_prefix="PARSERO_", case_sensitive=False)

    env: Literal["dev", "test", "prod"] = "dev"
    service_name: str = "parsero"
    agent_name: str = "agent"
    log_level: str = "INFO"

    # Interpreter loop ceiling; None disables the check entirely.
    max_iterations: PositiveInt | None = 100
    verbose: bool = False

    # Graph compilation
    default_model_key: str = "default"
    state_separator: str = Field(default="_", min_length=1)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


# --- Module Notes -----------------------------------------------------------
# Settings are read once per process through `get_settings`; tests and embedding
# applications should construct `Settings(...)` explicitly instead of mutating env.
