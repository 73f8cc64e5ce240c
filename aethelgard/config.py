"""Runtime configuration read from the environment (and .env, if present).

Variables:
  DATA_DIR                      storage directory (default ./data)
  LLM_PROVIDER_URL              text backend base URL
  LLM_API_KEY                   bearer token for the text backend
  LLM_PROVIDER_FORMAT           "koboldcpp" | "openai" (default koboldcpp)
  LLM_MODEL                     model id, openai format only
  LLM_TIMEOUT                   seconds (default 120)
  IMAGE_PROVIDER_URL            image backend base URL (images disabled if empty)
  IMAGE_API_KEY                 bearer token for the image backend
  IMAGE_MODEL                   image model id
  AETHELGARD_DEFAULT_BUDGET     requests per window (default 5)
  AETHELGARD_RESET_HOURS        window length in hours (default 24)
  AETHELGARD_REWARD_GRANT       budget after an ad reward (default 10)
  AETHELGARD_CONTEXT_WINDOW     segments sent to the narrator (default 5)
  AETHELGARD_ARCHIVE_LIMIT      summaries in the archive digest (default 10)
"""

import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field

from aethelgard.llm import ProviderFormat

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"


class Settings(BaseModel):
    data_dir: Path = DEFAULT_DATA_DIR

    llm_provider_url: str = ""
    llm_api_key: str = ""
    llm_provider_format: ProviderFormat = "koboldcpp"
    llm_model: str = ""
    llm_timeout: float = 120.0

    image_provider_url: str = ""
    image_api_key: str = ""
    image_model: str = ""

    default_budget: int = Field(default=5, ge=0)
    reset_window_hours: float = Field(default=24.0, gt=0)
    reward_grant: int = Field(default=10, ge=0)
    context_window: int = Field(default=5, ge=1)
    archive_limit: int = Field(default=10, ge=1)

    @property
    def reset_window(self) -> timedelta:
        return timedelta(hours=self.reset_window_hours)

    def missing_credentials(self) -> list[str]:
        """Names of the settings without which no turn can be generated."""
        missing = []
        if not self.llm_provider_url:
            missing.append("LLM_PROVIDER_URL")
        if self.llm_provider_format == "openai" and not self.llm_api_key:
            missing.append("LLM_API_KEY")
        return missing


_ENV_MAP = {
    "data_dir": "DATA_DIR",
    "llm_provider_url": "LLM_PROVIDER_URL",
    "llm_api_key": "LLM_API_KEY",
    "llm_provider_format": "LLM_PROVIDER_FORMAT",
    "llm_model": "LLM_MODEL",
    "llm_timeout": "LLM_TIMEOUT",
    "image_provider_url": "IMAGE_PROVIDER_URL",
    "image_api_key": "IMAGE_API_KEY",
    "image_model": "IMAGE_MODEL",
    "default_budget": "AETHELGARD_DEFAULT_BUDGET",
    "reset_window_hours": "AETHELGARD_RESET_HOURS",
    "reward_grant": "AETHELGARD_REWARD_GRANT",
    "context_window": "AETHELGARD_CONTEXT_WINDOW",
    "archive_limit": "AETHELGARD_ARCHIVE_LIMIT",
}


def load_settings(env_file: Path | None = None, **overrides) -> Settings:
    """Build Settings from .env + process environment; keyword overrides win."""
    load_dotenv(env_file or Path(__file__).parent.parent / ".env")
    values: dict = {}
    for field, var in _ENV_MAP.items():
        raw = os.getenv(var, "")
        if raw:
            values[field] = raw
    values.update(overrides)
    return Settings.model_validate(values)
