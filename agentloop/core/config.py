# The module is to define the configuration settings for the application.
# Author: Shibo Li
# Date: 2025-07-02
# Version: 0.2.0

from functools import lru_cache
from typing import Literal, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from agentloop.core.errors import ConfigurationError


class Settings(BaseSettings):
    """
    The Settings class is used to define the configuration settings for the application.
    It inherits from BaseSettings, which allows it to load environment variables
    and provides type validation for the settings.
    Attributes:
        LLM_API_KEY (str): Bearer credential for the chat-completions backend.
        LLM_BASE_URL (str): Base URL of the OpenAI-compatible backend.
        LLM_MODEL (str): Model name sent with every request.
        LLM_TEMPERATURE (float): Sampling temperature.
        LLM_MAX_TOKENS (int): Completion token limit per request.
        LLM_REQUEST_TIMEOUT (float): Per-request timeout in seconds.
        ENABLE_TOOLS (bool): Whether tool definitions are sent to the model.
        MAX_ITERATIONS (int): Request cap for a single orchestration run.
        SESSION_BACKEND (str): Where sessions are persisted, 'file' or 'redis'.
        SESSIONS_FILE (str): JSON file holding every session for the file backend.
        REDIS_URL (str): Connection URL for the redis backend.
        SESSION_TTL (int): Expiry of a session snapshot in redis, in seconds.
        LOG_LEVEL (str): Level of the 'agentloop' logger.
    """
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # LLM backend
    LLM_API_KEY: Optional[str] = None
    LLM_BASE_URL: str = "https://api.openai.com/v1"
    LLM_MODEL: str = "gpt-4"
    LLM_TEMPERATURE: float = 0.7
    LLM_MAX_TOKENS: int = 2000
    LLM_REQUEST_TIMEOUT: float = 120.0

    # Orchestration
    ENABLE_TOOLS: bool = False
    MAX_ITERATIONS: int = 50

    # Session persistence
    SESSION_BACKEND: Literal["file", "redis"] = "file"
    SESSIONS_FILE: str = "./data/sessions.json"
    REDIS_URL: str = "redis://localhost:6379/0"
    SESSION_TTL: int = 86400

    LOG_LEVEL: str = "INFO"


# lru_cache to cache the settings instance.
@lru_cache
def get_settings() -> Settings:
    return Settings()


class RunConfig(BaseModel):
    """
    The per-run model configuration handed to the orchestrator.
    It is an explicit value so that a run never reads process-wide state.
    """
    model: str = Field(..., description="Model name sent with every request.")
    temperature: float = Field(default=0.7, description="Sampling temperature.")
    max_tokens: int = Field(default=2000, description="Completion token limit per request.")
    enable_tools: bool = Field(default=False, description="Send tool definitions with each request.")
    max_iterations: int = Field(default=50, description="Maximum number of requests in one run.")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "RunConfig":
        settings = settings or get_settings()
        return cls(
            model=settings.LLM_MODEL,
            temperature=settings.LLM_TEMPERATURE,
            max_tokens=settings.LLM_MAX_TOKENS,
            enable_tools=settings.ENABLE_TOOLS,
            max_iterations=settings.MAX_ITERATIONS,
        )

    def validate_for_run(self):
        """Raises ConfigurationError if a run could not be started with this config."""
        if not self.model or not self.model.strip():
            raise ConfigurationError("Model name is not set. Please configure LLM_MODEL.")
        if self.max_iterations < 1:
            raise ConfigurationError(f"max_iterations must be at least 1, got {self.max_iterations}.")
        if self.max_tokens < 1:
            raise ConfigurationError(f"max_tokens must be at least 1, got {self.max_tokens}.")


if __name__ == "__main__":
    settings = get_settings()
    print(settings.model_dump_json(indent=4))
