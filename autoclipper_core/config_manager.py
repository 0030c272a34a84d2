import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

import yaml
from pydantic import BaseModel, Field


class PathsConfig(BaseModel):
    base_dir: str = Field(default=".")
    log_dir: str = Field(default="logs")


class LLMConfig(BaseModel):
    provider: Literal["ollama", "openrouter", "openai", "anthropic"] = Field(default="ollama")
    model_name: Optional[str] = Field(default=None)
    base_url: Optional[str] = Field(default=None)
    temperature: float = Field(default=0.7)
    max_tokens: int = Field(default=4096)
    request_timeout_seconds: float = Field(default=120.0)
    max_retries: int = Field(default=1)
    retry_backoff_seconds: float = Field(default=2.0)
    keep_alive: Optional[str] = Field(default="30m")
    stream: bool = Field(default=False)
    ollama_host: str = Field(default_factory=lambda: os.getenv("OLLAMA_HOST", "http://127.0.0.1:11434"))
    openrouter_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("OPENROUTER_API_KEY"))
    openai_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("OPENAI_API_KEY"))
    anthropic_api_key: Optional[str] = Field(default_factory=lambda: os.getenv("ANTHROPIC_API_KEY"))


class AnalysisConfig(BaseModel):
    max_chunk_chars: int = Field(default=24000)
    overlap_seconds: float = Field(default=30.0)
    rubric: str = Field(default="viral")
    overlap_strategy: Literal["greedy", "optimal"] = Field(default="greedy")
    time_reference: Literal["absolute", "relative"] = Field(default="absolute")
    analysis_timeout_seconds: Optional[float] = Field(default=1800.0)
    clip_events: bool = Field(default=True)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    rotation: str = Field(default="10 MB")
    retention: str = Field(default="10 days")
    json_logs: bool = Field(default=True)


class ServerConfig(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3847)


class AppConfig(BaseModel):
    paths: PathsConfig = Field(default_factory=PathsConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


class ConfigManager:
    """
    Manages loading and validation of application configuration.
    """
    def __init__(self, config_path: str = "config/settings.yaml", config: Optional[AppConfig] = None):
        self.config_path = Path(config_path)
        self.config: AppConfig = config if config is not None else self._load_config()

    @classmethod
    def from_defaults(cls, overrides: Optional[Dict[str, Any]] = None) -> "ConfigManager":
        """Builds a manager without touching the filesystem."""
        return cls(config=AppConfig(**(overrides or {})))

    def _load_config(self) -> AppConfig:
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found at {self.config_path}")

        with open(self.config_path, "r") as f:
            raw_config = yaml.safe_load(f) or {}

        return AppConfig(**raw_config)

    @property
    def paths(self) -> PathsConfig:
        return self.config.paths

    @property
    def llm(self) -> LLMConfig:
        return self.config.llm

    @property
    def analysis(self) -> AnalysisConfig:
        return self.config.analysis

    @property
    def server(self) -> ServerConfig:
        return self.config.server

    @property
    def logging(self) -> LoggingConfig:
        return self.config.logging
