"""
Configuration management for Book Lab.
"""

import os
from pathlib import Path
from typing import List, Optional, Union

import yaml
from loguru import logger
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_DATA_DIR = os.path.join(os.path.expanduser("~"), ".book_lab")
DEFAULT_CONFIG_PATH = os.path.join(os.path.expanduser("~"), ".config", "book_lab", "config.yaml")


class LogConfig(BaseModel):
    """Log configuration."""

    level: str = "INFO"
    format: str = "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
    rotation: str = "20 MB"
    retention: str = "1 week"
    path: str = Field(default_factory=lambda: os.path.join(DEFAULT_DATA_DIR, "logs"))


class DBConfig(BaseModel):
    """Database configuration."""

    url: str = Field(default_factory=lambda: "sqlite:///" + os.path.join(DEFAULT_DATA_DIR, "books.db"))
    echo: bool = False


class APIConfig(BaseModel):
    """API configuration."""

    host: str = "127.0.0.1"
    port: int = Field(8000, ge=1, le=65535)
    cors_origins: List[str] = Field(default_factory=lambda: ["http://localhost:5173"])
    enable_docs: bool = True


class LLMConfig(BaseModel):
    """Defaults for the model providers.

    The active provider and its connection details are stored in the
    database settings table by the onboarding flow; these values only fill
    in what is missing there.
    """

    openai_model: str = "gpt-4"
    ollama_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"
    request_timeout: Optional[float] = Field(None, gt=0)


class PipelineConfig(BaseModel):
    """Generation parameters for the content pipeline."""

    min_paragraph_length: int = Field(21, ge=1)  # Shorter paragraphs are skipped
    preview_length: int = Field(100, ge=1)

    topic_temperature: float = Field(0.7, ge=0.0, le=2.0)
    topic_max_tokens: int = Field(100, ge=1)
    outline_temperature: float = Field(0.7, ge=0.0, le=2.0)
    outline_max_tokens: int = Field(1000, ge=1)
    chapter_temperature: float = Field(0.8, ge=0.0, le=2.0)
    chapter_max_tokens: int = Field(4000, ge=1)
    refine_content_temperature: float = Field(0.7, ge=0.0, le=2.0)
    refine_content_max_tokens: int = Field(2000, ge=1)


class AutosaveConfig(BaseModel):
    """Debounced chapter auto-save configuration."""

    delay_seconds: float = Field(2.0, gt=0)


class ExportConfig(BaseModel):
    """Book export configuration."""

    output_dir: str = Field(default_factory=lambda: os.path.join(os.path.expanduser("~"), "Downloads"))
    paper_size: str = "Letter"


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Base settings
    app_name: str = "book_lab"
    debug: bool = False
    environment: str = "dev"

    # Specific configurations
    log: LogConfig = Field(default_factory=LogConfig)
    db: DBConfig = Field(default_factory=DBConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    autosave: AutosaveConfig = Field(default_factory=AutosaveConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)


def load_config(config_path: Union[str, Path]) -> Settings:
    """Load configuration from a YAML file."""
    with open(config_path, "r") as f:
        config_data = yaml.safe_load(f) or {}

    return Settings(**config_data)


def create_default_config(config_path: Union[str, Path]) -> Settings:
    """Write a configuration file with default values and return it."""
    config = Settings()

    config_dir = os.path.dirname(str(config_path))
    if config_dir:
        os.makedirs(config_dir, exist_ok=True)

    with open(config_path, "w") as f:
        yaml.dump(config.model_dump(), f, default_flow_style=False)

    logger.info(f"Created default configuration at {config_path}")
    return config
