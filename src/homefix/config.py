from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from functools import lru_cache
import yaml
from pathlib import Path
from typing import Dict, Any

DATA_DIR = Path(__file__).parent / "data"

class Settings(BaseSettings):
    OPENAI_API_KEY: str = Field(..., description="OpenAI API Key")
    OPENAI_VISION_MODEL: str = "gpt-4o-mini"
    OPENAI_QUESTION_MODEL: str = "gpt-4"
    OPENAI_MAX_TOKENS: int = 2000
    OPENAI_TEMPERATURE: float = 0.3
    DB_PATH: str = Field("./homefix.sqlite", description="Path to SQLite database")
    UPLOAD_DIR: str = Field("uploads", description="Where uploaded photos are stored")
    MAX_UPLOAD_BYTES: int = 25 * 1024 * 1024
    CORS_ORIGIN: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # Scraper timeouts (seconds); scrapers never retry
    SCRAPE_TIMEOUT_SECONDS: float = 8.0
    YOUTUBE_TIMEOUT_SECONDS: float = 3.0

    # MLflow settings
    MLFLOW_TRACKING_URI: str = Field("http://127.0.0.1:5000", description="MLflow tracking server URI")
    MLFLOW_ENABLE_TRACING: bool = Field(False, description="Enable MLflow tracing")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

@lru_cache()
def get_settings() -> Settings:
    return Settings()

@lru_cache()
def load_data_table(name: str) -> Dict[str, Any]:
    """Load one of the keyword tables shipped in homefix/data as a dict."""
    path = DATA_DIR / f"{name}.yaml"
    if not path.exists():
        return {}
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}

def load_domain_rules() -> Dict[str, Any]:
    return load_data_table("domain_rules")
