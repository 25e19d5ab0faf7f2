"""Configuration management for ledgerlift."""

from pathlib import Path
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Pipeline settings loaded from environment variables."""

    # LLM Configuration
    llm_provider: Literal["ollama", "openai", "gemini"] = "ollama"
    openai_api_key: str = ""
    gemini_api_key: str = ""
    ollama_host: str = "http://localhost:11434"
    ollama_model: str = "llama3.2"
    ollama_vision_model: str = "llava"
    openai_model: str = "gpt-4o-mini"
    gemini_model: str = "gemini-1.5-flash"

    # Development mode
    dev_mode: bool = True

    # Data directory
    data_dir: Path = Path.home() / ".ledgerlift"

    # Text acquisition
    min_text_length: int = 500
    max_control_char_ratio: float = 0.1
    detector_max_pages: int = 2
    ocr_dpi: int = 200
    ocr_language: str = "eng"
    ocr_page_timeout: float = 120.0

    # AI-assisted extraction
    chunk_size: int = 2000
    chunk_overlap: int = 200
    llm_concurrency: int = 3
    llm_timeout: float = 60.0
    llm_max_retries: int = 2
    vision_enabled: bool = True
    vision_batch_size: int = 5
    vision_batch_delay: float = 5.0
    vision_timeout: float = 180.0

    # Pipeline policy
    regex_min_transactions: int = 5
    review_confidence_threshold: float = 0.5
    max_transaction_amount: float = 1_000_000
    dedup_prefix_length: int = 20

    # Statement profile defaults
    date_order: Literal["dmy", "mdy"] = "dmy"
    amount_position: Literal["first", "last"] = "first"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,  # LLM_PROVIDER and llm_provider both work
        extra="ignore",  # Ignore extra environment variables
    )

    @property
    def db_path(self) -> Path:
        """Get the SQLite database path."""
        suffix = "dev" if self.dev_mode else "prod"
        return self.data_dir / f"ledgerlift_{suffix}.db"

    def log_config(self) -> None:
        """Log current configuration with sensitive values redacted."""
        import os

        print("\n" + "=" * 60)
        print("📋 CONFIGURATION LOADED")
        print("=" * 60)

        env_llm_provider = os.getenv("LLM_PROVIDER")
        env_file_path = os.path.join(os.getcwd(), ".env")

        print(f"Working Directory:   {os.getcwd()}")
        print(f".env file exists:    {os.path.exists(env_file_path)}")

        if env_llm_provider:
            print(f"⚠️  ENV VAR override:   LLM_PROVIDER={env_llm_provider}")
        print("-" * 60)

        print(f"LLM Provider:        {self.llm_provider}")
        print(f"OpenAI API Key:      {_redact(self.openai_api_key)}")
        print(f"Gemini API Key:      {_redact(self.gemini_api_key)}")
        print(f"OpenAI Model:        {self.openai_model}")
        print(f"Gemini Model:        {self.gemini_model}")
        print(f"Ollama Host:         {self.ollama_host}")
        print(f"Ollama Model:        {self.ollama_model} (vision: {self.ollama_vision_model})")
        print(f"Vision Extraction:   {'on' if self.vision_enabled else 'off'} (batch {self.vision_batch_size})")
        print(f"Chunking:            {self.chunk_size} chars, {self.chunk_overlap} overlap")
        print(f"Regex Threshold:     {self.regex_min_transactions} transactions")
        print(f"Statement Profile:   date={self.date_order}, amount={self.amount_position}")
        print(f"Dev Mode:            {self.dev_mode}")
        print(f"Database:            {self.db_path}")
        print("=" * 60 + "\n")


def _redact(secret: str) -> str:
    if not secret:
        return "✗ Not set"
    return f"✓ Set ({secret[:4]}...{secret[-4:]})"


# Global settings instance
settings = Settings()
