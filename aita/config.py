"""
AITA Judge Configuration

Central settings loaded from environment variables.
"""

import os
from dataclasses import dataclass
from dotenv import load_dotenv

load_dotenv()

# Render sets RENDER=true automatically
_ON_RENDER = os.getenv("RENDER", "").lower() == "true"
_DEFAULT_DB_PATH = "/data/aita.db" if _ON_RENDER else "aita.db"


def _split_csv(raw: str) -> tuple[str, ...]:
    return tuple(part.strip() for part in raw.split(",") if part.strip())


@dataclass(frozen=True)
class Settings:
    """Immutable application settings."""

    # --- AI Provider ---
    LLM_PROVIDER: str = os.getenv("AITA_LLM_PROVIDER", "gemini")
    GEMINI_API_KEY: str = os.getenv("GEMINI_API_KEY", "")
    GEMINI_MODEL: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
    AI_TIMEOUT_SECONDS: float = float(os.getenv("AITA_AI_TIMEOUT", "15"))
    AI_MAX_OUTPUT_TOKENS: int = int(os.getenv("AITA_AI_MAX_TOKENS", "250"))

    # --- Storage ---
    DB_PATH: str = os.getenv("AITA_DB_PATH", _DEFAULT_DB_PATH)

    # --- Sessions ---
    SESSION_SECRET: str = os.getenv(
        "AITA_SESSION_SECRET", "dev-only-secret-change-in-production",
    )
    SESSION_HTTPS_ONLY: bool = (
        os.getenv("AITA_SESSION_HTTPS_ONLY", "false").lower() == "true"
    )
    SESSION_MAX_AGE: int = 24 * 60 * 60

    # --- Admin accounts (promoted on every startup) ---
    ADMIN_USERNAMES: tuple[str, ...] = _split_csv(
        os.getenv("AITA_ADMIN_USERNAMES", "")
    )

    # --- Server ---
    HOST: str = os.getenv("AITA_HOST", "0.0.0.0")
    PORT: int = int(os.getenv("AITA_PORT", "8000"))

    # --- CORS ---
    CORS_ORIGINS: str = os.getenv("AITA_CORS_ORIGINS", "*")

    @property
    def ai_configured(self) -> bool:
        return bool(self.GEMINI_API_KEY)


settings = Settings()
