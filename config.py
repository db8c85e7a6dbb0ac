"""
Runtime settings for the Pipeline Manager API.

Values come from the process environment, with a local `.env` file loaded
first when present. Leave DATABASE_URL / DATABASE_NAME unset to run against
the in-memory store.
"""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Optional

from dotenv import load_dotenv


def _split(value: str) -> List[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


@dataclass(frozen=True)
class Settings:
    database_url: Optional[str] = None
    database_name: Optional[str] = None
    session_secret: str = "change-me"
    session_max_age: int = 24 * 60 * 60
    cors_origins: List[str] = field(default_factory=lambda: ["http://localhost:5001"])
    allowed_usernames: List[str] = field(default_factory=lambda: ["desivar"])
    log_level: str = "INFO"
    log_file: Optional[str] = None
    port: int = 5000

    @property
    def use_mongo(self) -> bool:
        return bool(self.database_url) and bool(self.database_name)

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            database_url=os.getenv("DATABASE_URL"),
            database_name=os.getenv("DATABASE_NAME"),
            session_secret=os.getenv("SESSION_SECRET", "change-me"),
            session_max_age=int(os.getenv("SESSION_MAX_AGE", 24 * 60 * 60)),
            cors_origins=_split(os.getenv("CORS_ORIGINS", "http://localhost:5001")),
            allowed_usernames=_split(os.getenv("ALLOWED_USERNAMES", "desivar")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_file=os.getenv("LOG_FILE") or None,
            port=int(os.getenv("PORT", 5000)),
        )
