from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_INVITE_ALPHABET = "ABCDEFGHIJKL123456789"


class VotePolicy(str, Enum):
    """
    What happens when a user votes a second time on the same poll.

    - SINGLE: reject the second vote (ConflictError)
    - REPLACE: last write wins, the existing vote moves to the new option
    - MULTIPLE: accept duplicates (legacy behavior)
    """

    SINGLE = "single"
    REPLACE = "replace"
    MULTIPLE = "multiple"


def _split_origins(raw: Any) -> List[str]:
    """
    Normalize CORS allow origins from env.

    Supports:
      - list[str] (already parsed)
      - "*"
      - comma-separated string: "https://a.com, https://b.com"
    """
    if raw is None:
        return ["*"]

    if isinstance(raw, list):
        items = [str(x).strip() for x in raw]
        items = [x for x in items if x]
        return items or ["*"]

    s = str(raw).strip()
    if not s or s == "*":
        return ["*"]

    parts = [p.strip() for p in s.split(",")]
    parts = [p for p in parts if p]
    return parts or ["*"]


class Settings(BaseSettings):
    """
    Central app settings.

    - Env var names are the aliases below (case-insensitive, .env supported)
    - Normalizes user-provided values (CORS, log level, DB URL)
    - Provides a single resolved DB URL source of truth
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        populate_by_name=True,
    )

    # App identity
    env: str = Field(default="local", alias="APP_ENV")
    app_name: str = Field(default="groupvote", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Server runtime (uvicorn)
    host: str = Field(default="127.0.0.1", alias="HOST")  # set 0.0.0.0 for LAN / container
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    cors_allow_origins: list[str] = Field(default_factory=lambda: ["*"], alias="CORS_ALLOW_ORIGINS")

    # Preferred: a real SQLAlchemy URL (SQLite locally, Postgres hosted)
    database_url: str = Field(default="", alias="DATABASE_URL")
    # Fallback when DATABASE_URL is not set
    db_path: str = Field(default="./data/groupvote.sqlite", alias="DB_PATH")

    # Invite codes
    invite_code_length: int = Field(default=6, ge=1, alias="INVITE_CODE_LENGTH")
    invite_code_alphabet: str = Field(default=DEFAULT_INVITE_ALPHABET, alias="INVITE_CODE_ALPHABET")
    invite_code_max_attempts: int = Field(default=10, ge=1, alias="INVITE_CODE_MAX_ATTEMPTS")

    # Voting / membership policy
    vote_policy: VotePolicy = Field(default=VotePolicy.SINGLE, alias="VOTE_POLICY")
    allow_last_admin_leave: bool = Field(default=False, alias="ALLOW_LAST_ADMIN_LEAVE")

    # -------------------------
    # Validators / normalizers
    # -------------------------

    @field_validator("log_level", mode="before")
    @classmethod
    def _norm_log_level(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip().upper()
        return s or "INFO"

    @field_validator("cors_allow_origins", mode="before")
    @classmethod
    def _norm_cors_allow_origins(cls, v: Any) -> list[str]:
        return _split_origins(v)

    @field_validator("host", mode="before")
    @classmethod
    def _norm_host(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "127.0.0.1"

    @field_validator("database_url", mode="before")
    @classmethod
    def _norm_database_url(cls, v: Any) -> str:
        return ("" if v is None else str(v)).strip()

    @field_validator("db_path", mode="before")
    @classmethod
    def _norm_db_path(cls, v: Any) -> str:
        s = ("" if v is None else str(v)).strip()
        return s or "./data/groupvote.sqlite"

    @field_validator("invite_code_alphabet", mode="before")
    @classmethod
    def _norm_invite_code_alphabet(cls, v: Any) -> str:
        s = "".join(("" if v is None else str(v)).split()).upper()
        return s or DEFAULT_INVITE_ALPHABET

    @field_validator("vote_policy", mode="before")
    @classmethod
    def _norm_vote_policy(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower() or VotePolicy.SINGLE.value
        return v

    # -------------------------
    # Derived helpers
    # -------------------------

    @property
    def resolved_database_url(self) -> str:
        """
        Priority:
        1) DATABASE_URL if provided
        2) Build sqlite:/// URL from DB_PATH

        DB_PATH may already be a sqlite URL, a relative path or an absolute path.
        """
        if self.database_url:
            return self.database_url

        path = (self.db_path or "").strip() or "./data/groupvote.sqlite"

        if path.startswith("sqlite:"):
            return path

        p = Path(path)

        if not p.is_absolute():
            return f"sqlite:///./{p.as_posix()}"

        # Absolute path needs 4 slashes after scheme (sqlite:////abs/path)
        return f"sqlite:////{p.as_posix().lstrip('/')}"


settings = Settings()
