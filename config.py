"""Application settings: single file, Pydantic-based.

DB selection:
  - DATABASE_URL set and non-empty -> PostgreSQL
  - DATABASE_URL absent/empty -> SQLite (DB_SQLITE_PATH, default data/airdrop.db)
"""

import re
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _project_root() -> Path:
    """Project root. config.py lives at the root."""
    return Path(__file__).resolve().parent


def _ensure_env_loaded() -> None:
    """Load .env from project root (then its parent). Idempotent."""
    root: Path = _project_root()
    for candidate in (root / ".env", root.parent / ".env"):
        if candidate.exists():
            load_dotenv(candidate, override=False)


_ensure_env_loaded()


class DatabaseSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="DB_",
        env_file=(str(_project_root() / ".env"), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    database_url: str | None = Field(
        default=None,
        description="PostgreSQL DSN; when set, uses Postgres.",
        validation_alias="DATABASE_URL",
    )
    sqlite_path: str | None = Field(default="data/airdrop.db")
    pool_size: int = Field(default=5)
    pool_timeout: int = Field(default=30)
    pool_recycle: int = Field(default=1800)

    def _use_postgres(self) -> bool:
        return bool((self.database_url or "").strip())

    def _resolved_sqlite_path(self) -> Path:
        raw: str = (self.sqlite_path or "data/airdrop.db").strip()
        path: Path = Path(raw)
        if not path.is_absolute():
            path = (_project_root() / path).resolve()
        return path

    def _redacted_postgres_dsn(self) -> str:
        url: str = (self.database_url or "").strip()
        return re.sub(r":([^:@]+)@", r":***@", url) if url else ""

    @property
    def url(self) -> str:
        if self._use_postgres():
            return (self.database_url or "").strip()
        path = self._resolved_sqlite_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        return f"sqlite:///{path.as_posix()}"

    def db_info_for_logging(self) -> str:
        if self._use_postgres():
            return f"PostgreSQL @ {self._redacted_postgres_dsn()}"
        return f"SQLite @ {self._resolved_sqlite_path().as_posix()}"


class SteemSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="STEEM_",
        env_file=(str(_project_root() / ".env"), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    rpc_url: str = Field(default="https://api.steemit.com")
    proxy_chain_url: str = Field(
        default="https://sds.steemworld.org/witnesses_api/getWitnessProxyChainBackwards"
    )
    rpc_timeout: float = Field(default=30.0)
    retry_attempts: int = Field(default=3)
    retry_delay: float = Field(default=1.0)
    account_batch_size: int = Field(default=500)
    votes_page_limit: int = Field(default=1000)
    request_delay: float = Field(default=0.5, description="Pause between batched RPC calls")
    proxy_workers: int = Field(default=4)
    proxy_rate_limit_calls: int = Field(default=2)
    proxy_rate_limit_period: float = Field(default=1.0)


class AirdropSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AIRDROP_",
        env_file=(str(_project_root() / ".env"), ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    proposal_id: int = Field(default=90)
    total_airdrop: Decimal = Field(default=Decimal("160000000"))
    months: int = Field(default=8, gt=0)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AIRDROP_APP_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    api_key: str | None = Field(default=None, description="API key for mutation endpoints")
    data_dir: Path = Field(default=Path("data"))
    export_dir: Path = Field(default=Path("exports"))

    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    steem: SteemSettings = Field(default_factory=SteemSettings)
    airdrop: AirdropSettings = Field(default_factory=AirdropSettings)

    def model_post_init(self, _context: object) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.export_dir.mkdir(parents=True, exist_ok=True)


@lru_cache
def get_settings() -> Settings:
    return Settings()
