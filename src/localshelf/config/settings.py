"""Application settings.

Hey future me - every knob lives here! Values come from (highest wins):
1. Constructor kwargs (tests build Settings(...) directly)
2. Environment variables with LOCALSHELF_ prefix, nested via "__"
   e.g. LOCALSHELF_WATCHER__DEBOUNCE_SECONDS=0.5
3. A .env file in the working directory
4. The defaults below

The catalog DB and the art cache both live under storage.data_path unless
database.url is set explicitly.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StorageSettings(BaseModel):
    """Where localshelf keeps its own files (NOT the user's music)."""

    data_path: Path = Field(
        default=Path.home() / ".localshelf",
        description="Directory holding the catalog DB and the art cache",
    )
    database_filename: str = Field(
        default="local-files.db", description="Catalog DB file name"
    )
    art_cache_dirname: str = Field(
        default="album-art-cache", description="Art cache directory name"
    )

    @property
    def database_path(self) -> Path:
        """Full path of the catalog DB file."""
        return self.data_path / self.database_filename

    @property
    def art_cache_path(self) -> Path:
        """Full path of the art cache directory."""
        return self.data_path / self.art_cache_dirname


class DatabaseSettings(BaseModel):
    """Catalog store settings."""

    url: str | None = Field(
        default=None,
        description="SQLAlchemy URL override (defaults to sqlite+aiosqlite under data_path)",
    )
    echo: bool = Field(default=False, description="Log every SQL statement")
    busy_timeout: int = Field(
        default=30, ge=1, description="Seconds to wait on a locked SQLite DB"
    )


class WatcherSettings(BaseModel):
    """Change observer timings."""

    # Hey future me - the debounce is the "quiet window". Every new event re-arms it,
    # so a copy of 500 files produces ONE processing pass once things settle.
    debounce_seconds: float = Field(default=2.0, gt=0)
    # Files must keep the same size for this long before we read them.
    # Protects against indexing half-copied files.
    write_stability_seconds: float = Field(default=2.0, ge=0)
    # Background poll interval. OS watchers get throttled for background apps,
    # so we fall back to a full (mtime-skipping) rescan every few minutes.
    poll_interval_seconds: float = Field(default=300.0, gt=0)


class ArtworkSettings(BaseModel):
    """Cover art resolution settings."""

    cover_art_base_url: str = Field(default="https://coverartarchive.org")
    cover_art_size: int = Field(
        default=250, description="CoverArtArchive thumbnail size (250, 500, 1200)"
    )
    cache_max_age_days: int = Field(default=30, ge=1)
    request_timeout: float = Field(default=30.0, gt=0)
    user_agent: str = Field(
        default="localshelf/0.3 (https://github.com/localshelf/localshelf)"
    )


class LoggingSettings(BaseModel):
    """Logging output settings."""

    level: str = Field(default="INFO")
    json_format: bool = Field(default=False)


class Settings(BaseSettings):
    """Root settings object."""

    model_config = SettingsConfigDict(
        env_prefix="LOCALSHELF_",
        env_nested_delimiter="__",
        env_file=".env",
        extra="ignore",
    )

    storage: StorageSettings = Field(default_factory=StorageSettings)
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    watcher: WatcherSettings = Field(default_factory=WatcherSettings)
    artwork: ArtworkSettings = Field(default_factory=ArtworkSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @property
    def database_url(self) -> str:
        """Effective SQLAlchemy URL for the catalog store."""
        if self.database.url:
            return self.database.url
        return f"sqlite+aiosqlite:///{self.storage.database_path}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
