"""Application settings loaded from environment variables (prefix ``PDL_``)."""
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_data_dir() -> Path:
    return Path.home() / ".claude" / "data"


class Settings(BaseSettings):
    """Runtime configuration for the PDL store and consolidation service.

    Every component receives a Settings instance explicitly; nothing reads
    module-level state.
    """

    model_config = SettingsConfigDict(env_prefix="PDL_", extra="ignore")

    # Canonical store location
    data_dir: Path = Field(default_factory=_default_data_dir)
    database_filename: str = "pdl.sqlite"
    lock_filename: str = "pdl-migration.lock"

    # Legacy (per-checkout) stores picked up by consolidation
    legacy_store_relpath: str = "data/pdl.sqlite"
    migrated_marker_name: str = ".pdl-migrated"
    search_root: Path = Field(default_factory=Path.cwd)
    consolidation_search_depth: int = Field(2, ge=0)
    lock_stale_after_seconds: int = Field(3600, ge=0)

    # Repository scope for this process (defaults to the working directory name)
    repository_id: Optional[str] = None

    default_actor: str = "system"
    log_level: str = "INFO"

    @property
    def database_path(self) -> Path:
        return self.data_dir / self.database_filename

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.database_path}"

    @property
    def lock_path(self) -> Path:
        return self.data_dir / self.lock_filename

    @property
    def current_repository_id(self) -> str:
        """Stable identifier of the repository this process tracks."""
        if self.repository_id:
            return self.repository_id
        return self.search_root.resolve().name or "default"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
