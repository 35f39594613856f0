"""Tests for settings loading."""
from pathlib import Path

from pdl_core.config import Settings


class TestSettings:
    def test_defaults(self, monkeypatch):
        for name in ("PDL_DATA_DIR", "PDL_REPOSITORY_ID", "PDL_SEARCH_ROOT"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings()

        assert settings.data_dir == Path.home() / ".claude" / "data"
        assert settings.database_path.name == "pdl.sqlite"
        assert settings.lock_path.name == "pdl-migration.lock"
        assert settings.consolidation_search_depth == 2
        assert settings.lock_stale_after_seconds == 3600

    def test_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PDL_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("PDL_REPOSITORY_ID", "from-env")
        monkeypatch.setenv("PDL_CONSOLIDATION_SEARCH_DEPTH", "0")

        settings = Settings()

        assert settings.database_url == f"sqlite:///{tmp_path / 'pdl.sqlite'}"
        assert settings.current_repository_id == "from-env"
        assert settings.consolidation_search_depth == 0

    def test_repository_id_falls_back_to_directory_name(self, monkeypatch, tmp_path):
        monkeypatch.delenv("PDL_REPOSITORY_ID", raising=False)
        checkout = tmp_path / "my-service"
        checkout.mkdir()

        settings = Settings(search_root=checkout)

        assert settings.current_repository_id == "my-service"
