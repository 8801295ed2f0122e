"""Tests for config module."""
from pathlib import Path

from bkmr.config import DEFAULT_DB_PATH, Config, RankingConfig
from bkmr.ranking import DEFAULT_WEIGHTS, ScoringWeights


class TestConfig:
    def test_default_values(self, monkeypatch):
        for name in ("BKMR_DB_URL", "BKMR_NO_WEB", "BKMR_FETCH_TIMEOUT", "BKMR_PICKER_ROWS"):
            monkeypatch.delenv(name, raising=False)
        config = Config()
        assert config.enrichment.enabled is True
        assert config.enrichment.request_timeout == 10.0
        assert config.picker.max_rows == 20
        assert config.db_path is None
        assert config.resolved_db_path == DEFAULT_DB_PATH

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("BKMR_DB_URL", "/tmp/test.db")
        monkeypatch.setenv("BKMR_FETCH_TIMEOUT", "2.5")
        monkeypatch.setenv("BKMR_PICKER_ROWS", "5")

        config = Config.from_env()
        assert config.db_path == Path("/tmp/test.db")
        assert config.enrichment.request_timeout == 2.5
        assert config.picker.max_rows == 5

    def test_no_web_disables_enrichment(self, monkeypatch):
        monkeypatch.setenv("BKMR_NO_WEB", "1")
        assert Config.from_env().enrichment.enabled is False


class TestRankingConfig:
    def test_defaults_match_builtin_weights(self):
        assert RankingConfig().weights() == DEFAULT_WEIGHTS

    def test_weights_from_env(self, monkeypatch):
        monkeypatch.setenv("BKMR_SCORE_GAP", "7")
        monkeypatch.setenv("BKMR_SCORE_BOUNDARY", "0")
        weights = RankingConfig.from_env().weights()
        assert isinstance(weights, ScoringWeights)
        assert weights.gap == 7
        assert weights.boundary == 0
        assert weights.match == DEFAULT_WEIGHTS.match
