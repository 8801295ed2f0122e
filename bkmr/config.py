"""Configuration for the bkmr bookmark manager."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from bkmr.ranking import ScoringWeights


DEFAULT_DB_PATH = Path.home() / ".config" / "bkmr" / "bkmr.db"


@dataclass
class EnrichmentConfig:
    """Configuration for best-effort title/description fetching."""
    enabled: bool = True
    request_timeout: float = 10.0  # Seconds
    user_agent: str = "bkmr/0.7 (bookmark enrichment)"
    max_description_length: int = 500

    @classmethod
    def from_env(cls) -> "EnrichmentConfig":
        """Create config from environment variables."""
        return cls(
            enabled=os.environ.get("BKMR_NO_WEB", "") == "",
            request_timeout=float(os.environ.get("BKMR_FETCH_TIMEOUT", "10.0")),
            max_description_length=int(os.environ.get("BKMR_MAX_DESCRIPTION", "500")),
        )


@dataclass
class RankingConfig:
    """Weights of the fuzzy scoring policy.

    See ``ranking.ScoringWeights`` for how each weight enters the score.
    """
    match: int = 16
    consecutive: int = 8
    boundary: int = 10
    proximity_window: int = 16
    gap: int = 3
    length_divisor: int = 8

    @classmethod
    def from_env(cls) -> "RankingConfig":
        """Create config from environment variables."""
        return cls(
            match=int(os.environ.get("BKMR_SCORE_MATCH", "16")),
            consecutive=int(os.environ.get("BKMR_SCORE_CONSECUTIVE", "8")),
            boundary=int(os.environ.get("BKMR_SCORE_BOUNDARY", "10")),
            proximity_window=int(os.environ.get("BKMR_SCORE_PROXIMITY_WINDOW", "16")),
            gap=int(os.environ.get("BKMR_SCORE_GAP", "3")),
            length_divisor=int(os.environ.get("BKMR_SCORE_LENGTH_DIVISOR", "8")),
        )

    def weights(self) -> ScoringWeights:
        """Build the ScoringWeights used by the ranking engine."""
        return ScoringWeights(
            match=self.match,
            consecutive=self.consecutive,
            boundary=self.boundary,
            proximity_window=self.proximity_window,
            gap=self.gap,
            length_divisor=self.length_divisor,
        )


@dataclass
class PickerConfig:
    """Configuration for the interactive picker."""
    max_rows: int = 20

    @classmethod
    def from_env(cls) -> "PickerConfig":
        return cls(max_rows=int(os.environ.get("BKMR_PICKER_ROWS", "20")))


@dataclass
class Config:
    """Main configuration for bkmr."""
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig.from_env)
    ranking: RankingConfig = field(default_factory=RankingConfig.from_env)
    picker: PickerConfig = field(default_factory=PickerConfig.from_env)
    db_path: Optional[Path] = None  # None = use default

    @classmethod
    def from_env(cls) -> "Config":
        """Create config from environment variables."""
        db_path_str = os.environ.get("BKMR_DB_URL")
        db_path = Path(db_path_str).expanduser() if db_path_str else None

        return cls(
            enrichment=EnrichmentConfig.from_env(),
            ranking=RankingConfig.from_env(),
            picker=PickerConfig.from_env(),
            db_path=db_path,
        )

    @property
    def resolved_db_path(self) -> Path:
        return self.db_path or DEFAULT_DB_PATH


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global config instance.

    Returns:
        Config loaded from environment
    """
    global _config

    if _config is None:
        _config = Config.from_env()

    return _config
