"""Configuration management for govsearch."""

from pathlib import Path
from typing import Dict, List, Literal, Optional

import yaml
from pydantic import BaseModel, Field


class FullTextConfig(BaseModel):
    """MeiliSearch full-text index configuration."""
    url: str = "http://localhost:7700"
    api_key: Optional[str] = None
    index: str = "catalog"
    enabled: bool = True
    # Exact-match fields a text index cannot match reliably
    skip_fields: List[str] = Field(default_factory=list)


class QdrantConfig(BaseModel):
    """Qdrant server hosting the catalog payload store."""
    url: str = "http://localhost:6333"
    timeout: int = 30
    collection: str = "catalog"


class ScoreBand(BaseModel):
    """Identity risk score band."""
    label: str
    lower_bound: int
    upper_bound: int


def _default_score_bands() -> List[ScoreBand]:
    return [
        ScoreBand(label="low", lower_bound=0, upper_bound=300),
        ScoreBand(label="medium", lower_bound=301, upper_bound=700),
        ScoreBand(label="high", lower_bound=701, upper_bound=1000),
    ]


class RequestControls(BaseModel):
    """Which kinds of access a requester may request, for self and for others."""
    allow_roles: bool = True
    allow_entitlements: bool = True
    allow_assignable_roles_self: bool = True
    allow_assignable_roles_others: bool = True
    allow_permitted_roles_self: bool = True
    allow_permitted_roles_others: bool = True


class SearchConfig(BaseModel):
    """Root configuration."""
    fulltext: FullTextConfig = Field(default_factory=FullTextConfig)
    qdrant: QdrantConfig = Field(default_factory=QdrantConfig)
    request_controls: RequestControls = Field(default_factory=RequestControls)
    score_bands: List[ScoreBand] = Field(default_factory=_default_score_bands)
    # Where keyword terms must appear in display names
    match_mode: Literal["start", "anywhere", "end", "exact"] = "start"
    # Default minimum population percentage for identity searches (0 = keep all)
    population_minimum: int = 0
    population_size_limit: int = 10000
    # Cap on candidate roles collected for identity searches (-1 = no cap)
    max_roles_returned: int = -1
    disable_role_population_stats: bool = False
    manually_assignable_role_types: List[str] = Field(default_factory=lambda: ["business"])
    # Filter DSL strings keyed by selector (application, entitlement, role); "none" returns nothing
    selectors: Dict[str, str] = Field(default_factory=dict)
    identity_scope: Optional[str] = None
    # Identity scope DSL per quick link action, overriding identity_scope
    action_identity_scopes: Dict[str, str] = Field(default_factory=dict)
    # Filter DSL strings keyed by item type (role, entitlement) limiting removable current access
    removal_rules: Dict[str, str] = Field(default_factory=dict)

    def high_risk_band(self) -> Optional[ScoreBand]:
        """The band with the highest lower bound, or None without bands."""
        if not self.score_bands:
            return None
        return max(self.score_bands, key=lambda band: band.lower_bound)


def load_config(config_path: Path) -> SearchConfig:
    """Load and validate configuration file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Validated SearchConfig instance

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is invalid
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        data = yaml.safe_load(f)

    return SearchConfig(**(data or {}))


def save_config(config: SearchConfig, config_path: Path):
    """Save configuration to file.

    Args:
        config: Configuration to save
        config_path: Path to save YAML file
    """
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        yaml.dump(config.model_dump(mode='json'), f, default_flow_style=False)
