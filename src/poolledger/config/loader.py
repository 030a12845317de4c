"""
Configuration loader for poolledger.

What it does:
- Reads static pool settings from `config/pool.yaml`.
- Lets the manager principal be supplied through `POOL_MANAGER`, which wins
  over the file value.
- Validates the resulting configuration using Pydantic models.

Where it is used:
- Called by `poolledger.main` to build a `PoolSettings` object, which
  `PoolLedger.from_settings` turns into a ledger.
"""

import os
import yaml
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, field_validator

from ..ledger.model import MIN_INVESTMENT


class DemoStep(BaseModel):
    """One scripted ledger call replayed by the entrypoint demo."""
    op: str
    caller: str
    amount: Optional[int] = None


class PoolSettings(BaseModel):
    """Runtime settings assembled from YAML + environment variables."""
    pool_id: str = "pool"
    manager: str
    min_investment: int = Field(default=MIN_INVESTMENT, ge=1)
    metrics_port: Optional[int] = None
    journal_path: Optional[str] = None
    wallets: Dict[str, int] = Field(default_factory=dict)
    demo: List[DemoStep] = Field(default_factory=list)

    @field_validator("manager", "pool_id")
    @classmethod
    def not_empty(cls, v, info):
        if not v or not str(v).strip():
            raise ValueError(f"Missing required setting: {info.field_name}")
        return v


def load_settings(path: str = "config/pool.yaml") -> PoolSettings:
    """Load YAML config, apply env-var overrides, and return PoolSettings."""
    with open(path, "r") as f:
        config: Dict[str, Any] = yaml.safe_load(f) or {}
    manager = os.getenv("POOL_MANAGER", "") or config.get("manager", "")
    if not manager:
        raise ValueError("Missing pool manager. Set `manager` in the config file or POOL_MANAGER")
    config["manager"] = manager
    return PoolSettings(**config)
