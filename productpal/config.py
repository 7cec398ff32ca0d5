from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .persistence import STORAGE_KEY

BASE_DIR = Path(__file__).resolve().parent

DEFAULT_AGENT_ID = "6994bceb277b422741401d41"


@dataclass(frozen=True)
class Settings:
    """Configuration container for the agent endpoint, storage, and startup mode."""
    agent_api_url: str
    agent_api_key: str
    agent_id: str
    agent_timeout: float
    storage_path: Path
    storage_key: str
    sample_data: bool


def load_settings() -> Settings:
    """Purpose: Load configuration from environment variables and defaults.
    Inputs/Outputs: No inputs; returns a Settings instance.
    Side Effects / State: Reads environment variables and filesystem paths.
    Dependencies: Uses os.getenv and BASE_DIR for default paths.
    Failure Modes: Invalid AGENT_TIMEOUT_SEC env values raise ValueError.
    If Removed: App cannot locate the agent or the conversation store and fails at startup.
    Testing Notes: Verify defaults and overrides via environment variables.
    """
    # Resolve the storage path, then build Settings.
    storage_path = os.getenv("STORAGE_PATH")
    if storage_path:
        storage_file = Path(storage_path)
    else:
        storage_file = (BASE_DIR / "data" / "conversations.json").resolve()

    return Settings(
        agent_api_url=os.getenv("AGENT_API_URL", "http://localhost:3000/api/agent"),
        agent_api_key=os.getenv("AGENT_API_KEY", ""),
        agent_id=os.getenv("AGENT_ID") or DEFAULT_AGENT_ID,
        agent_timeout=float(os.getenv("AGENT_TIMEOUT_SEC", "120")),
        storage_path=storage_file,
        storage_key=os.getenv("STORAGE_KEY") or STORAGE_KEY,
        sample_data=os.getenv("SAMPLE_DATA", "0") == "1",
    )
