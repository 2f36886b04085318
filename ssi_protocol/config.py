"""
SSI Protocol v0.1 - Configuration

Process settings, loaded from SSI_* environment variables or a .env file.

SPDX-License-Identifier: AGPL-3.0-or-later
"""

import logging
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="SSI_", env_file=".env", extra="ignore")

    # Trust registry ledger
    registry_path: str = ":memory:"
    registry_owner_key_path: Path = Path("keys/registry_owner.json")

    # Role identities
    issuer_key_path: Path = Path("keys/issuer.json")
    holder_key_path: Path = Path("keys/wallet.json")

    # Holder persistence
    holder_store_path: str = ":memory:"

    log_level: str = "INFO"


def configure_logging(level: str = "INFO") -> None:
    """Install a basic log handler for demos and service processes."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
