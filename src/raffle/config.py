"""Runtime settings, read from the environment (and a .env file if present)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


@dataclass(frozen=True)
class RaffleSettings:
    admin_id: str = "admin"
    engine_id: str = "settlement-engine"
    event_log_path: Optional[Path] = None
    log_level: str = "INFO"

    @staticmethod
    def from_env(env_file: Optional[Path] = None) -> RaffleSettings:
        """Build settings from RAFFLE_* variables.

        RAFFLE_ADMIN       admin identity for every component
        RAFFLE_ENGINE_ID   identity the settlement engine acts under
        RAFFLE_EVENT_LOG   JSONL path for the event log (in-memory if unset)
        RAFFLE_LOG_LEVEL   logging level name
        """
        load_dotenv(env_file)

        admin_id = os.getenv("RAFFLE_ADMIN", "").strip() or "admin"
        engine_id = os.getenv("RAFFLE_ENGINE_ID", "").strip() or "settlement-engine"
        if admin_id == engine_id:
            raise RuntimeError("RAFFLE_ADMIN and RAFFLE_ENGINE_ID must differ")

        log_path = os.getenv("RAFFLE_EVENT_LOG", "").strip()
        log_level = os.getenv("RAFFLE_LOG_LEVEL", "").strip().upper() or "INFO"
        if not isinstance(logging.getLevelName(log_level), int):
            raise RuntimeError(f"Unknown RAFFLE_LOG_LEVEL: {log_level}")

        return RaffleSettings(
            admin_id=admin_id,
            engine_id=engine_id,
            event_log_path=Path(log_path) if log_path else None,
            log_level=log_level,
        )
