"""
Application settings
====================

Role
----
- Centralize the runtime parameters of the game master (name, bind address,
  data directory, synchronization cadence, default game configuration).
- Defaults suit a single local machine running the operator screen and one
  or more display screens.
- Every value can be overridden through a `.env` file or the environment.

Integrations
------------
- `pydantic-settings` loads environment variables and `.env` automatically.
- Services and routers import `from sarabanda.config.settings import settings`.

Notes
-----
- `DATA_DIR` is the synchronization "origin": every process pointed at the
  same directory observes the same game.
- `HOST` stays on the loopback interface; the HTTP shell is a local UI
  surface, not a network transport.

Example `.env`
--------------
APP_NAME="Sarabanda (staging)"
PORT=8080
DATA_DIR="/var/opt/sarabanda/data"
POLL_INTERVAL_SECONDS=0.5
LOG_LEVEL="DEBUG"
"""
from typing import List
import os

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Service name (shown by /health)
    APP_NAME: str = "Sarabanda Game Master"
    # Network bind (FastAPI / Uvicorn)
    HOST: str = "127.0.0.1"
    PORT: int = 8000
    LOG_LEVEL: str = "INFO"

    # Front-ends allowed to call the operator/display API
    ALLOWED_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

    # Directory holding the persisted slots (one JSON file per slot name).
    # Default: <repo>/sarabanda/data
    DATA_DIR: str = os.path.join(os.path.dirname(os.path.dirname(__file__)), "data")

    # Reconciliation poll of every state channel (seconds)
    POLL_INTERVAL_SECONDS: float = 1.0
    # Cadence of the timer watcher and of the display stream while a timer runs
    TIMER_TICK_SECONDS: float = 1.0

    # Defaults applied to a fresh game configuration
    DEFAULT_NUMBER_OF_ROUNDS: int = 10
    DEFAULT_TURN_DURATION: float = 60
    DEFAULT_TURN_SCORE: float = 0.5
    DEFAULT_FREE_TURN_DURATION: float = 30
    DEFAULT_FREE_TURN_SCORE: float = 0.5
    DEFAULT_TEAM_NAMES: List[str] = ["Team A", "Team B"]

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


# Single importable instance: `settings`
settings = Settings()
