"""
Configuration
=============
Loads environment variables from .env file using python-dotenv.

Environment Variables:
    CHANGEFLOW_BACKEND     - Backend implementation: "mock" (in-memory) or "http" (default: mock)
    BACKEND_URL            - Base URL of the analysis/apply backend when CHANGEFLOW_BACKEND=http
    BACKEND_TIMEOUT        - Optional transport timeout in seconds (default: unset)
    DATA_DIR               - Where projects/profiles/sessions/folder links are stored
    AGENTIC_MAX_ATTEMPTS   - Default attempt budget for agentic runs (default: 2)
    AGENTIC_MAX_ACTIONS    - Default action budget per agentic attempt (default: 12)
    DEFAULT_AUTO_CHECK     - Run verification after apply by default (default: true)
    LOG_DIR                - Directory for the daily log file (default: logs)
    ENABLE_DEV_ENDPOINT    - Enable /dev/* seeding endpoints (default: false)

Timeout Philosophy:
    The orchestrator never times out a backend call on its own. A stalled
    apply or verify blocks the corresponding busy flag until the backend
    answers; any timeout policy belongs to the backend. BACKEND_TIMEOUT only
    exists for operators who want the HTTP transport to give up eventually.

Agentic Budget:
    AGENTIC_MAX_ATTEMPTS bounds the analyze → plan → preview → apply →
    verify → revert loop. Attempt numbers always run 1..N with N at most
    this value.
"""
import os
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


CHANGEFLOW_BACKEND = os.getenv("CHANGEFLOW_BACKEND", "mock").strip().lower()
BACKEND_URL = os.getenv("BACKEND_URL", "http://127.0.0.1:8787")
BACKEND_TIMEOUT = _env_optional_float("BACKEND_TIMEOUT")

DATA_DIR = os.getenv("DATA_DIR", os.path.join(os.path.expanduser("~"), ".changeflow"))

# Agentic loop defaults
AGENTIC_MAX_ATTEMPTS = int(os.getenv("AGENTIC_MAX_ATTEMPTS", 2))
AGENTIC_MAX_ACTIONS = int(os.getenv("AGENTIC_MAX_ACTIONS", 12))
DEFAULT_AUTO_CHECK = _env_bool("DEFAULT_AUTO_CHECK", "true")
DEFAULT_AGENTIC_GOAL = os.getenv(
    "DEFAULT_AGENTIC_GOAL",
    "Fix critical problems and improve overall project quality",
)

# Request history
HISTORY_TITLE_LIMIT = int(os.getenv("HISTORY_TITLE_LIMIT", 45))

# Session store caps
MAX_EVENTS_PER_SESSION = int(os.getenv("MAX_EVENTS_PER_SESSION", 200))
MAX_SESSIONS_PER_PROJECT = int(os.getenv("MAX_SESSIONS_PER_PROJECT", 50))

# Per-transaction action limit enforced by the mock backend
MAX_ACTIONS_PER_TX = int(os.getenv("MAX_ACTIONS_PER_TX", 50))

LOG_DIR = os.getenv("LOG_DIR", "logs")
ENABLE_DEV_ENDPOINT = _env_bool("ENABLE_DEV_ENDPOINT", "false")
