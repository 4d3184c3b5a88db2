import logging
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

BACKEND_DIR = Path(__file__).resolve().parents[2]


def require_env(name: str) -> str:
    """Return a mandatory environment variable or raise RuntimeError.

    WHY: Fail at startup, not on the first chat request, when OPENAI_API_KEY
    or similar is missing.
    """
    value = os.getenv(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


def load_env_file(path: Optional[Path] = None) -> bool:
    """Load a local .env file without overwriting variables already set.

    WHAT:
        Looks for `path`, else backend/.env, else .env in the working
        directory. Existing environment variables always win.
    WHY:
        Local development uses a .env file; deployments set real variables
        and must never be shadowed by a stray file.

    Returns:
        True if a file was loaded.
    """
    candidates = [path] if path else [BACKEND_DIR / ".env", Path.cwd() / ".env"]
    for candidate in candidates:
        if candidate.is_file():
            load_dotenv(candidate, override=False)
            logger.info(f"[ENV] Loaded {candidate} (existing variables were NOT overwritten)")
            return True
    logger.debug("[ENV] No local .env file found")
    return False
