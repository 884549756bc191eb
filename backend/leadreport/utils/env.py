"""Environment helpers."""

import logging
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# backend/.env, next to the leadreport package
BACKEND_ENV_FILE = Path(__file__).resolve().parents[2] / ".env"


def load_env_file() -> bool:
    """Load backend/.env into os.environ without overriding exported variables.

    WHAT:
        Lets `uvicorn leadreport.main:app` run from the repository root, where
        pydantic-settings' relative `.env` lookup would miss backend/.env.

    Returns:
        True if a file was loaded
    """
    loaded = load_dotenv(BACKEND_ENV_FILE, override=False)
    if loaded:
        logger.info(f"[CONFIG] Loaded {BACKEND_ENV_FILE} (exported variables were NOT overwritten)")
    else:
        logger.debug(f"[CONFIG] No env file at {BACKEND_ENV_FILE}")
    return loaded
