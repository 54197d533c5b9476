"""
Configuration - env vars, constants, logging setup.
"""

import os
import logging
from pathlib import Path
from dotenv import load_dotenv

ROOT_DIR = Path(__file__).parent.parent
load_dotenv(ROOT_DIR / '.env')

# Logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("examhall")

# Database
MONGO_URL = os.environ.get("MONGO_URL", "mongodb://localhost:27017")
DB_NAME = os.environ.get("DB_NAME", "examhall")

# Auth (tokens are issued by the identity service, we only verify them)
JWT_SECRET = os.environ.get("JWT_SECRET")
JWT_ALGORITHM = os.environ.get("JWT_ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.environ.get("ACCESS_TOKEN_EXPIRE_MINUTES", "1440"))

if not JWT_SECRET:
    logger.warning("⚠️ No JWT_SECRET found - using insecure development secret")
    JWT_SECRET = "examhall-dev-secret"

ENVIRONMENT = os.environ.get("ENV", os.environ.get("ENVIRONMENT", "development"))

# Exam defaults
DEFAULT_BUFFER_BEFORE_MINUTES = 10
DEFAULT_BUFFER_AFTER_MINUTES = 10
MAX_EXAM_DURATION_MINUTES = int(os.environ.get("MAX_EXAM_DURATION_MINUTES", "480"))
MAX_ATTEMPTS_LIMIT = 10


def is_production() -> bool:
    return ENVIRONMENT.lower() in ("production", "prod")


def get_version_info():
    """Get deployment version information."""
    git_commit = os.environ.get("GIT_COMMIT_SHA")
    if not git_commit:
        try:
            if os.path.exists(".git_commit"):
                with open(".git_commit", "r") as f:
                    git_commit = f.read().strip()
        except OSError:
            pass

    if not git_commit:
        logger.warning("GIT_COMMIT_SHA not set and .git_commit not found. Build pipeline issue?")
        git_commit = "unknown"

    build_time = os.environ.get("BUILD_TIME", "unknown")

    return {
        "git_commit": git_commit,
        "build_time": build_time,
        "environment": ENVIRONMENT
    }
