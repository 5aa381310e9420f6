"""
Configuration for the Game Generation Backend
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _env_list(name: str, default: str):
    return [item.strip() for item in os.getenv(name, default).split(",") if item.strip()]


# Paths
BASE_DIR = Path(__file__).parent

# Database Configuration
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_PORT = int(os.getenv("DB_PORT", "5432"))
DB_NAME = os.getenv("DB_NAME", "gamegen")
DB_USER = os.getenv("DB_USER", "gamegen")
DB_PASSWORD = os.getenv("DB_PASSWORD", "gamegen")
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)

# Scheduler Configuration
MAX_CONCURRENT = int(os.getenv("MAX_CONCURRENT", "5"))
POLL_INTERVAL_MS = int(os.getenv("POLL_INTERVAL", "5000"))
DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", str(MAX_CONCURRENT + 5)))

# Polling cadences (seconds)
EXECUTION_POLL_INTERVAL = float(os.getenv("EXECUTION_POLL_INTERVAL", "5"))
SOURCE_POLL_INTERVAL = float(os.getenv("SOURCE_POLL_INTERVAL", "10"))
SOURCE_WAIT_TIMEOUT = float(os.getenv("SOURCE_WAIT_TIMEOUT", "43200"))

# Phase timeout policy (seconds). Phases 1-4 generate, phase5 is one repair attempt.
PHASE_TIMEOUTS = {
    "phase1": int(os.getenv("PHASE1_TIMEOUT", "43200")),  # 12 hours
    "phase2": int(os.getenv("PHASE2_TIMEOUT", "43200")),
    "phase3": int(os.getenv("PHASE3_TIMEOUT", "43200")),
    "phase4": int(os.getenv("PHASE4_TIMEOUT", "43200")),
    "phase5": int(os.getenv("PHASE5_TIMEOUT", "3600")),  # 1 hour per repair attempt
}

# Execution units
WORKSPACE_PATH = Path(os.getenv("WORKSPACE_PATH", "/tmp/gamegen/workspaces"))
WORKER_COMMAND = os.getenv("WORKER_COMMAND", "/app/worker/run-phase.sh")
WORKER_MEMORY_LIMIT = int(os.getenv("WORKER_MEMORY_LIMIT", str(256 * 1024 * 1024)))  # 256MB
WORKER_CPU_SECONDS = int(os.getenv("WORKER_CPU_SECONDS", "0")) or None
WORKER_LIMITER = os.getenv("WORKER_LIMITER", "prlimit")  # util-linux prlimit(1)
PHASE1_ARTIFACTS = _env_list("PHASE1_ARTIFACTS", "idea.json,idea.md,design")

# Model providers (passed through to execution units untouched)
PROVIDERS = {
    "default": {
        "API_KEY": os.getenv("DEFAULT_PROVIDER_API_KEY", ""),
        "BASE_URL": os.getenv("DEFAULT_PROVIDER_BASE_URL", "https://api.z.ai/api/anthropic"),
    },
    "alternate": {
        "API_KEY": os.getenv("ALTERNATE_PROVIDER_API_KEY", ""),
        "BASE_URL": os.getenv("ALTERNATE_PROVIDER_BASE_URL", "https://api.anthropic.com"),
    },
}

# Deployment
DEPLOY_DIR = Path(os.getenv("DEPLOY_DIR", "/tmp/gamegen/apps"))
DOMAIN = os.getenv("DOMAIN", "games.localhost")
GALLERY_DATA_PATH = Path(os.getenv("GALLERY_DATA_PATH", str(DEPLOY_DIR / "gallery" / "games.json")))

# Quality oracle
QUALITY_TEST_COMMAND = os.getenv("QUALITY_TEST_COMMAND", "node /app/scripts/test-game.js")
QUALITY_TEST_TIMEOUT = int(os.getenv("QUALITY_TEST_TIMEOUT", "120"))

# Repair loop (quality gate)
REPAIR_MAX_ATTEMPTS = int(os.getenv("REPAIR_MAX_ATTEMPTS", "3"))
REPAIR_PASS_THRESHOLD = float(os.getenv("REPAIR_PASS_THRESHOLD", "7.0"))
REPAIR_FAIL_THRESHOLD = float(os.getenv("REPAIR_FAIL_THRESHOLD", "4.0"))
REPAIR_SETTLE_SECONDS = float(os.getenv("REPAIR_SETTLE_SECONDS", "5"))

if REPAIR_FAIL_THRESHOLD >= REPAIR_PASS_THRESHOLD:
    raise ValueError(
        f"REPAIR_FAIL_THRESHOLD ({REPAIR_FAIL_THRESHOLD}) must be lower than "
        f"REPAIR_PASS_THRESHOLD ({REPAIR_PASS_THRESHOLD})"
    )

# Diversity seeding
GENRE_HISTORY_SIZE = int(os.getenv("GENRE_HISTORY_SIZE", "20"))

# Housekeeping
JOB_RETENTION_DAYS = int(os.getenv("JOB_RETENTION_DAYS", "30"))
HOUSEKEEPING_INTERVAL = int(os.getenv("HOUSEKEEPING_INTERVAL", "3600"))

# Server Configuration
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
CORS_ORIGINS = _env_list("CORS_ORIGINS", "*")
