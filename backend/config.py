"""
Application Configuration

Loads configuration from environment variables with sensible defaults.
All deploy-specific settings should be defined here.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists (variables already set in the environment win)
load_dotenv()

# =============================================================================
# BASE PATHS
# =============================================================================

# Base directory (where this config file is located)
BASE_DIR = Path(__file__).resolve().parent

# =============================================================================
# DATABASE CONFIGURATION
# =============================================================================

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./triage_review.db")

# Handle PostgreSQL URL format differences (Heroku-style URLs)
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

# =============================================================================
# APPLICATION SETTINGS
# =============================================================================

DEBUG = os.getenv("DEBUG", "True").lower() in ("true", "1", "yes")
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "8000"))

# Number of interactions returned by /api/interactions/recent
RECENT_INTERACTIONS_LIMIT = int(os.getenv("RECENT_INTERACTIONS_LIMIT", "10"))

# Number of weekly buckets in the analytics time series
ANALYTICS_WEEKS = int(os.getenv("ANALYTICS_WEEKS", "4"))

# =============================================================================
# PROVIDER IDENTITY
# =============================================================================

# Used when a request carries no X-Provider-Name / X-Provider-Id header.
# Authentication is handled outside this service.
DEFAULT_PROVIDER_NAME = os.getenv("DEFAULT_PROVIDER_NAME", "Dr. House")
DEFAULT_PROVIDER_ID = os.getenv("DEFAULT_PROVIDER_ID", "provider-1")

# =============================================================================
# CORS SETTINGS
# =============================================================================

# Comma-separated list of allowed origins, or "*" for all
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")
CORS_ALLOW_CREDENTIALS = os.getenv("CORS_ALLOW_CREDENTIALS", "True").lower() in ("true", "1", "yes")

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")
LOG_OUTPUT = os.getenv("LOG_OUTPUT", "stdout")
LOG_FILE = os.getenv("LOG_FILE", str(BASE_DIR / "logs" / "app.json.log"))

# =============================================================================
# CLARA ASSISTANT (LLM)
# =============================================================================

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "").strip()
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
OPENAI_MAX_TOKENS = int(os.getenv("OPENAI_MAX_TOKENS", "800"))


# =============================================================================
# HELPER FUNCTION
# =============================================================================

def get_config_summary():
    """Returns a summary of current configuration (for debugging)."""
    return {
        "database_url": DATABASE_URL[:20] + "..." if len(DATABASE_URL) > 20 else DATABASE_URL,
        "debug": DEBUG,
        "host": HOST,
        "port": PORT,
        "recent_interactions_limit": RECENT_INTERACTIONS_LIMIT,
        "analytics_weeks": ANALYTICS_WEEKS,
        "default_provider_id": DEFAULT_PROVIDER_ID,
        "assistant_configured": bool(OPENAI_API_KEY),
        "log_level": LOG_LEVEL,
    }
