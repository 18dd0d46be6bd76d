"""
Script CRM Configuration
Loads settings from environment variables with sensible defaults.
"""

import logging
import os
from pathlib import Path
from dotenv import load_dotenv

_logger = logging.getLogger(__name__)

# Load .env file
env_path = Path(__file__).parent.parent / '.env'
load_dotenv(env_path)


class Config:
    """Application configuration."""

    # Database: set in .env, never hardcode credentials here.
    # Missing is tolerated at import so the in-memory store and tests still work;
    # the Postgres store refuses to connect without it.
    DATABASE_URL = os.getenv('DATABASE_URL')
    if not DATABASE_URL:
        _logger.warning("DATABASE_URL is not set. The PostgreSQL store will be unavailable until .env is configured.")

    # Document collection that holds scripts
    SCRIPTS_COLLECTION = os.getenv('SCRIPTS_COLLECTION', 'scripts')

    # Page size used by script listings when the caller gives no limit
    DEFAULT_PAGE_LIMIT = int(os.getenv('DEFAULT_PAGE_LIMIT', '1000'))

    # Owner id the CLI acts as when --owner is not passed
    DEFAULT_OWNER = os.getenv('DEFAULT_OWNER', '')

    # Analytics: size of the top-performing list
    ANALYTICS_TOP_N = int(os.getenv('ANALYTICS_TOP_N', '5'))


# Singleton instance
config = Config()
