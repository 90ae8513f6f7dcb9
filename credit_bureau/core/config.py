"""
Configuration for the credit bureau core.
All settings come from the environment (optionally a .env file).
"""

import os
from pathlib import Path
from dotenv import load_dotenv

load_dotenv()

# Key-value store configuration
STORE_PROVIDER = os.getenv("STORE_PROVIDER", "sqlite")  # memory|sqlite
DB_PATH = os.getenv("DB_PATH", "./data/credit_bureau.db")

# Transform engine: unknown operation names are the identity unless strict
TRANSFORM_STRICT = os.getenv("TRANSFORM_STRICT", "false").lower() == "true"
APPROVAL_OPERATION = os.getenv("APPROVAL_OPERATION", "increase10pct")

# Compare-and-swap attempts when appending to the index key
INDEX_CAS_RETRIES = int(os.getenv("INDEX_CAS_RETRIES", "5"))

# Reveal session parameters
CONTRACT_ADDRESS = os.getenv("CONTRACT_ADDRESS", "0x0000000000000000000000000000000000000000")
CHAIN_ID = int(os.getenv("CHAIN_ID", "11155111"))
REVEAL_DURATION_DAYS = int(os.getenv("REVEAL_DURATION_DAYS", "30"))

# Persisted layout
INDEX_KEY = "report_keys"
RECORD_KEY_PREFIX = "report_"

# Version string
VERSION = "1.0.0"

STORE_PROVIDERS = ["memory", "sqlite"]


def get_kv_store():
    """Get the configured key-value store implementation."""
    if STORE_PROVIDER == "memory":
        from .kv import InMemoryKVStore
        return InMemoryKVStore()
    elif STORE_PROVIDER == "sqlite":
        from .kv import SQLiteKVStore
        ensure_db_directory()
        return SQLiteKVStore(DB_PATH)
    else:
        raise ValueError(f"Invalid STORE_PROVIDER: {STORE_PROVIDER}")


def debug_enabled():
    """Check if debug mode is enabled (DEBUG=true exposes the interactive API docs)."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_db_directory():
    """Ensure the database directory exists."""
    Path(DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def validate_config():
    """Validate configuration and return any issues."""
    issues = []

    if STORE_PROVIDER not in STORE_PROVIDERS:
        issues.append(f"Invalid STORE_PROVIDER: {STORE_PROVIDER}")

    if INDEX_CAS_RETRIES < 1:
        issues.append("INDEX_CAS_RETRIES must be >= 1")

    if REVEAL_DURATION_DAYS < 1:
        issues.append("REVEAL_DURATION_DAYS must be >= 1")

    from .transform import OPERATIONS
    if APPROVAL_OPERATION not in OPERATIONS:
        issues.append(f"Unknown APPROVAL_OPERATION: {APPROVAL_OPERATION}")

    return issues
