"""
Constants and default values for mulch.

Centralizes magic numbers and strings to improve maintainability.
"""

import re

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "mulch"
CONFIG_VERSION = "1"

# ============================================================================
# Path Defaults
# ============================================================================

MULCH_DIR_NAME = ".mulch"
EXPERTISE_SUBDIR = "expertise"
CONFIG_FILE = "mulch.config.toml"
ENV_FILE = ".env"
EXPERTISE_FILE_SUFFIX = ".jsonl"
LOCK_FILE_SUFFIX = ".lock"

GITATTRIBUTES_FILE = ".gitattributes"
GITATTRIBUTES_LINE = ".mulch/expertise/*.jsonl merge=union"

DOMAIN_NAME_PATTERN = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]*")

# ============================================================================
# Record Identity
# ============================================================================

RECORD_ID_PREFIX = "mx-"
RECORD_ID_HASH_LENGTH = 6

# ============================================================================
# Advisory Lock
# ============================================================================

LOCK_STALE_SECONDS = 30.0
LOCK_RETRY_INTERVAL_SECONDS = 0.05
LOCK_TIMEOUT_SECONDS = 5.0

# ============================================================================
# Governance & Shelf Life
# ============================================================================

DEFAULT_MAX_ENTRIES = 100
DEFAULT_WARN_ENTRIES = 150
DEFAULT_HARD_LIMIT = 200

DEFAULT_SHELF_LIFE_TACTICAL_DAYS = 14
DEFAULT_SHELF_LIFE_OBSERVATIONAL_DAYS = 30

# ============================================================================
# Search & Priming
# ============================================================================

DEFAULT_BM25_K1 = 1.5
DEFAULT_BM25_B = 0.75
DEFAULT_CONFIRMATION_BOOST = 0.1
DEFAULT_PRIME_BUDGET = 4000
CHARS_PER_TOKEN = 4

SUMMARY_MAX_LENGTH = 80

# ============================================================================
# Environment Variable Names
# ============================================================================

ENV_PRIME_BUDGET = "MULCH_PRIME_BUDGET"
ENV_SEARCH_K1 = "MULCH_SEARCH_K1"
ENV_SEARCH_B = "MULCH_SEARCH_B"
ENV_CONFIRMATION_BOOST = "MULCH_CONFIRMATION_BOOST"
ENV_LOG_LEVEL = "MULCH_LOG_LEVEL"
ENV_LOG_FILE = "MULCH_LOG_FILE"

DEFAULT_LOG_LEVEL = "WARNING"
