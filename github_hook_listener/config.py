"""
Configuration Module

This module contains configuration settings for the application.
"""

import os
from pathlib import Path

# Load environment variables from .env file
from dotenv import load_dotenv

# Base directory - one level up from this file
BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / ".env")

# Data storage
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
DATA_DIR.mkdir(exist_ok=True, parents=True)

# Hook records database - local SQLite by default
HOOKS_DB_PATH = DATA_DIR / "webhooks.db"
HOOKS_DB_URL = os.getenv("HOOKS_DB_URL", f"sqlite:///{HOOKS_DB_PATH}")

# Projects and VCS roots known to the CI server
REGISTRY_FILE = Path(os.getenv("REGISTRY_FILE", str(DATA_DIR / "registry.json")))

# Webhook endpoint
WEBHOOK_PATH = "/app/hooks/github"
GITHUB_EVENT_HEADER = "X-GitHub-Event"

# Only roots of this VCS type are matched against GitHub repositories
GIT_VCS_NAME = "jetbrains.git"

# Polling interval forced on roots once a webhook is known to work (12 hours)
WEBHOOK_CHECK_INTERVAL_SECONDS = int(
    os.getenv("WEBHOOK_CHECK_INTERVAL_SECONDS", str(12 * 60 * 60))
)

# A hook unused for this long is reported as outdated
HOOK_OUTDATED_AFTER_HOURS = int(os.getenv("HOOK_OUTDATED_AFTER_HOURS", "168"))

# CI server REST API used to queue modification checks
CI_SERVER_URL = os.getenv("CI_SERVER_URL", "").rstrip("/")
CI_SERVER_TOKEN = os.getenv("CI_SERVER_TOKEN", "")
CI_REQUEST_TIMEOUT_SECONDS = int(os.getenv("CI_REQUEST_TIMEOUT_SECONDS", "10"))

# API settings
API_PREFIX = "/api"
