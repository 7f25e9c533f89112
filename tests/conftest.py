"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the environment before app modules import settings, so no .env file
is loaded and the rate limiter never reaches a real remote store.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"

# Remote rate limit credentials would switch the app to the Upstash backend
for _name in ("KV_REST_API_URL", "KV_REST_API_TOKEN", "RATE_LIMIT_REMOTE_URL", "RATE_LIMIT_REMOTE_TOKEN"):
    os.environ.pop(_name, None)

os.environ.setdefault("LLM_PROVIDER", "openrouter")
os.environ.setdefault("LLM_API_KEY", "test-key-123")
os.environ.setdefault("LOG_FORMAT", "plain")

import pytest

from app.adapters.rate_limit.in_memory import destroy_memory_rate_limiter


@pytest.fixture(autouse=True)
def _reset_memory_singleton():
    yield
    destroy_memory_rate_limiter()
