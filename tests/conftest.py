import os
import sys

import pytest

# Make the repository root importable when running from a checkout
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from ai_gateway.retry import RetryPolicy


@pytest.fixture
def no_backoff(monkeypatch):
    """Retry immediately instead of sleeping between attempts"""
    monkeypatch.setattr(RetryPolicy, "delay_for", lambda self, attempt: 0.0)
