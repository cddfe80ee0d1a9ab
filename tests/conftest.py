"""Shared pytest fixtures. Test doubles live in fakes.py."""

import pytest


@pytest.fixture
def no_thinking_mode(monkeypatch):
    """Skip the query rewrite so scripts only cover router/research/evaluate."""
    from atlas.config import settings

    monkeypatch.setattr(settings, "thinking_mode", False)
