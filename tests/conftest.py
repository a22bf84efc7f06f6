"""Shared pytest fixtures."""

import os

import pytest


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Run every test in an empty directory without execpack env vars."""
    for key in list(os.environ):
        if key.startswith("EXECPACK_") or key == "PORT":
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
