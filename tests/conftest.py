"""Shared fixtures: a fresh in-memory catalog database per test."""

from __future__ import annotations

import pytest

from tenderfeed.persistence.db import dispose_engine, get_session, init_db


@pytest.fixture
def database():
    """Fresh in-memory SQLite schema; sessions come from ``get_session``.

    The in-memory database lives on one shared connection, so tests that
    run adapters must not hold another session open at the same time.
    """
    dispose_engine()
    engine = init_db("sqlite://")
    yield engine
    dispose_engine()


@pytest.fixture
def session(database):
    with get_session() as session:
        yield session
