"""
Pytest fixtures for testing
"""
from datetime import date

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from subaggregator.application.subscriptions import SubscriptionService
from subaggregator.infrastructure.cache.memory_cache import MemoryCache
from subaggregator.infrastructure.cache.redis_cache import RedisCache
from subaggregator.infrastructure.db.repository import SqlSubscriptionRepository
from subaggregator.infrastructure.db.session import Base
from subaggregator.infrastructure.db import models  # noqa: F401

TODAY = date(2026, 3, 10)


@pytest.fixture
def db_engine():
    """In-memory SQLite engine shared by every session of a test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(bind=db_engine, autoflush=False, autocommit=False)


@pytest.fixture
def repo(session_factory):
    return SqlSubscriptionRepository(session_factory)


@pytest.fixture
def memory_cache():
    return MemoryCache()


@pytest.fixture
def redis_client():
    """Redis client using fakeredis."""
    client = fakeredis.FakeRedis(decode_responses=True)
    client.flushall()
    yield client
    client.flushall()


@pytest.fixture
def redis_cache(redis_client):
    return RedisCache(redis_client)


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def service(repo, memory_cache, today):
    return SubscriptionService(repo, memory_cache, ttl=3600, today=lambda: today)
