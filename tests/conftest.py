"""
Shared fixtures: an in-memory store installed as the shared store, a fresh
rate limiter per test, and sample request payloads.
"""

import os

os.environ['STORE_PROVIDER'] = 'memory'
os.environ['ENVIRONMENT'] = 'test'
os.environ['STRICT_AUTH'] = 'false'
os.environ['RATE_LIMIT_ENABLED'] = 'false'

import pytest
from fastapi.testclient import TestClient

from memory_embeddings.api.main import app
from memory_embeddings.api.security import reset_rate_limiter
from memory_embeddings.store import InMemoryMemoryStore, set_memory_store

DIMENSIONS = 90


def make_vector(hot: int = 0, value: float = 1.0):
    """A 90-dim vector with a single non-zero component."""
    vector = [0.0] * DIMENSIONS
    vector[hot] = value
    return vector


def make_payload(**overrides):
    payload = {
        'user_id': 'user-1',
        'memory_type': 'conversation',
        'content_summary': 'Talked about the trip to Lisbon',
        'original_entry_id': 'entry-1',
        'importance_score': 0.5,
        'emotional_significance': 0.4,
        'temporal_relevance': 0.3,
        'feature_vector': make_vector(),
        'gate_scores': {
            'forget_score': 0.1,
            'input_score': 0.8,
            'output_score': 0.7,
            'confidence': 0.9,
        },
        'retrieval_triggers': ['travel'],
    }
    payload.update(overrides)
    return payload


@pytest.fixture(autouse=True)
def store():
    memory_store = InMemoryMemoryStore()
    memory_store.connect()
    set_memory_store(memory_store)
    yield memory_store
    set_memory_store(None)


@pytest.fixture(autouse=True)
def fresh_rate_limiter():
    reset_rate_limiter()
    yield
    reset_rate_limiter()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def payload():
    return make_payload
