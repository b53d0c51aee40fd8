"""
HTTP tests for the memory embeddings API.
"""

import inspect
import json
import threading
import time
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from memory_embeddings.api.main import app
from memory_embeddings.api.routes import router

from conftest import make_payload, make_vector

BASE = "/api/memory-embeddings"


def _create(client, **overrides):
    response = client.post(BASE, json=make_payload(**overrides))
    assert response.status_code == 201, response.text
    return response.json()['data']


def test_root_banner(client):
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()['endpoints'] == {'health': '/health', 'memoryEmbeddings': BASE}


def test_health_healthy(client):
    response = client.get("/health")
    body = response.json()
    assert response.status_code == 200
    assert (body['success'], body['status'], body['database']) == (True, 'healthy', 'connected')


def test_health_unhealthy_when_store_unreachable(client):
    with patch("memory_embeddings.api.main.get_memory_store", side_effect=ConnectionError("refused")):
        response = client.get("/health")

    body = response.json()
    assert response.status_code == 503
    assert (body['success'], body['status'], body['database']) == (False, 'unhealthy', 'disconnected')
    assert body['error'] == "refused"


def test_unknown_endpoint(client):
    response = client.get("/api/nothing-here")
    body = response.json()
    assert response.status_code == 404
    assert body['error'] == "Endpoint not found"
    assert body['message'] == "Cannot GET /api/nothing-here"
    assert body['availableEndpoints']['memoryEmbeddings'] == BASE


def test_create_and_get(client):
    record = _create(client)
    response = client.get(f"{BASE}/{record['id']}")
    assert response.status_code == 200
    assert response.json() == {'success': True, 'data': record}


def test_create_with_out_of_range_gate_score(client, store):
    payload = make_payload()
    payload['gate_scores']['forget_score'] = 1.5

    response = client.post(BASE, json=payload)

    body = response.json()
    assert response.status_code == 400
    assert body['success'] is False
    assert body['error'] == "Validation Error"
    assert "gate_scores.forget_score" in body['details']
    assert store.count_documents(None) == 0


def test_create_with_invalid_memory_type(client):
    response = client.post(BASE, json=make_payload(memory_type='dream'))
    assert response.status_code == 400
    assert "memory_type" in response.json()['details']


def test_create_with_short_vector(client):
    response = client.post(BASE, json=make_payload(feature_vector=[0.5] * 10))
    assert response.status_code == 400
    assert "Feature vector must have exactly 90 dimensions" in response.json()['details']


def test_create_with_malformed_json(client):
    response = client.post(BASE, content=b"{not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json()['error'] == "Validation Error"
    assert response.json()['details'].startswith("body: invalid JSON")


def test_get_unknown(client):
    response = client.get(f"{BASE}/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {'success': False, 'error': "Memory embedding not found"}


def test_update_partial(client):
    record = _create(client, importance_score=0.5)
    response = client.put(f"{BASE}/{record['id']}", json={'importance_score': 0.9, 'user_id': 'hijack'})

    data = response.json()['data']
    assert response.status_code == 200
    assert data['importance_score'] == 0.9
    assert data['user_id'] == 'user-1'
    assert data['updated_at'] > record['updated_at']


def test_update_empty_body(client):
    record = _create(client)
    response = client.put(f"{BASE}/{record['id']}", json={})
    data = response.json()['data']
    assert response.status_code == 200
    assert data['content_summary'] == record['content_summary']
    assert data['updated_at'] > record['updated_at']


def test_update_invalid_and_unknown(client):
    record = _create(client)
    assert client.put(f"{BASE}/{record['id']}", json={'importance_score': 3}).status_code == 400
    assert client.put(f"{BASE}/missing", json={'importance_score': 0.3}).status_code == 404


def test_delete(client):
    record = _create(client)
    response = client.delete(f"{BASE}/{record['id']}")
    assert response.status_code == 200
    assert response.json()['data'] == {'id': record['id'], 'deleted': True, 'deleted_count': 1}
    assert client.delete(f"{BASE}/{record['id']}").status_code == 404


def test_record_access(client):
    record = _create(client)
    first = client.post(f"{BASE}/{record['id']}/access").json()['data']
    second = client.post(f"{BASE}/{record['id']}/access").json()['data']

    assert (first['access_frequency'], second['access_frequency']) == (1, 2)
    assert record['last_accessed'] < first['last_accessed'] < second['last_accessed']
    assert client.post(f"{BASE}/missing/access").status_code == 404


def test_similarity_empty_collection(client):
    response = client.post(f"{BASE}/similarity", json={'feature_vector': make_vector()})
    data = response.json()['data']
    assert response.status_code == 200
    assert data['results'] == []
    assert data['max_similarity_score'] == 0
    assert data['min_similarity_score'] == 0


def test_similarity_with_filters(client):
    _create(client, feature_vector=make_vector(0), user_id='user-1')
    _create(client, feature_vector=make_vector(3), user_id='user-1')
    _create(client, feature_vector=make_vector(0), user_id='user-2')

    response = client.post(f"{BASE}/similarity", json={
        'feature_vector': make_vector(0),
        'limit': 1,
        'filters': {'user_id': 'user-1'},
    })

    data = response.json()['data']
    assert data['results_count'] == 1
    assert data['results'][0]['user_id'] == 'user-1'
    assert data['results'][0]['similarity_score'] == pytest.approx(1.0)
    assert data['query_vector_dimensions'] == 90


def test_similarity_vector_length_checked(client):
    response = client.post(f"{BASE}/similarity", json={'feature_vector': [1.0] * 91})
    assert response.status_code == 400
    assert "90 dimensions for similarity search" in response.json()['details']


def test_batch_create(client):
    response = client.post(f"{BASE}/batch", json={'embeddings': [make_payload(), make_payload()]})
    data = response.json()['data']
    assert response.status_code == 201
    assert data['inserted_count'] == 2
    assert len(data['documents']) == 2


def test_batch_of_51_rejected_without_insert(client, store):
    response = client.post(f"{BASE}/batch", json={'embeddings': [make_payload()] * 51})
    assert response.status_code == 400
    assert "Maximum 50 embeddings allowed per batch" in response.json()['details']
    assert store.count_documents(None) == 0


def test_batch_partial_failure_is_reported(client, store):
    real_insert = store.insert
    calls = []

    def flaky_insert(document):
        calls.append(document)
        if len(calls) == 3:
            raise RuntimeError("write timeout")
        return real_insert(document)

    store.insert = flaky_insert
    response = client.post(f"{BASE}/batch", json={'embeddings': [make_payload()] * 4})

    assert response.status_code == 500
    assert "inserted 2 of 4" in response.json()['error']
    assert store.count_documents(None) == 2


def test_query_sorted_ascending(client):
    for score in (0.4, 0.1, 0.8):
        _create(client, importance_score=score)

    response = client.get(f"{BASE}/query", params={'sort_by': 'importance_score', 'sort_order': 'asc'})

    data = response.json()['data']
    assert response.status_code == 200
    assert [r['importance_score'] for r in data['results']] == [0.1, 0.4, 0.8]
    assert data['pagination']['total_count'] == 3


def test_query_pagination(client):
    for i in range(5):
        _create(client, content_summary=f"memory {i}")

    data = client.get(f"{BASE}/query", params={'limit': 2, 'offset': 4}).json()['data']

    assert len(data['results']) == 1
    assert data['pagination'] == {
        'total_count': 5,
        'current_page': 3,
        'total_pages': 3,
        'has_next': False,
        'has_previous': True,
    }


def test_query_nested_date_range_and_triggers(client):
    _create(client, retrieval_triggers=['travel'])
    _create(client, retrieval_triggers=['work'])

    response = client.get(f"{BASE}/query", params=[
        ('date_range[start]', '2000-01-01T00:00:00Z'),
        ('retrieval_triggers', 'travel'),
        ('retrieval_triggers', 'music'),
    ])

    results = response.json()['data']['results']
    assert response.status_code == 200
    assert [r['retrieval_triggers'] for r in results] == [['travel']]


@pytest.mark.parametrize("params", [{'limit': 0}, {'sort_by': 'bogus'}, {'memory_type': 'dream'}])
def test_query_validation_errors(client, params):
    response = client.get(f"{BASE}/query", params=params)
    assert response.status_code == 400
    assert response.json()['error'] == "Query Validation Error"


def test_user_routes(client):
    low = _create(client, importance_score=0.3)
    high = _create(client, importance_score=0.9)
    _create(client, user_id='user-2', importance_score=0.95)
    client.post(f"{BASE}/{low['id']}/access")

    all_for_user = client.get(f"{BASE}/user/user-1").json()['data']
    assert all_for_user['pagination']['total_count'] == 2

    important = client.get(f"{BASE}/user/user-1/important").json()['data']['results']
    assert [r['id'] for r in important] == [high['id']]

    lowered = client.get(f"{BASE}/user/user-1/important", params={'min_score': 0.2}).json()['data']['results']
    assert [r['id'] for r in lowered] == [high['id'], low['id']]

    recent = client.get(f"{BASE}/user/user-1/recent").json()['data']['results']
    assert recent[0]['id'] == low['id']


def test_user_important_rejects_bad_min_score(client):
    response = client.get(f"{BASE}/user/user-1/important", params={'min_score': 2})
    assert response.status_code == 400


def test_type_route(client):
    _create(client, memory_type='insight', importance_score=0.2)
    _create(client, memory_type='insight', importance_score=0.7)
    _create(client, memory_type='event')

    data = client.get(f"{BASE}/type/insight").json()['data']
    assert [r['importance_score'] for r in data['results']] == [0.7, 0.2]
    assert client.get(f"{BASE}/type/dream").status_code == 400


def test_relationships_route(client):
    friend = _create(client)
    source = _create(client, relationships=[friend['id']])

    data = client.get(f"{BASE}/user/user-1/relationships/{source['id']}").json()['data']
    assert data['relationship_count'] == 1
    assert data['related_memories'][0]['id'] == friend['id']

    forbidden = client.get(f"{BASE}/user/user-2/relationships/{source['id']}")
    assert forbidden.status_code == 403
    assert forbidden.json()['error'] == "Access denied to this memory"
    assert client.get(f"{BASE}/user/user-1/relationships/missing").status_code == 404


def test_stats(client):
    _create(client, memory_type='event', importance_score=0.4)
    _create(client, memory_type='emotion', importance_score=0.8)

    data = client.get(f"{BASE}/stats").json()['data']

    assert data['total_memories'] == 2
    assert data['recent_memories_7_days'] == 2
    assert data['memory_type_distribution'] == {'event': 1, 'emotion': 1}
    assert data['score_statistics']['avg_importance_score'] == pytest.approx(0.6)
    assert data['collection_info']['vector_dimensions'] == 90


def test_store_failure_maps_to_500(client, store):
    def broken(*args, **kwargs):
        raise RuntimeError("cluster red")

    store.count_documents = broken
    response = client.get(f"{BASE}/stats")
    assert response.status_code == 500
    assert response.json() == {'success': False, 'error': "Failed to get statistics: cluster red"}


def test_strict_auth(client, monkeypatch):
    monkeypatch.setenv("STRICT_AUTH", "true")
    monkeypatch.setenv("API_KEY", "s3cret")

    missing = client.get(f"{BASE}/stats")
    assert missing.status_code == 401
    assert missing.json() == {'success': False, 'error': "Invalid or missing API key"}

    assert client.get(f"{BASE}/stats", headers={"X-API-Key": "wrong"}).status_code == 401
    assert client.get(f"{BASE}/stats", headers={"X-API-Key": "s3cret"}).status_code == 200
    assert client.get("/health").status_code == 200


def test_strict_auth_defaults_on_in_production(client, monkeypatch):
    monkeypatch.delenv("STRICT_AUTH", raising=False)
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("API_KEY", "s3cret")
    assert client.get(f"{BASE}/stats").status_code == 401


def test_rate_limit(client, monkeypatch):
    monkeypatch.setenv("RATE_LIMIT_ENABLED", "true")
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "3")

    statuses = [client.get(f"{BASE}/stats").status_code for _ in range(4)]

    assert statuses == [200, 200, 200, 429]
    assert client.get(f"{BASE}/stats").json()['error'] == "Too many requests, please try again later."
    assert client.get("/health").status_code == 200


def _send_raw(client, method, url, body):
    # json.dumps emits bare NaN and Infinity tokens, which json.loads accepts
    return client.request(method, url, content=json.dumps(body), headers={"Content-Type": "application/json"})


@pytest.mark.parametrize("value", [float('nan'), float('inf')])
def test_non_finite_numbers_rejected_on_every_body_route(client, store, value):
    record = _create(client)
    vector = make_vector()
    vector[7] = value

    responses = [
        _send_raw(client, "POST", BASE, make_payload(feature_vector=vector)),
        _send_raw(client, "POST", f"{BASE}/batch", {'embeddings': [make_payload(feature_vector=vector)]}),
        _send_raw(client, "POST", f"{BASE}/similarity", {'feature_vector': vector}),
        _send_raw(client, "PUT", f"{BASE}/{record['id']}", {'importance_score': value}),
    ]

    for response in responses:
        assert response.status_code == 400, response.text
        assert response.json()['error'] == "Validation Error"
    assert "feature_vector.7" in responses[0].json()['details']
    assert store.count_documents(None) == 1
    assert client.get(f"{BASE}/{record['id']}").json()['data']['importance_score'] == 0.5


def test_update_with_no_body_only_refreshes_updated_at(client):
    record = _create(client)
    response = client.put(f"{BASE}/{record['id']}")
    assert response.status_code == 200
    assert response.json()['data']['updated_at'] > record['updated_at']


def test_route_handlers_run_in_threadpool():
    for route in router.routes:
        assert not inspect.iscoroutinefunction(route.endpoint), route.path


def test_slow_insert_does_not_stall_other_requests(store):
    entered = threading.Event()
    real_insert = store.insert

    def slow_insert(document):
        entered.set()
        time.sleep(1.0)
        return real_insert(document)

    store.insert = slow_insert
    with TestClient(app) as shared:
        responses = []
        creator = threading.Thread(target=lambda: responses.append(shared.post(BASE, json=make_payload())))
        creator.start()
        assert entered.wait(5)

        started = time.perf_counter()
        stats = shared.get(f"{BASE}/stats")
        elapsed = time.perf_counter() - started
        creator.join()

    assert stats.status_code == 200
    assert elapsed < 0.5
    assert responses[0].status_code == 201


def test_query_offset_beyond_result_window(client):
    response = client.get(f"{BASE}/query", params={'offset': 10000})
    body = response.json()
    assert response.status_code == 400
    assert body['error'] == "Query Validation Error"
    assert "offset + limit must not exceed 10000" in body['details']

    assert client.get(f"{BASE}/query", params={'offset': 9980}).status_code == 200
