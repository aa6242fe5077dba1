from fastapi.testclient import TestClient

from stocker.api import create_app

VALID_KEY = "test-api-key"
SECOND_KEY = "second-key"


def _candlesticks(response):
    return response.json()["_embedded"]["candlesticks"]


def test_unauthorized_without_api_key(client):
    response = client.get("/api/candlesticks")
    assert response.status_code == 401
    assert response.json()["error"] == "unauthorized"
    assert response.json()["status"] == 401


def test_unauthorized_with_invalid_api_key(client):
    response = client.get("/api/candlesticks", headers={"X-API-Key": "invalid-key"})
    assert response.status_code == 401
    assert "invalid-key" not in response.text


def test_authorized_with_valid_api_key(client, auth):
    assert client.get("/api/candlesticks", headers=auth).status_code == 200
    assert client.get("/api/candlesticks", headers={"X-API-Key": SECOND_KEY}).status_code == 200


def test_authentication_does_not_leak_between_requests(client, auth):
    assert client.get("/api/candlesticks", headers=auth).status_code == 200
    assert client.get("/api/candlesticks").status_code == 401


def test_list_returns_records_in_insertion_order(client, auth):
    response = client.get("/api/candlesticks", headers=auth)
    body = response.json()
    items = _candlesticks(response)

    assert [c["timestamp"] for c in items] == [1753038000, 1753124400]
    assert items[0]["open"] == 100.0
    assert items[1]["close"] == 104.0
    assert items[0]["symbol"] == "BOL.ST"
    assert items[0]["_links"]["self"]["href"].endswith(f"/api/candlesticks/{items[0]['id']}")
    assert body["page"] == {"size": 20, "totalElements": 2, "totalPages": 1, "number": 0}
    assert "next" not in body["_links"]


def test_list_pagination_links(client, auth):
    response = client.get("/api/candlesticks", params={"page": 0, "size": 1}, headers=auth)
    body = response.json()

    assert len(_candlesticks(response)) == 1
    assert body["page"]["totalPages"] == 2
    assert "page=1" in body["_links"]["next"]["href"]
    assert "prev" not in body["_links"]

    second = client.get("/api/candlesticks", params={"page": 1, "size": 1}, headers=auth)
    assert _candlesticks(second)[0]["close"] == 104.0
    assert "prev" in second.json()["_links"]


def test_page_past_the_end_is_empty(client, auth):
    response = client.get("/api/candlesticks", params={"page": 5}, headers=auth)
    assert response.status_code == 200
    assert _candlesticks(response) == []


def test_list_sorted_descending(client, auth):
    response = client.get("/api/candlesticks", params={"sort": "timestamp,desc"}, headers=auth)
    assert [c["timestamp"] for c in _candlesticks(response)] == [1753124400, 1753038000]


def test_list_rejects_unknown_sort_field(client, auth):
    response = client.get("/api/candlesticks", params={"sort": "price,desc"}, headers=auth)
    assert response.status_code == 400
    assert response.json()["error"] == "request_failed"


def test_non_positive_page_size_falls_back_to_default(client, auth):
    for size in (0, -5):
        response = client.get("/api/candlesticks", params={"size": size}, headers=auth)
        assert response.status_code == 200
        assert response.json()["page"]["size"] == 20
        assert len(_candlesticks(response)) == 2


def test_negative_page_is_validation_error(client, auth):
    response = client.get("/api/candlesticks", params={"page": -1}, headers=auth)
    assert response.status_code == 422
    assert response.json()["error"] == "validation_error"


def test_huge_page_number_is_empty_not_server_error(client, auth):
    response = client.get("/api/candlesticks", params={"page": "10000000000000000000"}, headers=auth)
    assert response.status_code == 200
    assert _candlesticks(response) == []


def test_get_by_id(client, auth, seed):
    response = client.get(f"/api/candlesticks/{seed[1]}", headers=auth)
    assert response.status_code == 200
    assert response.json()["close"] == 104.0
    assert response.json()["volume"] == 6000


def test_get_by_unknown_id_is_not_found(client, auth):
    response = client.get("/api/candlesticks/9999", headers=auth)
    assert response.status_code == 404
    assert response.json() == {"error": "request_failed", "details": "Candlestick 9999 not found", "status": 404}


def test_get_by_id_beyond_64_bits_is_not_found(client, auth):
    response = client.get("/api/candlesticks/99999999999999999999", headers=auth)
    assert response.status_code == 404


def test_get_by_id_requires_key(client, seed):
    assert client.get(f"/api/candlesticks/{seed[0]}").status_code == 401


def test_search_by_symbol(client, auth):
    response = client.get("/api/candlesticks/search/by-symbol", params={"symbol": "BOL.ST"}, headers=auth)
    assert response.status_code == 200
    assert len(_candlesticks(response)) == 2
    assert "page" not in response.json()


def test_search_by_unknown_symbol_is_empty_not_404(client, auth):
    response = client.get("/api/candlesticks/search/by-symbol", params={"symbol": "XXX.ST"}, headers=auth)
    assert response.status_code == 200
    assert _candlesticks(response) == []


def test_search_by_empty_symbol_is_empty(client, auth):
    response = client.get("/api/candlesticks/search/by-symbol", params={"symbol": ""}, headers=auth)
    assert response.status_code == 200
    assert _candlesticks(response) == []


def test_search_by_symbol_is_case_sensitive(client, auth):
    response = client.get("/api/candlesticks/search/by-symbol", params={"symbol": "bol.st"}, headers=auth)
    assert _candlesticks(response) == []


def test_search_requires_key(client):
    response = client.get("/api/candlesticks/search/by-symbol", params={"symbol": "BOL.ST"})
    assert response.status_code == 401


def test_index_resources_link_to_collection(client, auth):
    index = client.get("/api", headers=auth).json()
    assert index["_links"]["candlesticks"]["href"].endswith("/api/candlesticks")

    search = client.get("/api/candlesticks/search", headers=auth).json()
    assert search["_links"]["by-symbol"]["href"].endswith("/api/candlesticks/search/by-symbol")


def test_unknown_path_requires_authentication(client, auth):
    assert client.get("/not-a-route").status_code == 401
    assert client.get("/not-a-route", headers=auth).status_code == 404


def test_documentation_is_public(client):
    openapi = client.get("/v3/api-docs")
    assert openapi.status_code == 200
    assert openapi.json()["components"]["securitySchemes"]["ApiKeyAuth"] == {
        "type": "apiKey",
        "in": "header",
        "name": "X-API-Key",
    }
    assert client.get("/swagger-ui/index.html").status_code == 200
    assert client.get("/api-docs/redoc").status_code == 200


def test_documentation_ignores_invalid_key(client):
    assert client.get("/v3/api-docs", headers={"X-API-Key": "invalid-key"}).status_code == 200


def test_health_reports_database_and_request_outcomes(client, auth):
    client.get("/api/candlesticks", headers=auth)
    client.get("/api/candlesticks")
    client.post("/api/candlesticks", headers=auth)
    response = client.get("/health", headers=auth)
    body = response.json()

    assert response.status_code == 200
    assert body["status"] == "healthy"
    assert body["database"] == {"healthy": True, "candlestick_count": 2}
    assert body["requests"]["total"] >= 3
    assert body["requests"]["unauthorized"] == 1
    assert body["requests"]["method_not_allowed"] == 1
    assert body["requests"]["server_errors"] == 0


def test_health_requires_key(client):
    assert client.get("/health").status_code == 401


def test_custom_api_key_header_is_used_everywhere(app_settings):
    custom = app_settings.model_copy(update={"api_key_header": "X-Client-Key"})
    with TestClient(create_app(custom)) as custom_client:
        assert custom_client.get("/api/candlesticks", headers={"X-Client-Key": VALID_KEY}).status_code == 200

        rejected = custom_client.get("/api/candlesticks", headers={"X-API-Key": VALID_KEY})
        assert rejected.status_code == 401
        assert rejected.headers["WWW-Authenticate"] == 'ApiKey header="X-Client-Key"'

        scheme = custom_client.get("/v3/api-docs").json()["components"]["securitySchemes"]["ApiKeyAuth"]
        assert scheme["name"] == "X-Client-Key"
