from conftest import ROUTE_GEOMETRY


def test_health_check(client):
    rv = client.get("/")
    assert rv.status_code == 200
    assert rv.json() == {"status": "ok", "message": "Itera API is online and ready."}
    assert "X-Request-ID" in rv.headers


def test_suggestions_end_to_end_with_cache(client, upstream):
    rv = client.post("/api/suggestions", json={"query": "Abid"})
    assert rv.status_code == 200
    data = rv.json()
    assert len(data) == 3
    assert data[0] == {"id": "place.1", "place_name": "Abidjan, Côte d'Ivoire", "center": [-4.0083, 5.35995]}
    assert [item["id"] for item in data] == [f["id"] for f in upstream.features]

    again = client.post("/api/suggestions", json={"query": "Abid"})
    assert again.json() == data
    assert len(upstream.geocoding_requests) == 1


def test_short_query_returns_empty_list(client, upstream):
    for body in ({"query": "A"}, {"query": "  "}, {}):
        rv = client.post("/api/suggestions", json=body)
        assert rv.status_code == 200
        assert rv.json() == []
    assert upstream.requests == []


def test_suggestions_carry_rate_limit_headers(client):
    rv = client.post("/api/suggestions", json={"query": "Abid"})
    assert rv.headers["RateLimit-Limit"] == "30"
    assert rv.headers["RateLimit-Remaining"] == "29"
    assert rv.headers["RateLimit-Reset"] == "10"


def test_thirty_first_suggestion_request_is_rate_limited(client, clock):
    headers = {"X-Forwarded-For": "203.0.113.9, 10.0.0.1"}
    for _ in range(30):
        assert client.post("/api/suggestions", json={"query": "Abid"}, headers=headers).status_code == 200

    rv = client.post("/api/suggestions", json={"query": "Abid"}, headers=headers)
    assert rv.status_code == 429
    assert rv.json()["detail"]["error"] == "RATE_LIMIT_EXCEEDED"
    assert rv.headers["Retry-After"] == "10"
    assert rv.headers["RateLimit-Remaining"] == "0"

    # Another client is unaffected
    other = client.post("/api/suggestions", json={"query": "Abid"}, headers={"X-Forwarded-For": "203.0.113.10"})
    assert other.status_code == 200

    clock.advance(10)
    assert client.post("/api/suggestions", json={"query": "Abid"}, headers=headers).status_code == 200


def test_other_endpoints_are_not_rate_limited(client):
    for _ in range(35):
        assert client.post("/api/geocode", json={"location": "Abidjan"}).status_code == 200


def test_suggestions_upstream_error_is_502(client, upstream):
    upstream.status_code = 500
    rv = client.post("/api/suggestions", json={"query": "Abid"})
    assert rv.status_code == 502
    assert rv.json()["detail"]["error"] == "UPSTREAM_ERROR"


def test_suggestions_timeout_is_500(client, upstream):
    upstream.timeout = True
    rv = client.post("/api/suggestions", json={"query": "Abid"})
    assert rv.status_code == 500
    assert rv.json()["detail"]["error"] == "INTERNAL_SERVER_ERROR"


def test_geocode(client):
    rv = client.post("/api/geocode", json={"location": "Abidjan"})
    assert rv.status_code == 200
    assert rv.json() == {"coordinates": [-4.0083, 5.35995]}


def test_geocode_errors(client, upstream):
    assert client.post("/api/geocode", json={}).status_code == 400
    assert client.post("/api/geocode", json={"location": ""}).status_code == 400

    upstream.features = []
    rv = client.post("/api/geocode", json={"location": "Nowhere"})
    assert rv.status_code == 404
    assert rv.json()["detail"]["error"] == "NOT_FOUND"

    upstream.status_code = 403
    assert client.post("/api/geocode", json={"location": "Abidjan"}).status_code == 502

    upstream.timeout = True
    assert client.post("/api/geocode", json={"location": "Abidjan"}).status_code == 500


def test_route_end_to_end(client):
    rv = client.post("/api/route", json={"start": [-4.02, 5.32], "end": [-3.98, 5.35]})
    assert rv.status_code == 200
    assert rv.json() == {
        "distance": 12345,
        "duration": 900,
        "feature": {
            "type": "Feature",
            "properties": {"distance": 12345, "duration": 900},
            "geometry": ROUTE_GEOMETRY,
        },
    }
    assert isinstance(rv.json()["distance"], int)
    assert isinstance(rv.json()["feature"]["properties"]["duration"], int)


def test_route_invalid_points_are_400(client, upstream):
    bodies = [
        {},
        {"start": [-4.02, 5.32]},
        {"start": [-4.02], "end": [-3.98, 5.35]},
        {"start": ["a", "b"], "end": [-3.98, 5.35]},
        {"start": "-4.02,5.32", "end": [-3.98, 5.35]},
        {"start": [10**400, 5.32], "end": [-3.98, 5.35]},
    ]
    for body in bodies:
        rv = client.post("/api/route", json=body)
        assert rv.status_code == 400
        assert rv.json()["detail"]["error"] == "INVALID_INPUT"
    assert upstream.requests == []


def test_route_upstream_failures(client, upstream):
    points = {"start": [-4.02, 5.32], "end": [-3.98, 5.35]}

    upstream.routes = []
    assert client.post("/api/route", json=points).status_code == 404

    upstream.status_code = 422
    assert client.post("/api/route", json=points).status_code == 502

    upstream.timeout = True
    assert client.post("/api/route", json=points).status_code == 500


def test_malformed_body_is_400(client):
    rv = client.post("/api/geocode", content=b"not json", headers={"Content-Type": "application/json"})
    assert rv.status_code == 400
    assert rv.json()["detail"]["error"] == "INVALID_INPUT"


def test_map_page_renders_client_config(client):
    rv = client.get("/map")
    assert rv.status_code == 200
    assert '"pk.test-public"' in rv.text
    assert '"http://localhost:5000"' in rv.text
    assert "/static/map.js" in rv.text


def test_cors_preflight(client):
    rv = client.options(
        "/api/route",
        headers={"Origin": "http://localhost:3000", "Access-Control-Request-Method": "POST"},
    )
    assert rv.status_code == 200
    assert rv.headers["access-control-allow-origin"] in ("*", "http://localhost:3000")


def test_incoming_request_id_is_echoed(client):
    rv = client.get("/", headers={"X-Request-ID": "req-123"})
    assert rv.headers["X-Request-ID"] == "req-123"
