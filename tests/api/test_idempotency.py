"""Tests for idempotency middleware.

Tests:
- Idempotency key handling
- Response replay
- Request body conflict detection
"""

from fastapi import Response

from craftly_orders.api.idempotency import honours_idempotency, route_regex, should_record


# ============================================================================
# Route Matching Tests
# ============================================================================


class TestRouteRegex:
    """Tests for route template compilation."""

    def test_matches_exact_path(self):
        assert route_regex("/api/orders").fullmatch("/api/orders")

    def test_placeholder_matches_one_segment(self):
        regex = route_regex("/api/orders/{order_id}/status")
        assert regex.fullmatch("/api/orders/abc123/status")
        assert not regex.fullmatch("/api/orders/abc/123/status")

    def test_literal_segments_must_match(self):
        assert not route_regex("/api/orders/{order_id}/status").fullmatch("/api/orders/abc/receipt")


class TestHonoursIdempotency:
    def test_order_creation(self):
        assert honours_idempotency("POST", "/api/orders") is True
        assert honours_idempotency("POST", "/api/orders/") is True

    def test_transitions(self):
        assert honours_idempotency("POST", "/api/orders/abc/status") is True
        assert honours_idempotency("POST", "/api/orders/abc/payment-status") is True
        assert honours_idempotency("POST", "/api/orders/abc/receipt") is True
        assert honours_idempotency("POST", "/api/admin/orders/abc/force-status") is True

    def test_reads_are_ignored(self):
        assert honours_idempotency("GET", "/api/orders/buyer-1") is False

    def test_unknown_routes_are_ignored(self):
        assert honours_idempotency("POST", "/unknown/endpoint") is False


class TestShouldRecord:
    """Responses the client is told to retry are not remembered."""

    def test_success_and_client_errors_recorded(self):
        assert should_record(Response(status_code=201))
        assert should_record(Response(status_code=403))

    def test_server_errors_skipped(self):
        assert not should_record(Response(status_code=503))

    def test_retry_after_skipped(self):
        assert not should_record(Response(status_code=409, headers={"Retry-After": "1"}))


# ============================================================================
# Middleware Tests
# ============================================================================


class TestIdempotencyMiddleware:
    """End-to-end behaviour through the app."""

    def test_replays_status_change(self, client, create_order):
        """A retried request returns the original response without a second write."""
        order = create_order()
        url = f"/api/orders/{order['id']}/status"
        headers = {"x-user-id": "seller-a", "Idempotency-Key": "status-1"}

        first = client.post(url, json={"status": "processing"}, headers=headers)
        second = client.post(url, json={"status": "processing"}, headers=headers)

        assert first.status_code == 200
        assert second.status_code == 200
        assert second.headers.get("X-Idempotent-Replayed") == "true"
        assert second.json() == first.json()
        assert "X-Idempotent-Replayed" not in first.headers

    def test_replays_order_creation(self, client, order_payload):
        headers = {"x-user-id": "buyer-1", "Idempotency-Key": "checkout-9"}

        first = client.post("/api/orders", json=order_payload, headers=headers)
        second = client.post("/api/orders", json=order_payload, headers=headers)

        assert first.status_code == 201
        assert second.status_code == 201
        assert second.json()["data"]["id"] == first.json()["data"]["id"]

    def test_key_reused_with_different_body(self, client, create_order):
        order = create_order()
        url = f"/api/orders/{order['id']}/status"
        headers = {"x-user-id": "seller-a", "Idempotency-Key": "status-1"}
        client.post(url, json={"status": "processing"}, headers=headers)

        response = client.post(url, json={"status": "shipped"}, headers=headers)

        assert response.status_code == 409
        assert response.json()["error_code"] == "IDEMPOTENCY_CONFLICT"

    def test_keys_do_not_cross_users(self, client, create_order):
        order = create_order()
        url = f"/api/orders/{order['id']}/status"
        client.post(
            url,
            json={"status": "processing"},
            headers={"x-user-id": "seller-a", "Idempotency-Key": "k"},
        )

        response = client.post(
            url,
            json={"status": "processing"},
            headers={"x-user-id": "someone-else", "Idempotency-Key": "k"},
        )

        assert response.status_code == 404
        assert "X-Idempotent-Replayed" not in response.headers

    def test_errors_are_replayed_too(self, client, create_order):
        """A rejected request stays rejected on retry."""
        order = create_order()
        url = f"/api/orders/{order['id']}/status"
        headers = {"x-user-id": "buyer-1", "Idempotency-Key": "cancel-1"}

        first = client.post(url, json={"status": "shipped"}, headers=headers)
        second = client.post(url, json={"status": "shipped"}, headers=headers)

        assert first.status_code == 403
        assert second.status_code == 403
        assert second.headers.get("X-Idempotent-Replayed") == "true"

    def test_without_key_nothing_is_replayed(self, client, create_order):
        order = create_order()
        url = f"/api/orders/{order['id']}/status"

        client.post(url, json={"status": "processing"}, headers={"x-user-id": "seller-a"})
        response = client.post(url, json={"status": "processing"}, headers={"x-user-id": "seller-a"})

        assert "X-Idempotent-Replayed" not in response.headers
        assert response.json()["changed"] is False
