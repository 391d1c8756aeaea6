"""
HTTP surface tests: routes wired to a container on the in-memory store.
"""
import pytest

from conftest import (
    BUSINESS_ID,
    CONSUMER_ID,
    WEBHOOK_TOKEN,
    auth_headers,
    make_offer,
    reserve,
    reserve_and_confirm,
    settled_event,
)

WEBHOOK_HEADERS = {"asaas-access-token": WEBHOOK_TOKEN}


class TestReservationRoutes:

    @pytest.mark.asyncio
    async def test_requires_bearer_token(self, client):
        response = await client.post("/api/reservations", json={"offer_id": "offer-1"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_consumer_reserves_and_gets_payable_reference(self, client, store):
        response = await client.post(
            "/api/reservations", json={"offer_id": "offer-1"}, headers=auth_headers(CONSUMER_ID, "consumer")
        )

        assert response.status_code == 201
        data = response.json()
        assert data["expires_in_seconds"] == 900
        assert data["payable_reference"]["charge_id"].startswith("charge-")
        assert (await store.get_offer("offer-1")).available_units == 4

    @pytest.mark.asyncio
    async def test_business_role_cannot_reserve(self, client):
        response = await client.post(
            "/api/reservations", json={"offer_id": "offer-1"}, headers=auth_headers(BUSINESS_ID, "business")
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_exhausted_offer_returns_conflict_with_reason(self, client, store, clock):
        store.add_offer(make_offer("sold-out", units=3, available=0, now=clock.now))

        response = await client.post(
            "/api/reservations", json={"offer_id": "sold-out"}, headers=auth_headers(CONSUMER_ID, "consumer")
        )

        assert response.status_code == 409
        assert response.json()["error"] == "failed-precondition"
        assert response.json()["reason"] == "exhausted"

    @pytest.mark.asyncio
    async def test_unknown_offer_is_404(self, client):
        response = await client.post(
            "/api/reservations", json={"offer_id": "missing"}, headers=auth_headers(CONSUMER_ID, "consumer")
        )

        assert response.status_code == 404
        assert response.json()["error"] == "not-found"

    @pytest.mark.asyncio
    async def test_gateway_failure_is_500_and_unit_released(self, client, store, gateway):
        gateway.fail_with()

        response = await client.post(
            "/api/reservations", json={"offer_id": "offer-1"}, headers=auth_headers(CONSUMER_ID, "consumer")
        )

        assert response.status_code == 500
        assert response.json()["error"] == "internal"
        assert (await store.get_offer("offer-1")).available_units == 5

    @pytest.mark.asyncio
    async def test_owner_cancels_confirmed_reservation(self, client, container, store):
        reservation = await reserve_and_confirm(container)

        response = await client.post(
            f"/api/reservations/{reservation.id}/cancel",
            json={"reason": "Plans changed"},
            headers=auth_headers(CONSUMER_ID, "consumer"),
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        assert (await store.get_offer("offer-1")).available_units == 5

    @pytest.mark.asyncio
    async def test_cancel_without_body_and_by_other_consumer(self, client, container):
        reservation = await reserve_and_confirm(container)

        denied = await client.post(
            f"/api/reservations/{reservation.id}/cancel", headers=auth_headers("consumer-2", "consumer")
        )
        allowed = await client.post(
            f"/api/reservations/{reservation.id}/cancel", headers=auth_headers(CONSUMER_ID, "consumer")
        )

        assert denied.status_code == 403
        assert allowed.status_code == 200


class TestPixWebhookRoute:

    @pytest.mark.asyncio
    async def test_confirms_then_acknowledges_duplicate(self, client, container, store):
        reservation = await reserve(container)
        event = settled_event(reservation.correlation_token)

        first = await client.post("/api/webhooks/pix", json=event, headers=WEBHOOK_HEADERS)
        second = await client.post("/api/webhooks/pix", json=event, headers=WEBHOOK_HEADERS)

        assert first.status_code == 200
        assert first.json() == {"status": "confirmed"}
        assert second.status_code == 200
        assert second.json() == {"status": "duplicate"}
        assert (await store.get_reservation(reservation.id)).redemption_code is not None

    @pytest.mark.asyncio
    async def test_wrong_token_is_401(self, client, container):
        reservation = await reserve(container)

        response = await client.post(
            "/api/webhooks/pix",
            json=settled_event(reservation.correlation_token),
            headers={"asaas-access-token": "wrong"},
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_malformed_body_is_400(self, client):
        response = await client.post(
            "/api/webhooks/pix",
            content=b"{not json",
            headers={**WEBHOOK_HEADERS, "Content-Type": "application/json"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_late_payment_is_acknowledged_and_listed_for_admins(self, client, container, clock):
        reservation = await reserve(container)
        clock.advance(minutes=20)
        await container.reclaimer.reclaim_expired_reservations()

        response = await client.post(
            "/api/webhooks/pix",
            json=settled_event(reservation.correlation_token, payment_id="pay_late"),
            headers=WEBHOOK_HEADERS,
        )
        assert response.status_code == 200
        assert response.json() == {"status": "late-payment"}

        anomalies = await client.get(
            "/api/admin/payment-anomalies", headers=auth_headers("admin-1", "admin")
        )
        assert anomalies.status_code == 200
        [anomaly] = anomalies.json()["anomalies"]
        assert anomaly["reservation_id"] == reservation.id
        assert anomaly["status"] == "expired"
        assert anomaly["gateway_payment_id"] == "pay_late"

    @pytest.mark.asyncio
    async def test_anomalies_require_admin(self, client):
        response = await client.get(
            "/api/admin/payment-anomalies", headers=auth_headers(CONSUMER_ID, "consumer")
        )

        assert response.status_code == 403


class TestVoucherRoutes:

    @pytest.mark.asyncio
    async def test_validate_then_redeem(self, client, container):
        reservation = await reserve_and_confirm(container)
        headers = auth_headers(BUSINESS_ID, "business")

        validated = await client.post(
            "/api/vouchers/validate", json={"code": reservation.redemption_code}, headers=headers
        )
        redeemed = await client.post(
            "/api/vouchers/redeem", json={"code": reservation.redemption_code}, headers=headers
        )
        again = await client.post(
            "/api/vouchers/redeem", json={"code": reservation.redemption_code}, headers=headers
        )

        assert validated.status_code == 200
        assert validated.json()["status"] == "confirmed"
        assert redeemed.status_code == 200
        assert redeemed.json()["status"] == "used"
        assert again.status_code == 409
        assert again.json()["reason"] == "wrong-status"

    @pytest.mark.asyncio
    async def test_consumer_cannot_redeem(self, client, container):
        reservation = await reserve_and_confirm(container)

        response = await client.post(
            "/api/vouchers/redeem",
            json={"code": reservation.redemption_code},
            headers=auth_headers(CONSUMER_ID, "consumer"),
        )

        assert response.status_code == 403


@pytest.mark.asyncio
async def test_health_reports_store(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["store"] == "connected"
    assert response.json()["store_backend"] == "memory"
