from unittest.mock import MagicMock

import httpx
import pytest

from stripe_api import StripeClient


def stripe_returning(session):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == f"/v1/checkout/sessions/{session['id']}"
        return httpx.Response(200, json=session)
    return lambda: StripeClient(secret_key="sk_test_123", transport=httpx.MockTransport(handler))


@pytest.fixture
def verify_payment(load_function, monkeypatch):
    module = load_function("billing/verify-payment")
    purchases_db = MagicMock()
    purchases_db.query.return_value = [{"user_id": "u1", "id": "purchase-1", "status": "pending"}]
    monkeypatch.setattr(module, "purchases_db", purchases_db)
    return module


def test_paid_session_marks_purchases_paid(verify_payment, monkeypatch, make_event, body_of):
    monkeypatch.setattr(verify_payment, "_stripe_client", stripe_returning({
        "id": "cs_1", "payment_status": "paid", "payment_intent": "pi_1",
        "customer_details": {"email": "couple@example.com"},
    }))

    response = verify_payment.lambda_handler(make_event({"session_id": "cs_1"}), None)

    assert response["statusCode"] == 200
    assert body_of(response) == {"success": True, "payment_status": "paid", "customer_email": "couple@example.com"}
    verify_payment.purchases_db.query.assert_called_once()
    key, updates = verify_payment.purchases_db.update_item.call_args.args
    assert key == {"user_id": "u1", "id": "purchase-1"}
    assert updates["status"] == "paid"


@pytest.mark.parametrize("payment_status", ["unpaid", "no_payment_required"])
def test_unpaid_session_never_updates_purchases(verify_payment, monkeypatch, make_event, body_of, payment_status):
    monkeypatch.setattr(verify_payment, "_stripe_client", stripe_returning({
        "id": "cs_2", "payment_status": payment_status, "payment_intent": "pi_2",
    }))

    response = verify_payment.lambda_handler(make_event({"session_id": "cs_2"}), None)

    assert response["statusCode"] == 200
    assert body_of(response)["success"] is False
    verify_payment.purchases_db.update_item.assert_not_called()


def test_paid_session_without_intent_updates_nothing(verify_payment, monkeypatch, make_event):
    monkeypatch.setattr(verify_payment, "_stripe_client", stripe_returning({
        "id": "cs_3", "payment_status": "paid", "payment_intent": None,
    }))

    verify_payment.lambda_handler(make_event({"session_id": "cs_3"}), None)

    verify_payment.purchases_db.query.assert_not_called()


def test_missing_session_id_is_bad_request(verify_payment, make_event):
    assert verify_payment.lambda_handler(make_event({}), None)["statusCode"] == 400


def test_stripe_error_is_server_error(verify_payment, monkeypatch, make_event, body_of):
    handler = lambda request: httpx.Response(404, json={"error": {"message": "No such checkout.session"}})
    monkeypatch.setattr(verify_payment, "_stripe_client",
                        lambda: StripeClient(secret_key="sk_test_123", transport=httpx.MockTransport(handler)))

    response = verify_payment.lambda_handler(make_event({"session_id": "cs_missing"}), None)

    assert response["statusCode"] == 500
    assert body_of(response)["error"] == "No such checkout.session"


def test_missing_stripe_key_is_configuration_error(verify_payment, monkeypatch, make_event, body_of):
    monkeypatch.delenv("STRIPE_SECRET_KEY", raising=False)

    response = verify_payment.lambda_handler(make_event({"session_id": "cs_1"}), None)

    assert response["statusCode"] == 500
    assert body_of(response)["error"] == "Payment service configuration error"
