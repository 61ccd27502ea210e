"""
Testes dos endpoints de assinatura e compras (Stripe mockado)
"""
import pytest
import stripe
from datetime import datetime, timedelta
from unittest.mock import patch
from app.database import SessionLocal
from app.exceptions import Conflict
from app.services.billing import BillingService
from app.services.entitlement_store import EntitlementStore
from app.models.credit_transaction import CreditTransaction
from app.models.subscription import Subscription
from conftest import auth_headers, make_subscription, make_user


@pytest.fixture
def stripe_mocks():
    """Substitui as chamadas ao SDK do Stripe usadas no checkout"""
    with patch("app.services.payment_provider.stripe.Customer.create") as customer_create, \
            patch("app.services.payment_provider.stripe.Customer.modify") as customer_modify, \
            patch("app.services.payment_provider.stripe.PaymentMethod.attach") as pm_attach, \
            patch("app.services.payment_provider.stripe.Subscription.create") as sub_create, \
            patch("app.services.payment_provider.stripe.Subscription.modify") as sub_modify, \
            patch("app.services.payment_provider.stripe.Subscription.cancel") as sub_cancel, \
            patch("app.services.payment_provider.stripe.PaymentIntent.create") as pi_create:
        customer_create.return_value = {"id": "cus_new"}
        sub_create.return_value = {
            "id": "sub_created",
            "customer": "cus_new",
            "status": "incomplete",
            "cancel_at_period_end": False,
            "items": {"data": [{"price": {"id": "price_pro_test"}, "current_period_end": 1893456000}]},
            "latest_invoice": {"confirmation_secret": {"client_secret": "pi_secret_sub"}},
        }
        sub_modify.return_value = {"id": "sub_created", "status": "active", "cancel_at_period_end": True}
        pi_create.return_value = {"id": "pi_new", "status": "requires_action", "client_secret": "pi_secret"}
        yield {
            "customer_create": customer_create,
            "customer_modify": customer_modify,
            "pm_attach": pm_attach,
            "sub_create": sub_create,
            "sub_modify": sub_modify,
            "sub_cancel": sub_cancel,
            "pi_create": pi_create,
        }


def test_requires_authentication(client):
    response = client.get("/api/v1/subscriptions/status")
    assert response.status_code == 401


def test_status_without_subscription_is_free_tier(client, test_user):
    response = client.get("/api/v1/subscriptions/status", headers=auth_headers(test_user))
    assert response.status_code == 200
    data = response.json()
    assert data["plan"] == "free"
    assert data["status"] == "none"
    assert data["active"] is False


def test_create_subscription_twice_yields_201_then_409(client, db_session, test_user, stripe_mocks):
    body = {"plan": "pro", "paymentMethodId": "pm_card_visa"}

    first = client.post("/api/v1/subscriptions/create", json=body, headers=auth_headers(test_user))
    assert first.status_code == 201
    assert first.json()["status"] == "incomplete"
    assert first.json()["client_secret"] == "pi_secret_sub"

    # Sem webhook entre as chamadas: o documento continua incomplete
    second = client.post("/api/v1/subscriptions/create", json=body, headers=auth_headers(test_user))
    assert second.status_code == 409

    db_session.expire_all()
    assert db_session.query(Subscription).filter(Subscription.user_id == test_user.id).count() == 1
    assert EntitlementStore(db_session).get_subscription(test_user.id).stripe_subscription_id == "sub_created"
    assert stripe_mocks["sub_create"].call_count == 1
    stripe_mocks["customer_create"].assert_called_once()


def test_create_subscription_while_active_is_409(client, db_session, test_user, stripe_mocks):
    make_subscription(db_session, test_user, plan="basic", limit=None)

    response = client.post(
        "/api/v1/subscriptions/create",
        json={"plan": "pro", "paymentMethodId": "pm_card_visa"},
        headers=auth_headers(test_user),
    )
    assert response.status_code == 409
    stripe_mocks["sub_create"].assert_not_called()


def test_concurrent_create_subscription_loser_gets_409(client, db_session, test_user, stripe_mocks):
    user_id = test_user.id
    remote = stripe_mocks["sub_create"].return_value
    competing = []

    def _competing_checkout(*args, **kwargs):
        # Outra requisição do mesmo usuário chega enquanto o Stripe responde
        other = SessionLocal()
        try:
            BillingService(EntitlementStore(other)).create_subscription(user_id, "basic", "pm_other")
        except Conflict as exc:
            competing.append(exc.status_code)
        finally:
            other.close()
        return remote

    stripe_mocks["sub_create"].side_effect = _competing_checkout

    response = client.post(
        "/api/v1/subscriptions/create",
        json={"plan": "pro", "paymentMethodId": "pm_card_visa"},
        headers=auth_headers(test_user),
    )

    assert response.status_code == 201
    assert competing == [409]
    assert stripe_mocks["sub_create"].call_count == 1

    db_session.expire_all()
    rows = db_session.query(Subscription).filter(Subscription.user_id == user_id).all()
    assert len(rows) == 1
    assert rows[0].plan == "pro"
    assert rows[0].stripe_subscription_id == "sub_created"


def test_abandoned_incomplete_checkout_can_be_retried(client, db_session, test_user, stripe_mocks):
    make_subscription(
        db_session,
        test_user,
        status="incomplete",
        stripe_subscription_id="sub_abandoned",
        updated_at=datetime.utcnow() - timedelta(days=2),
    )

    response = client.post(
        "/api/v1/subscriptions/create",
        json={"plan": "pro", "paymentMethodId": "pm_card_visa"},
        headers=auth_headers(test_user),
    )
    assert response.status_code == 201
    db_session.expire_all()
    assert EntitlementStore(db_session).get_subscription(test_user.id).stripe_subscription_id == "sub_created"


def test_resubscribe_after_cancellation(client, db_session, test_user, stripe_mocks):
    make_subscription(db_session, test_user, plan="basic", status="canceled", limit=None, last_invoice_id="in_old")

    response = client.post(
        "/api/v1/subscriptions/create",
        json={"plan": "pro", "paymentMethodId": "pm_card_visa"},
        headers=auth_headers(test_user),
    )
    assert response.status_code == 201

    db_session.expire_all()
    sub = EntitlementStore(db_session).get_subscription(test_user.id)
    assert sub.plan == "pro"
    assert sub.monthly_deep_limit == 100
    assert sub.last_invoice_id is None


def test_create_subscription_writes_provisional_record(client, db_session, test_user, stripe_mocks):
    client.post(
        "/api/v1/subscriptions/create",
        json={"plan": "pro", "paymentMethodId": "pm_card_visa"},
        headers=auth_headers(test_user),
    )

    db_session.expire_all()
    sub = EntitlementStore(db_session).get_subscription(test_user.id)
    assert sub.stripe_subscription_id == "sub_created"
    assert sub.plan == "pro"
    assert sub.monthly_deep_limit == 100
    assert sub.monthly_deep_used == 0
    db_session.refresh(test_user)
    assert test_user.stripe_customer_id == "cus_new"

    _, kwargs = stripe_mocks["sub_create"].call_args
    assert kwargs["items"] == [{"price": "price_pro_test"}]
    assert kwargs["metadata"]["user_id"] == str(test_user.id)


def test_create_subscription_invalid_plan_is_400(client, test_user, stripe_mocks):
    response = client.post(
        "/api/v1/subscriptions/create",
        json={"plan": "platinum", "paymentMethodId": "pm_card_visa"},
        headers=auth_headers(test_user),
    )
    assert response.status_code == 400
    stripe_mocks["sub_create"].assert_not_called()


def test_card_declined_passes_provider_message(client, db_session, test_user, stripe_mocks):
    stripe_mocks["pm_attach"].side_effect = stripe.CardError(
        "Your card has insufficient funds.", None, "card_declined"
    )
    response = client.post(
        "/api/v1/subscriptions/create",
        json={"plan": "basic", "paymentMethodId": "pm_card_chargeDeclined"},
        headers=auth_headers(test_user),
    )

    assert response.status_code == 402
    assert response.json()["detail"] == "Your card has insufficient funds."
    db_session.expire_all()
    assert EntitlementStore(db_session).get_subscription(test_user.id) is None


def test_provider_outage_is_502_and_writes_nothing(client, db_session, test_user, stripe_mocks):
    stripe_mocks["sub_create"].side_effect = stripe.APIConnectionError("timeout")
    response = client.post(
        "/api/v1/subscriptions/create",
        json={"plan": "pro", "paymentMethodId": "pm_card_visa"},
        headers=auth_headers(test_user),
    )

    assert response.status_code == 502
    db_session.expire_all()
    assert EntitlementStore(db_session).get_subscription(test_user.id) is None


def test_cancel_twice_yields_success_then_409(client, db_session, test_user, stripe_mocks):
    make_subscription(db_session, test_user, plan="pro")

    first = client.post("/api/v1/subscriptions/cancel", headers=auth_headers(test_user))
    assert first.status_code == 200
    assert first.json()["cancel_at_period_end"] is True
    assert first.json()["status"] == "active"

    second = client.post("/api/v1/subscriptions/cancel", headers=auth_headers(test_user))
    assert second.status_code == 409
    stripe_mocks["sub_modify"].assert_called_once()


def test_cancel_without_subscription_is_404(client, test_user, stripe_mocks):
    response = client.post("/api/v1/subscriptions/cancel", headers=auth_headers(test_user))
    assert response.status_code == 404


def test_failed_checkout_restores_previous_subscription(client, db_session, test_user, stripe_mocks):
    make_subscription(db_session, test_user, plan="basic", status="canceled", limit=None)
    stripe_mocks["pm_attach"].side_effect = stripe.CardError("Your card was declined.", None, "card_declined")

    response = client.post(
        "/api/v1/subscriptions/create",
        json={"plan": "pro", "paymentMethodId": "pm_card_chargeDeclined"},
        headers=auth_headers(test_user),
    )
    assert response.status_code == 402

    db_session.expire_all()
    sub = EntitlementStore(db_session).get_subscription(test_user.id)
    assert sub.status == "canceled"
    assert sub.plan == "basic"

    # A reserva desfeita permite tentar de novo
    stripe_mocks["pm_attach"].side_effect = None
    retry = client.post(
        "/api/v1/subscriptions/create",
        json={"plan": "pro", "paymentMethodId": "pm_card_visa"},
        headers=auth_headers(test_user),
    )
    assert retry.status_code == 201


def test_resume_scheduled_cancellation(client, db_session, test_user, stripe_mocks):
    sub = make_subscription(db_session, test_user, plan="pro", cancel_at_period_end=True)

    response = client.post("/api/v1/subscriptions/resume", headers=auth_headers(test_user))
    assert response.status_code == 200
    assert response.json()["cancel_at_period_end"] is False
    assert response.json()["status"] == "active"
    stripe_mocks["sub_modify"].assert_called_once_with(sub.stripe_subscription_id, cancel_at_period_end=False)

    db_session.expire_all()
    assert EntitlementStore(db_session).get_subscription(test_user.id).cancel_at_period_end is False

    again = client.post("/api/v1/subscriptions/resume", headers=auth_headers(test_user))
    assert again.status_code == 409


def test_cancel_then_resume(client, db_session, test_user, stripe_mocks):
    make_subscription(db_session, test_user, plan="pro")

    assert client.post("/api/v1/subscriptions/cancel", headers=auth_headers(test_user)).status_code == 200
    assert client.post("/api/v1/subscriptions/resume", headers=auth_headers(test_user)).status_code == 200

    status = client.get("/api/v1/subscriptions/status", headers=auth_headers(test_user)).json()
    assert status["cancel_at_period_end"] is False
    assert status["active"] is True


def test_resume_without_subscription_is_404(client, db_session, test_user, stripe_mocks):
    assert client.post("/api/v1/subscriptions/resume", headers=auth_headers(test_user)).status_code == 404

    make_subscription(db_session, test_user, status="canceled")
    assert client.post("/api/v1/subscriptions/resume", headers=auth_headers(test_user)).status_code == 404
    stripe_mocks["sub_modify"].assert_not_called()


def test_purchase_credits_does_not_grant_locally(client, db_session, test_user, stripe_mocks):
    response = client.post(
        "/api/v1/credits/purchase",
        json={"pack": "10", "paymentMethodId": "pm_card_visa"},
        headers=auth_headers(test_user),
    )

    assert response.status_code == 200
    assert response.json()["payment_intent_id"] == "pi_new"
    assert response.json()["credits"] == 10

    _, kwargs = stripe_mocks["pi_create"].call_args
    assert kwargs["amount"] == 999
    assert kwargs["metadata"] == {
        "type": "credits",
        "pack": "10",
        "credits": "10",
        "user_id": str(test_user.id),
    }

    db_session.expire_all()
    assert EntitlementStore(db_session).get_credits(test_user.id) == 0
    assert db_session.query(CreditTransaction).count() == 0


def test_purchase_unknown_pack_is_400(client, test_user, stripe_mocks):
    response = client.post(
        "/api/v1/credits/purchase",
        json={"pack": "999", "paymentMethodId": "pm_card_visa"},
        headers=auth_headers(test_user),
    )
    assert response.status_code == 400
    stripe_mocks["pi_create"].assert_not_called()


def test_purchase_addon_already_active_is_409(client, db_session, test_user, stripe_mocks):
    EntitlementStore(db_session).grant_addon(test_user.id, "couples", reference="pi_old")

    response = client.post(
        "/api/v1/addons/purchase",
        json={"addonKey": "couples", "paymentMethodId": "pm_card_visa"},
        headers=auth_headers(test_user),
    )
    assert response.status_code == 409
    stripe_mocks["pi_create"].assert_not_called()


def test_purchase_addon_tolerates_attached_payment_method(client, test_user, stripe_mocks):
    stripe_mocks["pm_attach"].side_effect = stripe.InvalidRequestError(
        "The payment method is already attached", "payment_method"
    )
    response = client.post(
        "/api/v1/addons/purchase",
        json={"addonKey": "therapist_pdf", "paymentMethodId": "pm_card_visa"},
        headers=auth_headers(test_user),
    )

    assert response.status_code == 200
    _, kwargs = stripe_mocks["pi_create"].call_args
    assert kwargs["metadata"]["type"] == "addon"
    assert kwargs["metadata"]["addon_key"] == "therapist_pdf"


def test_delete_account_cancels_subscription_immediately(client, db_session, stripe_mocks):
    user = make_user(db_session, credits=3)
    sub = make_subscription(db_session, user)

    response = client.delete("/api/v1/account", headers=auth_headers(user))
    assert response.status_code == 200
    stripe_mocks["sub_cancel"].assert_called_once_with(sub.stripe_subscription_id)

    db_session.expire_all()
    assert db_session.query(Subscription).filter(Subscription.id == sub.id).first().status == "canceled"
    # Token do usuário apagado não autentica mais
    assert client.get("/api/v1/auth/me", headers=auth_headers(user)).status_code == 401


def test_delete_account_provider_error_changes_nothing(client, db_session, stripe_mocks):
    user = make_user(db_session)
    make_subscription(db_session, user)
    stripe_mocks["sub_cancel"].side_effect = stripe.APIError("boom")

    response = client.delete("/api/v1/account", headers=auth_headers(user))
    assert response.status_code == 502
    assert client.get("/api/v1/auth/me", headers=auth_headers(user)).status_code == 200
