"""
Testes da interpretação de sonhos (ação cobrável) e do executor LLM
"""
import pytest
from datetime import datetime
from uuid import UUID
from unittest.mock import AsyncMock, patch
from app.services.entitlement_store import EntitlementStore
from app.services.interpreter import Interpretation, InterpretationError, interpret_dream, strip_fences
from conftest import auth_headers, make_subscription, make_user

VALID_JSON = (
    '{"mainThemes": ["freedom"], "emotionalTone": "serene", '
    '"symbols": [{"symbol": "ocean", "meaning": "the unconscious"}], '
    '"personalInsight": "You are ready to let go.", "guidance": "Breathe and trust the tide."}'
)

DREAM = {"dreamText": "I was flying over a silver ocean at night", "interpretationType": "deep"}


def _interpretation():
    return Interpretation.model_validate_json(VALID_JSON)


def _exhausted_free(db, **kw):
    now = datetime.utcnow()
    return make_user(db, free_used_this_month=3, free_month_start=datetime(now.year, now.month, 1), **kw)


def test_new_user_with_nothing_left_gets_402(client, db_session):
    """Cenário A"""
    signup = client.post(
        "/api/v1/auth/signup",
        json={"email": "a@example.com", "password": "sweet-dreams-42"},
    )
    assert signup.json()["user"]["credit_balance"] == 5
    token = signup.json()["access_token"]
    user_id = signup.json()["user"]["id"]

    # Esgota créditos e cota gratuita
    store = EntitlementStore(db_session)
    store.adjust_credits(UUID(user_id), -5, reason="test")
    for _ in range(3):
        store.claim_free_allotment(UUID(user_id), 3)

    with patch("app.routers.dreams.interpret_dream", new=AsyncMock(return_value=_interpretation())) as mock_llm:
        response = client.post(
            "/api/v1/dreams/interpret",
            json=DREAM,
            headers={"Authorization": f"Bearer {token}"},
        )

    assert response.status_code == 402
    mock_llm.assert_not_called()


def test_interpret_debits_credits_after_success(client, db_session):
    user = make_user(db_session, credits=5)
    with patch("app.routers.dreams.interpret_dream", new=AsyncMock(return_value=_interpretation())):
        response = client.post("/api/v1/dreams/interpret", json=DREAM, headers=auth_headers(user))

    assert response.status_code == 201
    data = response.json()
    assert data["charged_from"] == "credits"
    assert data["dream"]["interpretation"]["mainThemes"] == ["freedom"]

    db_session.expire_all()
    assert EntitlementStore(db_session).get_credits(user.id) == 2


def test_executor_failure_consumes_nothing(client, db_session):
    user = make_user(db_session, credits=5)
    with patch("app.routers.dreams.interpret_dream", new=AsyncMock(side_effect=InterpretationError())):
        response = client.post("/api/v1/dreams/interpret", json=DREAM, headers=auth_headers(user))

    assert response.status_code == 502
    db_session.expire_all()
    assert EntitlementStore(db_session).get_credits(user.id) == 5
    assert client.get("/api/v1/dreams", headers=auth_headers(user)).json() == []


def test_subscriber_deep_action_increments_counter(client, db_session, test_user):
    sub = make_subscription(db_session, test_user, plan="pro", used=99, limit=100)
    with patch("app.routers.dreams.interpret_dream", new=AsyncMock(return_value=_interpretation())):
        ok = client.post("/api/v1/dreams/interpret", json=DREAM, headers=auth_headers(test_user))
        denied = client.post("/api/v1/dreams/interpret", json=DREAM, headers=auth_headers(test_user))

    assert ok.status_code == 201
    assert ok.json()["charged_from"] == "subscription"
    assert denied.status_code == 402

    db_session.expire_all()
    db_session.refresh(sub)
    assert sub.monthly_deep_used == 100


def test_dream_ownership(client, db_session):
    owner = make_user(db_session, credits=5)
    other = make_user(db_session, email="other@example.com")
    with patch("app.routers.dreams.interpret_dream", new=AsyncMock(return_value=_interpretation())):
        dream_id = client.post("/api/v1/dreams/interpret", json=DREAM, headers=auth_headers(owner)).json()["dream"]["id"]

    assert client.get(f"/api/v1/dreams/{dream_id}", headers=auth_headers(owner)).status_code == 200
    assert client.get(f"/api/v1/dreams/{dream_id}", headers=auth_headers(other)).status_code == 404
    assert client.delete(f"/api/v1/dreams/{dream_id}", headers=auth_headers(owner)).status_code == 200
    assert client.get(f"/api/v1/dreams/{dream_id}", headers=auth_headers(owner)).status_code == 404


def test_therapist_export_requires_addon(client, db_session):
    user = make_user(db_session, credits=5)
    with patch("app.routers.dreams.interpret_dream", new=AsyncMock(return_value=_interpretation())):
        dream_id = client.post("/api/v1/dreams/interpret", json=DREAM, headers=auth_headers(user)).json()["dream"]["id"]

    url = f"/api/v1/dreams/{dream_id}/therapist-export"
    assert client.get(url, headers=auth_headers(user)).status_code == 403

    EntitlementStore(db_session).grant_addon(user.id, "therapist_pdf", reference="pi_export")
    response = client.get(url, headers=auth_headers(user))
    assert response.status_code == 200
    assert response.json()["main_themes"] == ["freedom"]


def test_usage_endpoint(client, db_session):
    user = _exhausted_free(db_session, credits=2)
    response = client.get("/api/v1/usage", headers=auth_headers(user))

    assert response.status_code == 200
    assert response.json()["free_remaining"] == 0
    assert response.json()["credit_balance"] == 2


def test_strip_fences():
    assert strip_fences("```json\n{\"a\": 1}\n```") == '{"a": 1}'
    assert strip_fences('{"a": 1}') == '{"a": 1}'


@pytest.mark.asyncio
async def test_interpreter_retries_once_on_invalid_json():
    with patch("app.services.interpreter._call_llm", new=AsyncMock(side_effect=["not json", f"```json\n{VALID_JSON}\n```"])) as mock_call:
        result = await interpret_dream("I was flying", "deep")

    assert mock_call.await_count == 2
    assert result.emotional_tone == "serene"
    assert "MUST be a single raw JSON object" in mock_call.await_args_list[1].args[1]


@pytest.mark.asyncio
async def test_interpreter_fails_after_two_invalid_outputs():
    with patch("app.services.interpreter._call_llm", new=AsyncMock(side_effect=["nope", '{"mainThemes": []}'])):
        with pytest.raises(InterpretationError):
            await interpret_dream("I was flying", "basic")
