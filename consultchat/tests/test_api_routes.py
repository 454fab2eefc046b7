"""End-to-end route tests with fake billing and LLM providers."""
import base64

from consultchat.features.chat.provider import LLMProviderError
from consultchat.tests.mocks import PERIOD_END, auth_header, make_subscription


def _chat(client, user="user_alice", **body):
    body.setdefault("plan", "blue")
    body.setdefault("message", "What rebar spacing do I need?")
    return client.post("/api/chat", json=body, headers=auth_header(user))


def test_first_message_from_new_user(client, llm):
    resp = _chat(client)
    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Use a steel frame."
    assert body["freeAnswersUsed"] == 1
    assert body["remainingFree"] == 2
    assert body["hasActivePlan"] is False
    assert len(llm.calls) == 1


def test_fourth_free_message_is_denied(client, llm):
    for _ in range(3):
        assert _chat(client).status_code == 200
    resp = _chat(client)
    assert resp.status_code == 403
    body = resp.json()
    assert body["limitExceeded"] is True
    assert body["remainingFree"] == 0
    assert body["limit"] == 3
    assert body["error"]["code"] == "quota_exceeded"
    assert body["error"]["request_id"] == resp.headers["x-request-id"]
    assert len(llm.calls) == 3


def test_checkout_confirm_unlocks_chat(client, billing, llm):
    for _ in range(3):
        _chat(client)

    resp = client.post("/api/checkout/session", json={"plan": "gold"}, headers=auth_header())
    assert resp.status_code == 200
    assert resp.json()["url"].startswith("https://checkout.example.test/")
    assert billing.created[0]["success_url"].startswith("https://app.example.test/checkout/success")

    billing.add_paid_session("cs_gold", plan="gold")
    confirm = client.post("/api/checkout/confirm", json={"sessionId": "cs_gold"}, headers=auth_header())
    assert confirm.status_code == 200
    assert confirm.json()["plan"] == "gold"
    assert confirm.json()["status"] == "active"

    again = client.post("/api/checkout/confirm", json={"sessionId": "cs_gold"}, headers=auth_header())
    assert again.json() == confirm.json()

    resp = _chat(client)
    assert resp.status_code == 200
    body = resp.json()
    assert body["hasActivePlan"] is True
    assert body["plan"] == "gold"
    assert body["freeAnswersUsed"] == 3
    assert body["totalAnswers"] == 4


def test_change_plan_preserves_period_end(client, billing, app):
    billing.add_subscription(make_subscription(price_id="price_green", plan="green"))
    app.state.profiles.write_profile(
        "user_alice",
        plan="green",
        status="active",
        subscription_id="sub_123",
        current_period_end=PERIOD_END,
    )

    resp = client.post("/api/subscription/change", json={"plan": "blue"}, headers=auth_header())
    assert resp.status_code == 200
    assert billing.updates[0]["proration_behavior"] == "create_prorations"
    assert billing.updates[0]["items"] == [{"id": "si_1", "price": "price_blue"}]

    summary = client.get("/api/subscription/summary", headers=auth_header()).json()
    assert summary["plan"] == "blue"
    assert summary["currentPeriodEnd"] == "2026-11-30T00:00:00Z"


def test_change_to_same_plan_is_400(client, billing, app):
    billing.add_subscription(make_subscription(price_id="price_green", plan="green"))
    app.state.profiles.write_profile("user_alice", plan="green", status="active", subscription_id="sub_123")
    resp = client.post("/api/subscription/change", json={"plan": "green"}, headers=auth_header())
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "no_op"
    assert billing.updates == []


def test_cancel_is_idempotent(client, billing, app):
    billing.add_subscription(make_subscription())
    app.state.profiles.write_profile("user_alice", plan="blue", status="active", subscription_id="sub_123")

    first = client.post("/api/subscription/cancel", headers=auth_header())
    second = client.post("/api/subscription/cancel", headers=auth_header())

    assert first.status_code == 200
    assert second.status_code == 200
    assert second.json()["alreadyRequested"] is True
    assert first.json()["cancelAt"] == second.json()["cancelAt"] == "2026-11-30T00:00:00Z"
    assert len(billing.updates) == 1


def test_cancel_without_subscription_is_404(client):
    resp = client.post("/api/subscription/cancel", headers=auth_header())
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "not_found"


def test_confirm_other_users_session_is_403(client, billing):
    billing.add_paid_session("cs_bob", user_id="user_bob")
    resp = client.post("/api/checkout/confirm", json={"sessionId": "cs_bob"}, headers=auth_header())
    assert resp.status_code == 403


def test_confirm_unpaid_session_reports_payment_status(client, billing):
    billing.add_paid_session("cs_open", payment_status="unpaid")
    resp = client.post("/api/checkout/confirm", json={"sessionId": "cs_open"}, headers=auth_header())
    assert resp.status_code == 400
    assert resp.json()["paymentStatus"] == "unpaid"


def test_usage_summary_for_new_user(client):
    resp = client.get("/api/usage/summary", headers=auth_header())
    assert resp.status_code == 200
    assert resp.json() == {
        "ok": True,
        "totalAnswers": 0,
        "freeAnswersUsed": 0,
        "remainingFree": 3,
        "limit": 3,
        "hasActivePlan": False,
        "plan": None,
        "status": None,
    }


def test_subscription_summary_without_profile_is_404(client):
    assert client.get("/api/subscription/summary", headers=auth_header()).status_code == 404


def test_routes_require_login(client, llm):
    for method, path in [
        ("post", "/api/chat"),
        ("post", "/api/checkout/session"),
        ("post", "/api/checkout/confirm"),
        ("post", "/api/subscription/cancel"),
        ("post", "/api/subscription/change"),
        ("get", "/api/subscription/summary"),
        ("get", "/api/usage/summary"),
    ]:
        kwargs = {"json": {}} if method == "post" else {}
        resp = getattr(client, method)(path, **kwargs)
        assert resp.status_code == 401, path
        assert resp.json()["detail"] == "Please log in and try again."
    assert llm.calls == []


def test_chat_with_attachment_and_history(client, llm):
    data = base64.b64encode(b"%PDF-1.4").decode()
    resp = client.post(
        "/api/chat",
        json={
            "plan": "Gold",
            "history": [{"role": "user", "text": "Hi"}, {"role": "model", "text": "Hello"}],
            "messageParts": [
                {"text": "Check this"},
                {"inlineData": {"mimeType": "application/pdf", "data": data}},
            ],
        },
        headers=auth_header(),
    )
    assert resp.status_code == 200
    call = llm.calls[0]
    assert call["system_instruction"] == "You are the Gold construction consultant."
    assert [c.role for c in call["contents"]] == ["user", "model", "user"]
    assert call["contents"][-1].parts[1].mime_type == "application/pdf"


def test_chat_blank_parts_use_message_text(client, llm):
    resp = _chat(client, message="hello", messageParts=[{"text": ""}])
    assert resp.status_code == 200
    assert llm.calls[0]["contents"][-1].parts[0].text == "hello"


def test_chat_bad_history_role_is_400(client):
    resp = _chat(client, history=[{"role": "system", "text": "x"}])
    assert resp.status_code == 400
    assert resp.json()["error"]["code"] == "validation_error"
    assert "history" in resp.json()["detail"]


def test_chat_model_failure_is_500_and_free(client, llm, app):
    llm.error = LLMProviderError("boom", status_code=500, body="internal")
    resp = _chat(client)
    assert resp.status_code == 500
    assert "internal" not in resp.json()["detail"]
    assert app.state.quota_gate.ledger.read_counters("user_alice").total_answers == 0


def test_healthz_and_readyz(client):
    assert client.get("/healthz").json() == {"status": "ok"}
    assert client.get("/readyz").json() == {"status": "ok"}
