"""
Payment-webhook adapter tests: signature verification, de-duplication,
deposit vs final routing and the POST /api/v1/payments/webhook endpoint.
"""

import json
import time

import pytest

from studio_portal.core.exceptions import WebhookVerificationFailure
from studio_portal.models import db
from studio_portal.models.notification import Notification
from studio_portal.models.payment import PaymentEvent
from studio_portal.models.workflow import PhaseTransition, RequirementCompletion
from studio_portal.services import completion_store
from studio_portal.services.payment_webhook_service import (
    build_signature_header,
    compute_signature,
    verify_signature,
)

URL = "/api/v1/payments/webhook"
SECRET = "whsec_test_secret"


def _event(event_id, project_id, event_type="payment_intent.succeeded", payment_type=None, **obj):
    metadata = {"projectId": str(project_id)} if project_id is not None else {}
    if payment_type:
        metadata["paymentType"] = payment_type
    return {
        "id": event_id,
        "type": event_type,
        "data": {"object": {"metadata": metadata, "amount_received": 150000, **obj}},
    }


def _post(client, event, secret=SECRET, header=None):
    raw = json.dumps(event).encode("utf-8")
    if header is None:
        header = build_signature_header(raw, secret)
    return client.post(URL, data=raw, headers={"Stripe-Signature": header}, content_type="application/json")


# ═════════════════════════════════════════════════════════════════════════════
# Signature verification
# ═════════════════════════════════════════════════════════════════════════════


class TestVerifySignature:
    payload = b'{"id": "evt_1"}'

    def test_valid_signature_returns_timestamp(self):
        header = build_signature_header(self.payload, SECRET, timestamp=1_700_000_000)
        assert verify_signature(self.payload, header, SECRET, now=1_700_000_010) == 1_700_000_000

    def test_any_of_several_v1_signatures_matches(self):
        ts = 1_700_000_000
        good = compute_signature(self.payload, SECRET, ts)
        header = f"t={ts},v1={'0' * 64},v1={good}"
        assert verify_signature(self.payload, header, SECRET, now=ts) == ts

    @pytest.mark.parametrize("header", [None, "", "garbage", "t=abc,v1=00", "v1=deadbeef", "t=1700000000"])
    def test_malformed_headers(self, header):
        with pytest.raises(WebhookVerificationFailure):
            verify_signature(self.payload, header, SECRET, now=1_700_000_000)

    def test_wrong_secret(self):
        header = build_signature_header(self.payload, "other-secret", timestamp=1_700_000_000)
        with pytest.raises(WebhookVerificationFailure):
            verify_signature(self.payload, header, SECRET, now=1_700_000_000)

    def test_tampered_body(self):
        header = build_signature_header(self.payload, SECRET, timestamp=1_700_000_000)
        with pytest.raises(WebhookVerificationFailure):
            verify_signature(b'{"id": "evt_2"}', header, SECRET, now=1_700_000_000)

    def test_stale_timestamp(self):
        header = build_signature_header(self.payload, SECRET, timestamp=1_700_000_000)
        with pytest.raises(WebhookVerificationFailure) as exc:
            verify_signature(self.payload, header, SECRET, tolerance=300, now=1_700_000_301)
        assert exc.value.details["tolerance_seconds"] == 300


# ═════════════════════════════════════════════════════════════════════════════
# Endpoint
# ═════════════════════════════════════════════════════════════════════════════


class TestWebhookEndpoint:
    def test_deposit_completes_deposit_requirement(self, client, project_id):
        res = _post(client, _event("evt_dep_1", project_id, payment_type="deposit"))
        assert res.status_code == 200
        body = res.get_json()
        assert body["success"] is True
        assert body["duplicate"] is False
        assert body["requirement_id"] == "deposit_payment"
        assert body["already_complete"] is False

        rec = RequirementCompletion.query.filter_by(project_id=project_id, requirement_id="deposit_payment").one()
        assert rec.source == "payment"
        assert rec.completed_by is None
        assert rec.details["event_id"] == "evt_dep_1"

    def test_default_payment_type_is_final(self, client, project_id):
        body = _post(client, _event("evt_fin_1", project_id, event_type="invoice.paid")).get_json()
        assert body["requirement_id"] == "final_payment"
        assert completion_store.is_satisfied(project_id, "final_payment")

    def test_snake_case_project_id_metadata(self, client, project_id):
        event = _event("evt_snake", None, payment_type="deposit")
        event["data"]["object"]["metadata"]["project_id"] = project_id
        body = _post(client, event).get_json()
        assert body["requirement_id"] == "deposit_payment"

    def test_duplicate_delivery(self, client, project_id, read_state):
        event = _event("evt_dup", project_id, payment_type="deposit")
        _post(client, event)
        version = read_state(project_id).version

        res = _post(client, event)
        assert res.status_code == 200
        assert res.get_json() == {"success": True, "received": True, "duplicate": True}
        assert PaymentEvent.query.filter_by(event_id="evt_dup").count() == 1
        assert RequirementCompletion.query.filter_by(
            project_id=project_id, requirement_id="deposit_payment",
        ).count() == 1
        assert read_state(project_id).version == version

    def test_second_event_for_paid_requirement_is_not_rewritten(self, client, project_id):
        _post(client, _event("evt_a", project_id, payment_type="deposit"))
        first = RequirementCompletion.query.filter_by(project_id=project_id, requirement_id="deposit_payment").one()
        first_details = dict(first.details)

        body = _post(client, _event("evt_b", project_id, payment_type="deposit")).get_json()
        db.session.expire_all()
        assert body["already_complete"] is True
        assert body["duplicate"] is False
        again = RequirementCompletion.query.filter_by(project_id=project_id, requirement_id="deposit_payment").one()
        assert again.details == first_details
        assert PaymentEvent.query.count() == 2

    def test_deposit_completing_onb_advances(self, client, staff, project_id, read_state):
        from studio_portal.services.requirement_toggle_service import toggle_requirement

        toggle_requirement(staff, project_id, "intake_form", True)
        toggle_requirement(staff, project_id, "service_agreement", True)
        body = _post(client, _event("evt_go", project_id, payment_type="deposit")).get_json()

        assert body["advancement"]["advanced"] is True
        assert body["advancement"]["new_phase"] == "IDEA"
        tr = PhaseTransition.query.filter_by(project_id=project_id).one()
        assert tr.trigger == "payment"
        assert tr.actor_id is None
        assert read_state(project_id).phase_key == "IDEA"

    def test_invalid_signature_rejected(self, client, project_id):
        res = _post(client, _event("evt_bad", project_id), secret="wrong")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_WEBHOOK_SIGNATURE"
        assert PaymentEvent.query.count() == 0
        assert not completion_store.is_satisfied(project_id, "final_payment")

    def test_missing_signature_rejected(self, client, project_id):
        raw = json.dumps(_event("evt_nosig", project_id)).encode()
        res = client.post(URL, data=raw, content_type="application/json")
        assert res.status_code == 400

    def test_stale_signature_rejected(self, client, project_id):
        raw = json.dumps(_event("evt_old", project_id)).encode()
        header = build_signature_header(raw, SECRET, timestamp=int(time.time()) - 3600)
        res = client.post(URL, data=raw, headers={"Stripe-Signature": header}, content_type="application/json")
        assert res.status_code == 400

    def test_missing_secret_is_configuration_error(self, app, client, project_id, monkeypatch):
        monkeypatch.setitem(app.config, "PAYMENT_WEBHOOK_SECRET", None)
        res = _post(client, _event("evt_cfg", project_id))
        assert res.status_code == 503
        assert res.get_json()["code"] == "ERR_WEBHOOK_NOT_CONFIGURED"
        assert PaymentEvent.query.count() == 0

    def test_signed_but_invalid_json(self, client):
        raw = b"not json"
        res = client.post(URL, data=raw, headers={"Stripe-Signature": build_signature_header(raw, SECRET)},
                          content_type="application/json")
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_event_without_id(self, client):
        res = _post(client, {"type": "invoice.paid"})
        assert res.status_code == 400

    def test_unknown_project_is_acknowledged(self, client):
        res = _post(client, _event("evt_ghost", 424242))
        assert res.status_code == 200
        body = res.get_json()
        assert body["ignored"] is True
        assert body["reason"] == "unknown project"
        ledger = PaymentEvent.query.filter_by(event_id="evt_ghost").one()
        assert ledger.status == "ignored"
        assert ledger.project_id is None

    @pytest.mark.parametrize("data", [
        ["oops"],
        "oops",
        {"object": ["oops"]},
        {"object": {"metadata": "projectId=1"}},
    ])
    def test_malformed_data_is_acknowledged(self, client, project_id, data):
        res = _post(client, {"id": "evt_bad", "type": "payment_intent.succeeded", "data": data})
        assert res.status_code == 200
        body = res.get_json()
        assert body["ignored"] is True
        assert body["reason"] == "malformed payload"
        assert PaymentEvent.query.filter_by(event_id="evt_bad").one().status == "ignored"
        assert completion_store.satisfied_requirement_ids(project_id) == set()

        again = _post(client, {"id": "evt_bad", "type": "payment_intent.succeeded", "data": data})
        assert again.get_json()["duplicate"] is True

    def test_failure_with_non_object_error(self, client, project_id):
        event = _event("evt_fail_str", project_id, event_type="payment_intent.payment_failed",
                       last_payment_error="declined")
        assert _post(client, event).get_json()["failed"] is True
        assert Notification.query.filter_by(category="payment").one().message == "Payment failed"

    def test_unhandled_event_type_recorded(self, client, project_id):
        body = _post(client, _event("evt_misc", project_id, event_type="customer.created")).get_json()
        assert body["ignored"] is True
        assert PaymentEvent.query.filter_by(event_id="evt_misc").one().status == "ignored"
        assert completion_store.satisfied_requirement_ids(project_id) == set()

    def test_payment_failure_notifies_staff(self, client, project_id):
        event = _event(
            "evt_fail", project_id, event_type="payment_intent.payment_failed",
            last_payment_error={"message": "Card declined"},
        )
        body = _post(client, event).get_json()
        assert body["failed"] is True
        assert PaymentEvent.query.filter_by(event_id="evt_fail").one().status == "failed"
        notif = Notification.query.filter_by(category="payment").one()
        assert notif.recipient == "staff"
        assert notif.message == "Card declined"
        assert notif.project_id == project_id
        assert not completion_store.is_satisfied(project_id, "final_payment")

    def test_no_bearer_token_needed(self, client, project_id):
        # Webhook is authenticated by signature only; a junk bearer token changes nothing
        raw = json.dumps(_event("evt_tok", project_id, payment_type="deposit")).encode()
        res = client.post(URL, data=raw, content_type="application/json", headers={
            "Stripe-Signature": build_signature_header(raw, SECRET),
            "Authorization": "Bearer not-a-token",
        })
        assert res.status_code == 200
