"""
Payment-webhook trigger adapter.

Receives asynchronous, at-least-once, possibly out-of-order events from the
payment processor and turns successful charges into payment-requirement
completions.

Signature scheme (Stripe-compatible):
    Stripe-Signature: t=<unix seconds>,v1=<hex HMAC-SHA256(secret, "<t>.<raw body>")>

Verification is mandatory. Without ``PAYMENT_WEBHOOK_SECRET`` every event is
refused with WebhookConfigurationError; a missing, malformed, stale
(> ``PAYMENT_WEBHOOK_TOLERANCE`` seconds) or mismatched signature raises
WebhookVerificationFailure.

Event handling:
    invoice.paid, payment_intent.succeeded
        metadata.projectId (or project_id) identifies the project;
        metadata.paymentType == "deposit" completes ``deposit_payment``,
        anything else completes ``final_payment``; then evaluate advancement.
    payment_intent.payment_failed
        recorded and reported to the studio team.
    anything else
        recorded and acknowledged.

A signed event whose data, data.object or metadata is not a JSON object is
recorded as ignored and acknowledged, so the processor stops redelivering it.

Every event id is written to ``payment_events`` once. A redelivered event is
acknowledged with ``duplicate: true`` and writes nothing; an already
complete payment requirement is never rewritten.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time

from flask import current_app
from sqlalchemy import select

from studio_portal.core.exceptions import (
    ValidationError,
    WebhookConfigurationError,
    WebhookVerificationFailure,
)
from studio_portal.core.requirement_catalog import DEFAULT_PAYMENT_TYPE, PAYMENT_REQUIREMENTS
from studio_portal.models import db
from studio_portal.models.notification import STAFF_RECIPIENT
from studio_portal.models.payment import PaymentEvent
from studio_portal.models.project import Project
from studio_portal.services import completion_store
from studio_portal.services.notification import NotificationService
from studio_portal.services.phase_engine import evaluate_after_trigger
from studio_portal.services.transaction import run_in_project_transaction

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "Stripe-Signature"
SIGNATURE_SCHEME = "v1"
DEFAULT_TOLERANCE_SECONDS = 300

SUCCESS_EVENT_TYPES = frozenset({"invoice.paid", "payment_intent.succeeded"})
FAILURE_EVENT_TYPES = frozenset({"payment_intent.payment_failed"})


# ═══════════════════════════════════════════════════════════════════════════
#  Signatures
# ═══════════════════════════════════════════════════════════════════════════


def compute_signature(payload: bytes, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def build_signature_header(payload: bytes, secret: str, timestamp: int | None = None) -> str:
    """Produce a header value the verifier accepts. Used by tests and local tooling."""
    ts = int(time.time()) if timestamp is None else int(timestamp)
    return f"t={ts},{SIGNATURE_SCHEME}={compute_signature(payload, secret, ts)}"


def _parse_header(header: str) -> tuple[int, list[str]]:
    timestamp = None
    signatures = []
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if not sep:
            continue
        if key == "t":
            try:
                timestamp = int(value)
            except ValueError:
                raise WebhookVerificationFailure("Malformed signature timestamp") from None
        elif key == SIGNATURE_SCHEME:
            signatures.append(value)
    if timestamp is None or not signatures:
        raise WebhookVerificationFailure("Malformed signature header")
    return timestamp, signatures


def verify_signature(
    payload: bytes,
    header: str | None,
    secret: str,
    tolerance: int = DEFAULT_TOLERANCE_SECONDS,
    now: float | None = None,
) -> int:
    """Check a webhook signature and return its timestamp.

    Raises:
        WebhookVerificationFailure: missing, malformed, stale or wrong signature.
    """
    if not header:
        raise WebhookVerificationFailure(f"Missing {SIGNATURE_HEADER} header")
    timestamp, signatures = _parse_header(header)

    now = time.time() if now is None else now
    if abs(now - timestamp) > tolerance:
        raise WebhookVerificationFailure(
            "Signature timestamp outside tolerance",
            details={"tolerance_seconds": tolerance},
        )

    expected = compute_signature(payload, secret, timestamp)
    if not any(hmac.compare_digest(expected, sig) for sig in signatures):
        raise WebhookVerificationFailure("Signature mismatch")
    return timestamp


# ═══════════════════════════════════════════════════════════════════════════
#  Event handling
# ═══════════════════════════════════════════════════════════════════════════


def _find_event(event_id: str) -> PaymentEvent | None:
    return db.session.execute(
        select(PaymentEvent).where(PaymentEvent.event_id == event_id)
    ).scalar_one_or_none()


def _event_object(event: dict) -> tuple[dict, dict] | None:
    """``(data.object, data.object.metadata)``, or None when a level is not an object."""
    data = event.get("data") or {}
    if not isinstance(data, dict):
        return None
    obj = data.get("object") or {}
    if not isinstance(obj, dict):
        return None
    metadata = obj.get("metadata") or {}
    if not isinstance(metadata, dict):
        return None
    return obj, metadata


def _project_id_from(metadata: dict) -> int | None:
    raw = metadata.get("projectId", metadata.get("project_id"))
    try:
        return int(raw) if raw is not None else None
    except (TypeError, ValueError):
        return None


def _requirement_for(metadata: dict) -> str:
    payment_type = str(metadata.get("paymentType") or metadata.get("payment_type") or DEFAULT_PAYMENT_TYPE)
    return PAYMENT_REQUIREMENTS.get(payment_type.lower(), PAYMENT_REQUIREMENTS[DEFAULT_PAYMENT_TYPE])


def _record_only(event_id, event_type, project_id, status, requirement_id=None) -> PaymentEvent:
    ledger = PaymentEvent(
        event_id=event_id,
        event_type=event_type,
        project_id=project_id,
        requirement_id=requirement_id,
        status=status,
    )
    db.session.add(ledger)
    return ledger


def handle_payment_webhook(raw_body: bytes, signature_header: str | None) -> dict:
    """Verify, de-duplicate and apply one payment event.

    Returns:
        Acknowledgement dict; always ``success: True`` once verified.
    """
    secret = current_app.config.get("PAYMENT_WEBHOOK_SECRET")
    if not secret:
        logger.error("Payment webhook refused: PAYMENT_WEBHOOK_SECRET is not configured")
        raise WebhookConfigurationError("Payment webhook secret is not configured")

    tolerance = int(current_app.config.get("PAYMENT_WEBHOOK_TOLERANCE", DEFAULT_TOLERANCE_SECONDS))
    verify_signature(raw_body, signature_header, secret, tolerance)

    try:
        event = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON") from None
    if not isinstance(event, dict) or not event.get("id") or not event.get("type"):
        raise ValidationError("Webhook event requires 'id' and 'type'")

    event_id = str(event["id"])
    event_type = str(event["type"])
    log_extra = {"event_type": event_type, "event_id": event_id}

    if _find_event(event_id) is not None:
        logger.info("Duplicate payment event %s acknowledged", event_id, extra=log_extra)
        return {"success": True, "received": True, "duplicate": True}

    parts = _event_object(event)
    if parts is None:
        _record_only(event_id, event_type, None, "ignored")
        db.session.commit()
        logger.warning("Payment event %s has a malformed data object", event_id, extra=log_extra)
        return {"success": True, "received": True, "ignored": True, "reason": "malformed payload"}
    obj, metadata = parts

    project_id = _project_id_from(metadata)
    log_extra["project_id"] = project_id

    if event_type in FAILURE_EVENT_TYPES:
        return _handle_failure(event_id, event_type, project_id, obj, log_extra)

    if event_type not in SUCCESS_EVENT_TYPES:
        _record_only(event_id, event_type, project_id, "ignored")
        db.session.commit()
        logger.info("Payment event %s of type %s ignored", event_id, event_type, extra=log_extra)
        return {"success": True, "received": True, "ignored": True}

    if project_id is None or db.session.get(Project, project_id) is None:
        _record_only(event_id, event_type, None, "ignored")
        db.session.commit()
        logger.warning("Payment event %s has no known project", event_id, extra=log_extra)
        return {"success": True, "received": True, "ignored": True, "reason": "unknown project"}

    requirement_id = _requirement_for(metadata)
    amount = obj.get("amount_paid", obj.get("amount_received"))

    def _work(state):
        # Re-checked under the project lock so concurrent redeliveries serialize.
        if _find_event(event_id) is not None:
            return {"success": True, "received": True, "duplicate": True}

        _record_only(event_id, event_type, project_id, "processed", requirement_id)
        already = completion_store.is_satisfied(project_id, requirement_id)
        if not already:
            completion_store.set_completion(
                project_id,
                requirement_id,
                True,
                None,
                source="payment",
                details={"event_id": event_id, "event_type": event_type, "amount": amount},
            )
        advancement = evaluate_after_trigger(project_id, trigger="payment")
        return {
            "success": True,
            "received": True,
            "duplicate": False,
            "requirement_id": requirement_id,
            "already_complete": already,
            "advancement": advancement.to_dict(),
        }

    result = run_in_project_transaction(project_id, _work)
    logger.info(
        "Payment event %s applied to %s", event_id, requirement_id,
        extra={**log_extra, "requirement_id": requirement_id},
    )
    return result


def _handle_failure(event_id, event_type, project_id, obj, log_extra) -> dict:
    if project_id is not None and db.session.get(Project, project_id) is None:
        project_id = None
    _record_only(event_id, event_type, project_id, "failed")
    error = obj.get("last_payment_error")
    reason = (error.get("message") if isinstance(error, dict) else None) or "Payment failed"
    NotificationService.create(
        title="Payment failed",
        message=reason,
        category="payment",
        severity="error",
        recipient=STAFF_RECIPIENT,
        project_id=project_id,
        entity_type="payment",
        entity_id=event_id,
    )
    logger.warning("Payment failed for project %s: %s", project_id, reason, extra=log_extra)
    return {"success": True, "received": True, "failed": True}
