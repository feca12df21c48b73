"""
Payments Blueprint.

Endpoints:
    POST /api/v1/payments/webhook
         Raw processor event, authenticated by the Stripe-Signature header
         (no bearer token). 200 acknowledges, including duplicates.
"""

from flask import Blueprint, jsonify, request

from studio_portal.services import payment_webhook_service

payments_bp = Blueprint("payments", __name__, url_prefix="/api/v1/payments")


@payments_bp.route("/webhook", methods=["POST"])
def webhook():
    # Signature covers the exact bytes received
    raw_body = request.get_data(cache=True)
    signature = request.headers.get(payment_webhook_service.SIGNATURE_HEADER)
    result = payment_webhook_service.handle_payment_webhook(raw_body, signature)
    return jsonify(result), 200
