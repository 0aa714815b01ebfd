"""
eSewa Payment Routes
"""

import logging
from datetime import datetime
from decimal import Decimal

from flask import Blueprint, request, jsonify
from extensions import db
from models import EsewaTransaction, EsewaTransactionStatus
from services.esewa_service import esewa_service, CallbackDecodeError
from services.esewa_signature import (
    SignatureConfigError,
    SignatureInputError,
    format_amount,
)

logger = logging.getLogger(__name__)

esewa_bp = Blueprint("esewa", __name__)


def _amounts_match(value, expected):
    """Compare a gateway amount (text or number) with a stored Decimal"""
    try:
        return format_amount(str(value)) == format_amount(expected)
    except SignatureInputError:
        return False


def _amount_field(data, key, default=None):
    # JSON numbers arrive as floats; use their text form
    value = data.get(key, default)
    return str(value) if isinstance(value, float) else value


def _not_configured():
    logger.error("eSewa secret key is not configured")
    return jsonify({"error": "Payment gateway not configured"}), 500


def _callback_data():
    data = request.args.get("data")
    if not data:
        data = request.form.get("data")
    if not data and request.is_json:
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            data = body.get("data")
    return data


def _mark(transaction, status, result_desc):
    transaction.status = status.value
    transaction.result_desc = result_desc
    db.session.commit()


@esewa_bp.route("/initiate", methods=["POST"])
def initiate_payment():
    """Create a pending transaction and return the signed checkout form"""
    if not esewa_service.is_configured:
        return _not_configured()

    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        data = {}

    try:
        fields = esewa_service.build_payment_form(
            amount=_amount_field(data, "amount"),
            tax_amount=_amount_field(data, "tax_amount", 0),
            service_charge=_amount_field(data, "service_charge", 0),
            delivery_charge=_amount_field(data, "delivery_charge", 0),
        )
    except SignatureInputError as e:
        return jsonify({"error": str(e)}), 400

    if Decimal(fields["total_amount"]) <= 0:
        return jsonify({"error": "Amount must be greater than zero"}), 400

    try:
        transaction = EsewaTransaction(
            transaction_uuid=fields["transaction_uuid"],
            product_code=fields["product_code"],
            amount=Decimal(fields["amount"]),
            tax_amount=Decimal(fields["tax_amount"]),
            total_amount=Decimal(fields["total_amount"]),
            reference=data.get("reference"),
            status=EsewaTransactionStatus.PENDING.value,
        )
        db.session.add(transaction)
        db.session.commit()
    except Exception as e:
        db.session.rollback()
        logger.error("initiate_payment: could not save transaction: %s", e, exc_info=True)
        return jsonify({"error": "Could not create transaction"}), 500

    logger.info("initiate_payment: uuid=%s total=%s", transaction.transaction_uuid, fields["total_amount"])

    return jsonify({
        "message": "eSewa payment initiated",
        "form_url": esewa_service.form_url,
        "fields": fields,
        "transaction": transaction.to_dict(),
    }), 201


@esewa_bp.route("/verify", methods=["GET", "POST"])
def verify_payment():
    """Handle the eSewa success redirect: verify signature, amount and status"""
    if not esewa_service.is_configured:
        return _not_configured()

    try:
        payload = esewa_service.decode_callback(_callback_data())
    except CallbackDecodeError as e:
        logger.warning("verify_payment: %s", e)
        return jsonify({"error": "Invalid payment data format"}), 400

    transaction_uuid = payload.get("transaction_uuid")
    if not transaction_uuid:
        return jsonify({"error": "Invalid transaction data"}), 400

    transaction = EsewaTransaction.query.filter_by(
        transaction_uuid=str(transaction_uuid)
    ).first()

    try:
        valid = esewa_service.verify_callback(payload)
    except SignatureInputError as e:
        logger.warning("verify_payment: uuid=%s %s", transaction_uuid, e)
        valid = False
    except SignatureConfigError:
        return _not_configured()

    try:
        if not valid:
            if transaction and not transaction.is_completed:
                _mark(transaction, EsewaTransactionStatus.VERIFICATION_FAILED, "Signature verification failed")
            return jsonify({"error": "Signature verification failed"}), 400

        if not transaction:
            logger.warning("verify_payment: unknown transaction uuid=%s", transaction_uuid)
            return jsonify({"error": "Transaction not found"}), 404

        if transaction.is_completed:
            return jsonify({
                "message": "Payment already verified",
                "transaction": transaction.to_dict(),
            }), 200

        if not _amounts_match(payload.get("total_amount"), transaction.total_amount):
            logger.warning(
                "verify_payment: amount mismatch uuid=%s got=%s expected=%s",
                transaction_uuid,
                payload.get("total_amount"),
                transaction.total_amount,
            )
            _mark(transaction, EsewaTransactionStatus.VERIFICATION_FAILED, "Amount mismatch")
            return jsonify({"error": "Amount mismatch"}), 400

        gateway_status = payload.get("status")
        if gateway_status != "COMPLETE":
            _mark(transaction, EsewaTransactionStatus.FAILED, f"Gateway status: {gateway_status}")
            return jsonify({
                "error": "Payment not completed",
                "status": gateway_status,
            }), 400

        transaction.transaction_code = payload.get("transaction_code") or transaction.transaction_code
        transaction.completed_at = datetime.utcnow()
        _mark(transaction, EsewaTransactionStatus.COMPLETED, "Payment completed successfully")

        logger.info("verify_payment: completed uuid=%s code=%s", transaction_uuid, transaction.transaction_code)

        return jsonify({
            "message": "Payment verified successfully",
            "transaction": transaction.to_dict(),
        }), 200

    except Exception as e:
        db.session.rollback()
        logger.error("verify_payment error: %s", e, exc_info=True)
        return jsonify({"error": "Verification failed"}), 500


@esewa_bp.route("/failure", methods=["GET"])
def payment_failure():
    """
    Handle the eSewa failure/cancel redirect.

    Only a signed payload can fail a pending transaction; unsigned data is
    recorded in result_desc and the status is left for /query to settle.
    """
    data = _callback_data()
    payload = {}

    if data:
        try:
            payload = esewa_service.decode_callback(data)
        except CallbackDecodeError as e:
            logger.warning("payment_failure: %s", e)

    transaction_uuid = payload.get("transaction_uuid")
    if not transaction_uuid:
        return jsonify({"message": "Payment was not completed"}), 200

    transaction = EsewaTransaction.query.filter_by(
        transaction_uuid=str(transaction_uuid)
    ).first()
    if not transaction:
        return jsonify({"message": "Invalid transaction reference"}), 200

    if transaction.status != EsewaTransactionStatus.PENDING.value:
        return jsonify({
            "message": "Payment was not completed",
            "transaction": transaction.to_dict(),
        }), 200

    try:
        signed = esewa_service.is_configured and esewa_service.verify_callback(payload)
    except SignatureInputError as e:
        logger.warning("payment_failure: uuid=%s %s", transaction_uuid, e)
        signed = False

    if signed and payload.get("status") != "COMPLETE":
        _mark(transaction, EsewaTransactionStatus.FAILED, "Payment failed or was cancelled")
    else:
        logger.info("payment_failure: unsigned failure redirect for uuid=%s", transaction_uuid)
        transaction.result_desc = "Failure redirect received"
        db.session.commit()

    return jsonify({
        "message": "Payment was not completed",
        "transaction": transaction.to_dict(),
    }), 200


@esewa_bp.route("/status/<transaction_uuid>", methods=["GET"])
def get_payment_status(transaction_uuid):
    """Get the stored status of a transaction"""
    transaction = EsewaTransaction.query.filter_by(transaction_uuid=transaction_uuid).first()
    if not transaction:
        return jsonify({"error": "Transaction not found"}), 404

    return jsonify({
        "transaction": transaction.to_dict(),
        "status": transaction.status,
        "payment_completed": transaction.is_completed,
    }), 200


@esewa_bp.route("/query/<transaction_uuid>", methods=["POST"])
def query_payment(transaction_uuid):
    """Ask eSewa for the transaction status and update the stored record"""
    transaction = EsewaTransaction.query.filter_by(transaction_uuid=transaction_uuid).first()
    if not transaction:
        return jsonify({"error": "Transaction not found"}), 404

    if transaction.is_completed:
        return jsonify({"status": transaction.status, "transaction": transaction.to_dict()}), 200

    response = esewa_service.check_status(transaction.transaction_uuid, transaction.total_amount)
    if not response.get("success"):
        return jsonify({"error": response.get("error")}), 502

    try:
        gateway_status = response.get("status")
        if gateway_status == "COMPLETE" and _amounts_match(response.get("total_amount"), transaction.total_amount):
            transaction.transaction_code = response.get("ref_id") or transaction.transaction_code
            transaction.completed_at = datetime.utcnow()
            _mark(transaction, EsewaTransactionStatus.COMPLETED, "Payment completed successfully")
        elif gateway_status == "COMPLETE":
            _mark(transaction, EsewaTransactionStatus.VERIFICATION_FAILED, "Amount mismatch")
        elif gateway_status in ("PENDING", "AMBIGUOUS"):
            transaction.result_desc = f"Gateway status: {gateway_status}"
            db.session.commit()
        else:
            _mark(transaction, EsewaTransactionStatus.FAILED, f"Gateway status: {gateway_status}")
    except Exception as e:
        db.session.rollback()
        logger.error("query_payment error: %s", e, exc_info=True)
        return jsonify({"error": "Could not update transaction"}), 500

    return jsonify({
        "status": transaction.status,
        "gateway_status": gateway_status,
        "transaction": transaction.to_dict(),
    }), 200
