"""
eSewa ePay v2 Integration Service
Handles checkout form signing, callback verification and status queries
"""

import os
import json
import uuid
import base64
import binascii
import logging
from decimal import Decimal

import requests
from flask import current_app, has_app_context

from services.esewa_signature import (
    DEFAULT_SIGNED_FIELD_NAMES,
    build_signed_message,
    format_amount,
    generate_signature,
    parse_signed_field_names,
    sign_fields,
    signatures_match,
)

logger = logging.getLogger(__name__)

UAT_FORM_URL = "https://rc-epay.esewa.com.np/api/epay/main/v2/form"
UAT_STATUS_URL = "https://rc.esewa.com.np/api/epay/transaction/status/"

# Fields a success callback signature must cover
CALLBACK_SIGNED_FIELDS = frozenset(
    ("transaction_code", "status", "total_amount", "transaction_uuid", "product_code")
)


class CallbackDecodeError(ValueError):
    """The gateway callback data is not base64 encoded JSON"""


class EsewaService:
    """Service class for eSewa ePay v2 integration"""

    DEFAULTS = {
        "ESEWA_PRODUCT_CODE": "EPAYTEST",
        "ESEWA_SECRET_KEY": None,
        "ESEWA_FORM_URL": UAT_FORM_URL,
        "ESEWA_STATUS_URL": UAT_STATUS_URL,
        "ESEWA_SUCCESS_URL": "http://localhost:5173/payment/verify",
        "ESEWA_FAILURE_URL": "http://localhost:5173/payment/failure",
        "ESEWA_TIMEOUT": 10,
    }

    def _setting(self, key):
        if has_app_context() and key in current_app.config:
            return current_app.config[key]
        return os.environ.get(key, self.DEFAULTS[key])

    @property
    def product_code(self):
        return (self._setting("ESEWA_PRODUCT_CODE") or "").strip()

    @property
    def secret_key(self):
        # Stripped like the other settings; None stays None so signing fails loudly
        secret = self._setting("ESEWA_SECRET_KEY")
        return secret.strip() if isinstance(secret, str) else secret

    @property
    def form_url(self):
        return self._setting("ESEWA_FORM_URL")

    @property
    def is_configured(self):
        return bool(self.secret_key) and bool(self.product_code)

    def build_payment_form(
        self,
        amount,
        transaction_uuid=None,
        tax_amount=0,
        service_charge=0,
        delivery_charge=0,
    ):
        """Build the signed form fields posted to the eSewa checkout page"""
        amount_str = format_amount(amount)
        tax_str = format_amount(tax_amount)
        service_str = format_amount(service_charge)
        delivery_str = format_amount(delivery_charge)
        total_str = format_amount(
            Decimal(amount_str) + Decimal(tax_str) + Decimal(service_str) + Decimal(delivery_str)
        )

        transaction_uuid = transaction_uuid or uuid.uuid4().hex
        product_code = self.product_code

        signature = sign_fields(total_str, transaction_uuid, product_code, self.secret_key)

        logger.info(
            "esewa form built: uuid=%s total_amount=%s product_code=%s",
            transaction_uuid,
            total_str,
            product_code,
        )

        return {
            "amount": amount_str,
            "tax_amount": tax_str,
            "total_amount": total_str,
            "transaction_uuid": transaction_uuid,
            "product_code": product_code,
            "product_service_charge": service_str,
            "product_delivery_charge": delivery_str,
            "success_url": self._setting("ESEWA_SUCCESS_URL"),
            "failure_url": self._setting("ESEWA_FAILURE_URL"),
            "signed_field_names": DEFAULT_SIGNED_FIELD_NAMES,
            "signature": signature,
        }

    def decode_callback(self, data):
        """Decode the base64 JSON "data" parameter eSewa appends to callback URLs"""
        if not data or not isinstance(data, str):
            raise CallbackDecodeError("Missing callback data")

        # Query strings sometimes turn "+" into " " and drop the padding
        cleaned = data.strip().replace(" ", "+")
        cleaned += "=" * (-len(cleaned) % 4)
        try:
            if "-" in cleaned or "_" in cleaned:
                raw = base64.urlsafe_b64decode(cleaned)
            else:
                raw = base64.b64decode(cleaned, validate=True)
            # Decimal keeps the gateway's own number text, which is what it signed
            payload = json.loads(raw.decode("utf-8"), parse_float=Decimal)
        except (binascii.Error, UnicodeDecodeError, ValueError) as e:
            raise CallbackDecodeError(f"Invalid callback data: {e}") from e

        if not isinstance(payload, dict):
            raise CallbackDecodeError("Callback data is not a JSON object")
        return payload

    def verify_callback(self, payload):
        """
        Verify the signature of a decoded callback payload.

        The payload must list every field in CALLBACK_SIGNED_FIELDS in its
        signed_field_names; the checkout form signature alone never verifies.
        """
        transaction_uuid = payload.get("transaction_uuid")
        provided = payload.get("signature")
        if not provided:
            logger.warning("esewa callback without signature: uuid=%s", transaction_uuid)
            return False

        signed_field_names = payload.get("signed_field_names")
        if not signed_field_names:
            logger.warning("esewa callback without signed_field_names: uuid=%s", transaction_uuid)
            return False

        missing = CALLBACK_SIGNED_FIELDS.difference(parse_signed_field_names(signed_field_names))
        if missing:
            logger.warning(
                "esewa callback signature does not cover %s: uuid=%s",
                ",".join(sorted(missing)),
                transaction_uuid,
            )
            return False

        message = build_signed_message(payload, signed_field_names)
        computed = generate_signature(message, self.secret_key)

        valid = signatures_match(computed, provided)
        if not valid:
            logger.warning(
                "esewa callback signature mismatch: uuid=%s signed_fields=%s",
                transaction_uuid,
                signed_field_names,
            )
        return valid

    def check_status(self, transaction_uuid, total_amount):
        """Query eSewa for the status of a transaction"""
        params = {
            "product_code": self.product_code,
            "total_amount": format_amount(total_amount),
            "transaction_uuid": transaction_uuid,
        }
        try:
            response = requests.get(
                self._setting("ESEWA_STATUS_URL"),
                params=params,
                timeout=float(self._setting("ESEWA_TIMEOUT")),
            )
        except requests.RequestException as e:
            logger.error("esewa status query failed: uuid=%s error=%s", transaction_uuid, e)
            return {"success": False, "error": f"Unable to reach eSewa: {e}"}

        logger.info("esewa status query: uuid=%s http=%s", transaction_uuid, response.status_code)

        if response.status_code != 200:
            return {
                "success": False,
                "error": f"HTTP {response.status_code}: {response.text}",
            }

        try:
            result = response.json()
        except ValueError:
            return {"success": False, "error": "Invalid status response from eSewa"}

        if not isinstance(result, dict):
            return {"success": False, "error": "Invalid status response from eSewa"}

        return {
            "success": True,
            "status": result.get("status"),
            "ref_id": result.get("ref_id"),
            "total_amount": result.get("total_amount"),
            "transaction_uuid": result.get("transaction_uuid", transaction_uuid),
        }


# Singleton instance
esewa_service = EsewaService()
