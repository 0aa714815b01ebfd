"""
eSewa Signature Helpers
HMAC-SHA256 signing and verification of ePay v2 messages
"""

import base64
import hashlib
import hmac
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

# Fields covered by the checkout form signature, in gateway order
CORE_SIGNED_FIELDS = ("total_amount", "transaction_uuid", "product_code")
DEFAULT_SIGNED_FIELD_NAMES = ",".join(CORE_SIGNED_FIELDS)

TWO_PLACES = Decimal("0.01")
# Largest value a Numeric(10, 2) column holds
MAX_AMOUNT = Decimal("99999999.99")


class EsewaSignatureError(Exception):
    """Base class for signature errors"""


class SignatureInputError(EsewaSignatureError, ValueError):
    """A field required for signing is missing or empty"""


class SignatureConfigError(EsewaSignatureError):
    """The shared secret is missing"""


class SignatureEncodingError(EsewaSignatureError, ValueError):
    """Text could not be encoded as UTF-8"""


def _require(name, value):
    if not isinstance(value, str) or value == "":
        raise SignatureInputError(f"Missing required field: {name}")
    return value


def _encode(text: str, what: str) -> bytes:
    try:
        return text.encode("utf-8")
    except UnicodeEncodeError as e:
        raise SignatureEncodingError(f"Cannot encode {what} as UTF-8: {e.reason}") from e


def format_amount(value) -> str:
    """
    Render an amount with exactly two fractional digits.

    Example: 1000 -> "1000.00", "2.955" -> "2.96"
    Floats are rejected, pass a Decimal, int or decimal text instead.
    """
    if isinstance(value, bool) or isinstance(value, float):
        raise SignatureInputError("Amount must be decimal text, not a float")
    if value is None or (isinstance(value, str) and value.strip() == ""):
        raise SignatureInputError("Missing required field: amount")

    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise SignatureInputError(f"Invalid amount: {value!r}")

    if not amount.is_finite() or amount < 0 or amount > MAX_AMOUNT:
        raise SignatureInputError(f"Invalid amount: {value!r}")

    try:
        return f"{amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP):.2f}"
    except InvalidOperation:
        raise SignatureInputError(f"Invalid amount: {value!r}")


def build_signature_string(total_amount: str, transaction_uuid: str, product_code: str) -> str:
    """Build the canonical checkout message, field order is fixed by the gateway"""
    _require("total_amount", total_amount)
    _require("transaction_uuid", transaction_uuid)
    _require("product_code", product_code)
    return (
        f"total_amount={total_amount},"
        f"transaction_uuid={transaction_uuid},"
        f"product_code={product_code}"
    )


def parse_signed_field_names(signed_field_names) -> list:
    _require("signed_field_names", signed_field_names)
    names = signed_field_names.split(",")
    if any(name == "" for name in names):
        raise SignatureInputError(f"Malformed signed_field_names: {signed_field_names!r}")
    return names


def build_signed_message(fields: dict, signed_field_names: str = DEFAULT_SIGNED_FIELD_NAMES) -> str:
    """
    Build "name=value,..." for the fields listed in signed_field_names,
    in the order listed. Used for callback payloads, which declare
    their own signed field list.
    """
    parts = []
    for name in parse_signed_field_names(signed_field_names):
        value = fields.get(name)
        # Callback JSON may carry numbers; the gateway signs their text form
        if isinstance(value, (int, Decimal)) and not isinstance(value, bool):
            value = str(value)
        parts.append(f"{name}={_require(name, value)}")
    return ",".join(parts)


def generate_signature(message: str, secret_key: str) -> str:
    """HMAC-SHA256 over message, base64 encoded"""
    if not isinstance(secret_key, str) or secret_key == "":
        raise SignatureConfigError("eSewa secret key is not configured")
    _require("message", message)

    digest = hmac.new(
        _encode(secret_key, "secret key"),
        _encode(message, "message"),
        hashlib.sha256,
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def signatures_match(computed, provided) -> bool:
    """
    Constant-time equality check. Never raises: anything that is not a
    string, or differs in any byte (case, padding), is a mismatch.
    """
    if not isinstance(computed, str) or not isinstance(provided, str):
        return False
    try:
        computed_bytes = computed.encode("utf-8")
        provided_bytes = provided.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return hmac.compare_digest(computed_bytes, provided_bytes)


def sign_fields(total_amount: str, transaction_uuid: str, product_code: str, secret_key: str) -> str:
    message = build_signature_string(total_amount, transaction_uuid, product_code)
    return generate_signature(message, secret_key)


def verify_signature(total_amount, transaction_uuid, product_code, secret_key, signature) -> bool:
    """Rebuild the checkout signature and compare it to the one supplied"""
    computed = sign_fields(total_amount, transaction_uuid, product_code, secret_key)
    return signatures_match(computed, signature)
