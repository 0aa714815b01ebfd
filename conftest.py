"""Shared pytest fixtures"""

import base64
import json

import pytest

from app import create_app
from extensions import db
from services.esewa_signature import build_signed_message, generate_signature

TEST_SECRET = "8gBm/:&EnhH.1/q"
CALLBACK_SIGNED_FIELDS = "transaction_code,status,total_amount,transaction_uuid,product_code,signed_field_names"


@pytest.fixture
def app():
    app = create_app({
        "TESTING": True,
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "ESEWA_SECRET_KEY": TEST_SECRET,
        "ESEWA_PRODUCT_CODE": "EPAYTEST",
        "ESEWA_STATUS_URL": "https://esewa.test/api/epay/transaction/status/",
    })
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


def encode_callback(payload):
    return base64.b64encode(json.dumps(payload).encode("utf-8")).decode("ascii")


def signed_callback(transaction_uuid, total_amount="100.00", status="COMPLETE", secret=TEST_SECRET, **extra):
    """Build a callback payload the way the gateway signs it"""
    payload = {
        "transaction_code": "000AWEO",
        "status": status,
        "total_amount": total_amount,
        "transaction_uuid": transaction_uuid,
        "product_code": "EPAYTEST",
        "signed_field_names": CALLBACK_SIGNED_FIELDS,
    }
    payload.update(extra)
    payload["signature"] = generate_signature(
        build_signed_message(payload, payload["signed_field_names"]), secret
    )
    return payload
