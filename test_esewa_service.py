"""Tests for the eSewa gateway service"""

import base64
import json
from decimal import Decimal
from unittest import mock

import pytest
import requests

from conftest import TEST_SECRET, encode_callback, signed_callback
from services.esewa_service import CallbackDecodeError, EsewaService, esewa_service
from services.esewa_signature import (
    SignatureConfigError,
    SignatureInputError,
    generate_signature,
    verify_signature,
)


class TestPaymentForm:

    def test_form_fields_are_signed(self, app):
        fields = esewa_service.build_payment_form(100, transaction_uuid="TXN-TEST-123")

        assert fields["total_amount"] == "100.00"
        assert fields["transaction_uuid"] == "TXN-TEST-123"
        assert fields["product_code"] == "EPAYTEST"
        assert fields["signed_field_names"] == "total_amount,transaction_uuid,product_code"
        assert fields["signature"] == "orRIPs9ZEvbd8THnEOZF/AkOnpz/6XeKGVSp6z3snKw="

    def test_total_includes_tax_and_charges(self, app):
        fields = esewa_service.build_payment_form(
            "100", tax_amount="13", service_charge="2.5", delivery_charge=Decimal("10")
        )

        assert fields["amount"] == "100.00"
        assert fields["tax_amount"] == "13.00"
        assert fields["product_service_charge"] == "2.50"
        assert fields["product_delivery_charge"] == "10.00"
        assert fields["total_amount"] == "125.50"
        assert verify_signature(
            "125.50", fields["transaction_uuid"], "EPAYTEST", TEST_SECRET, fields["signature"]
        )

    def test_generates_unique_transaction_uuid(self, app):
        first = esewa_service.build_payment_form(10)
        second = esewa_service.build_payment_form(10)

        assert len(first["transaction_uuid"]) == 32
        assert first["transaction_uuid"] != second["transaction_uuid"]
        assert first["signature"] != second["signature"]

    def test_redirect_urls_come_from_config(self, app):
        app.config["ESEWA_SUCCESS_URL"] = "https://tickets.example/ok"
        app.config["ESEWA_FAILURE_URL"] = "https://tickets.example/fail"

        fields = esewa_service.build_payment_form(10)

        assert fields["success_url"] == "https://tickets.example/ok"
        assert fields["failure_url"] == "https://tickets.example/fail"

    def test_missing_secret_refuses_to_sign(self, app):
        app.config["ESEWA_SECRET_KEY"] = None

        assert not esewa_service.is_configured
        with pytest.raises(SignatureConfigError):
            esewa_service.build_payment_form(10)

    def test_invalid_amount(self, app):
        with pytest.raises(SignatureInputError):
            esewa_service.build_payment_form("ten")


def test_settings_fall_back_to_environment(monkeypatch):
    monkeypatch.setenv("ESEWA_SECRET_KEY", " env-secret ")
    monkeypatch.setenv("ESEWA_PRODUCT_CODE", "NP-ES-TEST")

    service = EsewaService()

    assert service.is_configured
    assert service.secret_key == "env-secret"
    assert service.product_code == "NP-ES-TEST"


def test_unconfigured_without_environment(monkeypatch):
    monkeypatch.delenv("ESEWA_SECRET_KEY", raising=False)

    assert not EsewaService().is_configured


class TestDecodeCallback:

    def test_decodes_base64_json(self):
        payload = {"transaction_uuid": "abc", "status": "COMPLETE"}
        assert esewa_service.decode_callback(encode_callback(payload)) == payload

    def test_urlsafe_and_unpadded(self):
        raw = json.dumps({"transaction_uuid": "abc?>>", "total_amount": "1.00"}).encode()
        data = base64.urlsafe_b64encode(raw).decode().rstrip("=")

        assert esewa_service.decode_callback(data)["transaction_uuid"] == "abc?>>"

    def test_plus_signs_turned_into_spaces(self):
        data = encode_callback({"transaction_uuid": "abc", "note": "~~~>>>"})
        assert esewa_service.decode_callback(data.replace("+", " "))["transaction_uuid"] == "abc"

    def test_numbers_keep_their_text(self):
        data = base64.b64encode(b'{"total_amount": 1000.0, "transaction_uuid": "x"}').decode()
        assert esewa_service.decode_callback(data)["total_amount"] == Decimal("1000.0")

    @pytest.mark.parametrize(
        "data",
        [
            None,
            "",
            "not base64 at all!",
            base64.b64encode(b"not json").decode(),
            base64.b64encode(b"[1, 2, 3]").decode(),
            base64.b64encode(b"\xff\xfe").decode(),
        ],
    )
    def test_rejects_malformed_data(self, data):
        with pytest.raises(CallbackDecodeError):
            esewa_service.decode_callback(data)


class TestVerifyCallback:

    def test_valid_callback(self, app):
        assert esewa_service.verify_callback(signed_callback("TXN-1"))

    @pytest.mark.parametrize(
        "field, value",
        [
            ("total_amount", "1000.00"),
            ("status", "PENDING"),
            ("transaction_code", "000AWEP"),
            ("transaction_uuid", "TXN-2"),
        ],
    )
    def test_tampered_field_fails(self, app, field, value):
        payload = signed_callback("TXN-1")
        payload[field] = value

        assert not esewa_service.verify_callback(payload)

    def test_signed_with_other_secret_fails(self, app):
        assert not esewa_service.verify_callback(signed_callback("TXN-1", secret="another-secret"))

    def test_missing_signature(self, app):
        payload = signed_callback("TXN-1")
        del payload["signature"]

        assert not esewa_service.verify_callback(payload)

    def test_checkout_form_signature_does_not_verify(self, app):
        fields = esewa_service.build_payment_form(100, transaction_uuid="TXN-TEST-123")
        payload = {
            key: fields[key]
            for key in ("total_amount", "transaction_uuid", "product_code", "signed_field_names", "signature")
        }
        payload.update({"status": "COMPLETE", "transaction_code": "FAKE"})

        assert not esewa_service.verify_callback(payload)

    def test_missing_signed_field_names_does_not_fall_back(self, app):
        payload = {
            "total_amount": "100.00",
            "transaction_uuid": "TXN-TEST-123",
            "product_code": "EPAYTEST",
            "status": "COMPLETE",
            "signature": "orRIPs9ZEvbd8THnEOZF/AkOnpz/6XeKGVSp6z3snKw=",
        }

        assert not esewa_service.verify_callback(payload)

    @pytest.mark.parametrize(
        "names",
        [
            "transaction_code,total_amount,transaction_uuid,product_code",
            "status,total_amount,transaction_uuid,product_code",
            "transaction_code,status,transaction_uuid,product_code",
            "transaction_code,status,total_amount,product_code",
            "transaction_code,status,total_amount,transaction_uuid",
        ],
    )
    def test_signature_must_cover_payment_outcome(self, app, names):
        # Correctly signed, but over a field list that leaves something out
        payload = signed_callback("TXN-1", signed_field_names=names)

        assert not esewa_service.verify_callback(payload)

    def test_missing_signed_field_raises(self, app):
        payload = signed_callback("TXN-1")
        del payload["transaction_code"]

        with pytest.raises(SignatureInputError):
            esewa_service.verify_callback(payload)

    def test_numeric_amount_signed_as_sent(self, app):
        names = "transaction_code,status,total_amount,transaction_uuid,product_code"
        message = (
            "transaction_code=000AWEO,status=COMPLETE,total_amount=1000.0,"
            "transaction_uuid=TXN-9,product_code=EPAYTEST"
        )
        raw = json.dumps({
            "transaction_code": "000AWEO",
            "status": "COMPLETE",
            "total_amount": 1000.0,
            "transaction_uuid": "TXN-9",
            "product_code": "EPAYTEST",
            "signed_field_names": names,
            "signature": generate_signature(message, TEST_SECRET),
        })
        payload = esewa_service.decode_callback(base64.b64encode(raw.encode()).decode())

        assert esewa_service.verify_callback(payload)


class TestCheckStatus:

    def _response(self, status_code=200, body=None):
        response = mock.MagicMock()
        response.status_code = status_code
        if isinstance(body, Exception):
            response.text = "<html>Service Unavailable</html>"
            response.json.side_effect = body
        else:
            response.text = json.dumps(body)
            response.json.return_value = body
        return response

    def test_complete(self, app):
        body = {
            "product_code": "EPAYTEST",
            "transaction_uuid": "TXN-1",
            "total_amount": 100.0,
            "status": "COMPLETE",
            "ref_id": "0001TS9",
        }
        with mock.patch("services.esewa_service.requests.get", return_value=self._response(body=body)) as get:
            result = esewa_service.check_status("TXN-1", Decimal("100"))

        assert result == {
            "success": True,
            "status": "COMPLETE",
            "ref_id": "0001TS9",
            "total_amount": 100.0,
            "transaction_uuid": "TXN-1",
        }
        get.assert_called_once_with(
            "https://esewa.test/api/epay/transaction/status/",
            params={"product_code": "EPAYTEST", "total_amount": "100.00", "transaction_uuid": "TXN-1"},
            timeout=10.0,
        )

    def test_http_error(self, app):
        response = self._response(status_code=400, body={"code": 0, "error_message": "Invalid"})
        with mock.patch("services.esewa_service.requests.get", return_value=response):
            result = esewa_service.check_status("TXN-1", "100")

        assert result["success"] is False
        assert result["error"].startswith("HTTP 400")

    def test_network_error(self, app):
        with mock.patch(
            "services.esewa_service.requests.get",
            side_effect=requests.ConnectionError("connection refused"),
        ):
            result = esewa_service.check_status("TXN-1", "100")

        assert result["success"] is False
        assert "connection refused" in result["error"]

    def test_unparsable_body(self, app):
        response = self._response(body=ValueError("no json"))
        with mock.patch("services.esewa_service.requests.get", return_value=response):
            result = esewa_service.check_status("TXN-1", "100")

        assert result == {"success": False, "error": "Invalid status response from eSewa"}
