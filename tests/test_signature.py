# tests/test_signature.py

import hashlib
import hmac

from services.payment_service import signature

SALT = "merchant-salt"

PAYLOAD = {
    "payment_id": "MOJO5a06005J21512197",
    "payment_request_id": "d66cb29dd059482e8072999f995c4eef",
    "payment_status": "Credit",
    "buyer_name": "Asha Rao",
    "buyer_email": "asha@example.com",
    "buyer_phone": "+919876543210",
    "amount": "1000.00",
    "currency": "INR",
    "fees": "19.00",
}


def reference_mac(message, secret=SALT):
    return hmac.new(secret.encode(), message.encode(), hashlib.sha1).hexdigest()


def test_message_joins_fields_in_gateway_order():
    assert signature.build_mac_message(PAYLOAD) == (
        "MOJO5a06005J21512197|d66cb29dd059482e8072999f995c4eef|Credit|Asha Rao|"
        "asha@example.com|+919876543210|1000.00|INR|19.00"
    )


def test_absent_fields_render_empty():
    message = signature.build_mac_message({"payment_id": "MOJO1", "amount": "10.00"})

    assert message == "MOJO1||||||10.00||"


def test_extra_fields_are_not_signed():
    with_extras = dict(PAYLOAD, shorturl="https://imjo.in/abc", longurl="https://x")

    assert signature.compute_mac(with_extras, SALT) == signature.compute_mac(PAYLOAD, SALT)


def test_valid_mac_verifies():
    mac = reference_mac(signature.build_mac_message(PAYLOAD))

    assert signature.verify(PAYLOAD, mac, SALT) is True


def test_mac_comparison_ignores_case_and_whitespace():
    mac = reference_mac(signature.build_mac_message(PAYLOAD))

    assert signature.verify(PAYLOAD, f" {mac.upper()} ", SALT) is True


def test_modified_field_fails():
    mac = signature.compute_mac(PAYLOAD, SALT)
    tampered = dict(PAYLOAD, amount="1.00")

    assert signature.verify(tampered, mac, SALT) is False


def test_wrong_secret_fails():
    mac = signature.compute_mac(PAYLOAD, "someone-else")

    assert signature.verify(PAYLOAD, mac, SALT) is False


def test_missing_signature_or_secret_fails_closed():
    mac = signature.compute_mac(PAYLOAD, SALT)

    assert signature.verify(PAYLOAD, None, SALT) is False
    assert signature.verify(PAYLOAD, "", SALT) is False
    assert signature.verify(PAYLOAD, mac, "") is False
    assert signature.verify(PAYLOAD, mac, None) is False
