import time

import pyotp

from app.services.two_factor import generate_secret, get_provisioning_uri, verify_code


def test_generate_secret_builds_provisioning_payload():
    setup = generate_secret("artist@example.com", issuer="Payout Portal")

    assert len(setup.secret) == 32
    assert setup.provisioning_uri.startswith("otpauth://totp/")
    assert "issuer=Payout" in setup.provisioning_uri
    assert setup.qr_code.startswith("data:image/png;base64,")


def test_provisioning_uri_carries_secret():
    uri = get_provisioning_uri("JBSWY3DPEHPK3PXP", "a@x.com", "Payout Portal")
    assert "secret=JBSWY3DPEHPK3PXP" in uri


def test_verify_current_code():
    secret = pyotp.random_base32()
    assert verify_code(secret, pyotp.TOTP(secret).now())


def test_verify_accepts_previous_step_within_window():
    secret = pyotp.random_base32()
    previous = pyotp.TOTP(secret).at(time.time() - 30)
    assert verify_code(secret, previous, window_steps=2)


def test_verify_rejects_code_outside_window():
    secret = pyotp.random_base32()
    stale = pyotp.TOTP(secret).at(time.time() - 30 * 20)
    assert not verify_code(secret, stale, window_steps=2)


def test_verify_tolerates_spaces():
    secret = pyotp.random_base32()
    code = pyotp.TOTP(secret).now()
    assert verify_code(secret, f" {code[:3]} {code[3:]} ")


def test_verify_rejects_malformed_input():
    secret = pyotp.random_base32()
    assert not verify_code(secret, "12345")
    assert not verify_code(secret, "abcdef")
    assert not verify_code(secret, "")
    assert not verify_code(secret, None)
    assert not verify_code(None, "123456")
    assert not verify_code("not base32!!", "123456")
