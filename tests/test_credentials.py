from __future__ import annotations

import base64
import json

import pytest

from filetrack import credentials
from filetrack.credentials import ContractorAuth, CredentialVerifier
from filetrack.errors import ConflictError, CredentialError, ValidationFailed


@pytest.fixture(scope="module")
def sealed() -> ContractorAuth:
    return credentials.generate("correct horse")


def test_generate_shape(sealed):
    assert sealed.kdf == "pbkdf2-hmac-sha256"
    assert sealed.kdf_iterations == 200000
    assert sealed.mode == "contractor"
    assert len(base64.b64decode(sealed.salt_b64)) == 16
    assert len(base64.b64decode(sealed.nonce_b64)) == 16
    assert "correct horse" not in json.dumps(sealed.to_dict())


def test_generate_is_salted():
    fixed = iter([b"s" * 16, b"n" * 16, b"t" * 16, b"m" * 16])
    a = credentials.generate("pw", random_bytes=lambda n: next(fixed))
    b = credentials.generate("pw", random_bytes=lambda n: next(fixed))
    assert a.ciphertext_b64 != b.ciphertext_b64


def test_generate_requires_password():
    with pytest.raises(ValidationFailed):
        credentials.generate("")


def test_verify(sealed):
    assert credentials.verify_password(sealed, "correct horse") is True
    assert credentials.verify_password(sealed, "wrong") is False


def test_unsupported_kdf(sealed):
    other = ContractorAuth(**{**sealed.to_dict(), "kdf": "scrypt"})
    with pytest.raises(CredentialError):
        credentials.verify_password(other, "correct horse")


def test_bad_base64(sealed):
    other = ContractorAuth(**{**sealed.to_dict(), "salt_b64": "***"})
    with pytest.raises(CredentialError):
        credentials.verify_password(other, "correct horse")


def test_write_and_verify_file(tmp_path, sealed):
    path = credentials.credential_path(tmp_path)
    credentials.write(path, sealed)

    raw = path.read_bytes()
    assert list(json.loads(raw)) == [
        "format_version", "kdf", "kdf_iterations", "salt_b64", "nonce_b64", "ciphertext_b64", "mode",
    ]
    verifier = CredentialVerifier(path)
    assert verifier.exists()
    assert verifier.verify("correct horse")
    assert not verifier.verify("nope")


def test_write_refuses_overwrite(tmp_path, sealed):
    path = credentials.credential_path(tmp_path)
    credentials.write(path, sealed)
    with pytest.raises(ConflictError):
        credentials.write(path, sealed)
    credentials.write(path, sealed, force=True)


def test_malformed_file(tmp_path):
    path = credentials.credential_path(tmp_path)
    path.parent.mkdir(parents=True)
    path.write_text('{"format_version": 1}')
    with pytest.raises(CredentialError):
        CredentialVerifier(path).verify("x")


def test_missing_file(tmp_path):
    assert not CredentialVerifier(credentials.credential_path(tmp_path)).exists()
