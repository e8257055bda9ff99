"""Contractor credential file (``auth/contractor.json``).

The file never stores the password.  It stores a PBKDF2-HMAC-SHA256 salt and
an AES-256-GCM sealing of a fixed plaintext; a password is correct when the
key derived from it opens that ciphertext.

    {
      "format_version": 1,
      "kdf": "pbkdf2-hmac-sha256",
      "kdf_iterations": 200000,
      "salt_b64": "...",
      "nonce_b64": "...",
      "ciphertext_b64": "...",
      "mode": "contractor"
    }
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from filetrack import jsonfmt
from filetrack.atomic import AtomicWriter
from filetrack.errors import ConflictError, CredentialError, FieldError, IOFailure, ValidationFailed
from filetrack.fsops import FileSystem
from filetrack.schema import SchemaGate

logger = logging.getLogger("filetrack.credentials")

FORMAT_VERSION = 1
KDF_NAME = "pbkdf2-hmac-sha256"
KDF_ITERATIONS = 200_000
SALT_BYTES = 16
NONCE_BYTES = 16
KEY_BYTES = 32
FIXED_PLAINTEXT = b"contractor-mode"
CONTRACTOR_MODE = "contractor"

AUTH_DIR = "auth"
CONTRACTOR_FILE = "contractor.json"


@dataclass
class ContractorAuth:
    salt_b64: str
    nonce_b64: str
    ciphertext_b64: str
    kdf: str = KDF_NAME
    kdf_iterations: int = KDF_ITERATIONS
    format_version: int = FORMAT_VERSION
    mode: str = CONTRACTOR_MODE

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ContractorAuth:
        return cls(
            format_version=d["format_version"],
            kdf=d["kdf"],
            kdf_iterations=d["kdf_iterations"],
            salt_b64=d["salt_b64"],
            nonce_b64=d["nonce_b64"],
            ciphertext_b64=d["ciphertext_b64"],
            mode=d["mode"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "format_version": self.format_version,
            "kdf": self.kdf,
            "kdf_iterations": self.kdf_iterations,
            "salt_b64": self.salt_b64,
            "nonce_b64": self.nonce_b64,
            "ciphertext_b64": self.ciphertext_b64,
            "mode": self.mode,
        }


def credential_path(config_dir: Path | str) -> Path:
    return Path(config_dir) / AUTH_DIR / CONTRACTOR_FILE


def derive_key(password: str, salt: bytes, iterations: int = KDF_ITERATIONS) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=KEY_BYTES, salt=salt, iterations=iterations)
    return kdf.derive(password.encode("utf-8"))


def generate(password: str, random_bytes: Callable[[int], bytes] = secrets.token_bytes) -> ContractorAuth:
    """Seal the fixed plaintext under a key derived from ``password``."""
    if not password:
        raise ValidationFailed([FieldError("password", "required")])
    salt = random_bytes(SALT_BYTES)
    nonce = random_bytes(NONCE_BYTES)
    ciphertext = AESGCM(derive_key(password, salt)).encrypt(nonce, FIXED_PLAINTEXT, None)
    return ContractorAuth(
        salt_b64=base64.b64encode(salt).decode("ascii"),
        nonce_b64=base64.b64encode(nonce).decode("ascii"),
        ciphertext_b64=base64.b64encode(ciphertext).decode("ascii"),
    )


def verify_password(auth: ContractorAuth, password: str) -> bool:
    """True when ``password`` opens the sealed plaintext.

    Raises CredentialError for KDF settings this version does not support or
    fields that are not valid base64.
    """
    if auth.kdf != KDF_NAME or auth.kdf_iterations != KDF_ITERATIONS:
        msg = f"unsupported kdf settings: {auth.kdf} x{auth.kdf_iterations}"
        raise CredentialError(msg)
    try:
        salt = base64.b64decode(auth.salt_b64, validate=True)
        nonce = base64.b64decode(auth.nonce_b64, validate=True)
        ciphertext = base64.b64decode(auth.ciphertext_b64, validate=True)
    except binascii.Error as exc:
        msg = f"decode contractor credentials: {exc}"
        raise CredentialError(msg) from exc
    try:
        plaintext = AESGCM(derive_key(password, salt, auth.kdf_iterations)).decrypt(nonce, ciphertext, None)
    except InvalidTag:
        return False
    except ValueError as exc:
        msg = f"contractor credentials: {exc}"
        raise CredentialError(msg) from exc
    return secrets.compare_digest(plaintext, FIXED_PLAINTEXT)


def write(
    path: Path | str,
    auth: ContractorAuth,
    *,
    force: bool = False,
    fs: FileSystem | None = None,
    writer: AtomicWriter | None = None,
) -> Path:
    """Persist ``auth``; refuses to replace an existing file unless ``force``."""
    fs = fs or FileSystem()
    writer = writer or AtomicWriter(fs)
    path = Path(path)
    if fs.exists(path) and not force:
        msg = f"{path} already exists (use force to overwrite)"
        raise ConflictError(msg)
    try:
        fs.makedirs(path.parent)
    except OSError as exc:
        msg = f"create auth dir {path.parent}: {exc}"
        raise IOFailure(msg) from exc
    writer.write(path, jsonfmt.dumps_contractor(auth))
    logger.info("contractor credentials written to %s", path)
    return path


class CredentialVerifier:
    """Reads and checks one credential file."""

    def __init__(self, path: Path | str, gate: SchemaGate | None = None, fs: FileSystem | None = None) -> None:
        self.path = Path(path)
        self.gate = gate or SchemaGate()
        self.fs = fs or FileSystem()

    def exists(self) -> bool:
        return self.fs.exists(self.path)

    def load(self) -> ContractorAuth:
        try:
            raw = self.fs.read_bytes(self.path)
        except OSError as exc:
            msg = f"read contractor credentials {self.path}: {exc}"
            raise IOFailure(msg) from exc
        result = self.gate.validate_contractor(raw)
        if not result.is_valid:
            msg = f"contractor credentials {self.path} are malformed: {result.detail()}"
            raise CredentialError(msg)
        return ContractorAuth.from_dict(result.document)

    def verify(self, password: str) -> bool:
        ok = verify_password(self.load(), password)
        if not ok:
            logger.info("contractor password rejected")
        return ok
