"""
Serving identity of the webhook.

The identity is the serving certificate, its private key and the CA bundle
the API server uses to trust the certificate. It is loaded once before the
server starts and never changes afterwards. There is no degraded mode: any
problem with the material raises IdentityError, which aborts startup.
"""

import base64
import logging
import os
import ssl
import tempfile
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from internallb_webhook.errors import IdentityError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IdentityMaterial:
    """PEM encoded certificate, private key and CA bundle."""

    certificate: bytes
    private_key: bytes
    ca_bundle: bytes

    @property
    def ca_bundle_b64(self) -> str:
        """CA bundle as expected by ``clientConfig.caBundle``."""
        return base64.b64encode(self.ca_bundle).decode("ascii")

    @property
    def not_valid_after(self) -> datetime:
        return x509.load_pem_x509_certificate(self.certificate).not_valid_after_utc

    def ssl_context(self) -> ssl.SSLContext:
        """
        Build the server-side TLS context for this identity.

        ``SSLContext.load_cert_chain`` only reads from files, so the pair is
        written to a private temporary directory that is removed once loaded.

        Returns:
            TLS context serving this certificate
        """
        context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
        with tempfile.TemporaryDirectory(prefix="internallb-webhook-") as tmp_dir:
            cert_file = os.path.join(tmp_dir, "tls.crt")
            key_file = os.path.join(tmp_dir, "tls.key")
            _write_private(cert_file, self.certificate)
            _write_private(key_file, self.private_key)
            try:
                context.load_cert_chain(certfile=cert_file, keyfile=key_file)
            except ssl.SSLError as e:
                raise IdentityError(
                    f"Serving certificate cannot be used for TLS: {e}", cause=e
                ) from e
        return context


def _write_private(path: str, data: bytes) -> None:
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(data)


def load_identity(certificate: bytes, private_key: bytes, ca_bundle: bytes) -> IdentityMaterial:
    """
    Validate PEM material and wrap it as the webhook identity.

    Args:
        certificate: PEM serving certificate
        private_key: PEM private key of the serving certificate
        ca_bundle: PEM CA bundle the API server should trust

    Returns:
        Immutable identity material

    Raises:
        IdentityError: If any part is empty, not PEM, or the key does not
            belong to the certificate
    """
    for label, data in (
        ("certificate", certificate),
        ("private key", private_key),
        ("CA bundle", ca_bundle),
    ):
        if not data or not data.strip():
            raise IdentityError(f"Serving {label} is empty")

    try:
        cert = x509.load_pem_x509_certificate(certificate)
        key = serialization.load_pem_private_key(private_key, password=None)
        x509.load_pem_x509_certificates(ca_bundle)
    except (ValueError, TypeError) as e:
        raise IdentityError(f"Invalid PEM identity material: {e}", cause=e) from e

    public_format = serialization.PublicFormat.SubjectPublicKeyInfo
    cert_public = cert.public_key().public_bytes(serialization.Encoding.DER, public_format)
    key_public = key.public_key().public_bytes(serialization.Encoding.DER, public_format)
    if cert_public != key_public:
        raise IdentityError("Private key does not match the serving certificate")

    expires = cert.not_valid_after_utc
    if expires <= datetime.now(UTC):
        logger.warning(f"Serving certificate expired at {expires.isoformat()}")
    else:
        logger.info(f"Serving certificate valid until {expires.isoformat()}")

    return IdentityMaterial(
        certificate=certificate, private_key=private_key, ca_bundle=ca_bundle
    )


def read_material(path: str | Path) -> bytes:
    """Read one identity file, raising IdentityError on failure."""
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise IdentityError(f"Failed to read {path}: {e}", cause=e) from e


def load_identity_from_files(
    ca_cert_file: str | Path, server_key_file: str | Path, server_cert_file: str | Path
) -> IdentityMaterial:
    """
    Load the identity from mounted secret files.

    Args:
        ca_cert_file: CA bundle path
        server_key_file: Private key path
        server_cert_file: Serving certificate path

    Returns:
        Immutable identity material

    Raises:
        IdentityError: If any file cannot be read or is invalid
    """
    ca_bundle = read_material(ca_cert_file)
    private_key = read_material(server_key_file)
    certificate = read_material(server_cert_file)
    logger.info(
        f"Loaded serving certificate from {server_cert_file} and CA bundle from {ca_cert_file}"
    )
    return load_identity(certificate, private_key, ca_bundle)


def keypair_paths(cert_dir: str | Path, keypair_name: str) -> tuple[Path, Path]:
    """Paths of the ``<name>.crt`` / ``<name>.key`` pair in a directory."""
    directory = Path(cert_dir)
    return directory / f"{keypair_name}.crt", directory / f"{keypair_name}.key"


def write_keypair(material: IdentityMaterial, cert_dir: str | Path, keypair_name: str) -> None:
    """
    Persist an issued certificate and key so a restart can reuse them.

    Args:
        material: Identity to persist
        cert_dir: Directory to write to (created if missing)
        keypair_name: Base name of the pair
    """
    cert_path, key_path = keypair_paths(cert_dir, keypair_name)
    try:
        cert_path.parent.mkdir(parents=True, exist_ok=True)
        _write_private(str(cert_path), material.certificate)
        _write_private(str(key_path), material.private_key)
    except OSError as e:
        # identity stays in memory; the next start re-issues
        logger.warning(f"Failed to persist serving certificate to {cert_dir}: {e}")
        return
    logger.info(f"Persisted serving certificate to {cert_path}")


def load_cached_keypair(
    cert_dir: str | Path,
    keypair_name: str,
    ca_bundle: bytes,
    min_validity: timedelta = timedelta(days=1),
) -> IdentityMaterial | None:
    """
    Reuse a previously issued pair if it is still valid long enough.

    Args:
        cert_dir: Directory the pair was written to
        keypair_name: Base name of the pair
        ca_bundle: Current cluster CA bundle
        min_validity: Minimum remaining validity for the pair to be reused

    Returns:
        The cached identity, or None if absent, invalid or about to expire
    """
    cert_path, key_path = keypair_paths(cert_dir, keypair_name)
    if not cert_path.is_file() or not key_path.is_file():
        return None

    try:
        material = load_identity(
            read_material(cert_path), read_material(key_path), ca_bundle
        )
    except IdentityError as e:
        logger.warning(f"Ignoring cached serving certificate in {cert_dir}: {e}")
        return None

    if material.not_valid_after - datetime.now(UTC) < min_validity:
        logger.info(f"Cached serving certificate {cert_path} is about to expire")
        return None
    return material
