"""Shared pytest fixtures for webhook unit tests."""

from datetime import UTC, datetime, timedelta

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from internallb_webhook.constants import (
    ADMISSION_API_VERSION_V1,
    DEFAULT_ANNOTATION_KEY,
    DEFAULT_ANNOTATION_VALUE,
)
from internallb_webhook.models import AdmissionRequest, AnnotationPolicy

REQUEST_UID = "705ab4f5-6393-11e8-b7cc-42010a800002"

SERVICES_RESOURCE = {"group": "", "version": "v1", "resource": "services"}


def _pem_key(key: rsa.RSAPrivateKey) -> bytes:
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


class FakeClusterCA:
    """Throwaway certificate authority for issuing serving certificates."""

    def __init__(self):
        self.key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "test-cluster-ca")])
        now = datetime.now(UTC)
        self.cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(self.key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=5))
            .not_valid_after(now + timedelta(days=365))
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .sign(self.key, hashes.SHA256())
        )

    @property
    def pem(self) -> bytes:
        return self.cert.public_bytes(serialization.Encoding.PEM)

    def sign_public_key(
        self, public_key, common_name: str, valid_for: timedelta = timedelta(days=30)
    ) -> bytes:
        now = datetime.now(UTC)
        cert = (
            x509.CertificateBuilder()
            .subject_name(x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)]))
            .issuer_name(self.cert.subject)
            .public_key(public_key)
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=5))
            .not_valid_after(now + valid_for)
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(common_name)]), critical=False
            )
            .sign(self.key, hashes.SHA256())
        )
        return cert.public_bytes(serialization.Encoding.PEM)

    def sign_csr(self, csr_pem: bytes) -> bytes:
        csr = x509.load_pem_x509_csr(csr_pem)
        common_name = csr.subject.get_attributes_for_oid(NameOID.COMMON_NAME)[0].value
        return self.sign_public_key(csr.public_key(), common_name)

    def issue(
        self,
        common_name: str = "internallb-webhook.kube-system.svc",
        valid_for: timedelta = timedelta(days=30),
    ) -> tuple[bytes, bytes]:
        """Issue a serving certificate; returns (certificate PEM, key PEM)."""
        key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
        return self.sign_public_key(key.public_key(), common_name, valid_for), _pem_key(key)


@pytest.fixture(scope="session")
def cluster_ca():
    """Certificate authority shared by the whole test session."""
    return FakeClusterCA()


@pytest.fixture(scope="session")
def serving_pair(cluster_ca):
    """A valid (certificate, key) pair issued by ``cluster_ca``."""
    return cluster_ca.issue()


@pytest.fixture
def identity_files(tmp_path, cluster_ca, serving_pair):
    """Write CA bundle, key and certificate the way the secrets are mounted."""
    certificate, private_key = serving_pair
    ca_file = tmp_path / "caCert"
    key_file = tmp_path / "key"
    cert_file = tmp_path / "serverCert"
    ca_file.write_bytes(cluster_ca.pem)
    key_file.write_bytes(private_key)
    cert_file.write_bytes(certificate)
    return ca_file, key_file, cert_file


@pytest.fixture
def policy():
    """The default annotation policy."""
    return AnnotationPolicy(key=DEFAULT_ANNOTATION_KEY, value=DEFAULT_ANNOTATION_VALUE)


@pytest.fixture
def make_service():
    """Factory for Service objects as the API server submits them."""

    def _make(
        service_type: str | None = "LoadBalancer",
        annotations: dict[str, str] | None = None,
        name: str = "web",
        namespace: str = "default",
    ) -> dict:
        metadata: dict = {"name": name, "namespace": namespace}
        if annotations is not None:
            metadata["annotations"] = annotations
        spec: dict = {"ports": [{"port": 80, "protocol": "TCP"}]}
        if service_type is not None:
            spec["type"] = service_type
        return {"apiVersion": "v1", "kind": "Service", "metadata": metadata, "spec": spec}

    return _make


@pytest.fixture
def make_review():
    """Factory for raw AdmissionReview request envelopes."""

    def _make(
        obj,
        resource: dict | None = None,
        uid: str = REQUEST_UID,
        operation: str = "CREATE",
        api_version: str = ADMISSION_API_VERSION_V1,
    ) -> dict:
        return {
            "apiVersion": api_version,
            "kind": "AdmissionReview",
            "request": {
                "uid": uid,
                "kind": {"group": "", "version": "v1", "kind": "Service"},
                "resource": resource if resource is not None else SERVICES_RESOURCE,
                "name": "web",
                "namespace": "default",
                "operation": operation,
                "object": obj,
                "oldObject": None,
                "dryRun": False,
            },
        }

    return _make


@pytest.fixture
def make_request(make_review):
    """Factory for decoded admission requests."""

    def _make(obj, **kwargs) -> AdmissionRequest:
        return AdmissionRequest.model_validate(make_review(obj, **kwargs)["request"])

    return _make
