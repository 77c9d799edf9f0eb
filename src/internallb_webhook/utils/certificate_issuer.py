"""
Serving certificate issuance through the Kubernetes CSR API.

The webhook generates its own key pair, submits a CertificateSigningRequest
for its in-cluster DNS names and waits until the request is approved and
signed. The resulting certificate chains to the cluster CA, which becomes
the CA bundle registered with the webhook configurations.
"""

import base64
import logging
import time
from datetime import UTC, datetime

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
from kubernetes import client
from kubernetes.client.rest import ApiException
from urllib3.exceptions import HTTPError

from internallb_webhook.constants import (
    CSR_COMMON_NAME_PREFIX,
    CSR_DEFAULT_SIGNER_NAME,
    CSR_KEY_SIZE,
    CSR_ORGANIZATION,
    CSR_USAGES,
)
from internallb_webhook.errors import IdentityError
from internallb_webhook.utils.identity import (
    IdentityMaterial,
    load_cached_keypair,
    load_identity,
    write_keypair,
)
from internallb_webhook.utils.kubernetes import cluster_ca_bundle

logger = logging.getLogger(__name__)

CSR_LABELS = {"app.kubernetes.io/managed-by": "internallb-webhook"}


def service_dns_names(service_name: str, namespace: str) -> list[str]:
    """DNS names the API server may use to reach the webhook Service."""
    return [
        service_name,
        f"{service_name}.{namespace}",
        f"{service_name}.{namespace}.svc",
        f"{service_name}.{namespace}.svc.cluster.local",
    ]


def build_csr(
    private_key: rsa.RSAPrivateKey, common_name: str, dns_names: list[str]
) -> bytes:
    """
    Build a PEM encoded certificate signing request.

    Args:
        private_key: Key the certificate is requested for
        common_name: Subject common name
        dns_names: Subject alternative names

    Returns:
        PEM encoded CSR
    """
    subject = x509.Name(
        [
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, CSR_ORGANIZATION),
            x509.NameAttribute(NameOID.COMMON_NAME, common_name),
        ]
    )
    csr = (
        x509.CertificateSigningRequestBuilder()
        .subject_name(subject)
        .add_extension(
            x509.SubjectAlternativeName([x509.DNSName(name) for name in dns_names]),
            critical=False,
        )
        .sign(private_key, hashes.SHA256())
    )
    return csr.public_bytes(serialization.Encoding.PEM)


class CertificateIssuer:
    """Obtains the webhook's serving certificate from the cluster CA."""

    def __init__(
        self,
        k8s_client: client.ApiClient,
        service_name: str,
        namespace: str,
        cert_dir: str,
        keypair_name: str,
        signer_name: str = CSR_DEFAULT_SIGNER_NAME,
        auto_approve: bool = False,
        timeout: float = 300.0,
        poll_interval: float = 2.0,
    ):
        """
        Initialize certificate issuer.

        Args:
            k8s_client: Kubernetes API client
            service_name: Name of the Service fronting the webhook
            namespace: Namespace of that Service
            cert_dir: Directory the issued pair is cached in
            keypair_name: Base name of the cached pair
            signer_name: Signer requested in the CSR
            auto_approve: Approve the CSR ourselves instead of waiting for an approver
            timeout: Seconds to wait for the certificate
            poll_interval: Seconds between CSR status polls
        """
        self.k8s_client = k8s_client
        self.api = client.CertificatesV1Api(k8s_client)
        self.service_name = service_name
        self.namespace = namespace
        self.cert_dir = cert_dir
        self.keypair_name = keypair_name
        self.signer_name = signer_name
        self.auto_approve = auto_approve
        self.timeout = timeout
        self.poll_interval = poll_interval

    @property
    def csr_name(self) -> str:
        return f"{self.service_name}.{self.namespace}"

    @property
    def common_name(self) -> str:
        return f"{CSR_COMMON_NAME_PREFIX}{self.service_name}.{self.namespace}.svc"

    def issue(self) -> IdentityMaterial:
        """
        Obtain the serving identity, reusing a cached pair when still valid.

        Blocks while waiting for the CSR to be signed; run it in a worker
        thread from async code.

        Returns:
            Immutable identity material

        Raises:
            IdentityError: If the certificate cannot be obtained
        """
        ca_bundle = cluster_ca_bundle(self.k8s_client)

        cached = load_cached_keypair(self.cert_dir, self.keypair_name, ca_bundle)
        if cached is not None:
            logger.info(f"Reusing serving certificate cached in {self.cert_dir}")
            return cached

        private_key = rsa.generate_private_key(public_exponent=65537, key_size=CSR_KEY_SIZE)
        csr_pem = build_csr(
            private_key,
            self.common_name,
            service_dns_names(self.service_name, self.namespace),
        )

        try:
            self._submit(csr_pem)
            if self.auto_approve:
                self._approve()
            certificate = self._wait_for_certificate()
        except (ApiException, HTTPError, OSError) as e:
            raise IdentityError(
                f"CertificateSigningRequest {self.csr_name} failed: {e}", cause=e
            ) from e

        key_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
        material = load_identity(certificate, key_pem, ca_bundle)
        write_keypair(material, self.cert_dir, self.keypair_name)
        return material

    def _submit(self, csr_pem: bytes) -> None:
        """Replace any stale CSR of the same name with a fresh one."""
        try:
            self.api.delete_certificate_signing_request(self.csr_name)
            logger.info(f"Deleted stale CertificateSigningRequest {self.csr_name}")
        except ApiException as e:
            if e.status != 404:
                raise

        body = client.V1CertificateSigningRequest(
            metadata=client.V1ObjectMeta(name=self.csr_name, labels=CSR_LABELS),
            spec=client.V1CertificateSigningRequestSpec(
                request=base64.b64encode(csr_pem).decode("ascii"),
                signer_name=self.signer_name,
                usages=CSR_USAGES,
            ),
        )
        self.api.create_certificate_signing_request(body)
        logger.info(
            f"Created CertificateSigningRequest {self.csr_name} for signer {self.signer_name}"
        )

    def _approve(self) -> None:
        csr = self.api.read_certificate_signing_request(self.csr_name)
        if csr.status is None:
            csr.status = client.V1CertificateSigningRequestStatus()
        conditions = list(csr.status.conditions or [])
        conditions.append(
            client.V1CertificateSigningRequestCondition(
                type="Approved",
                status="True",
                reason="InternalLBWebhookSelfApprove",
                message="Serving certificate for the internal load balancer webhook",
                last_update_time=datetime.now(UTC),
            )
        )
        csr.status.conditions = conditions
        self.api.replace_certificate_signing_request_approval(self.csr_name, csr)
        logger.info(f"Approved CertificateSigningRequest {self.csr_name}")

    def _wait_for_certificate(self) -> bytes:
        """
        Poll the CSR until it is signed.

        Returns:
            PEM certificate issued for the request

        Raises:
            IdentityError: If the CSR is denied, fails, or times out
        """
        deadline = time.monotonic() + self.timeout
        while True:
            csr = self.api.read_certificate_signing_request(self.csr_name)
            status = csr.status
            if status is not None:
                for condition in status.conditions or []:
                    if condition.type in ("Denied", "Failed"):
                        raise IdentityError(
                            f"CertificateSigningRequest {self.csr_name} was "
                            f"{condition.type.lower()}: {condition.message or condition.reason}"
                        )
                if status.certificate:
                    logger.info(f"CertificateSigningRequest {self.csr_name} was signed")
                    return base64.b64decode(status.certificate)

            if time.monotonic() >= deadline:
                raise IdentityError(
                    f"Timed out after {self.timeout}s waiting for "
                    f"CertificateSigningRequest {self.csr_name} to be signed",
                    user_action=(
                        f"Approve it with 'kubectl certificate approve {self.csr_name}' "
                        "or enable CSR_AUTO_APPROVE"
                    ),
                )
            logger.debug(f"Waiting for CertificateSigningRequest {self.csr_name}")
            time.sleep(self.poll_interval)
