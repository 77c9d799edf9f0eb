"""
Constants used throughout the internal load balancer webhook.

This module defines all constant values used by the webhook including:
- The resource the webhook is registered for
- Admission envelope and patch identifiers
- HTTP routes served by the webhook
- Default configuration values
"""

# Resource the webhook is registered for (core/v1 services)
SERVICE_GROUP = ""
SERVICE_VERSION = "v1"
SERVICE_RESOURCE_PLURAL = "services"
SERVICE_OPERATIONS = ["CREATE", "UPDATE"]

# Service type the annotation policy applies to
LOAD_BALANCER_SERVICE_TYPE = "LoadBalancer"
DEFAULT_SERVICE_TYPE = "ClusterIP"

# Admission envelope
ADMISSION_API_VERSION_V1 = "admission.k8s.io/v1"
ADMISSION_API_VERSION_V1BETA1 = "admission.k8s.io/v1beta1"
ADMISSION_REVIEW_VERSIONS = ["v1", "v1beta1"]
ADMISSION_REVIEW_KIND = "AdmissionReview"
PATCH_TYPE_JSON_PATCH = "JSONPatch"
JSON_CONTENT_TYPE = "application/json"

# Denial and error messages returned to the API server
DENIAL_REASON = "the service annotations do not contain required key and value"
NO_DECISION_MESSAGE = "the webhook could not make an admission decision for this request"

# HTTP routes
VALIDATE_PATH = "/services"
MUTATE_PATH = "/mutating-services"
MUTATE_ROOT_PATH = "/"
HEALTHZ_PATH = "/healthz"
METRICS_PATH = "/metrics"

# Webhook names used for dispatch, metrics and registration
WEBHOOK_VALIDATE = "validate"
WEBHOOK_MUTATE = "mutate"

# Default configuration values
DEFAULT_PORT = 8443
DEFAULT_KEYPAIR_NAME = "tls"
DEFAULT_CERT_DIR = "/var/run/internallb-webhook-admission-controller"
DEFAULT_ANNOTATION_KEY = "service.beta.kubernetes.io/azure-load-balancer-internal"
DEFAULT_ANNOTATION_VALUE = "true"

# Static identity material locations (mounted secrets)
DEFAULT_CA_CERT_FILE = "/secrets/certs/caCert"
DEFAULT_SERVER_KEY_FILE = "/secrets/server-key/key"
DEFAULT_SERVER_CERT_FILE = "/secrets/certs/serverCert"

# Identity sources
CERT_SOURCE_FILES = "files"
CERT_SOURCE_CSR = "csr"

# Webhook registration
DEFAULT_WEBHOOK_NAME = "internallb-webhook"
WEBHOOK_NAME_DOMAIN = "admission.internallb.k8s.io"
FAILURE_POLICY_FAIL = "Fail"
FAILURE_POLICY_IGNORE = "Ignore"
SIDE_EFFECTS_NONE = "None"
DEFAULT_WEBHOOK_TIMEOUT_SECONDS = 5

# Certificate signing requests
CSR_DEFAULT_SIGNER_NAME = "kubernetes.io/kubelet-serving"
CSR_USAGES = ["digital signature", "key encipherment", "server auth"]
CSR_ORGANIZATION = "system:nodes"
CSR_COMMON_NAME_PREFIX = "system:node:"
CSR_KEY_SIZE = 2048
SERVICE_ACCOUNT_CA_FILE = "/var/run/secrets/kubernetes.io/serviceaccount/ca.crt"
