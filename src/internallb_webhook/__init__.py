"""
Internal load balancer admission webhook for Kubernetes Services.

This webhook enforces that LoadBalancer-type Services carry a configured
annotation, with:
- A validating endpoint that denies non-compliant Services
- A mutating endpoint that injects the annotation
- Self-registration of the webhook configurations with the API server
- Serving certificates from mounted secrets or the CSR API
"""

__version__ = "0.1.0"
