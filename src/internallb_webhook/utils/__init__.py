"""
Utils package - Utility modules for the webhook's cluster integration.

Contains helper modules for:
- Kubernetes client management
- Loading and validating the serving identity
- Issuing the serving certificate through the CSR API
"""

from internallb_webhook.utils.identity import (
    IdentityMaterial,
    load_identity,
    load_identity_from_files,
)

__all__ = [
    "IdentityMaterial",
    "load_identity",
    "load_identity_from_files",
]
