"""
Minimal typed view of a core/v1 Service.

Only the fields the annotation policy looks at are modelled; everything else
in the submitted object is ignored when decoding and left untouched when
patching.
"""

from pydantic import BaseModel, ConfigDict, Field

from internallb_webhook.constants import DEFAULT_SERVICE_TYPE, LOAD_BALANCER_SERVICE_TYPE


class ObjectMeta(BaseModel):
    """Subset of Kubernetes object metadata."""

    model_config = ConfigDict(extra="ignore")

    name: str | None = Field(None, description="Name of the Service")
    namespace: str | None = Field(None, description="Namespace of the Service")
    annotations: dict[str, str] | None = Field(
        None, description="Annotations on the Service"
    )


class ServiceSpec(BaseModel):
    """Subset of the Service spec."""

    model_config = ConfigDict(extra="ignore")

    type: str | None = Field(
        DEFAULT_SERVICE_TYPE,
        description="Service type (ClusterIP, NodePort, LoadBalancer, ...)",
    )


class Service(BaseModel):
    """A Service as submitted in an admission request."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    api_version: str | None = Field(None, alias="apiVersion")
    kind: str | None = None
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: ServiceSpec = Field(default_factory=ServiceSpec)

    @property
    def is_load_balancer(self) -> bool:
        return self.spec.type == LOAD_BALANCER_SERVICE_TYPE

    @property
    def display_name(self) -> str:
        name = self.metadata.name or "<generated>"
        if self.metadata.namespace:
            return f"{self.metadata.namespace}/{name}"
        return name
