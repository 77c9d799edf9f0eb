"""Annotation policy enforced on LoadBalancer Services."""

from collections.abc import Mapping
from dataclasses import dataclass


@dataclass(frozen=True)
class AnnotationPolicy:
    """The annotation key/value every LoadBalancer Service must carry.

    Built once at startup and never mutated afterwards.
    """

    key: str
    value: str

    def matches(self, annotations: Mapping[str, str] | None) -> bool:
        """Check whether the annotations contain exactly this key and value."""
        if not annotations:
            return False
        return self.key in annotations and annotations[self.key] == self.value

    def __str__(self) -> str:
        return f"{self.key}: {self.value}"
