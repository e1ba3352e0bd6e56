"""Recommendation models for the krr pod patcher.

This module defines the recommendation record, the pod and owner-reference
inputs used for workload resolution, and the recommendation error taxonomy.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, model_validator


class OwnerKind(str, Enum):
    """Controller kinds that can own a pod."""

    STATEFUL_SET = "StatefulSet"
    REPLICA_SET = "ReplicaSet"
    UNSUPPORTED = "Unsupported"

    @classmethod
    def parse(cls, kind: str) -> "OwnerKind":
        """Map a raw ownerReference kind onto the closed set of kinds."""
        if kind == cls.STATEFUL_SET.value:
            return cls.STATEFUL_SET
        if kind == cls.REPLICA_SET.value:
            return cls.REPLICA_SET
        return cls.UNSUPPORTED


class KeyScheme(str, Enum):
    """How a workload name and namespace are combined into a lookup key."""

    # Plain concatenation, no separator. "ab" + "c" collides with "a" + "bc";
    # kept as the default because existing recommendation data is keyed this way.
    CONCATENATED = "concatenated"
    # Deviation: "<namespace>/<name>", unambiguous since neither part may contain "/".
    DELIMITED = "delimited"


def workload_key(
    owner_name: str, namespace: str, scheme: KeyScheme = KeyScheme.CONCATENATED
) -> str:
    """Build the lookup key for a workload."""
    if scheme == KeyScheme.DELIMITED:
        return f"{namespace}/{owner_name}"
    return owner_name + namespace


_RECORD_FIELD_NAMES = {
    "namespace": "namespace",
    "podname": "pod_name",
    "containername": "container_name",
    "workloadname": "workload_name",
    "cpurequest": "cpu_request",
    "cpulimit": "cpu_limit",
    "memrequest": "mem_request",
    "memlimit": "mem_limit",
}


class Recommendation(BaseModel):
    """A resource recommendation for one container of a workload."""

    model_config = ConfigDict(frozen=True)

    namespace: str = Field(..., description="Kubernetes namespace")
    pod_name: str = Field(..., description="Pod (or workload) name")
    container_name: str = Field(..., description="Container to patch")
    workload_name: Optional[str] = Field(
        None, description="Owning workload name, defaults to pod_name"
    )

    cpu_request: StrictInt = Field(..., description="CPU request in millicores")
    cpu_limit: StrictInt = Field(..., description="CPU limit in millicores")
    mem_request: StrictInt = Field(..., description="Memory request in bytes")
    mem_limit: StrictInt = Field(..., description="Memory limit in bytes")

    @model_validator(mode="before")
    @classmethod
    def _normalize_field_names(cls, data: Any) -> Any:
        # PodName, podName and pod_name all name the same field.
        if not isinstance(data, dict):
            return data
        normalized: Dict[str, Any] = {}
        for key, value in data.items():
            if not isinstance(key, str):
                normalized[key] = value
                continue
            name = _RECORD_FIELD_NAMES.get(key.replace("_", "").lower(), key)
            if name in normalized:
                raise ValueError(f"field {name!r} given more than once (as {key!r})")
            normalized[name] = value
        return normalized

    @property
    def owner_name(self) -> str:
        """Workload name this recommendation is keyed by."""
        return self.workload_name or self.pod_name

    def key(self, scheme: KeyScheme = KeyScheme.CONCATENATED) -> str:
        """Lookup key of the workload this recommendation targets."""
        return workload_key(self.owner_name, self.namespace, scheme)

    def __str__(self) -> str:
        """String representation of the target."""
        return f"{self.namespace}/{self.pod_name} (container: {self.container_name})"


class OwnerReference(BaseModel):
    """Minimal ownerReference of a pod."""

    kind: str = Field(..., description="Owner kind (e.g., ReplicaSet)")
    name: str = Field(..., description="Owner name")

    @property
    def owner_kind(self) -> OwnerKind:
        return OwnerKind.parse(self.kind)


class PodRef(BaseModel):
    """The parts of a pod needed to resolve its workload."""

    namespace: str = Field(..., description="Kubernetes namespace")
    name: Optional[str] = Field(None, description="Pod name")
    owner_references: List[OwnerReference] = Field(
        default_factory=list, description="Owner references in manifest order"
    )
    containers: List[str] = Field(
        default_factory=list, description="Container names of the pod"
    )

    @classmethod
    def from_manifest(cls, manifest: Dict[str, Any]) -> "PodRef":
        """Build a PodRef from a pod manifest as returned by kubectl."""
        metadata = manifest.get("metadata") or {}
        spec = manifest.get("spec") or {}
        return cls(
            namespace=metadata.get("namespace", "default"),
            name=metadata.get("name"),
            owner_references=[
                OwnerReference(kind=ref.get("kind", ""), name=ref.get("name", ""))
                for ref in metadata.get("ownerReferences") or []
            ],
            containers=[c.get("name", "") for c in spec.get("containers") or []],
        )

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name or '<unnamed>'}"


class RecommendationError(Exception):
    """Base exception for recommendation loading and matching errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "RECOMMENDATION_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class MalformedInputError(RecommendationError):
    """Raised when recommendation input cannot be decoded into records."""

    def __init__(self, message: str, index: Optional[int] = None):
        super().__init__(message, "MALFORMED_INPUT")
        self.details = {"index": index}


class RecommendationFileError(RecommendationError):
    """Raised when the recommendation file cannot be read."""

    def __init__(self, message: str, path: str):
        super().__init__(message, "RECOMMENDATION_FILE_ERROR")
        self.details = {"path": path}


class NoOwnerError(RecommendationError):
    """Raised when a pod has no owner references."""

    def __init__(self, message: str, pod: Optional[str] = None):
        super().__init__(message, "NO_OWNER")
        self.details = {"pod": pod}


class UnsupportedOwnerKindError(RecommendationError):
    """Raised when a pod's owner is neither a StatefulSet nor a ReplicaSet."""

    def __init__(self, message: str, kind: str):
        super().__init__(message, "UNSUPPORTED_OWNER_KIND")
        self.details = {"kind": kind}


class MalformedOwnerNameError(RecommendationError):
    """Raised when a ReplicaSet name has no hash suffix to strip."""

    def __init__(self, message: str, owner_name: str):
        super().__init__(message, "MALFORMED_OWNER_NAME")
        self.details = {"owner_name": owner_name}


class NoRecommendationFoundError(RecommendationError):
    """Raised when no recommendation exists for a workload key."""

    def __init__(self, message: str, key: str):
        super().__init__(message, "NO_RECOMMENDATION_FOUND")
        self.details = {"key": key}


class MissingPodNameError(RecommendationError):
    """Raised when a listed pod has no name to patch."""

    def __init__(self, message: str, namespace: str):
        super().__init__(message, "MISSING_POD_NAME")
        self.details = {"namespace": namespace}


class ContainerNotFoundError(RecommendationError):
    """Raised when a matched pod has no container with the recommended name."""

    def __init__(self, message: str, container_name: str, containers: List[str]):
        super().__init__(message, "CONTAINER_NOT_FOUND")
        self.details = {"container_name": container_name, "containers": containers}
