"""Workload resolution and recommendation matching.

A pod is matched to a recommendation through the workload that owns it:

- StatefulSet owners have stable names and are used as-is.
- ReplicaSet owners are named ``<deployment>-<pod-template-hash>``; the
  trailing hash segment is dropped to recover the Deployment name, which is
  stable across rollouts.
- Any other owner kind (DaemonSet, Job, ...) is not supported.

Only the first owner reference of a pod is inspected.
"""

import structlog

from .models import (
    ContainerNotFoundError,
    KeyScheme,
    MalformedOwnerNameError,
    NoOwnerError,
    NoRecommendationFoundError,
    OwnerKind,
    OwnerReference,
    PodRef,
    Recommendation,
    UnsupportedOwnerKindError,
    workload_key,
)
from .store import RecommendationStore

logger = structlog.get_logger(__name__)

REPLICA_SET_NAME_SEPARATOR = "-"


def _deployment_name(replica_set_name: str) -> str:
    parts = replica_set_name.split(REPLICA_SET_NAME_SEPARATOR)
    if len(parts) < 2:
        raise MalformedOwnerNameError(
            f"malformed ReplicaSet name: {replica_set_name}",
            owner_name=replica_set_name,
        )
    return REPLICA_SET_NAME_SEPARATOR.join(parts[:-1])


def canonical_owner_name(owner: OwnerReference) -> str:
    """Return the stable workload name for an owner reference.

    Raises:
        UnsupportedOwnerKindError: If the owner is not a StatefulSet or ReplicaSet
        MalformedOwnerNameError: If a ReplicaSet name has no hash suffix
    """
    kind = owner.owner_kind
    if kind == OwnerKind.STATEFUL_SET:
        return owner.name
    if kind == OwnerKind.REPLICA_SET:
        return _deployment_name(owner.name)
    raise UnsupportedOwnerKindError(
        f"unsupported owner kind: {owner.kind}", kind=owner.kind
    )


def resolve_workload_key(
    pod: PodRef, key_scheme: KeyScheme = KeyScheme.CONCATENATED
) -> str:
    """Derive the workload key of a pod from its first owner reference.

    Args:
        pod: Pod namespace and owner references
        key_scheme: How owner name and namespace are combined

    Returns:
        Workload key, ``ownerName + namespace`` by default

    Raises:
        NoOwnerError: If the pod has no owner references
        UnsupportedOwnerKindError: If the first owner kind is not supported
        MalformedOwnerNameError: If a ReplicaSet name has no hash suffix
    """
    if not pod.owner_references:
        raise NoOwnerError(f"pod {pod} has no owner", pod=str(pod))

    owner_name = canonical_owner_name(pod.owner_references[0])
    return workload_key(owner_name, pod.namespace, key_scheme)


def match_recommendation(pod: PodRef, store: RecommendationStore) -> Recommendation:
    """Find the recommendation for the workload owning a pod.

    The store's key scheme is used so keys on both sides agree.

    Raises:
        NoRecommendationFoundError: If the workload has no recommendation
        RecommendationError: Any resolution error, unchanged
    """
    key = resolve_workload_key(pod, store.key_scheme)

    rec = store.lookup(key)
    if rec is None:
        raise NoRecommendationFoundError(
            f"no recommendation found for key: {key}", key=key
        )

    logger.debug("Matched recommendation", pod=str(pod), key=key)
    return rec


def check_container(pod: PodRef, rec: Recommendation) -> None:
    """Ensure the pod runs the container a recommendation targets.

    Containers are merged by name, so patching an unknown name would try to
    add a container, which the API server rejects for running pods.

    Raises:
        ContainerNotFoundError: If the pod has no container of that name
    """
    if rec.container_name not in pod.containers:
        raise ContainerNotFoundError(
            f"pod {pod} has no container {rec.container_name}",
            container_name=rec.container_name,
            containers=list(pod.containers),
        )
