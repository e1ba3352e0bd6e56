"""Pytest configuration and shared fixtures for krr pod patcher tests."""

import json
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from src.executor.kubectl_executor import KubectlExecutor
from src.recommender.models import OwnerReference, PodRef, Recommendation
from src.recommender.store import RecommendationStore


@pytest.fixture
def sample_records() -> List[Dict]:
    """Recommendation records as produced by the recommender."""
    return [
        {
            "namespace": "default",
            "podName": "web-frontend",
            "containerName": "nginx",
            "cpuRequest": 250,
            "cpuLimit": 500,
            "memRequest": 268435456,
            "memLimit": 536870912,
        },
        {
            "namespace": "data",
            "podName": "postgres",
            "containerName": "postgres",
            "cpuRequest": 1000,
            "cpuLimit": 2000,
            "memRequest": 1073741824,
            "memLimit": 2147483648,
        },
        {
            "namespace": "default",
            "podName": "my-deploy",
            "containerName": "app",
            "cpuRequest": 100,
            "cpuLimit": 200,
            "memRequest": 134217728,
            "memLimit": 268435456,
        },
    ]


@pytest.fixture
def sample_recommendation(sample_records) -> Recommendation:
    return Recommendation.model_validate(sample_records[0])


@pytest.fixture
def store(sample_records) -> RecommendationStore:
    return RecommendationStore.load(sample_records)


@pytest.fixture
def make_pod() -> Callable[..., PodRef]:
    """Factory for pods owned by a single controller."""

    def _make_pod(
        kind: Optional[str] = "ReplicaSet",
        owner: str = "my-deploy-75cb66cbcf",
        namespace: str = "default",
        name: Optional[str] = None,
    ) -> PodRef:
        owners = [] if kind is None else [OwnerReference(kind=kind, name=owner)]
        return PodRef(
            namespace=namespace,
            name=name or f"{owner}-x7k2p",
            owner_references=owners,
        )

    return _make_pod


@pytest.fixture
def recs_file(tmp_path: Path, sample_records) -> Path:
    """Recommendations written to a JSON file."""
    path = tmp_path / "recs.json"
    path.write_text(json.dumps(sample_records))
    return path


@pytest.fixture
def mock_executor() -> KubectlExecutor:
    return KubectlExecutor(mock_commands=True)


@pytest.fixture
def pod_manifest() -> Callable[..., Dict]:
    """Factory for pod manifests in the shape kubectl returns."""
    return _pod_manifest


def _pod_manifest(
    name: str,
    namespace: str = "default",
    owner_kind: Optional[str] = "ReplicaSet",
    owner_name: str = "my-deploy-75cb66cbcf",
    containers: Optional[List[str]] = None,
) -> Dict:
    metadata: Dict = {"name": name, "namespace": namespace}
    if owner_kind:
        metadata["ownerReferences"] = [
            {
                "apiVersion": "apps/v1",
                "kind": owner_kind,
                "name": owner_name,
                "controller": True,
            }
        ]
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": metadata,
        "spec": {"containers": [{"name": c} for c in containers or ["app"]]},
    }


class MockAsyncProcess:
    """Mock async subprocess for testing external commands."""

    def __init__(self, stdout: str = "", stderr: str = "", returncode: int = 0):
        self.stdout = stdout.encode() if isinstance(stdout, str) else stdout
        self.stderr = stderr.encode() if isinstance(stderr, str) else stderr
        self.returncode = returncode

    async def communicate(self):
        """Mock communicate method."""
        return self.stdout, self.stderr

    async def wait(self):
        """Mock wait method."""
        return self.returncode

    def kill(self):
        pass


@pytest.fixture
def mock_subprocess():
    """Mock asyncio subprocess for testing external commands."""
    return MockAsyncProcess
