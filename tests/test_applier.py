"""Tests for batch application of recommendations."""

from unittest.mock import AsyncMock, patch

import pytest

from src.executor.applier import RecommendationApplier, pending_recommendations
from src.executor.kubectl_executor import KubectlExecutor
from src.executor.models import (
    ApplyReport,
    ExecutionStatus,
    KubectlExecutionError,
    KubectlNotFoundError,
)
from src.recommender.models import OwnerReference, PodRef
from src.recommender.store import RecommendationStore, parse_recommendations


@pytest.fixture
def applier(mock_executor) -> RecommendationApplier:
    return RecommendationApplier(mock_executor, delay_seconds=0)


class TestApplyAll:
    """Test flat-list apply mode."""

    @pytest.mark.asyncio
    async def test_applies_in_order(self, applier, sample_records):
        recs = parse_recommendations(sample_records)

        report = await applier.apply_all(recs)

        assert [i.pod_name for i in report.items] == ["web-frontend", "postgres", "my-deploy"]
        assert report.applied == 3
        assert report.failed == 0
        assert not report.has_failures()
        assert report.completed_at is not None

    @pytest.mark.asyncio
    async def test_continues_after_failure(self, applier, sample_records):
        records = [dict(sample_records[0], podName="failing-web"), sample_records[1]]

        report = await applier.apply_all(parse_recommendations(records))

        assert [i.status for i in report.items] == [
            ExecutionStatus.FAILED,
            ExecutionStatus.COMPLETED,
        ]
        assert report.items[0].error_message == "Resource not found"
        assert report.has_failures()
        assert [i.pod_name for i in pending_recommendations(report)] == ["failing-web"]

    @pytest.mark.asyncio
    async def test_records_patch_payload(self, applier, sample_recommendation):
        report = await applier.apply_all([sample_recommendation])

        item = report.items[0]
        assert item.container_name == "nginx"
        assert item.patch["spec"]["containers"][0]["resources"]["limits"]["memory"] == "512Mi"

    @pytest.mark.asyncio
    async def test_kubectl_error_marks_item_failed(self, sample_recommendation):
        executor = KubectlExecutor(mock_commands=True)
        executor.patch_pod = AsyncMock(side_effect=KubectlNotFoundError())
        applier = RecommendationApplier(executor, delay_seconds=0)

        report = await applier.apply_all([sample_recommendation, sample_recommendation])

        assert report.failed == 2
        assert report.items[0].error_code == "KUBECTL_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_pacing_between_items(self, mock_executor, sample_records):
        applier = RecommendationApplier(mock_executor, delay_seconds=0.3)

        with patch("src.executor.applier.asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            await applier.apply_all(parse_recommendations(sample_records))

        assert mock_sleep.await_count == 2
        mock_sleep.assert_awaited_with(0.3)

    @pytest.mark.asyncio
    async def test_empty_batch(self, applier):
        report = await applier.apply_all([])

        assert report.summary() == {
            "total": 0,
            "applied": 0,
            "failed": 0,
            "skipped": 0,
            "dry_run": False,
        }


class TestApplyMatched:
    """Test dynamic pod matching mode."""

    @pytest.fixture
    def pods(self):
        return [
            PodRef(
                namespace="default",
                name="my-deploy-75cb66cbcf-a1b2c",
                owner_references=[OwnerReference(kind="ReplicaSet", name="my-deploy-75cb66cbcf")],
                containers=["app"],
            ),
            PodRef(
                namespace="default",
                name="node-exporter-x1",
                owner_references=[OwnerReference(kind="DaemonSet", name="node-exporter")],
            ),
            PodRef(namespace="default", name="debug"),
            PodRef(
                namespace="default",
                name="other-5d9f8-zzz",
                owner_references=[OwnerReference(kind="ReplicaSet", name="other-5d9f8")],
            ),
            PodRef(
                namespace="default",
                name="my-deploy-75cb66cbcf-d4e5f",
                owner_references=[OwnerReference(kind="ReplicaSet", name="my-deploy-75cb66cbcf")],
                containers=["app"],
            ),
        ]

    @pytest.mark.asyncio
    async def test_matches_and_skips(self, applier, store, pods):
        applier.executor.list_pods = AsyncMock(return_value=pods)

        report = await applier.apply_matched(store, "default")

        assert [i.status for i in report.items] == [
            ExecutionStatus.COMPLETED,
            ExecutionStatus.SKIPPED,
            ExecutionStatus.SKIPPED,
            ExecutionStatus.SKIPPED,
            ExecutionStatus.COMPLETED,
        ]
        assert [i.error_code for i in report.items[1:4]] == [
            "UNSUPPORTED_OWNER_KIND",
            "NO_OWNER",
            "NO_RECOMMENDATION_FOUND",
        ]
        assert report.applied == 2
        assert report.skipped == 3
        assert not report.has_failures()
        applier.executor.list_pods.assert_awaited_once_with("default")

    @pytest.mark.asyncio
    async def test_patches_matched_pod_by_name(self, applier, store, pods):
        applier.executor.list_pods = AsyncMock(return_value=pods[:1])

        report = await applier.apply_matched(store, "default")

        item = report.items[0]
        assert item.pod_name == "my-deploy-75cb66cbcf-a1b2c"
        assert item.container_name == "app"
        assert item.workload_key == "my-deploydefault"

    @pytest.mark.asyncio
    async def test_patches_in_pod_namespace(self, applier, sample_records):
        # "a" + "bc" and "ab" + "c" share the key "abc"
        store = RecommendationStore.load(
            [dict(sample_records[2], namespace="c", podName="ab")]
        )
        pod = PodRef(
            namespace="bc",
            name="a-x1-k2",
            owner_references=[OwnerReference(kind="ReplicaSet", name="a-x1")],
            containers=["app"],
        )
        applier.executor.list_pods = AsyncMock(return_value=[pod])
        applier.executor.patch_pod = AsyncMock(wraps=applier.executor.patch_pod)

        report = await applier.apply_matched(store, "bc")

        item = report.items[0]
        assert item.status == ExecutionStatus.COMPLETED
        assert item.namespace == "bc"
        assert item.pod_name == "a-x1-k2"
        call = applier.executor.patch_pod.await_args
        assert call.kwargs["namespace"] == "bc"
        assert call.kwargs["pod_name"] == "a-x1-k2"

    @pytest.mark.asyncio
    async def test_skips_pod_without_recommended_container(self, applier, store):
        pod = PodRef(
            namespace="default",
            name="my-deploy-75cb66cbcf-a1b2c",
            owner_references=[OwnerReference(kind="ReplicaSet", name="my-deploy-75cb66cbcf")],
            containers=["sidecar"],
        )
        applier.executor.list_pods = AsyncMock(return_value=[pod])
        applier.executor.patch_pod = AsyncMock()

        report = await applier.apply_matched(store, "default")

        item = report.items[0]
        assert item.status == ExecutionStatus.SKIPPED
        assert item.error_code == "CONTAINER_NOT_FOUND"
        applier.executor.patch_pod.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_skips_unnamed_pod(self, applier, store):
        pod = PodRef(
            namespace="default",
            owner_references=[OwnerReference(kind="ReplicaSet", name="my-deploy-75cb66cbcf")],
            containers=["app"],
        )
        applier.executor.list_pods = AsyncMock(return_value=[pod])
        applier.executor.patch_pod = AsyncMock()

        report = await applier.apply_matched(store, "default")

        item = report.items[0]
        assert item.status == ExecutionStatus.SKIPPED
        assert item.error_code == "MISSING_POD_NAME"
        assert item.pod_name == ""
        applier.executor.patch_pod.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_list_failure_propagates(self, applier, store):
        applier.executor.list_pods = AsyncMock(
            side_effect=KubectlExecutionError("boom", exit_code=1)
        )

        with pytest.raises(KubectlExecutionError):
            await applier.apply_matched(store, "default")


class TestApplyReport:
    """Test ApplyReport accounting."""

    def test_dry_run_flag(self):
        executor = KubectlExecutor(mock_commands=True, dry_run=True)
        applier = RecommendationApplier(executor)

        assert applier.delay_seconds == 0.3
        assert ApplyReport(dry_run=executor.dry_run).summary()["dry_run"] is True

    def test_pending_excludes_completed(self):
        report = ApplyReport()
        assert pending_recommendations(report) == []
