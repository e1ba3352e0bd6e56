"""Batch application of resource recommendations.

Recommendations are applied one at a time, in order. A failure to match or
patch one pod is logged and recorded in the report; the run continues with
the next item.
"""

import asyncio
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import structlog

from ..recommender.matcher import (
    check_container,
    match_recommendation,
    resolve_workload_key,
)
from ..recommender.models import (
    MissingPodNameError,
    PodRef,
    Recommendation,
    RecommendationError,
)
from ..recommender.store import RecommendationStore
from .kubectl_executor import KubectlExecutor
from .models import ApplyItem, ApplyReport, ExecutionStatus, KubectlError
from .patch import build_resource_patch

logger = structlog.get_logger(__name__)

DEFAULT_APPLY_DELAY_SECONDS = 0.3


class RecommendationApplier:
    """Applies recommendations to running pods through a KubectlExecutor."""

    def __init__(
        self,
        executor: KubectlExecutor,
        delay_seconds: float = DEFAULT_APPLY_DELAY_SECONDS,
    ):
        """Initialize the applier.

        Args:
            executor: kubectl executor used for patches and pod listing
            delay_seconds: Pause between patches to limit API server load
        """
        self.executor = executor
        self.delay_seconds = delay_seconds

        self.logger = structlog.get_logger(self.__class__.__name__)

    async def apply_all(self, recommendations: Sequence[Recommendation]) -> ApplyReport:
        """Patch the pod named by each recommendation, in list order.

        Args:
            recommendations: Recommendations to apply

        Returns:
            ApplyReport with one item per recommendation
        """
        report = ApplyReport(dry_run=self.executor.dry_run)

        self.logger.info(
            "Applying recommendations",
            recommendations_count=len(recommendations),
            dry_run=self.executor.dry_run,
        )

        for i, rec in enumerate(recommendations):
            if i > 0:
                await self._pace()
            report.items.append(await self._apply_one(rec))

        return self._finish(report)

    async def apply_matched(
        self, store: RecommendationStore, namespace: str
    ) -> ApplyReport:
        """Match the pods of a namespace to recommendations and patch them.

        Pods that are unnamed, whose workload cannot be resolved or has no
        recommendation, or that lack the recommended container are recorded
        as skipped. Patches go to the namespace of the listed pod.

        Args:
            store: Recommendations indexed by workload
            namespace: Namespace whose pods are matched

        Returns:
            ApplyReport with one item per pod

        Raises:
            KubectlError: If the pods of the namespace cannot be listed
        """
        report = ApplyReport(dry_run=self.executor.dry_run)

        pods = await self.executor.list_pods(namespace)

        self.logger.info(
            "Matching pods to recommendations",
            namespace=namespace,
            pods_count=len(pods),
            recommendations_count=len(store),
        )

        patched = 0
        for pod in pods:
            try:
                if not pod.name:
                    raise MissingPodNameError(
                        f"pod in {pod.namespace} has no name", namespace=pod.namespace
                    )
                rec = match_recommendation(pod, store)
                check_container(pod, rec)
            except RecommendationError as e:
                self.logger.warning(
                    "Skipping pod",
                    pod=str(pod),
                    error_code=e.error_code,
                    error=e.message,
                )
                report.items.append(self._skipped_item(pod, e))
                continue

            if patched > 0:
                await self._pace()
            patched += 1

            item = await self._apply_one(
                rec, pod_name=pod.name, namespace=pod.namespace
            )
            item.workload_key = resolve_workload_key(pod, store.key_scheme)
            report.items.append(item)

        return self._finish(report)

    async def _apply_one(
        self,
        rec: Recommendation,
        pod_name: Optional[str] = None,
        namespace: Optional[str] = None,
    ) -> ApplyItem:
        target = rec.pod_name if pod_name is None else pod_name
        target_namespace = rec.namespace if namespace is None else namespace
        item = ApplyItem(
            namespace=target_namespace,
            pod_name=target,
            container_name=rec.container_name,
            status=ExecutionStatus.PENDING,
            patch=build_resource_patch(rec),
        )

        try:
            result = await self.executor.patch_pod(
                rec, pod_name=target, namespace=target_namespace
            )
        except KubectlError as e:
            item.status = ExecutionStatus.FAILED
            item.error_code = e.error_code
            item.error_message = e.message
        else:
            item.duration_seconds = result.duration_seconds
            if result.is_successful():
                item.status = ExecutionStatus.COMPLETED
            else:
                item.status = ExecutionStatus.FAILED
                item.error_code = "KUBECTL_EXECUTION_ERROR"
                item.error_message = result.error_message

        if item.status == ExecutionStatus.COMPLETED:
            self.logger.info(
                f"✅ Patched {target_namespace}/{target} for container {rec.container_name}"
            )
        else:
            self.logger.error(
                f"❌ Failed to patch pod {target_namespace}/{target}: {item.error_message}",
                error_code=item.error_code,
            )

        return item

    def _skipped_item(self, pod: PodRef, error: RecommendationError) -> ApplyItem:
        return ApplyItem(
            namespace=pod.namespace,
            pod_name=pod.name or "",
            status=ExecutionStatus.SKIPPED,
            error_code=error.error_code,
            error_message=error.message,
        )

    async def _pace(self) -> None:
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)

    def _finish(self, report: ApplyReport) -> ApplyReport:
        report.completed_at = datetime.now(timezone.utc)
        self.logger.info("Apply run completed", **report.summary())
        return report


def pending_recommendations(report: ApplyReport) -> List[ApplyItem]:
    """Items that were not applied, in apply order."""
    return [i for i in report.items if i.status != ExecutionStatus.COMPLETED]
