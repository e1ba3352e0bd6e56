"""kubectl executor for pod resource patches.

This module wraps kubectl to apply strategic merge patches to running
pods and to list the pods of a namespace for workload matching.
"""

import asyncio
import json
import shutil
from datetime import datetime, timezone
from typing import List, Optional, Tuple

import structlog

from ..recommender.models import PodRef, Recommendation
from .models import (
    ExecutionResult,
    ExecutionStatus,
    KubectlCommand,
    KubectlContextError,
    KubectlError,
    KubectlExecutionError,
    KubectlNotFoundError,
    KubectlTimeoutError,
)
from .patch import build_resource_patch

logger = structlog.get_logger(__name__)


class KubectlExecutor:
    """kubectl executor for patching pod resources."""

    def __init__(
        self,
        kubeconfig_path: Optional[str] = None,
        kubernetes_context: Optional[str] = None,
        default_timeout: int = 60,
        mock_commands: bool = False,
        dry_run: bool = False,
    ):
        """Initialize the kubectl executor.

        Args:
            kubeconfig_path: Path to kubeconfig file
            kubernetes_context: Kubernetes context to use
            default_timeout: Default command timeout in seconds
            mock_commands: Use mock commands for testing
            dry_run: Send patches as server-side dry runs
        """
        self.kubeconfig_path = kubeconfig_path
        self.kubernetes_context = kubernetes_context
        self.default_timeout = default_timeout
        self.mock_commands = mock_commands
        self.dry_run = dry_run

        self.logger = structlog.get_logger(self.__class__.__name__)

        # Track if kubectl availability has been verified
        self._kubectl_verified = mock_commands

    async def _verify_kubectl_availability(self) -> None:
        """Verify that kubectl is available and context is valid."""
        try:
            if not shutil.which("kubectl"):
                raise KubectlNotFoundError("kubectl executable not found in PATH")

            await self._verify_cluster_access()

            self.logger.info("kubectl executor initialized successfully")

        except Exception as e:
            self.logger.error("Failed to verify kubectl availability", error=str(e))
            raise

    async def _verify_cluster_access(self) -> None:
        """Verify cluster access and context."""
        try:
            returncode, _, stderr = await self._run(
                ["cluster-info", *self._connection_args()], timeout=30
            )
        except KubectlTimeoutError:
            raise KubectlContextError(
                "kubectl cluster-info command timed out after 30 seconds",
                context=self.kubernetes_context,
            )
        except KubectlError:
            raise
        except Exception as e:
            raise KubectlContextError(f"Error verifying cluster access: {str(e)}")

        if returncode != 0:
            raise KubectlContextError(
                f"Failed to access Kubernetes cluster: {stderr}",
                context=self.kubernetes_context,
            )

        self.logger.debug("Cluster access verified successfully")

    async def _ensure_verified(self) -> None:
        if not self._kubectl_verified:
            await self._verify_kubectl_availability()
            self._kubectl_verified = True

    def _connection_args(self) -> List[str]:
        args = []
        if self.kubeconfig_path:
            args.extend(["--kubeconfig", self.kubeconfig_path])
        if self.kubernetes_context:
            args.extend(["--context", self.kubernetes_context])
        return args

    async def _run(
        self, args: List[str], timeout: Optional[int] = None
    ) -> Tuple[int, str, str]:
        """Run kubectl with the given arguments.

        Returns:
            Exit code, decoded stdout and decoded stderr

        Raises:
            KubectlTimeoutError: If the command does not finish in time
        """
        timeout = timeout or self.default_timeout

        process = await asyncio.create_subprocess_exec(
            "kubectl",
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            stdout, stderr = await asyncio.wait_for(
                process.communicate(), timeout=timeout
            )
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise KubectlTimeoutError(
                f"kubectl command timed out after {timeout} seconds",
                timeout_seconds=timeout,
                command=f"kubectl {' '.join(args)}",
            )

        returncode = process.returncode if process.returncode is not None else -1
        return (
            returncode,
            stdout.decode() if stdout else "",
            stderr.decode() if stderr else "",
        )

    def build_patch_command(
        self,
        rec: Recommendation,
        pod_name: Optional[str] = None,
        namespace: Optional[str] = None,
    ) -> KubectlCommand:
        """Generate the kubectl patch command for a recommendation.

        Args:
            rec: Recommendation to apply
            pod_name: Pod to patch, defaults to the recommendation's pod
            namespace: Namespace of the pod, defaults to the recommendation's

        Returns:
            Generated KubectlCommand
        """
        target = rec.pod_name if pod_name is None else pod_name
        target_namespace = rec.namespace if namespace is None else namespace

        kubectl_args = ["patch", "pod", target, *self._connection_args()]
        kubectl_args.extend(["--namespace", target_namespace])

        if self.dry_run:
            kubectl_args.append("--dry-run=server")

        kubectl_args.extend(["--type", "strategic"])
        kubectl_args.extend(["--patch", json.dumps(build_resource_patch(rec))])

        return KubectlCommand(
            operation="patch",
            resource_type="Pod",
            resource_name=target,
            namespace=target_namespace,
            kubectl_args=kubectl_args,
            dry_run=self.dry_run,
        )

    async def patch_pod(
        self,
        rec: Recommendation,
        pod_name: Optional[str] = None,
        namespace: Optional[str] = None,
    ) -> ExecutionResult:
        """Patch the resources of one pod container.

        Args:
            rec: Recommendation to apply
            pod_name: Pod to patch, defaults to the recommendation's pod
            namespace: Namespace of the pod, defaults to the recommendation's

        Returns:
            ExecutionResult of the patch command
        """
        await self._ensure_verified()
        command = self.build_patch_command(rec, pod_name, namespace)
        return await self._execute_single_command(command)

    async def list_pods(self, namespace: str) -> List[PodRef]:
        """List the pods of a namespace.

        Raises:
            KubectlExecutionError: If kubectl fails or returns invalid output
        """
        if self.mock_commands:
            self.logger.debug("Mock mode, returning no pods", namespace=namespace)
            return []

        await self._ensure_verified()

        args = [
            "get",
            "pods",
            "--namespace",
            namespace,
            "--output",
            "json",
            *self._connection_args(),
        ]
        returncode, stdout, stderr = await self._run(args)

        if returncode != 0:
            raise KubectlExecutionError(
                f"Failed to list pods in {namespace}: {self._parse_error_message(stderr)}",
                exit_code=returncode,
                stderr=stderr,
                command=f"kubectl {' '.join(args)}",
            )

        try:
            pod_list = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise KubectlExecutionError(
                f"Invalid JSON from kubectl get pods: {str(e)}",
                exit_code=returncode,
                command=f"kubectl {' '.join(args)}",
            ) from e

        pods = [PodRef.from_manifest(item) for item in pod_list.get("items", [])]

        self.logger.info("Listed pods", namespace=namespace, pods_count=len(pods))
        return pods

    async def _execute_single_command(self, command: KubectlCommand) -> ExecutionResult:
        """Execute a single kubectl command.

        Args:
            command: Command to execute

        Returns:
            ExecutionResult with command results
        """
        started_at = datetime.now(timezone.utc)

        result = ExecutionResult(
            command_id=command.command_id,
            status=ExecutionStatus.IN_PROGRESS,
            started_at=started_at,
            exit_code=-1,
        )

        try:
            self.logger.debug("Executing kubectl command", command=str(command))

            if self.mock_commands:
                return await self._execute_mock_command(command, result)

            result.exit_code, result.stdout, result.stderr = await self._run(
                command.kubectl_args
            )
            result.completed_at = datetime.now(timezone.utc)
            result.calculate_duration()

            if result.exit_code == 0:
                result.status = ExecutionStatus.COMPLETED
            else:
                result.status = ExecutionStatus.FAILED
                result.error_message = self._parse_error_message(result.stderr)

            return result

        except Exception as e:
            result.status = ExecutionStatus.FAILED
            result.completed_at = datetime.now(timezone.utc)
            result.calculate_duration()
            result.error_message = str(e)

            if isinstance(e, KubectlError):
                result.error_details = e.details

            self.logger.error(
                "kubectl command execution failed",
                command_id=command.command_id,
                error=str(e),
            )

            return result

    async def _execute_mock_command(
        self, command: KubectlCommand, result: ExecutionResult
    ) -> ExecutionResult:
        """Execute mock command for testing."""
        if "failing-" in command.resource_name:
            result.exit_code = 1
            result.status = ExecutionStatus.FAILED
            result.stderr = f'Error from server (NotFound): pods "{command.resource_name}" not found'
            result.error_message = self._parse_error_message(result.stderr)
        else:
            result.exit_code = 0
            result.status = ExecutionStatus.COMPLETED
            result.stdout = f"pod/{command.resource_name} patched"

        result.completed_at = datetime.now(timezone.utc)
        result.calculate_duration()

        return result

    def _parse_error_message(self, stderr: str) -> str:
        """Parse user-friendly error message from kubectl stderr."""
        if "not found" in stderr.lower():
            return "Resource not found"
        elif "forbidden" in stderr.lower() or "unauthorized" in stderr.lower():
            return "Insufficient permissions"
        elif "connection refused" in stderr.lower():
            return "Cannot connect to Kubernetes cluster"
        else:
            lines = stderr.strip().split("\n")
            return lines[0] if lines and lines[0] else "Unknown error"
