"""Execution models for the krr pod patcher.

This module defines data models for kubectl patch commands, their
results, and the report of a batch apply run.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ExecutionStatus(str, Enum):
    """Status of execution operations."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class KubectlCommand(BaseModel):
    """Represents a kubectl command to be executed."""

    command_id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique command ID")
    operation: str = Field(..., description="kubectl operation (patch, get)")
    resource_type: str = Field(..., description="Kubernetes resource type")
    resource_name: str = Field(..., description="Resource name")
    namespace: str = Field(..., description="Kubernetes namespace")

    kubectl_args: List[str] = Field(..., description="Full kubectl command arguments")
    dry_run: bool = Field(False, description="Whether this is a dry-run command")

    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Command creation time")

    def __str__(self) -> str:
        """String representation of the command."""
        return f"kubectl {' '.join(self.kubectl_args)}"


class ExecutionResult(BaseModel):
    """Result of executing a kubectl command."""

    command_id: str = Field(..., description="Associated command ID")
    status: ExecutionStatus = Field(..., description="Execution status")

    # Execution timing
    started_at: datetime = Field(..., description="Execution start time")
    completed_at: Optional[datetime] = Field(None, description="Execution completion time")
    duration_seconds: Optional[float] = Field(None, description="Execution duration")

    # Results
    exit_code: int = Field(..., description="Command exit code")
    stdout: str = Field(default="", description="Standard output")
    stderr: str = Field(default="", description="Standard error")

    # Error details
    error_message: Optional[str] = Field(None, description="Human-readable error message")
    error_details: Dict[str, Any] = Field(default_factory=dict, description="Detailed error information")

    def is_successful(self) -> bool:
        """Check if execution was successful."""
        return self.status == ExecutionStatus.COMPLETED and self.exit_code == 0

    def calculate_duration(self) -> None:
        """Calculate execution duration if completed."""
        if self.completed_at:
            self.duration_seconds = (self.completed_at - self.started_at).total_seconds()


class ApplyItem(BaseModel):
    """Outcome of applying (or skipping) one recommendation."""

    namespace: str = Field(..., description="Pod namespace")
    pod_name: str = Field(..., description="Target pod name")
    container_name: Optional[str] = Field(None, description="Patched container")
    status: ExecutionStatus = Field(..., description="Item status")
    workload_key: Optional[str] = Field(None, description="Matched workload key")
    patch: Optional[Dict[str, Any]] = Field(None, description="Patch payload sent")
    error_code: Optional[str] = Field(None, description="Error code if the item did not apply")
    error_message: Optional[str] = Field(None, description="Error message if the item did not apply")
    duration_seconds: Optional[float] = Field(None, description="kubectl execution time")


class ApplyReport(BaseModel):
    """Report of a batch apply run."""

    report_id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique report ID")
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), description="Run start time")
    completed_at: Optional[datetime] = Field(None, description="Run completion time")
    dry_run: bool = Field(False, description="Whether patches were server-side dry runs")

    items: List[ApplyItem] = Field(default_factory=list, description="Per-item outcomes in apply order")

    @property
    def applied(self) -> int:
        return len([i for i in self.items if i.status == ExecutionStatus.COMPLETED])

    @property
    def failed(self) -> int:
        return len([i for i in self.items if i.status == ExecutionStatus.FAILED])

    @property
    def skipped(self) -> int:
        return len([i for i in self.items if i.status == ExecutionStatus.SKIPPED])

    def has_failures(self) -> bool:
        return self.failed > 0

    def summary(self) -> Dict[str, Any]:
        """Counts by outcome."""
        return {
            "total": len(self.items),
            "applied": self.applied,
            "failed": self.failed,
            "skipped": self.skipped,
            "dry_run": self.dry_run,
        }


class KubectlError(Exception):
    """Base exception for kubectl-related errors."""

    def __init__(self, message: str, error_code: str = "KUBECTL_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}


class KubectlNotFoundError(KubectlError):
    """Raised when kubectl executable is not found."""

    def __init__(self, message: str = "kubectl executable not found in PATH"):
        super().__init__(message, "KUBECTL_NOT_FOUND")


class KubectlContextError(KubectlError):
    """Raised when kubectl context is invalid."""

    def __init__(self, message: str, context: Optional[str] = None):
        super().__init__(message, "KUBECTL_CONTEXT_ERROR")
        self.details = {"context": context}


class KubectlExecutionError(KubectlError):
    """Raised when kubectl command execution fails."""

    def __init__(self, message: str, exit_code: int, stderr: Optional[str] = None, command: Optional[str] = None):
        super().__init__(message, "KUBECTL_EXECUTION_ERROR")
        self.details = {
            "exit_code": exit_code,
            "stderr": stderr,
            "command": command,
        }


class KubectlTimeoutError(KubectlError):
    """Raised when kubectl command times out."""

    def __init__(self, message: str, timeout_seconds: int, command: Optional[str] = None):
        super().__init__(message, "KUBECTL_TIMEOUT_ERROR")
        self.details = {
            "timeout_seconds": timeout_seconds,
            "command": command,
        }
