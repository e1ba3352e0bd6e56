"""Configuration and logging setup for the krr pod patcher."""

import logging
import os
import sys
from typing import Optional

import structlog
from dotenv import load_dotenv
from pydantic import BaseModel, Field

from .recommender.models import KeyScheme

# Load environment variables
load_dotenv()


def _env_flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class AppConfig(BaseModel):
    """Configuration for applying recommendations."""

    # Kubernetes Configuration
    kubeconfig: Optional[str] = Field(
        default_factory=lambda: os.getenv("KUBECONFIG"),
        description="Path to kubeconfig file, in-cluster config if unset",
    )
    kubernetes_context: Optional[str] = Field(
        default_factory=lambda: os.getenv("KUBERNETES_CONTEXT"),
        description="Kubernetes context to use",
    )

    # Recommendation input
    recommendations_path: str = Field(
        default_factory=lambda: os.getenv("RECOMMENDATIONS_PATH", "./recs.json"),
        description="Path to the recommendations file",
    )
    workload_key_delimited: bool = Field(
        default_factory=lambda: _env_flag("WORKLOAD_KEY_DELIMITED"),
        description="Key workloads as namespace/name instead of name+namespace",
    )

    # Apply behaviour
    apply_delay_seconds: float = Field(
        default_factory=lambda: float(os.getenv("APPLY_DELAY_SECONDS", "0.3")),
        description="Pause between pod patches in seconds",
    )
    kubectl_timeout_seconds: int = Field(
        default_factory=lambda: int(os.getenv("KUBECTL_TIMEOUT_SECONDS", "60")),
        description="Timeout for a single kubectl command",
    )
    dry_run: bool = Field(
        default_factory=lambda: _env_flag("DRY_RUN"),
        description="Send patches as server-side dry runs",
    )

    # Development Settings
    development_mode: bool = Field(
        default_factory=lambda: _env_flag("DEVELOPMENT_MODE"),
        description="Enable development mode with console logging",
    )
    mock_kubectl_commands: bool = Field(
        default_factory=lambda: _env_flag("MOCK_KUBECTL_COMMANDS"),
        description="Mock kubectl commands for testing",
    )

    @property
    def key_scheme(self) -> KeyScheme:
        if self.workload_key_delimited:
            return KeyScheme.DELIMITED
        return KeyScheme.CONCATENATED


def configure_logging(development: bool = False) -> None:
    """Configure structured logging.

    JSON lines on stderr; a console renderer at debug level in development mode.
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=logging.DEBUG if development else logging.INFO,
        force=True,
    )

    renderer = (
        structlog.dev.ConsoleRenderer()
        if development
        else structlog.processors.JSONRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
