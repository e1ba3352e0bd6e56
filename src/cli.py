"""krr pod patcher - command line interface.

Applies precomputed CPU and memory recommendations to running pods, either
by patching the pods named in the recommendations file or by matching the
pods of a namespace to the recommendation of their owning workload.
"""

import asyncio
import sys
from typing import Any, Optional

import structlog
import typer

from .config import AppConfig, configure_logging
from .executor.applier import RecommendationApplier, pending_recommendations
from .executor.kubectl_executor import KubectlExecutor
from .executor.models import ApplyReport, KubectlError
from .recommender.models import KeyScheme, RecommendationError
from .recommender.store import RecommendationStore, load_recommendations_file

logger = structlog.get_logger(__name__)


def _build_config(
    file: Optional[str],
    delay: Optional[float],
    dry_run: bool,
    mock: bool,
    development: bool,
) -> AppConfig:
    try:
        config = AppConfig()
    except ValueError as e:
        logger.error("Invalid configuration", error=str(e))
        typer.echo(f"❌ Invalid configuration: {e}")
        sys.exit(1)
    if file:
        config.recommendations_path = file
    if delay is not None:
        config.apply_delay_seconds = delay
    if dry_run:
        config.dry_run = True
    if mock:
        config.mock_kubectl_commands = True
    if development:
        config.development_mode = True
    return config


def _build_applier(config: AppConfig) -> RecommendationApplier:
    executor = KubectlExecutor(
        kubeconfig_path=config.kubeconfig,
        kubernetes_context=config.kubernetes_context,
        default_timeout=config.kubectl_timeout_seconds,
        mock_commands=config.mock_kubectl_commands,
        dry_run=config.dry_run,
    )
    return RecommendationApplier(executor, delay_seconds=config.apply_delay_seconds)


def _echo_report(report: ApplyReport) -> None:
    summary = report.summary()
    typer.echo(
        f"Applied {summary['applied']}, failed {summary['failed']}, "
        f"skipped {summary['skipped']} of {summary['total']}"
        + (" (dry run)" if report.dry_run else "")
    )
    for item in pending_recommendations(report):
        typer.echo(
            f"  {item.status.value}: {item.namespace}/{item.pod_name} "
            f"[{item.error_code}] {item.error_message}"
        )


def _file_option() -> Any:
    return typer.Option(
        None, "--file", "-f", help="Path to recommendations file (JSON or YAML)"
    )


def create_app() -> typer.Typer:
    """Create the Typer CLI application."""
    app = typer.Typer(
        name="krr-pod-patcher",
        help="Apply krr resource recommendations to running pods",
        add_completion=False,
    )

    @app.command()
    def apply(
        file: Optional[str] = _file_option(),
        delay: Optional[float] = typer.Option(
            None, "--delay", help="Seconds to wait between pod patches"
        ),
        dry_run: bool = typer.Option(
            False, "--dry-run", help="Send patches as server-side dry runs"
        ),
        mock: bool = typer.Option(False, "--mock", help="Mock kubectl commands"),
        development: bool = typer.Option(
            False, "--dev", help="Enable development mode"
        ),
    ) -> None:
        """Patch every pod named in the recommendations file."""
        config = _build_config(file, delay, dry_run, mock, development)
        configure_logging(config.development_mode)

        try:
            recommendations = load_recommendations_file(config.recommendations_path)
        except RecommendationError as e:
            logger.error("Failed to load recommendations", error=e.message)
            typer.echo(f"❌ Failed to load recommendations: {e.message}")
            sys.exit(1)

        applier = _build_applier(config)
        report = asyncio.run(applier.apply_all(recommendations))

        _echo_report(report)
        if report.has_failures():
            sys.exit(1)

    @app.command()
    def match(
        namespace: str = typer.Argument(..., help="Namespace whose pods are matched"),
        file: Optional[str] = _file_option(),
        delimited_keys: bool = typer.Option(
            False,
            "--delimited-keys",
            help="Key workloads as namespace/name instead of name+namespace",
        ),
        delay: Optional[float] = typer.Option(
            None, "--delay", help="Seconds to wait between pod patches"
        ),
        dry_run: bool = typer.Option(
            False, "--dry-run", help="Send patches as server-side dry runs"
        ),
        mock: bool = typer.Option(False, "--mock", help="Mock kubectl commands"),
        development: bool = typer.Option(
            False, "--dev", help="Enable development mode"
        ),
    ) -> None:
        """Match running pods to their workload's recommendation and patch them."""
        config = _build_config(file, delay, dry_run, mock, development)
        if delimited_keys:
            config.workload_key_delimited = True
        configure_logging(config.development_mode)

        try:
            store = RecommendationStore.from_file(
                config.recommendations_path, config.key_scheme
            )
        except RecommendationError as e:
            logger.error("Failed to load recommendations", error=e.message)
            typer.echo(f"❌ Failed to load recommendations: {e.message}")
            sys.exit(1)

        applier = _build_applier(config)
        try:
            report = asyncio.run(applier.apply_matched(store, namespace))
        except KubectlError as e:
            logger.error("Failed to list pods", namespace=namespace, error=e.message)
            typer.echo(f"❌ Failed to list pods in {namespace}: {e.message}")
            sys.exit(1)

        _echo_report(report)
        if report.has_failures():
            sys.exit(1)

    @app.command()
    def validate(
        file: Optional[str] = _file_option(),
        delimited_keys: bool = typer.Option(
            False,
            "--delimited-keys",
            help="Key workloads as namespace/name instead of name+namespace",
        ),
    ) -> None:
        """Load the recommendations file without touching the cluster."""
        config = _build_config(file, None, False, False, False)
        configure_logging(config.development_mode)
        key_scheme = KeyScheme.DELIMITED if delimited_keys else config.key_scheme

        try:
            recommendations = load_recommendations_file(config.recommendations_path)
            store = RecommendationStore.load(recommendations, key_scheme)
        except RecommendationError as e:
            typer.echo(f"❌ Recommendations validation failed: {e.message}")
            sys.exit(1)

        typer.echo(
            f"✅ {len(recommendations)} recommendations, {len(store)} workload keys"
        )

    return app


def main() -> None:
    """Main entry point for the krr pod patcher."""
    app = create_app()
    app()


if __name__ == "__main__":
    main()
