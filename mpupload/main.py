"""
Main entry point for mpupload.

This module provides the command-line interface for uploading files and
sample archives through the multipart upload backend.
"""

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import typer
from loguru import logger

from .core.domain.upload import ProgressContext, SampleMeta, UploadResult
from .core.exceptions import UploadError
from .core.interfaces.upload import IByteSource
from .infrastructure.chunking import ArchiveSource, FileBlob, archive_size
from .infrastructure.config.loader import ConfigLoader
from .infrastructure.config.models import ApplicationConfig
from .infrastructure.logging.setup import setup_logging
from .infrastructure.services.upload import UploadCoordinator

EXIT_CANCELLED = 130

cli = typer.Typer(
    name="mpupload",
    help="Multipart uploads to S3-compatible storage through a presigned URL broker"
)


def _load_config(
    config_file: Optional[str],
    endpoint: Optional[str] = None,
    part_size: Optional[int] = None,
    retries: Optional[int] = None,
    log_level: Optional[str] = None
) -> ApplicationConfig:
    config = ConfigLoader().load_config(config_file)

    # Override with command line arguments
    if endpoint:
        config.endpoint_base = endpoint
    if part_size is not None:
        config.part_size = part_size
    if retries is not None:
        config.num_retries = retries
    if log_level:
        config.logging.level = log_level.upper()

    setup_logging(config.logging)
    return config


async def run_upload(
    config: ApplicationConfig,
    source: IByteSource,
    bucket: str,
    key: str,
    progress_sink: Optional[Callable[[int, int, ProgressContext], None]] = None
) -> Optional[UploadResult]:
    """
    Run one upload, turning SIGINT into a graceful cancellation.

    Args:
        config: Application configuration
        source: Byte source to upload
        bucket: Target bucket
        key: Target object key
        progress_sink: Optional progress callback

    Returns:
        The completed object, or None if the upload was cancelled
    """
    loop = asyncio.get_running_loop()
    cancel = asyncio.Event()

    def signal_handler(signum: int, frame: Any) -> None:
        logger.warning(f"Received signal {signum}, cancelling upload...")
        loop.call_soon_threadsafe(cancel.set)

    previous = signal.signal(signal.SIGINT, signal_handler)
    try:
        upload_config = config.upload_config(
            bucket, key,
            cancellation_signal=cancel,
            progress_sink=progress_sink
        )
        return await UploadCoordinator(upload_config).upload(source)
    finally:
        signal.signal(signal.SIGINT, previous)


def _upload_and_report(config: ApplicationConfig, source: IByteSource, bucket: str, key: str) -> None:
    with typer.progressbar(length=max(source.size, 1), label=f"Uploading {key}") as bar:
        sent = 0

        def on_progress(bytes_sent: int, total_bytes: int, ctx: ProgressContext) -> None:
            nonlocal sent
            bar.update(bytes_sent - sent)
            sent = bytes_sent

        try:
            result = asyncio.run(run_upload(config, source, bucket, key, on_progress))
        except UploadError as e:
            typer.echo(f"\nUpload failed: {e}", err=True)
            sys.exit(1)

    if result is None:
        typer.echo("Upload cancelled", err=True)
        sys.exit(EXIT_CANCELLED)

    typer.echo(json.dumps(result.to_dict(), indent=2))


def _sample_meta(
    sample_id: str,
    sample_type: str,
    sample_matrix: str,
    collection_date: str
) -> SampleMeta:
    return SampleMeta(
        sample_id=sample_id,
        sample_type=sample_type,
        sample_matrix=sample_matrix,
        sample_collection_date=collection_date
    )


@cli.command()
def upload(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to upload"),
    bucket: str = typer.Option(..., "--bucket", "-b", help="Target bucket"),
    key: Optional[str] = typer.Option(None, "--key", "-k", help="Object key (defaults to the file name)"),
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Backend base URL"),
    part_size: Optional[int] = typer.Option(None, "--part-size", help="Part size in bytes"),
    retries: Optional[int] = typer.Option(None, "--retries", help="Extra attempts per part"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level")
) -> None:
    """Upload a single file."""
    config = _load_config(config_file, endpoint, part_size, retries, log_level)
    _upload_and_report(config, FileBlob(path), bucket, key or path.name)


@cli.command("upload-sample")
def upload_sample(
    files: List[Path] = typer.Argument(..., exists=True, dir_okay=False, help="Sequencing files"),
    bucket: str = typer.Option(..., "--bucket", "-b", help="Target bucket"),
    key: str = typer.Option(..., "--key", "-k", help="Object key of the archive"),
    sample_id: str = typer.Option(..., "--sample-id", help="Sample identifier"),
    sample_type: str = typer.Option(..., "--sample-type", help="Sample type"),
    sample_matrix: str = typer.Option(..., "--sample-matrix", help="Sample matrix"),
    collection_date: str = typer.Option(..., "--collection-date", help="Sample collection date"),
    config_file: Optional[str] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Backend base URL"),
    part_size: Optional[int] = typer.Option(None, "--part-size", help="Part size in bytes"),
    retries: Optional[int] = typer.Option(None, "--retries", help="Extra attempts per part"),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level")
) -> None:
    """Pack sample metadata and sequencing files into a tar archive and upload it."""
    config = _load_config(config_file, endpoint, part_size, retries, log_level)
    meta = _sample_meta(sample_id, sample_type, sample_matrix, collection_date)

    try:
        source = ArchiveSource(meta, files)
    except UploadError as e:
        typer.echo(f"Cannot build archive: {e}", err=True)
        sys.exit(1)

    _upload_and_report(config, source, bucket, key)


@cli.command("archive-size")
def archive_size_command(
    files: List[Path] = typer.Argument(..., exists=True, dir_okay=False, help="Sequencing files"),
    sample_id: str = typer.Option(..., "--sample-id", help="Sample identifier"),
    sample_type: str = typer.Option("", "--sample-type", help="Sample type"),
    sample_matrix: str = typer.Option("", "--sample-matrix", help="Sample matrix"),
    collection_date: str = typer.Option("", "--collection-date", help="Sample collection date")
) -> None:
    """Print the exact size of the sample archive without building it."""
    meta = _sample_meta(sample_id, sample_type, sample_matrix, collection_date)
    typer.echo(str(archive_size(meta, files)))


@cli.command()
def init_config(
    output: str = typer.Option(
        "mpupload.yaml", "--output", "-o", help="Output configuration file"
    ),
    format: str = typer.Option(
        "yaml", "--format", "-f", help="Configuration format (yaml/json)"
    )
) -> None:
    """Generate a default configuration file."""

    config = ApplicationConfig()
    config_loader = ConfigLoader()

    try:
        config_loader.save_config(config, output, format)
        typer.echo(f"Default configuration saved to {output}")
    except ValueError as e:
        typer.echo(f"Error saving configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
def validate_config(
    config_file: str = typer.Argument(...,
                                      help="Configuration file to validate")
) -> None:
    """Validate a configuration file."""

    config_loader = ConfigLoader()

    try:
        config = config_loader.load_config(config_file)
    except (ValueError, FileNotFoundError, TypeError) as e:
        typer.echo(f"Configuration validation failed: {e}", err=True)
        sys.exit(1)

    summary: Dict[str, Any] = {
        "endpoint": config.endpoint_base,
        "part_size": config.part_size,
        "num_retries": config.num_retries,
    }
    typer.echo(f"Configuration file {config_file} is valid")
    typer.echo(f"Environment: {config.environment}")
    for name, value in summary.items():
        typer.echo(f"{name}: {value}")


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
