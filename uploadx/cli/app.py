"""Uploadx CLI entry point."""

from __future__ import annotations

import logging
import mimetypes
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

import typer
from tqdm import tqdm

from uploadx import __version__
from uploadx.client import UploadxClient
from uploadx.config.helpers import parse_bytes
from uploadx.exceptions import UploadxError
from uploadx.models import UploadMetadata, UploadResult

app = typer.Typer(add_completion=False, help="Resumable chunked upload client.")

logger = logging.getLogger(__name__)


def _version_callback(value: bool) -> bool:
    if value:
        typer.echo(__version__)
        raise typer.Exit()
    return value


def _chunk_size_callback(value: str | None) -> int | None:
    if value is None:
        return None
    try:
        return parse_bytes(value)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


@app.callback()
def callback(
    ctx: typer.Context,
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        help="Show the uploadx version and exit.",
        callback=_version_callback,
        is_eager=True,
        is_flag=True,
    ),
    log_level: str = typer.Option(
        "WARNING",
        "--log-level",
        help="Logging level for the upload library.",
    ),
    config: Path | None = typer.Option(
        None,
        "--config",
        exists=True,
        dir_okay=False,
        readable=True,
        help="YAML configuration file (default: $UPLOADX_CONFIG).",
    ),
) -> None:
    """Handle global CLI options."""
    ctx.obj = {"config_file": config}
    logging.basicConfig(
        level=log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _make_client(
    ctx: typer.Context, chunk_size: int | None = None
) -> UploadxClient:
    overrides: dict[str, Any] = {}
    if chunk_size is not None:
        overrides["chunk_size"] = chunk_size
    config_file = (ctx.obj or {}).get("config_file")
    try:
        return UploadxClient(overrides, config_file=config_file)
    except UploadxError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc


def _parse_meta(entries: list[str] | None) -> dict[str, str]:
    extra: dict[str, str] = {}
    for entry in entries or []:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            raise typer.BadParameter(
                f"Expected KEY=VALUE, got {entry!r}", param_hint="--meta"
            )
        extra[key] = value
    return extra


def _file_metadata(
    file: Path,
    name: str | None,
    mime_type: str | None,
    meta: list[str] | None,
) -> dict[str, Any]:
    fields: dict[str, Any] = _parse_meta(meta)
    fields["name"] = name or file.name
    fields["size"] = file.stat().st_size
    guessed, _ = mimetypes.guess_type(file.name)
    if mime_type or guessed:
        fields["mimeType"] = mime_type or guessed
    return fields


def _run_transfer(
    client: UploadxClient,
    total_size: int,
    transfer: Callable[[Callable[[float], None]], UploadResult],
) -> UploadResult:
    """Run a transfer on a worker thread so Ctrl-C can abort it cleanly."""
    with tqdm(
        total=total_size, unit="B", unit_scale=True, desc="Uploading"
    ) as pbar:

        def on_progress(fraction: float) -> None:
            pbar.n = int(fraction * total_size)
            pbar.refresh()

        with ThreadPoolExecutor(max_workers=1) as executor:
            future = executor.submit(transfer, on_progress)
            try:
                return future.result()
            except KeyboardInterrupt:
                typer.echo("Aborting upload...", err=True)
                client.abort()
                return future.result()


def _report(result: UploadResult) -> None:
    if result.cancelled:
        typer.echo(
            f"Upload cancelled at {result.uploaded_bytes}/{result.total_size} "
            f"bytes. Resume with: uploadx resume {result.url} <file>",
            err=True,
        )
        raise typer.Exit(code=130)
    typer.echo(result.url)


@app.command("upload")
def upload(
    ctx: typer.Context,
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="File to upload."
    ),
    endpoint: str = typer.Option(
        ..., "--endpoint", "-e", help="Upload endpoint URL."
    ),
    chunk_size: str | None = typer.Option(
        None,
        "--chunk-size",
        "-c",
        callback=_chunk_size_callback,
        help="Chunk size in bytes, or with a unit such as 8MiB.",
    ),
    name: str | None = typer.Option(
        None, "--name", help="Name sent in the metadata (default: file name)."
    ),
    mime_type: str | None = typer.Option(
        None, "--mime-type", help="Content type (default: guessed from name)."
    ),
    meta: list[str] | None = typer.Option(
        None, "--meta", help="Extra metadata field as KEY=VALUE. Repeatable."
    ),
) -> None:
    """Upload a file and print its session URL."""
    metadata = _file_metadata(file, name, mime_type, meta)
    try:
        with _make_client(ctx, chunk_size) as client:  # type: ignore[arg-type]
            result = _run_transfer(
                client,
                metadata["size"],
                lambda on_progress: client.file_upload(
                    endpoint, file, metadata, on_progress=on_progress
                ),
            )
    except UploadxError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    _report(result)


@app.command("resume")
def resume(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Session URL of the upload."),
    file: Path = typer.Argument(
        ..., exists=True, dir_okay=False, readable=True, help="File to upload."
    ),
    chunk_size: str | None = typer.Option(
        None,
        "--chunk-size",
        "-c",
        callback=_chunk_size_callback,
        help="Chunk size in bytes, or with a unit such as 8MiB.",
    ),
) -> None:
    """Resume an interrupted file upload from the server's offset."""
    metadata = UploadMetadata(name=file.name, size=file.stat().st_size)
    try:
        with _make_client(ctx, chunk_size) as client:  # type: ignore[arg-type]
            result = _run_transfer(
                client,
                metadata.size,
                lambda on_progress: client.resume_file_upload(
                    url, file, metadata, on_progress=on_progress
                ),
            )
    except UploadxError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    _report(result)


@app.command("status")
def status(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Session URL of the upload."),
    size: int | None = typer.Option(
        None, "--size", min=0, help="Declared total size of the upload."
    ),
) -> None:
    """Print the number of bytes the server holds for an upload."""
    metadata = {"size": size} if size is not None else None
    try:
        with _make_client(ctx) as client:
            upload_status = client.get_upload_status(url, metadata)
    except UploadxError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(str(upload_status.uploaded_bytes))


@app.command("delete")
def delete(
    ctx: typer.Context,
    url: str = typer.Argument(..., help="Session URL of the upload."),
) -> None:
    """Delete an upload from the server."""
    try:
        with _make_client(ctx) as client:
            client.delete_upload(url)
    except UploadxError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    typer.echo(f"Deleted {url}")


def main() -> None:
    """CLI entrypoint for the uploadx command."""
    app()


if __name__ == "__main__":
    main()
