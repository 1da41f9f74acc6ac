"""
CLI interface for hablare.

Usage:
    hablare requestors
    hablare generate openai.text.gpt-4 "Write a haiku about rain"
    hablare list --category text
    hablare show <record-id>
"""

import json
import os
import shutil
import sys
from dataclasses import fields, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from .codecs import encode_dict
from .config import StoreConfig, get_default_store_path, load_or_create_config
from .errors import HablareError, TypedDataError
from .formats import ProviderCategory, SerializationFormat
from .logging_config import (
    configure_ops_log,
    configure_quiet_mode,
    enable_debug_mode,
    remove_ops_log,
)
from .record_store import RecordStore
from .records import GeneratedRecord
from .requestors import RequestorRegistry, build_registry
from .result import Failure
from .storage import BundleStorage

# Configure quiet mode by default (suppress verbose library output)
# Set HABLARE_VERBOSE=1 to enable debug mode via environment
if os.environ.get("HABLARE_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"hablare {version('hablare')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _get_json_output() -> bool:
    return _json_output


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


app = typer.Typer(
    name="hablare",
    help="Generate text, audio, images and embeddings through pluggable providers.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="HABLARE_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Generate text, audio, images and embeddings through pluggable providers."""


# -----------------------------------------------------------------------------
# Store access
# -----------------------------------------------------------------------------

class _Store:
    """Config, record store and bundle storage for one store directory."""

    def __init__(self, path: Path):
        self.path = path
        self.config: StoreConfig = load_or_create_config(path)
        self.records = RecordStore(self.config.database_path, bundle_root=path)
        self.bundle = BundleStorage(path)
        self._ops_handler = configure_ops_log(path)

    def close(self):
        remove_ops_log(self._ops_handler)
        self.records.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def _open_store() -> _Store:
    path = _store_override if _store_override is not None else get_default_store_path()
    return _Store(Path(path).expanduser())


def _get_registry(config: StoreConfig) -> RequestorRegistry:
    """Requestors with the store's thresholds and provider settings applied."""
    return build_registry(config)


def _require_record(store: _Store, id: str) -> GeneratedRecord:
    record = store.records.get(id)
    if record is None:
        typer.echo(f"Not found: {id}", err=True)
        raise typer.Exit(1)
    return record


# -----------------------------------------------------------------------------
# Output Formatting
# -----------------------------------------------------------------------------

def _output_width() -> int:
    """Terminal width for prompt truncation. Use generous default when not a TTY."""
    if not sys.stdout.isatty():
        return 200
    return shutil.get_terminal_size((120, 24)).columns


def _format_size(size: int) -> str:
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}GB"


def _record_line(record: GeneratedRecord) -> str:
    storage = "file" if record.is_file_stored else "inline"
    date = record.generated_at.strftime("%Y-%m-%d %H:%M")
    head = (f"{record.id}  {date}  {record.requestor_id}  "
            f"{_format_size(record.data_size)} {storage}")
    prompt = " ".join(record.prompt.split())
    room = _output_width() - len(head) - 2
    if room > 10 and prompt:
        if len(prompt) > room:
            prompt = prompt[:room - 3] + "..."
        return f"{head}  {prompt}"
    return head


def _record_json(record: GeneratedRecord) -> str:
    return encode_dict(record.to_dict(), SerializationFormat.JSON).decode("utf-8")


# -----------------------------------------------------------------------------
# Configuration overrides
# -----------------------------------------------------------------------------

def _coerce(name: str, current: Any, raw: str) -> Any:
    """Convert a --set value to the type of the field it replaces."""
    try:
        if isinstance(current, bool):
            if raw.lower() not in ("true", "false", "1", "0", "yes", "no"):
                raise ValueError(raw)
            return raw.lower() in ("true", "1", "yes")
        if isinstance(current, Enum):
            return type(current)(raw)
        if isinstance(current, int):
            return int(raw)
        if isinstance(current, float):
            return float(raw)
        if isinstance(current, list):
            return [part.strip() for part in raw.split(",") if part.strip()]
        if isinstance(current, str):
            return raw
    except ValueError as e:
        raise typer.BadParameter(f"Invalid value for {name}: {raw!r}") from e
    # Unset optional field: take JSON literals, otherwise the plain string
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _apply_settings(configuration: Any, settings: list[str]) -> Any:
    known = {f.name for f in fields(configuration)}
    changes: dict[str, Any] = {}
    for setting in settings:
        if "=" not in setting:
            raise typer.BadParameter(f"Expected key=value, got {setting!r}")
        key, raw = setting.split("=", 1)
        key = key.strip()
        if key not in known:
            raise typer.BadParameter(
                f"Unknown setting {key!r}. Available: {', '.join(sorted(known))}"
            )
        changes[key] = _coerce(key, getattr(configuration, key), raw)
    return replace(configuration, **changes) if changes else configuration


# -----------------------------------------------------------------------------
# Commands
# -----------------------------------------------------------------------------

CategoryOption = Annotated[
    Optional[ProviderCategory],
    typer.Option("--category", "-c", help="Filter by content category")
]


@app.command("requestors")
def list_requestors(
    category: CategoryOption = None,
    provider: Annotated[Optional[str], typer.Option(
        "--provider", "-p", help="Filter by provider id"
    )] = None,
):
    """
    List available requestors.

    \b
    Examples:
        hablare requestors                  # Everything registered
        hablare requestors -c embedding     # Embedding requestors only
        hablare requestors -p openai        # One provider
    """
    with _open_store() as store:
        registry = _get_registry(store.config)

    requestors = list(registry)
    if category is not None:
        requestors = [r for r in requestors if r.category is category]
    if provider is not None:
        requestors = [r for r in requestors if r.provider_id == provider]

    if _get_json_output():
        typer.echo(json.dumps([
            {
                "id": r.requestor_id,
                "name": r.display_name,
                "provider": r.provider_id,
                "category": r.category.value,
                "output": r.output_file_type.to_dict(),
                "estimated_max_size": r.estimated_max_size,
            }
            for r in requestors
        ], indent=2))
        return

    if not requestors:
        typer.echo("No requestors found.")
        return
    for r in requestors:
        threshold = r.output_file_type.store_as_file_threshold
        limit = f">= {threshold}B to file" if threshold is not None else "category default"
        typer.echo(f"{r.requestor_id}  {r.display_name}  "
                   f"{r.output_file_type.mime_type}  ({limit})")


@app.command()
def generate(
    requestor_id: Annotated[str, typer.Argument(help="Requestor id, e.g. openai.text.gpt-4")],
    prompt: Annotated[str, typer.Argument(help="Prompt text ('-' reads stdin)")],
    settings: Annotated[Optional[list[str]], typer.Option(
        "--set", "-S",
        help="Override a configuration field (key=value, repeatable)"
    )] = None,
):
    """
    Generate content and store it as a record.

    \b
    Examples:
        hablare generate openai.text.gpt-4 "Summarize the plot of Hamlet"
        hablare generate openai.image.dall-e-3 "A lighthouse at dawn" -S size=1792x1024
        hablare generate openai.embedding.text-embedding-3-large "hello" -S dimensions=256
    """
    if prompt == "-":
        prompt = sys.stdin.read()

    with _open_store() as store:
        registry = _get_registry(store.config)
        try:
            requestor = registry.require(requestor_id)
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)

        configuration = _apply_settings(requestor.default_configuration(), settings or [])
        area = store.bundle.create_storage_area()
        result = requestor.request(prompt, configuration, area)
        if isinstance(result, Failure):
            store.bundle.remove_storage_area(area.request_id)
            error = result.error
            typer.echo(f"Error: {error}", err=True)
            if getattr(error, "is_recoverable", False):
                typer.echo("Hint: this failure is transient; try again", err=True)
            raise typer.Exit(1)

        output = result.value
        record = requestor.make_record(
            output.data, output.file_reference, area.request_id, prompt=prompt
        )
        store.records.insert(record)
        if not output.is_file_stored:
            # Inline results leave nothing in the area
            store.bundle.remove_storage_area(area.request_id)

    if _get_json_output():
        typer.echo(_record_json(record))
    else:
        typer.echo(_record_line(record))


@app.command()
def regenerate(
    id: Annotated[str, typer.Argument(help="Record id to regenerate")],
    settings: Annotated[Optional[list[str]], typer.Option(
        "--set", "-S",
        help="Override a configuration field (key=value, repeatable)"
    )] = None,
):
    """Run a record's prompt again and replace the record with the new result."""
    with _open_store() as store:
        old = _require_record(store, id)
        registry = _get_registry(store.config)
        try:
            requestor = registry.require(old.requestor_id)
        except ValueError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)

        configuration = _apply_settings(requestor.default_configuration(), settings or [])
        area = store.bundle.create_storage_area()
        result = requestor.request(old.prompt, configuration, area)
        if isinstance(result, Failure):
            store.bundle.remove_storage_area(area.request_id)
            typer.echo(f"Error: {result.error}", err=True)
            raise typer.Exit(1)

        output = result.value
        record = requestor.make_record(
            output.data, output.file_reference, area.request_id, prompt=old.prompt
        )
        try:
            store.records.replace(old.id, record)
        except BaseException:
            store.bundle.remove_storage_area(area.request_id)
            raise
        if not output.is_file_stored:
            store.bundle.remove_storage_area(area.request_id)

    if _get_json_output():
        typer.echo(_record_json(record))
    else:
        typer.echo(_record_line(record))


@app.command("list")
def list_records(
    category: CategoryOption = None,
    provider: Annotated[Optional[str], typer.Option(
        "--provider", "-p", help="Filter by provider id"
    )] = None,
    requestor: Annotated[Optional[str], typer.Option(
        "--requestor", "-r", help="Filter by requestor id"
    )] = None,
    dimensions: Annotated[Optional[int], typer.Option(
        "--dimensions", help="Embeddings with exactly this many dimensions"
    )] = None,
    min_words: Annotated[Optional[int], typer.Option(
        "--min-words", help="Text records with at least this many words"
    )] = None,
    max_words: Annotated[Optional[int], typer.Option(
        "--max-words", help="Text records with at most this many words"
    )] = None,
    limit: Annotated[int, typer.Option(
        "--limit", "-n", help="Maximum results"
    )] = 20,
):
    """List stored records, newest first."""
    with _open_store() as store:
        records = store.records.query(
            category=category,
            provider_id=provider,
            requestor_id=requestor,
            dimensions=dimensions,
            min_word_count=min_words,
            max_word_count=max_words,
            limit=limit,
        )

    if _get_json_output():
        typer.echo("[" + ",".join(_record_json(r) for r in records) + "]")
        return
    if not records:
        typer.echo("No records found.")
        return
    for record in records:
        typer.echo(_record_line(record))


@app.command()
def show(
    id: Annotated[str, typer.Argument(help="Record id")],
    content: Annotated[bool, typer.Option(
        "--content", help="Print the text content (text records only)"
    )] = False,
    output: Annotated[Optional[Path], typer.Option(
        "--output", "-o", help="Write the raw payload to this path"
    )] = None,
):
    """Show a record, print its text, or export its payload."""
    with _open_store() as store:
        record = _require_record(store, id)
        store.records.touch(id)
        try:
            if output is not None:
                data = record.get_data(store.path)
                output.write_bytes(data)
                typer.echo(f"Wrote {len(data)} bytes to {output}")
                return
            if content:
                if record.category is not ProviderCategory.TEXT:
                    typer.echo(f"Error: {id} is a {record.category.value} record; use --output",
                               err=True)
                    raise typer.Exit(1)
                typer.echo(record.get_content(store.path))
                return
        except TypedDataError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)

    if _get_json_output():
        typer.echo(_record_json(record))
        return
    d = record.to_dict()
    for key, value in d.items():
        if isinstance(value, (bytes, list)) or value is None:
            continue
        if isinstance(value, dict):
            value = ", ".join(f"{k}={v}" for k, v in value.items() if v is not None)
        typer.echo(f"{key}: {value}")
    typer.echo(f"size: {record.data_size}")


@app.command()
def verify(
    ids: Annotated[Optional[list[str]], typer.Argument(
        help="Record ids (default: every file-backed record)"
    )] = None,
):
    """Check that file-backed records still match their files."""
    failures = 0
    checked = 0
    with _open_store() as store:
        if ids:
            records = [_require_record(store, id) for id in ids]
        else:
            records = store.records.query()
        for record in records:
            ref = record.file_reference
            if ref is None:
                continue
            checked += 1
            try:
                ref.verify(store.path)
            except TypedDataError as e:
                failures += 1
                typer.echo(f"FAIL {record.id}: {e}", err=True)
                continue
            typer.echo(f"ok   {record.id}  {ref.relative_path}")

    typer.echo(f"Verified {checked - failures}/{checked} files")
    if failures:
        raise typer.Exit(1)


@app.command()
def delete(
    ids: Annotated[list[str], typer.Argument(help="Record ids to delete")],
):
    """Delete records together with their files."""
    missing = 0
    with _open_store() as store:
        for id in ids:
            if store.records.delete(id):
                typer.echo(f"Deleted {id}")
            else:
                missing += 1
                typer.echo(f"Not found: {id}", err=True)
    if missing:
        raise typer.Exit(1)


@app.command()
def cleanup(
    older_than_days: Annotated[Optional[float], typer.Option(
        "--older-than", help="Also remove unreferenced storage areas older than this many days"
    )] = None,
):
    """Remove empty storage areas, or stale ones no record refers to."""
    with _open_store() as store:
        referenced = {
            r.file_reference.request_id
            for r in store.records.query()
            if r.file_reference is not None
        }
        cutoff = None
        if older_than_days is not None:
            cutoff = datetime.now(timezone.utc) - timedelta(days=older_than_days)
        removed = store.bundle.cleanup_storage_areas(older_than=cutoff, keep=referenced)
    typer.echo(f"Removed {removed} storage areas")


def main():
    try:
        app()
    except SystemExit:
        raise  # Let typer handle exit codes
    except KeyboardInterrupt:
        raise SystemExit(130)  # Standard exit code for Ctrl+C
    except HablareError as e:
        typer.echo(f"Error: {e}", err=True)
        raise SystemExit(1)
    except Exception as e:
        # Log full traceback to file, show clean message to user
        from .errors import log_exception
        log_path = log_exception(e, context="hablare CLI")
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
