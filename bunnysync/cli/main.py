from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from bunnysync import __version__
from bunnysync.core.config import (
    API_KEY_ENV,
    DEFAULT_CONFIG_PATH,
    AppConfig,
    load_config,
    save_config,
)
from bunnysync.core.logging_setup import log_to_logging, setup_logging
from bunnysync.providers.bunny import BunnyStorageClient
from bunnysync.sync import SyncEngine, exit_code_for
from bunnysync.sync.engine import now_iso

app = typer.Typer(add_completion=False, help="One-way sync of a local directory into a BunnyCDN storage zone.")
console = Console()


def _build_sync_engine(cfg: AppConfig) -> SyncEngine:
    client = BunnyStorageClient(
        zone_name=cfg.storage.zone_name,
        api_key=cfg.storage.api_key,
        endpoint=cfg.storage.endpoint,
        timeout=int(cfg.storage.timeout_sec),
    )
    return SyncEngine(cfg, client, log_to_logging)


def _usage_error(message: str, hint: str | None = None):
    console.print(f"[red]Error:[/red] {message}")
    if hint:
        console.print(hint)
    raise typer.Exit(1)


def _print_banner(cfg: AppConfig):
    table = Table(title=f"BunnyCDN Storage Sync v{__version__}", show_header=False)
    table.add_column("Key")
    table.add_column("Value")
    table.add_row("Source path", cfg.sync.local_root)
    table.add_row("Zone name", cfg.storage.zone_name)
    table.add_row("Sync path", cfg.sync.sync_path or "/")
    table.add_row("Endpoint", cfg.storage.endpoint)
    table.add_row("Dry run", str(cfg.sync.dry_run))
    table.add_row("Size only", str(cfg.sync.size_only))
    table.add_row("Only missing", str(cfg.sync.only_missing))
    table.add_row("Delete remote", str(cfg.sync.delete_remote))
    table.add_row("Concurrency", str(cfg.sync.concurrency))
    console.print(table)
    if cfg.sync.dry_run:
        console.print("[yellow]*** DRY RUN MODE - No changes will be made ***[/yellow]")


def _print_summary(summary: dict):
    table = Table(title="Sync summary")
    table.add_column("Total", justify="right")
    table.add_column("New", justify="right")
    table.add_column("Modified", justify="right")
    table.add_column("Deleted", justify="right")
    table.add_column("Skipped", justify="right")
    table.add_column("Delete candidates", justify="right")
    table.add_column("Errors", justify="right")
    table.add_row(
        str(summary.get("total", 0)),
        str(summary.get("new", 0)),
        str(summary.get("modified", 0)),
        str(summary.get("deleted", 0)),
        str(summary.get("skipped", 0)),
        str(summary.get("delete_candidates", 0)),
        str(summary.get("errors", 0)),
    )
    console.print(table)

    for item in summary.get("failed_items", []):
        console.print(f"[red]failed[/red] {item['path']}: {item['error']}")

    if summary.get("fatal_error"):
        console.print(f"[red]Sync failed during {summary.get('phase') or 'sync'}:[/red] {summary['fatal_error']}")
    elif summary.get("errors"):
        console.print(f"[red]Sync finished with {summary['errors']} error(s).[/red]")
    else:
        console.print("[green]Sync completed successfully![/green]")


@app.command()
def sync(
    source_path: Path = typer.Argument(..., help="Local directory to sync."),
    zone_name: Optional[str] = typer.Argument(None, help="BunnyCDN storage zone name (defaults to config)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be done without making changes."),
    size_only: bool = typer.Option(False, "--size-only", help="Compare by file size only instead of checksum."),
    only_missing: bool = typer.Option(False, "--only-missing", help="Only upload missing files, never update existing ones."),
    delete: Optional[bool] = typer.Option(None, "--delete/--no-delete", help="Delete remote files missing locally."),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", help="Concurrent upload/delete operations (default 5)."),
    sync_path: Optional[str] = typer.Option(None, "--sync-path", help="Remote directory to sync into."),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Storage API endpoint."),
    verbose: bool = typer.Option(False, "--verbose", help="Enable verbose debug logging."),
    json_output: bool = typer.Option(False, "--json", help="Print the summary as JSON."),
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Path of config.yaml."),
):
    """Sync SOURCE_PATH into the storage zone."""
    cfg = load_config(config_path)

    if not source_path.exists():
        _usage_error(f"Source path does not exist: {source_path}")
    if not source_path.is_dir():
        _usage_error(f"Source path must be a directory: {source_path}")
    cfg.sync.local_root = str(source_path)

    if zone_name is not None:
        cfg.storage.zone_name = zone_name
    if not cfg.storage.zone_name.strip():
        _usage_error("Zone name cannot be empty")
    if not cfg.storage.api_key:
        _usage_error(f"{API_KEY_ENV} environment variable must be set", f"Example: export {API_KEY_ENV}=your-api-key-here")

    if concurrency is not None:
        if concurrency < 1:
            _usage_error("Concurrency must be at least 1")
        cfg.sync.concurrency = concurrency
    if dry_run:
        cfg.sync.dry_run = True
    if size_only:
        cfg.sync.size_only = True
    if only_missing:
        cfg.sync.only_missing = True
    if delete is not None:
        cfg.sync.delete_remote = delete
    if sync_path is not None:
        cfg.sync.sync_path = sync_path
    if endpoint:
        cfg.storage.endpoint = endpoint

    setup_logging("DEBUG" if verbose else cfg.logging.level, cfg.logging.file)

    if not json_output:
        _print_banner(cfg)

    engine = _build_sync_engine(cfg)
    summary = engine.run_once()

    if json_output:
        print(json.dumps(summary, ensure_ascii=False, indent=2))
    else:
        _print_summary(summary)
    code = exit_code_for(summary)
    if code:
        raise typer.Exit(code)


@app.command("config-show")
def config_show(path: Path = DEFAULT_CONFIG_PATH):
    """Show current config.yaml (API key masked)."""
    cfg = load_config(path)
    data = cfg.model_dump()
    if data["storage"]["api_key"]:
        data["storage"]["api_key"] = "***"
    print(json.dumps(data, ensure_ascii=False, indent=2))


@app.command("config-set-storage")
def config_set_storage(
    zone: str = typer.Option(..., "--zone", help="Storage zone name."),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Storage API endpoint."),
    path: Path = typer.Option(DEFAULT_CONFIG_PATH, "--config"),
):
    """Set the storage zone (and endpoint) in config.yaml."""
    cfg = load_config(path, apply_env=False)
    cfg.storage.zone_name = zone
    if endpoint:
        cfg.storage.endpoint = endpoint
    save_config(cfg, path)
    print(f"OK: zone_name={zone} endpoint={cfg.storage.endpoint}")


@app.command("config-validate")
def config_validate(
    path: Path = DEFAULT_CONFIG_PATH,
    strict: bool = typer.Option(False, "--strict", help="Return non-zero when validation fails."),
):
    """Validate config and runtime prerequisites."""
    out: dict[str, Any] = {
        "ok": True,
        "checked_at": now_iso(),
        "config_path": str(path),
        "checks": {
            "config_exists": path.exists(),
            "zone_name_configured": False,
            "api_key_configured": False,
            "endpoint_is_https": False,
            "local_root_ready": False,
            "log_parent_ready": False,
        },
        "warnings": [],
        "errors": [],
    }

    try:
        cfg = load_config(path)
    except Exception as e:
        out["ok"] = False
        out["errors"].append(f"load_config_failed: {e}")
        print(json.dumps(out, ensure_ascii=False, indent=2))
        if strict:
            raise typer.Exit(2)
        return

    out["checks"]["zone_name_configured"] = bool(cfg.storage.zone_name.strip())
    if not out["checks"]["zone_name_configured"]:
        out["warnings"].append("zone_name_missing: pass it on the command line or set storage.zone_name")

    out["checks"]["api_key_configured"] = bool(cfg.storage.api_key)
    if not out["checks"]["api_key_configured"]:
        out["errors"].append(f"api_key_missing: set {API_KEY_ENV}")

    out["checks"]["endpoint_is_https"] = cfg.storage.endpoint.startswith("https://")
    if not out["checks"]["endpoint_is_https"]:
        out["warnings"].append(f"endpoint_not_https: {cfg.storage.endpoint}")

    if cfg.sync.local_root:
        local_root = Path(cfg.sync.local_root).expanduser()
        out["checks"]["local_root_ready"] = local_root.is_dir()
        if not out["checks"]["local_root_ready"]:
            out["errors"].append(f"local_root_not_a_directory: {local_root}")
    else:
        out["warnings"].append("local_root_unset: pass SOURCE_PATH to `sync`")

    if cfg.sync.size_only and cfg.sync.only_missing:
        out["warnings"].append("size_only_ignored: only_missing never compares existing files")

    if cfg.logging.file:
        try:
            Path(cfg.logging.file).expanduser().parent.mkdir(parents=True, exist_ok=True)
            out["checks"]["log_parent_ready"] = True
        except Exception as e:
            out["errors"].append(f"log_parent_unavailable: {e}")
    else:
        out["checks"]["log_parent_ready"] = True

    out["ok"] = len(out["errors"]) == 0
    print(json.dumps(out, ensure_ascii=False, indent=2))
    if strict and not out["ok"]:
        raise typer.Exit(2)


@app.command()
def version():
    """Show version information."""
    print(f"BunnyCDN Storage Sync Tool v{__version__}")


def main():
    app()


if __name__ == "__main__":
    main()
