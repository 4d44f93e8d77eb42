"""kvsession CLI - inspect and administer stored sessions.

Commands:
- validate: check configuration (and optionally backend connectivity)
- list: list live session ids
- show: print a stored session bag
- delete: destroy a stored session
- serve: start the web app
"""
from __future__ import annotations

import json

import typer

from kvsession.backend import CacheBackend, create_cache_backend
from kvsession.errors import BackendUnavailable
from kvsession.settings import Settings, load_settings
from kvsession.store import decode_data

app = typer.Typer(help="kvsession CLI - Inspect and administer server-side sessions")


def _load() -> tuple[Settings, CacheBackend]:
    try:
        settings = load_settings()
        return settings, create_cache_backend(settings.backend)
    except (ValueError, RuntimeError, BackendUnavailable) as e:
        typer.echo(f"❌ Configuration error: {e}", err=True)
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# Configuration & Validation
# ---------------------------------------------------------------------------


@app.command()
def validate(
    check: bool = typer.Option(
        False,
        "--check",
        help="Also check that the cache backend is reachable",
    ),
) -> None:
    """Validate project configuration.

    Example:
        kvsession validate
        kvsession validate --check
    """
    settings, backend = _load()
    cookie = settings.session.cookie
    typer.echo(f"✓ Project root: {settings.project_root}")
    typer.echo(f"✓ Backend: {settings.backend.store}")
    typer.echo(f"✓ Session TTL: {settings.session.ttl}s")
    typer.echo(
        f"✓ Cookie: {cookie.name} (path={cookie.path}, secure={cookie.secure}, "
        f"httponly={cookie.httponly}, samesite={cookie.samesite})"
    )
    if check:
        try:
            backend.get("__kvsession_ready__")
        except BackendUnavailable as e:
            typer.echo(f"❌ Backend unreachable: {e}", err=True)
            raise typer.Exit(code=1)
        typer.echo("✓ Backend reachable")
    typer.echo("\n✅ Configuration valid!")


# ---------------------------------------------------------------------------
# Session administration
# ---------------------------------------------------------------------------


@app.command("list")
def list_sessions(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """List live session ids."""
    _, backend = _load()
    try:
        keys = sorted(backend.list_keys())
    except BackendUnavailable as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)
    if json_output:
        typer.echo(json.dumps(keys))
        return
    if not keys:
        typer.echo("No sessions.")
        return
    for key in keys:
        typer.echo(key)


@app.command()
def show(session_id: str = typer.Argument(..., help="Session id to print")) -> None:
    """Print the stored data of one session."""
    _, backend = _load()
    try:
        data = decode_data(backend.get(session_id))
    except BackendUnavailable as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)
    if data is None:
        typer.echo(f"❌ Session not found: {session_id}", err=True)
        raise typer.Exit(code=1)
    typer.echo(json.dumps(data, indent=2, sort_keys=True))


@app.command()
def delete(session_id: str = typer.Argument(..., help="Session id to destroy")) -> None:
    """Destroy one stored session."""
    _, backend = _load()
    try:
        backend.delete(session_id)
    except BackendUnavailable as e:
        typer.echo(f"❌ {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"✓ Deleted {session_id}")


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@app.command()
def serve(
    port: int = typer.Option(
        8000,
        "--port",
        "-p",
        help="Port to serve the web app on",
    ),
    reload: bool = typer.Option(
        False,
        "--reload/--no-reload",
        help="Auto-reload on code changes",
    ),
) -> None:
    """Start the session web app (uvicorn).

    Example:
        kvsession serve
        kvsession serve --port 3000 --reload
    """
    import subprocess

    settings, _ = _load()
    cmd = ["uvicorn", "kvsession.web:app", "--port", str(port), "--host", "0.0.0.0"]
    if reload:
        cmd.append("--reload")

    typer.echo(f"🚀 Serving sessions ({settings.backend.store} backend) on http://localhost:{port}")
    try:
        subprocess.run(cmd, check=True, cwd=settings.project_root)
    except subprocess.CalledProcessError as e:
        typer.echo(f"❌ Failed to start web app: {e}", err=True)
        raise typer.Exit(code=1)
    except KeyboardInterrupt:
        typer.echo("\n✅ Web app stopped")


if __name__ == "__main__":
    app()
