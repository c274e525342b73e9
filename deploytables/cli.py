"""
Command Line Interface entry point using Typer.
Acts as the pipeline orchestrator for the deployment lifecycle.
"""
import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import typer
from rich.panel import Panel

from . import __version__
from .audit import AuditLogger
from .config import build_deploy_config, load_profile, save_profile
from .errors import DeployTablesError
from .keys import derive_revision_key
from .lifecycle import LifecycleCoordinator, run_activate, run_deploy, run_list
from .models import DEFAULT_FILE_NAME, DEFAULT_TABLE_NAME, DeployContext, DeployProfile
from .ui import (
    confirm,
    console,
    render_banner,
    render_error,
    render_progress,
    render_revisions,
    render_status,
    render_table,
    render_warning,
)
from .utils import human_size, sha256_file

app = typer.Typer(
    help=(
        "[bold cyan]DEPLOYTABLES[/]\n\n"
        "Upload, list and activate build revisions in an Azure Table Storage manifest."
    ),
    no_args_is_help=True,
    rich_markup_mode="rich"
)

def run_async(coro):
    """Helper to run async code inside Typer sync commands."""
    return asyncio.run(coro)

def make_coordinator(profile: DeployProfile) -> LifecycleCoordinator:
    return LifecycleCoordinator(build_deploy_config(profile), audit=AuditLogger())

def make_context(profile: DeployProfile, revision: Optional[str] = None, revision_key: Optional[str] = None) -> DeployContext:
    """Build the per-run context, hashing the artifact when no revision hash is supplied."""
    if revision and revision.startswith(f"{profile.project}:"):
        revision = revision[len(profile.project) + 1:]
    if not revision and not revision_key:
        artifact = Path(profile.dist_dir) / profile.file_name
        if artifact.is_file():
            revision_key = sha256_file(artifact)
    context = DeployContext(project_name=profile.project, dist_dir=profile.dist_dir, revision=revision or None)
    context.revision_data.revision_key = revision_key
    return context

async def _drive(coordinator: LifecycleCoordinator, runner, context: DeployContext, **kwargs) -> DeployContext:
    try:
        return await runner(coordinator, context, **kwargs)
    finally:
        await coordinator.aclose()

@app.command(name="init")
def init(
    name: str = typer.Option(..., "--name", "-n", prompt="Profile Name"),
    project: str = typer.Option(..., "--project", "-P", prompt="Project Name"),
    dist_dir: str = typer.Option("dist", "--dist-dir", "-d", help="Build output directory"),
    account: Optional[str] = typer.Option(None, "--account", "-a", help="Storage account name"),
    access_key: Optional[str] = typer.Option(None, "--access-key", "-k", help="Storage access key", hide_input=True),
    connection_string: Optional[str] = typer.Option(None, "--connection-string", "-c", help="Storage connection string", hide_input=True),
    table: str = typer.Option(DEFAULT_TABLE_NAME, "--table", help="Table holding the manifest"),
    file_name: str = typer.Option(DEFAULT_FILE_NAME, "--file", help="Artifact file inside the dist dir"),
):
    """
    Create a deployment profile.
    Credentials go to the OS keyring, everything else to the profile file.
    """
    render_banner()
    if account and connection_string:
        render_error("Pass either --connection-string or --account/--access-key, not both.")
        raise typer.Exit(1)

    try:
        profile = DeployProfile(
            name=name,
            project=project,
            dist_dir=str(Path(dist_dir).resolve()),
            storage_account=account,
            secret_ref=f"deploytables_{name}_secret",
            table_name=table,
            file_name=file_name,
            created_at=datetime.now(timezone.utc),
        )
    except ValueError as e:
        render_error(str(e))
        raise typer.Exit(1)

    secret = access_key if account else connection_string
    stored = save_profile(profile, secret)

    render_status("success", f"Profile '{name}' saved successfully.")
    if secret and not stored:
        render_warning("Failed to store credentials in the OS keyring. Provide them via AZURE_STORAGE_* environment variables.")
    elif not secret:
        render_warning("No credentials stored. AZURE_STORAGE_* environment variables will be used at deploy time.")

@app.command(name="deploy")
def deploy_cmd(
    name: str = typer.Argument(..., help="Profile to deploy"),
    revision: Optional[str] = typer.Option(None, "--revision", "-r", help="Explicit revision token"),
    revision_key: Optional[str] = typer.Option(None, "--revision-key", help="Revision hash supplied by the pipeline"),
    activate: bool = typer.Option(False, "--activate", help="Activate the revision after upload"),
):
    """Upload the built artifact as a new revision, optionally activating it."""
    render_banner()
    try:
        profile = load_profile(name)
        context = make_context(profile, revision, revision_key)
        coordinator = make_coordinator(profile)
        with render_progress("Deploying to Azure Tables..."):
            context = run_async(_drive(coordinator, run_deploy, context, activate=activate))
    except DeployTablesError as e:
        render_error(str(e))
        raise typer.Exit(1)

    previous = context.revision_data.previous_revision_key
    if activate and previous:
        render_status("info", f"Previous revision was {previous}. Roll back with: deploytables activate {name} {previous}")

@app.command(name="activate")
def activate_cmd(
    name: str = typer.Argument(..., help="Profile name"),
    revision: str = typer.Argument(..., help="Revision token or full manifest key"),
):
    """Make an uploaded revision the current one."""
    render_banner()
    try:
        profile = load_profile(name)
        context = make_context(profile, revision)
        coordinator = make_coordinator(profile)
        with render_progress(f"Activating {revision}..."):
            context = run_async(_drive(coordinator, run_activate, context))
    except DeployTablesError as e:
        render_error(str(e))
        raise typer.Exit(1)

    previous = context.revision_data.previous_revision_key
    if previous and previous != context.revision_data.activated_revision_key:
        render_status("info", f"Previously active: {previous}")

@app.command(name="list")
def list_revisions_cmd(
    name: str = typer.Argument(..., help="Profile to list revisions for"),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", min=1, help="Maximum revisions to show"),
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format."),
):
    """List uploaded revisions, most recent first."""
    try:
        profile = load_profile(name)
        context = DeployContext(project_name=profile.project, dist_dir=profile.dist_dir)
        coordinator = make_coordinator(profile)
        context = run_async(_drive(coordinator, run_list, context))
    except DeployTablesError as e:
        render_error(str(e))
        raise typer.Exit(1)

    if json_output:
        print(json.dumps([entry.model_dump() for entry in context.revisions], indent=2))
        return

    if not context.revisions:
        render_status("info", "No revisions found.")
        return

    render_revisions(f"Revisions for {profile.project}", context.revisions, limit if limit is not None else coordinator.config.manifest_size)

@app.command(name="current")
def current_cmd(name: str = typer.Argument(..., help="Profile name")):
    """Show the currently active revision."""
    async def _current(coordinator: LifecycleCoordinator, project: str) -> Optional[str]:
        try:
            return await coordinator.store.get_current(project)
        finally:
            await coordinator.aclose()

    try:
        profile = load_profile(name)
        coordinator = make_coordinator(profile)
        coordinator.configure(DeployContext(project_name=profile.project, dist_dir=profile.dist_dir))
        current = run_async(_current(coordinator, profile.project))
    except DeployTablesError as e:
        render_error(str(e))
        raise typer.Exit(1)

    if current is None:
        render_status("info", f"No revision of {profile.project} has been activated yet.")
    else:
        render_status("manifest", f"Current revision: {current}")

@app.command(name="show")
def show_cmd(
    name: str = typer.Argument(..., help="Profile name"),
    revision: str = typer.Argument(..., help="Revision token or full manifest key"),
):
    """Print the stored artifact of a revision."""
    async def _show(coordinator: LifecycleCoordinator, key: str):
        try:
            return await coordinator.store.get_revision(key)
        finally:
            await coordinator.aclose()

    try:
        profile = load_profile(name)
        context = make_context(profile, revision)
        key = derive_revision_key(profile.project, context.revision, None)
        coordinator = make_coordinator(profile)
        coordinator.configure(context)
        record = run_async(_show(coordinator, key))
    except DeployTablesError as e:
        render_error(str(e))
        raise typer.Exit(1)

    if record is None:
        render_error(f"Revision {key} not in manifest")
        raise typer.Exit(1)

    size = human_size(len(record.content.encode("utf-8")))
    console.print(Panel(record.content, title=f"{key} ({size})", border_style="cyan"))

@app.command(name="profiles")
def list_profiles_cmd(
    json_output: bool = typer.Option(False, "--json", help="Output in JSON format.")
):
    """List all configured deployment profiles."""
    from .config import list_profiles

    profiles = list_profiles()
    if json_output:
        profiles_data = []
        for p in profiles:
            try:
                prof = load_profile(p)
            except DeployTablesError:
                continue
            profiles_data.append({"name": prof.name, "project": prof.project, "table": prof.table_name})
        print(json.dumps(profiles_data, indent=2))
        return

    if not profiles:
        typer.echo("No profiles found.")
        return

    rows = []
    for p in profiles:
        try:
            prof = load_profile(p)
            rows.append([prof.name, prof.project, prof.table_name, prof.dist_dir])
        except DeployTablesError as e:
            err_msg = str(e).split('\n')[0]
            if len(err_msg) > 60:
                err_msg = err_msg[:57] + "..."
            rows.append([p, "[red]ERROR[/]", "", err_msg])

    render_table("Configured Profiles", ["Name", "Project", "Table", "Dist Directory"], rows)

@app.command(name="delete")
def delete_profile_cmd(
    name: str = typer.Argument(..., help="Profile to delete"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
):
    """Delete a profile and its stored credentials. The remote manifest is untouched."""
    from .config import delete_profile
    if not yes and not confirm(f"Delete profile '{name}' and its stored credentials?"):
        render_status("info", "Aborted.")
        raise typer.Exit(0)
    try:
        delete_profile(name)
    except DeployTablesError as e:
        render_error(str(e))
        raise typer.Exit(1)
    render_status("delete", f"Profile '{name}' deleted.")

@app.command(name="doctor")
def run_doctor(
    profile: Optional[str] = typer.Option(None, "--profile", "-p", help="Profile to test connectivity with")
):
    """Run the diagnostic suite."""
    render_banner()
    from .doctor import run_diagnostics
    with render_progress("Running diagnostic checks..."):
        results = run_diagnostics(profile)

    rows = []
    for r in results:
        status_text = "[bold green]PASS[/]" if r.status == "pass" else "[bold yellow]WARN[/]" if r.status == "warn" else "[bold red]FAIL[/]"
        rows.append([status_text, r.name, r.detail])

    render_table("Diagnostics", ["Status", "Check", "Details"], rows)
    if any(r.status == "fail" for r in results):
        raise typer.Exit(1)

@app.command(name="audit")
def show_audit(last_n: int = typer.Option(50, "--last", "-n", help="Number of recent events to show")):
    """Show recent deployment events."""
    from .audit import get_audit_log
    events = get_audit_log(last_n)
    if not events:
        render_status("info", "No audit events found.")
        return

    rows = []
    for e in events:
        rows.append([e["timestamp"], e["event"], json.dumps(e["details"])])

    render_table("Audit Log", ["Timestamp", "Event", "Details"], rows)

@app.command(name="version")
def version_cmd():
    """Display version information."""
    console.print(Panel(f"[bold cyan]DEPLOYTABLES[/] v{__version__}", border_style="cyan", expand=False))

if __name__ == "__main__":
    app()
