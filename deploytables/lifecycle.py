"""
Deployment lifecycle coordinator.
Runs the pipeline-visible phases against the manifest store, in the order
configure, fetch_revisions, upload, did_deploy, will_activate, activate, did_activate.
"""
from pathlib import Path
from typing import Callable, Optional, Protocol

import httpx

from .audit import AuditLogger
from .errors import ArtifactError, ConfigurationError, DeployTablesError
from .keys import derive_revision_key
from .manifest import ManifestStore
from .models import DeployConfig, DeployContext
from .tables import TableClient
from .ui import render_status


class DeployPhases(Protocol):
    """Phases an orchestrator invokes over one deployment."""
    def configure(self, context: DeployContext) -> None:
        ...

    async def fetch_revisions(self, context: DeployContext) -> None:
        ...

    async def upload(self, context: DeployContext) -> None:
        ...

    def did_deploy(self, context: DeployContext) -> None:
        ...

    async def will_activate(self, context: DeployContext) -> None:
        ...

    async def activate(self, context: DeployContext) -> None:
        ...

    def did_activate(self, context: DeployContext) -> None:
        ...


class LifecycleCoordinator:
    """
    Implements DeployPhases for the table-backed manifest.

    A failing phase raises and leaves earlier phases in place: an uploaded
    revision stays in the manifest even if its activation fails.
    """
    def __init__(
        self,
        config: DeployConfig,
        client: Optional[httpx.AsyncClient] = None,
        audit: Optional[AuditLogger] = None,
        log: Callable[[str, str], None] = render_status,
    ):
        self.config = config
        self._http = client
        self._audit = audit
        self._log = log
        self._table: Optional[TableClient] = None
        self._store: Optional[ManifestStore] = None

    @property
    def store(self) -> ManifestStore:
        if self._store is None:
            raise ConfigurationError("Lifecycle used before configure().")
        return self._store

    def _key(self, context: DeployContext) -> str:
        return derive_revision_key(context.project_name, context.revision, context.revision_data.revision_key)

    def _record(self, event: str, **details: object) -> None:
        if self._audit is not None:
            self._audit.log(event, **details)

    def configure(self, context: DeployContext) -> None:
        """Validate credentials and build the store. No network traffic."""
        self._table = TableClient.from_config(self.config, client=self._http)
        self._store = ManifestStore(self._table)

    async def aclose(self) -> None:
        if self._table is not None:
            await self._table.aclose()

    async def fetch_revisions(self, context: DeployContext) -> None:
        context.revisions = await self.store.list_revisions(context.project_name)

    def read_artifact(self, context: DeployContext) -> str:
        path = Path(context.dist_dir) / self.config.file_name
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise ArtifactError(f"Artifact not found: {path}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise ArtifactError(f"Failed to read artifact {path}: {e}") from e

    async def upload(self, context: DeployContext) -> None:
        contents = self.read_artifact(context)
        key = self._key(context)

        self._log("upload", f"deploying {self.config.file_name} to Azure Tables...")
        try:
            await self.store.upload(key, contents)
        except DeployTablesError as e:
            self._record("upload_failed", project=context.project_name, revision=key, error=str(e))
            raise

        context.revision_data.uploaded_revision_key = key
        self._record("upload", project=context.project_name, revision=key, size=len(contents))

    def did_deploy(self, context: DeployContext) -> None:
        key = context.revision_data.uploaded_revision_key or self._key(context)
        self._log("success", f"deployed {self.config.file_name} under {key}")

    async def will_activate(self, context: DeployContext) -> None:
        """Snapshot the active revision so the run can be rolled back to it."""
        context.revision_data.previous_revision_key = await self.store.get_current(context.project_name)

    async def activate(self, context: DeployContext) -> None:
        key = self._key(context)
        try:
            await self.store.activate(key)
        except DeployTablesError as e:
            self._record("activate_failed", project=context.project_name, revision=key, error=str(e))
            raise

        context.revision_data.activated_revision_key = key
        self._record(
            "activate",
            project=context.project_name,
            revision=key,
            previous=context.revision_data.previous_revision_key,
        )

    def did_activate(self, context: DeployContext) -> None:
        key = context.revision_data.activated_revision_key or self._key(context)
        self._log("activate", f"Activated revision {key}")


async def run_deploy(phases: DeployPhases, context: DeployContext, activate: bool = False) -> DeployContext:
    """Drive a deploy the way a pipeline would: upload, then optionally activate."""
    phases.configure(context)
    await phases.fetch_revisions(context)
    await phases.upload(context)
    phases.did_deploy(context)
    if activate:
        await phases.will_activate(context)
        await phases.activate(context)
        phases.did_activate(context)
    return context

async def run_activate(phases: DeployPhases, context: DeployContext) -> DeployContext:
    """Switch the current pointer to an already uploaded revision."""
    phases.configure(context)
    await phases.fetch_revisions(context)
    await phases.will_activate(context)
    await phases.activate(context)
    phases.did_activate(context)
    return context

async def run_list(phases: DeployPhases, context: DeployContext) -> DeployContext:
    phases.configure(context)
    await phases.fetch_revisions(context)
    return context
