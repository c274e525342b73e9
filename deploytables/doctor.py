"""
Environment and connectivity diagnostics.
"""
import asyncio
import time
from typing import List, Optional

from .config import build_deploy_config, get_config_dir, list_profiles, load_profile
from .errors import DeployTablesError
from .models import DeployConfig, DoctorCheck
from .tables import TableClient, resolve_endpoint
from .utils import mask_secret


async def _probe_table(config: DeployConfig) -> int:
    """Round-trip an ensure-table call and return the latency in ms."""
    start = time.monotonic()
    async with TableClient.from_config(config) as client:
        await client.ensure_table()
    return int((time.monotonic() - start) * 1000)

def run_diagnostics(profile_name: Optional[str] = None) -> List[DoctorCheck]:
    """Execute the health checks. Network checks use the named or first profile."""
    checks: List[DoctorCheck] = []

    # 1. Keyring Backend
    try:
        import keyring
        kr = keyring.get_keyring()
        checks.append(DoctorCheck(name="1. OS Keyring Backend", status="pass", detail=str(kr.__class__.__name__)))
    except Exception as e:
        checks.append(DoctorCheck(name="1. OS Keyring Backend", status="warn", detail=str(e)))

    # 2. Profile Validity
    profiles = list_profiles()
    invalid_count = 0
    for p in profiles:
        try:
            load_profile(p)
        except DeployTablesError:
            invalid_count += 1
    if not profiles:
        checks.append(DoctorCheck(name="2. Profile Schema", status="warn", detail="No profiles configured"))
    elif invalid_count == 0:
        checks.append(DoctorCheck(name="2. Profile Schema", status="pass", detail=f"{len(profiles)} profiles valid"))
    else:
        checks.append(DoctorCheck(name="2. Profile Schema", status="fail", detail=f"{invalid_count} profiles corrupted"))

    # 3. Credentials & 4. Table Service
    config: Optional[DeployConfig] = None
    target = profile_name or (profiles[0] if profiles else None)
    if target:
        try:
            config = build_deploy_config(load_profile(target))
            endpoint = resolve_endpoint(config)
            checks.append(DoctorCheck(name="3. Credentials", status="pass", detail=f"{target}: account {endpoint.account_name}, key {mask_secret(endpoint.account_key)}"))
        except DeployTablesError as e:
            config = None
            checks.append(DoctorCheck(name="3. Credentials", status="fail", detail=f"{target}: {e}"))
    else:
        checks.append(DoctorCheck(name="3. Credentials", status="warn", detail="Skipped, no profile."))

    if config is not None:
        try:
            ms = asyncio.run(_probe_table(config))
            status = "pass" if ms < 1000 else "warn"
            checks.append(DoctorCheck(name="4. Table Service", status=status, detail=f"'{config.table_name}' reachable in {ms}ms"))
        except DeployTablesError as e:
            checks.append(DoctorCheck(name="4. Table Service", status="fail", detail=str(e)))
    else:
        checks.append(DoctorCheck(name="4. Table Service", status="warn", detail="Skipped."))

    # 5. Config Directory
    checks.append(DoctorCheck(name="5. Config Directory", status="pass", detail=str(get_config_dir())))

    # 6. Dependencies
    try:
        import httpx
        import pydantic
        import rich
        import typer
        checks.append(DoctorCheck(
            name="6. Dependencies",
            status="pass",
            detail=f"httpx {httpx.__version__}, pydantic {pydantic.VERSION}",
        ))
    except ImportError as e:
        checks.append(DoctorCheck(name="6. Dependencies", status="fail", detail=str(e)))

    return checks
