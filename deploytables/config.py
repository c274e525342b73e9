"""
Configuration, profile management, and credential storage for deploytables.
"""
import json
import os
import stat
import sys
from pathlib import Path
from typing import List, Optional

import keyring
from keyring.errors import KeyringError

from .errors import ProfileNotFoundError, ProfileValidationError
from .models import DeployConfig, DeployProfile

APP_NAME = "deploytables"

ENV_CONNECTION_STRING = "AZURE_STORAGE_CONNECTION_STRING"
ENV_STORAGE_ACCOUNT = "AZURE_STORAGE_ACCOUNT"
ENV_STORAGE_ACCESS_KEY = "AZURE_STORAGE_ACCESS_KEY"

def get_config_dir() -> Path:
    """Returns the platform-specific configuration directory."""
    if sys.platform == "win32":
        appdata = os.getenv("APPDATA")
        if appdata:
            base_dir = Path(appdata)
        else:
            base_dir = Path.home() / "AppData" / "Roaming"
    else:
        # XDG Base Directory specification
        xdg_config = os.getenv("XDG_CONFIG_HOME")
        if xdg_config:
            base_dir = Path(xdg_config)
        else:
            base_dir = Path.home() / ".config"

    config_dir = base_dir / APP_NAME
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir

def list_profiles() -> List[str]:
    """List all available profile names."""
    config_dir = get_config_dir()
    profiles = []
    for fp in config_dir.glob("*.json"):
        if fp.is_file() and not fp.name.startswith("."):
            profiles.append(fp.stem)
    return sorted(profiles)

def get_profile_path(name: str) -> Path:
    """Return the filesystem path for a specific profile name."""
    return get_config_dir() / f"{name}.json"

def apply_secure_permissions(path: Path) -> None:
    """Apply chmod 600 equivalent permissions to a file."""
    if sys.platform != "win32":
        # Owner read/write only
        path.chmod(stat.S_IRUSR | stat.S_IWUSR)

def save_profile(profile: DeployProfile, secret: Optional[str]) -> bool:
    """
    Save a profile to disk and its secret to the OS keyring.
    The secret is the access key when the profile names a storage account,
    otherwise a full connection string. Returns False if the keyring refused it.
    """
    stored = True
    if secret:
        try:
            keyring.set_password(APP_NAME, profile.secret_ref, secret)
        except KeyringError:
            stored = False

    path = get_profile_path(profile.name)
    with path.open("w", encoding="utf-8") as f:
        f.write(profile.model_dump_json(indent=2))

    apply_secure_permissions(path)
    return stored

def load_profile(name: str) -> DeployProfile:
    """Load a profile by name from disk."""
    path = get_profile_path(name)
    if not path.exists():
        raise ProfileNotFoundError(f"Profile '{name}' does not exist.")

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
            return DeployProfile(**data)
    except Exception as e:
        raise ProfileValidationError(f"Failed to load profile '{name}': {e}") from e

def get_profile_secret(profile: DeployProfile) -> Optional[str]:
    """Retrieve the stored secret for a given profile."""
    try:
        return keyring.get_password(APP_NAME, profile.secret_ref)
    except KeyringError:
        return None

def build_deploy_config(profile: DeployProfile) -> DeployConfig:
    """
    Merge a profile, its keyring secret and the environment into a DeployConfig.
    Validation of the result happens when the lifecycle is configured.
    """
    secret = get_profile_secret(profile)

    if profile.storage_account:
        return DeployConfig(
            storage_account=profile.storage_account,
            storage_access_key=secret or os.getenv(ENV_STORAGE_ACCESS_KEY),
            table_name=profile.table_name,
            file_name=profile.file_name,
            manifest_size=profile.manifest_size,
        )

    return DeployConfig(
        connection_string=secret or os.getenv(ENV_CONNECTION_STRING),
        storage_account=os.getenv(ENV_STORAGE_ACCOUNT),
        storage_access_key=os.getenv(ENV_STORAGE_ACCESS_KEY),
        table_name=profile.table_name,
        file_name=profile.file_name,
        manifest_size=profile.manifest_size,
    )

def delete_profile(name: str) -> None:
    """Delete a profile and its associated secret."""
    path = get_profile_path(name)
    if not path.exists():
        raise ProfileNotFoundError(f"Profile '{name}' does not exist.")

    profile = load_profile(name)
    try:
        keyring.delete_password(APP_NAME, profile.secret_ref)
    except KeyringError:
        pass  # Nothing stored

    path.unlink()
