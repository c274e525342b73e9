"""
Custom exception hierarchy for deploytables.
"""
from typing import Optional


class DeployTablesError(Exception):
    """Base exception for all deploytables errors."""
    pass

class ConfigError(DeployTablesError):
    pass

class ConfigurationError(ConfigError):
    """Credentials or settings are missing. Raised before any network call."""
    pass

class ProfileNotFoundError(ConfigError):
    pass

class ProfileValidationError(ConfigError):
    pass

class BackendError(DeployTablesError):
    """Transport, auth or unexpected-response failure from the table service."""
    def __init__(self, message: str, status_code: Optional[int] = None, error_code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code

class DuplicateKeyError(BackendError):
    pass

class ManifestError(DeployTablesError):
    pass

class AlreadyUploadedError(ManifestError):
    def __init__(self, key: str):
        super().__init__(f"Key already in manifest - revision already uploaded or collided: {key}")
        self.key = key

class UnknownRevisionError(ManifestError):
    def __init__(self, key: str):
        super().__init__(f"Revision {key} not in manifest")
        self.key = key

class ArtifactError(DeployTablesError):
    pass
