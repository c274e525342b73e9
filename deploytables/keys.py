"""
Manifest row key derivation. Pure functions, no I/O.
"""
from typing import Optional

from .errors import ManifestError

TOKEN_LEN = 8
CURRENT_SUFFIX = "current"

def derive_revision_key(project_name: str, override: Optional[str], fallback_hash: Optional[str]) -> str:
    """
    Build the manifest key for a revision.
    A non-empty override is used verbatim, otherwise the first 8 characters of the hash.
    """
    if override:
        token = override
    elif fallback_hash:
        token = fallback_hash[:TOKEN_LEN]
    else:
        raise ManifestError(f"No revision given for project '{project_name}' and no revision hash to derive one from.")
    return f"{project_name}:{token}"

def derive_current_key(project_name: str) -> str:
    """Row key of the record pointing at the active revision."""
    return f"{project_name}:{CURRENT_SUFFIX}"
