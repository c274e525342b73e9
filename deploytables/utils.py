"""
Core utilities for deploytables.
"""
import hashlib
from datetime import datetime, timezone
from pathlib import Path


def mask_secret(secret: str) -> str:
    """Mask a secret, returning only the last 4 characters visible."""
    if not secret or len(secret) < 8:
        return "****"
    return "*" * (len(secret) - 4) + secret[-4:]

def sha256_file(path: Path) -> str:
    """Stream a file and return its SHA-256 hex digest."""
    hasher = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            hasher.update(chunk)
    return hasher.hexdigest()

def human_size(nbytes: int) -> str:
    """Convert bytes to a human-readable string (e.g. 1.2 KiB)."""
    if nbytes == 0:
        return "0 B"
    suffixes = ["B", "KiB", "MiB", "GiB"]
    size = float(nbytes)
    i = 0
    while size >= 1024 and i < len(suffixes) - 1:
        size /= 1024.0
        i += 1
    if i == 0:
        return f"{int(size)} {suffixes[i]}"
    return f"{size:.1f} {suffixes[i]}"

def format_millis(millis: int) -> str:
    """Render epoch milliseconds as a UTC timestamp string."""
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
