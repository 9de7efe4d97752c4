"""
Detecting the updater's own version.

The codebase does not contain the version directly; it is taken from
the installed package's metadata. The version is determined only once
at startup when the code is loaded.
"""
import importlib.metadata
from typing import Optional

version: Optional[str] = None

try:
    version = importlib.metadata.version('externalsecret-updater')
except importlib.metadata.PackageNotFoundError:
    pass  # running from a source tree, not installed.
