"""
The library's own version, as installed.

It is taken from the package's metadata, which is built from the git tags.
The source tree without the metadata has no version (``None``).
"""
import importlib.metadata
from typing import Optional


def detect(name: str) -> Optional[str]:
    try:
        return importlib.metadata.version(name)
    except importlib.metadata.PackageNotFoundError:
        return None


version: Optional[str] = detect(__name__.split('.')[0])
