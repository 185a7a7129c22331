"""
gshot - a minimal local version-control engine.

Snapshots a project directory into a content-addressable blob store and
records an append-only history of commits, each holding the files whose
content had not been recorded before.
"""

__version__ = "0.1.0"

from .snapshot import Repository

__all__ = [
    'Repository',
    '__version__',
]
