"""
Portable profile archives (.zprof, gzip tar).

Export packs a profile with metadata.json; import validates metadata and
manifest before anything under profiles/ changes.
"""

from zprof.core.archive.exporter import export_profile
from zprof.core.archive.importer import import_profile
from zprof.core.archive.remote import import_from_url

__all__ = ["export_profile", "import_profile", "import_from_url"]
