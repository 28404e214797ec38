"""Content layer — source enumeration, watching, ingestion and the Entry Map.

Turns the files under ``content/`` into immutable :class:`Entry` values
held in a :class:`ContentSnapshot`, and reports file changes for the
serialized mutator.
"""

from thypress.content.processor import Entry, process_file
from thypress.content.store import ChangeOutcome, ContentSnapshot, ContentStore
from thypress.content.watcher import ChangeEvent, ContentWatcher

__all__ = [
    "ChangeEvent",
    "ChangeOutcome",
    "ContentSnapshot",
    "ContentStore",
    "ContentWatcher",
    "Entry",
    "process_file",
]
