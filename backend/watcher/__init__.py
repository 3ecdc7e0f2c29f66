"""
LiveCoord File Watcher Package.

File system monitoring and change batching.
Requires Python 3.11+.
"""

from watcher.debouncer import ChangeBatch, ChangeEvent, Debouncer
from watcher.file_watcher import FileWatcher, ServedFileRegistry

__all__ = ["ChangeBatch", "ChangeEvent", "Debouncer", "FileWatcher", "ServedFileRegistry"]
