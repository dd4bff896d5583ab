"""
Storage backends for comments and ratings.
"""

from .backend import StorageBackend
from .failover import FailoverBackend
from .file import FileBackend, JsonArrayFile
from .primary import PrimaryBackend, is_missing_relation

__all__ = [
    "StorageBackend",
    "PrimaryBackend",
    "FileBackend",
    "JsonArrayFile",
    "FailoverBackend",
    "is_missing_relation",
]
