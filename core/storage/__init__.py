"""Core storage - JSON artifact storage with integrity hashes."""

from core.storage.artifacts import (
    put_json,
    get_json,
    delete_artifact,
    artifact_exists,
)

__all__ = [
    "put_json",
    "get_json",
    "delete_artifact",
    "artifact_exists",
]
