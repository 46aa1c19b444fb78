"""Repository registry for multi-repository ticket routing."""

from .manifest import CONFIG_DIR_NAME, CONFIG_FILE_NAME, find_manifest, load_manifest, write_manifest
from .models import (
    DiscoveryResult,
    ManifestEntry,
    ManifestFile,
    RepositoryComparison,
    RepositoryInfo,
    RepositoryRegistryConfig,
)
from .registry import REGISTRY_STORAGE_KEY, RepositoryRegistry

__all__ = [
    "CONFIG_DIR_NAME",
    "CONFIG_FILE_NAME",
    "DiscoveryResult",
    "ManifestEntry",
    "ManifestFile",
    "REGISTRY_STORAGE_KEY",
    "RepositoryComparison",
    "RepositoryInfo",
    "RepositoryRegistry",
    "RepositoryRegistryConfig",
    "find_manifest",
    "load_manifest",
    "write_manifest",
]
