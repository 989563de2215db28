"""Read-only registry of model versions recorded with each report."""

from types import MappingProxyType
from typing import Mapping, Optional

from .config import DEFAULT_MODEL_VERSIONS


class ModelRegistry:
    """
    Named model versions for audit trails.

    Versions are opaque strings; nothing in the math reads them. The registry
    is frozen at construction and shared by reference.

    Example:
        >>> registry = ModelRegistry({'var': 'parametric-normal-1.0'})
        >>> registry.version('var')
        'parametric-normal-1.0'
    """

    def __init__(self, versions: Optional[Mapping[str, str]] = None):
        source = DEFAULT_MODEL_VERSIONS if versions is None else versions
        self._versions = MappingProxyType({str(k): str(v) for k, v in source.items()})

    @property
    def versions(self) -> Mapping[str, str]:
        """Read-only view of all versions."""
        return self._versions

    def version(self, name: str) -> Optional[str]:
        """Version of a named model, or None if unregistered."""
        return self._versions.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._versions

    def __len__(self) -> int:
        return len(self._versions)

    def __repr__(self) -> str:
        return f"ModelRegistry({dict(self._versions)!r})"
