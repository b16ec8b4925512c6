"""Data models for legacy image trees."""

from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterator

from .exceptions import MalformedImageError

# Keys with a dedicated attribute on LayerRecord; everything else is passthrough
_RECORD_KEYS = ("id", "parent", "created", "container", "Size")


@dataclass(frozen=True)
class LayerRecord:
    """Per-layer metadata stored in ``<layer_id>/json``."""

    id: str
    parent: str | None = None
    container: str | None = None
    created: str | None = None
    size: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Any) -> "LayerRecord":
        """Build a record from decoded JSON.

        Raises:
            MalformedImageError: If required fields are missing or mistyped
        """
        if not isinstance(data, dict):
            raise MalformedImageError("Layer metadata must be a JSON object")

        layer_id = data.get("id")
        if not isinstance(layer_id, str) or not layer_id:
            raise MalformedImageError("Layer metadata has no 'id' field")

        parent = data.get("parent")
        if parent is not None and (not isinstance(parent, str) or not parent):
            raise MalformedImageError(
                f"Layer {layer_id} has an invalid 'parent' field: {parent!r}"
            )

        size = data.get("Size")
        if size is not None and (isinstance(size, bool) or not isinstance(size, int)):
            raise MalformedImageError(
                f"Layer {layer_id} has a non-integer 'Size' field: {size!r}"
            )

        return cls(
            id=layer_id,
            parent=parent,
            container=data.get("container"),
            created=data.get("created"),
            size=size,
            extra={k: v for k, v in data.items() if k not in _RECORD_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize back to the on-disk JSON shape, omitting unset fields."""
        data: dict[str, Any] = {"id": self.id}
        if self.parent is not None:
            data["parent"] = self.parent
        if self.created is not None:
            data["created"] = self.created
        if self.container is not None:
            data["container"] = self.container
        data.update(self.extra)
        if self.size is not None:
            data["Size"] = self.size
        return data

    def flattened(self, layer_id: str, size: int, created: str) -> "LayerRecord":
        """Return a copy rewritten as a parentless single layer."""
        return replace(
            self, id=layer_id, parent=None, container=None, size=size, created=created
        )


@dataclass
class LayerChain:
    """Layer IDs ordered root first, leaf last, with their records."""

    layer_ids: list[str]
    records: dict[str, LayerRecord]

    def __iter__(self) -> Iterator[str]:
        return iter(self.layer_ids)

    def __len__(self) -> int:
        return len(self.layer_ids)

    @property
    def root(self) -> str:
        return self.layer_ids[0]

    @property
    def leaf(self) -> str:
        return self.layer_ids[-1]

    @property
    def leaf_record(self) -> LayerRecord:
        return self.records[self.leaf]


@dataclass(frozen=True)
class RepositoryPointer:
    """Single ``{name: {version: layer_id}}`` entry of a ``repositories`` file."""

    name: str
    version: str
    layer_id: str

    @classmethod
    def from_dict(cls, data: Any) -> "RepositoryPointer":
        """Parse a repositories mapping holding exactly one name and version.

        Raises:
            MalformedImageError: If the mapping is empty, ambiguous or mistyped
        """
        if not isinstance(data, dict) or not data:
            raise MalformedImageError("repositories file has no image names")
        if len(data) > 1:
            names = ", ".join(sorted(data))
            raise MalformedImageError(
                f"repositories file lists more than one image name: {names}"
            )

        name, versions = next(iter(data.items()))
        if not isinstance(versions, dict) or not versions:
            raise MalformedImageError(f"Image '{name}' has no versions")
        if len(versions) > 1:
            tags = ", ".join(sorted(versions))
            raise MalformedImageError(
                f"Image '{name}' lists more than one version: {tags}"
            )

        version, layer_id = next(iter(versions.items()))
        if not isinstance(layer_id, str) or not layer_id:
            raise MalformedImageError(
                f"Image '{name}:{version}' does not point at a layer ID"
            )
        return cls(name=name, version=version, layer_id=layer_id)

    def to_dict(self) -> dict[str, dict[str, str]]:
        return {self.name: {self.version: self.layer_id}}


@dataclass
class MergedLayer:
    """Finalized single layer written to the output tree."""

    layer_id: str
    record: LayerRecord
    repository: RepositoryPointer
    layer_dir: Path
    archive_path: Path
    size: int
    version: str = "1.0"
