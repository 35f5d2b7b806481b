"""
Extension manifest definitions and dataclasses.
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .errors import ScanError, SchemaError
from .schema import FieldSchema, parse_schema

logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "manifest.json"
REQUIRED_FIELDS = ("id", "name", "version", "type", "entry")

ID_PATTERN = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")
# Path segments taken by the /extensions HTTP routes
RESERVED_IDS = frozenset({"status", "reload", "types", "resolve"})
SEMVER_PATTERN = re.compile(
    r"^(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    r"(?:-[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?$"
)


class ExtensionKind(Enum):
    """What an extension primarily provides."""
    PANEL = "panel"
    PAGE = "page"
    ADAPTER = "adapter"


class EntryKind(Enum):
    """Which type registry a renderable unit belongs to."""
    PAGE = "page"
    PANEL = "panel"
    LAYOUT = "layout"


@dataclass(frozen=True)
class ComponentDeclaration:
    """A component an extension declares in its manifest."""
    kind: EntryKind
    name: str
    id: str
    display_name: str = ""
    description: str = ""
    icon: Optional[str] = None
    category: Optional[str] = None
    config_schema: Tuple[FieldSchema, ...] = ()
    default_config: Optional[Dict[str, Any]] = None
    slots: Tuple[Dict[str, Any], ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.kind.value,
            "name": self.name,
            "id": self.id,
            "display_name": self.display_name,
            "description": self.description,
            "icon": self.icon,
            "category": self.category,
            "config_schema": [f.to_dict() for f in self.config_schema],
            "default_config": self.default_config,
        }


@dataclass(frozen=True)
class ManifestDescriptor:
    """Validated, immutable view of one extension's manifest.json."""
    id: str
    name: str
    version: str
    kind: ExtensionKind
    entry_path: Path
    style_path: Optional[Path] = None
    capabilities: Tuple[str, ...] = ()
    permissions: Tuple[str, ...] = ()

    # Metadata
    description: str = ""
    author: Optional[str] = None
    icon: Optional[str] = None
    tags: Tuple[str, ...] = ()
    components: Tuple[ComponentDeclaration, ...] = ()
    directory: Optional[Path] = None
    root: Optional[Path] = None

    def declares(self, kind: EntryKind, type_id: str) -> bool:
        """True if this manifest claims to provide ``type_id`` of ``kind``."""
        if any(c.kind == kind and c.id == type_id for c in self.components):
            return True
        return self.id == type_id and self.kind.value == kind.value

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for serialization."""
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "type": self.kind.value,
            "entry": str(self.entry_path),
            "css": str(self.style_path) if self.style_path else None,
            "capabilities": list(self.capabilities),
            "permissions": list(self.permissions),
            "description": self.description,
            "author": self.author,
            "icon": self.icon,
            "tags": list(self.tags),
            "components": [c.to_dict() for c in self.components],
            "directory": str(self.directory) if self.directory else None,
        }


def parse_manifest_data(
    data: Any,
    directory: Path,
    root: Optional[Path] = None,
    source: Optional[Path] = None,
) -> ManifestDescriptor:
    """
    Validate raw manifest data and build a descriptor.

    Args:
        data: Decoded manifest.json content
        directory: Extension directory; ``entry`` and ``css`` are relative to it
        root: Extension root the directory was found in
        source: Path used in error messages (defaults to the manifest path)

    Returns:
        ManifestDescriptor

    Raises:
        ScanError: If a required field is missing or a value is invalid
    """
    source = source or directory / MANIFEST_FILENAME

    if not isinstance(data, dict):
        raise ScanError(source, "manifest must be a JSON object")

    missing = [key for key in REQUIRED_FIELDS if not data.get(key)]
    if missing:
        raise ScanError(source, f"missing required field(s): {', '.join(missing)}")

    ext_id = data["id"]
    if not isinstance(ext_id, str) or not ID_PATTERN.match(ext_id):
        raise ScanError(source, f"id must be kebab-case, got {ext_id!r}")
    if ext_id in RESERVED_IDS:
        raise ScanError(source, f"id {ext_id!r} is reserved")

    version = str(data["version"])
    if not SEMVER_PATTERN.match(version):
        raise ScanError(source, f"version must be a semver string, got {version!r}")

    try:
        kind = ExtensionKind(data["type"])
    except ValueError:
        allowed = ", ".join(k.value for k in ExtensionKind)
        raise ScanError(source, f"type must be one of {allowed}, got {data['type']!r}")

    entry = data["entry"]
    if not isinstance(entry, str):
        raise ScanError(source, "entry must be a relative path string")

    style_path = None
    css = data.get("css")
    if css:
        if not isinstance(css, str):
            raise ScanError(source, "css must be a relative path string")
        style_path = directory / css

    return ManifestDescriptor(
        id=ext_id,
        name=str(data["name"]),
        version=version,
        kind=kind,
        entry_path=directory / entry,
        style_path=style_path,
        capabilities=_string_tuple(source, data, "capabilities"),
        permissions=_string_tuple(source, data, "permissions"),
        description=str(data.get("description") or ""),
        author=_author(data.get("author")),
        icon=data.get("icon"),
        tags=_string_tuple(source, data, "tags"),
        components=_parse_components(source, data.get("components") or []),
        directory=directory,
        root=root,
    )


def _string_tuple(source: Path, data: Dict[str, Any], key: str) -> Tuple[str, ...]:
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ScanError(source, f"{key} must be a list of strings")
    return tuple(value)


def _author(value: Any) -> Optional[str]:
    # The author may be a plain string or {"name": ..., "email": ...}
    if isinstance(value, dict):
        return value.get("name")
    return value


def _parse_components(source: Path, raw: Any) -> Tuple[ComponentDeclaration, ...]:
    if not isinstance(raw, list):
        raise ScanError(source, "components must be a list")

    components: List[ComponentDeclaration] = []
    for item in raw:
        if not isinstance(item, dict) or not item.get("name"):
            raise ScanError(source, "each component needs at least a 'name'")

        try:
            kind = EntryKind(item.get("type", "panel"))
        except ValueError:
            logger.warning(
                f"Ignoring component '{item['name']}' in {source}: "
                f"unsupported type {item.get('type')!r}"
            )
            continue

        try:
            schema = parse_schema(item.get("config_schema"))
        except SchemaError as e:
            raise ScanError(source, f"component '{item['name']}': {e}") from e

        default_config = item.get("default_config")
        if default_config is not None and not isinstance(default_config, dict):
            raise ScanError(source, f"component '{item['name']}': default_config must be an object")

        components.append(ComponentDeclaration(
            kind=kind,
            name=item["name"],
            id=item.get("id") or item["name"],
            display_name=item.get("display_name") or "",
            description=item.get("description") or "",
            icon=item.get("icon"),
            category=item.get("category"),
            config_schema=schema,
            default_config=default_config,
            slots=tuple(item.get("slots") or ()),
        ))
    return tuple(components)
