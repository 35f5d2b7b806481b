"""
Type registries for page types, panel types and layout templates.

Each registry maps a string id to an immutable RegistryEntry. Built-ins are
seeded first and form the baseline the registry returns to on ``reset()``.
Extensions register on top of that baseline, and a later registration with
the same id replaces the earlier one. The replaced extension entry is kept
underneath and comes back if the replacing source goes away.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import RegistrationError, SchemaError
from .manifest import EntryKind
from .schema import FieldSchema, parse_schema

logger = logging.getLogger(__name__)

BUILTIN_SOURCE = "builtin"


@dataclass(frozen=True)
class LayoutSlot:
    """A named region of a layout template."""
    id: str
    name: str
    description: str = ""
    default_width: Optional[str] = None
    default_height: Optional[str] = None
    constraints: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LayoutSlot":
        if not isinstance(data, dict) or not data.get("id"):
            raise RegistrationError("Layout slot must have an id")
        return cls(
            id=data["id"],
            name=data.get("name") or data["id"],
            description=data.get("description", ""),
            default_width=data.get("default_width", data.get("defaultWidth")),
            default_height=data.get("default_height", data.get("defaultHeight")),
            constraints=dict(data.get("constraints") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "default_width": self.default_width,
            "default_height": self.default_height,
            "constraints": dict(self.constraints),
        }


@dataclass(frozen=True)
class RegistryEntry:
    """A renderable unit addressable by id within one registry."""
    id: str
    kind: EntryKind
    component: Any
    name: str = ""
    icon: Optional[str] = None
    description: str = ""
    config_schema: Optional[Tuple[FieldSchema, ...]] = None
    default_config: Optional[Dict[str, Any]] = None
    source: str = BUILTIN_SOURCE
    slots: Tuple[LayoutSlot, ...] = ()
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_builtin(self) -> bool:
        return self.source == BUILTIN_SOURCE

    @property
    def supports_config(self) -> bool:
        return bool(self.config_schema)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable summary; the component itself stays in process."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "name": self.name or self.id,
            "icon": self.icon,
            "description": self.description,
            "component": _component_name(self.component),
            "config_schema": [f.to_dict() for f in self.config_schema or ()],
            "default_config": self.default_config,
            "source": self.source,
            "slots": [s.to_dict() for s in self.slots],
            "metadata": dict(self.metadata),
        }


def _component_name(component: Any) -> str:
    if isinstance(component, str):
        return component
    return getattr(component, "__name__", type(component).__name__)


def make_entry(
    kind: EntryKind,
    entry_id: str,
    component: Any,
    *,
    source: str = BUILTIN_SOURCE,
    name: str = "",
    icon: Optional[str] = None,
    description: str = "",
    config_schema: Any = None,
    default_config: Optional[Dict[str, Any]] = None,
    slots: Sequence[Any] = (),
    metadata: Optional[Dict[str, Any]] = None,
) -> RegistryEntry:
    """
    Build a RegistryEntry from loosely typed input.

    ``config_schema`` may be raw manifest data or FieldSchema objects, and
    ``slots`` may be dicts or LayoutSlot objects.

    Raises:
        RegistrationError: If the schema or slots are malformed
    """
    try:
        schema = parse_schema(config_schema) if config_schema is not None else None
    except SchemaError as e:
        raise RegistrationError(f"{kind.value} '{entry_id}': {e}") from e

    parsed_slots = tuple(
        s if isinstance(s, LayoutSlot) else LayoutSlot.from_dict(s) for s in slots
    )

    return RegistryEntry(
        id=entry_id,
        kind=kind,
        component=component,
        name=name or entry_id,
        icon=icon,
        description=description,
        config_schema=schema or None,
        default_config=dict(default_config) if default_config is not None else None,
        source=source,
        slots=parsed_slots,
        metadata=dict(metadata or {}),
    )


class ConflictKind(Enum):
    """How a colliding registration relates to the entry it replaced."""
    BUILTIN_OVERRIDE = "builtin-override"
    EXTENSION_COLLISION = "extension-collision"


@dataclass(frozen=True)
class RegistrationConflict:
    """Record of a last-write-wins replacement between different sources."""
    kind: ConflictKind
    registry: EntryKind
    entry_id: str
    previous_source: str
    new_source: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "registry": self.registry.value,
            "entry_id": self.entry_id,
            "previous_source": self.previous_source,
            "new_source": self.new_source,
        }


@dataclass(frozen=True)
class RegistryEvent:
    """Passed to registry listeners."""
    action: str  # "registered" | "unregistered"
    kind: EntryKind
    entry_id: str
    entry: Optional[RegistryEntry] = None


Listener = Callable[[RegistryEvent], Any]


class TypeRegistry:
    """
    Registry for one kind of renderable unit.

    All access goes through ``lock``; when the registry belongs to a
    TypeRegistries group the lock is shared across the group.
    """

    def __init__(
        self,
        kind: EntryKind,
        builtins: Iterable[RegistryEntry] = (),
        lock: Optional[threading.RLock] = None,
    ):
        self.kind = kind
        self.lock = lock or threading.RLock()
        self._entries: Dict[str, RegistryEntry] = {}
        self._baseline: Dict[str, RegistryEntry] = {}
        # Extension entries replaced by a different source, oldest first
        self._shadowed: Dict[str, List[RegistryEntry]] = {}
        self._listeners: List[Listener] = []
        self.conflicts: List[RegistrationConflict] = []

        for entry in builtins:
            self.register(entry)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self, entry: RegistryEntry) -> None:
        """
        Check an entry can be registered here.

        Raises:
            RegistrationError: If the entry is malformed
        """
        if not isinstance(entry, RegistryEntry):
            raise RegistrationError(f"Expected a RegistryEntry, got {type(entry).__name__}")
        if not entry.id or not isinstance(entry.id, str):
            raise RegistrationError(f"{self.kind.value} entry must have a string id")
        if entry.kind != self.kind:
            raise RegistrationError(
                f"Entry '{entry.id}' is a {entry.kind.value}, not a {self.kind.value}"
            )
        if entry.component is None:
            raise RegistrationError(f"{self.kind.value} '{entry.id}' must have a component")

        if entry.config_schema:
            ids = [f.id for f in entry.config_schema]
            if len(ids) != len(set(ids)):
                raise RegistrationError(f"{self.kind.value} '{entry.id}' has duplicate config field ids")
        if entry.default_config is not None and not isinstance(entry.default_config, dict):
            raise RegistrationError(f"{self.kind.value} '{entry.id}': default_config must be a mapping")

        if self.kind == EntryKind.LAYOUT:
            if not entry.slots:
                raise RegistrationError(f"Layout template '{entry.id}' must have at least one slot")
            slot_ids = set()
            for slot in entry.slots:
                if slot.id in slot_ids:
                    raise RegistrationError(
                        f"Duplicate slot ID '{slot.id}' in layout template '{entry.id}'"
                    )
                slot_ids.add(slot.id)

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def register(self, entry: RegistryEntry) -> None:
        """
        Register an entry, replacing any existing entry with the same id.

        Args:
            entry: Entry to register

        Raises:
            RegistrationError: If the entry fails validation
        """
        self.validate(entry)
        with self.lock:
            self._put(entry)
        self._emit(RegistryEvent("registered", self.kind, entry.id, entry))

    def unregister(self, entry_id: str) -> None:
        """
        Remove an entry.

        If the entry had replaced another extension's entry, that one is
        restored. Otherwise a shadowed built-in is restored instead of
        leaving the id empty.
        """
        with self.lock:
            self._drop(entry_id)
        self._emit_removed(entry_id)

    def remove_source(self, source: str) -> List[str]:
        """
        Remove every entry currently attributed to ``source``.

        Returns:
            Ids that were removed
        """
        with self.lock:
            self._forget_shadowed(source)
            ids = [e.id for e in self._entries.values() if e.source == source]
            for entry_id in ids:
                self._drop(entry_id)
        for entry_id in ids:
            self._emit_removed(entry_id)
        return ids

    def reset(self) -> None:
        """Drop every extension entry and return to the built-in baseline."""
        with self.lock:
            self._entries = dict(self._baseline)
            self._shadowed.clear()
            self.conflicts.clear()
        logger.info(f"{self.kind.value} registry reset to {len(self._baseline)} built-in entries")

    def _put(self, entry: RegistryEntry) -> None:
        # Caller holds the lock
        existing = self._entries.get(entry.id)
        if existing is not None:
            self._record_conflict(existing, entry)
        stack = [e for e in self._shadowed.get(entry.id, []) if e.source != entry.source]
        if existing is not None and not existing.is_builtin and existing.source != entry.source:
            stack.append(existing)
        if stack:
            self._shadowed[entry.id] = stack
        else:
            self._shadowed.pop(entry.id, None)
        self._entries[entry.id] = entry
        if entry.is_builtin:
            self._baseline[entry.id] = entry
        logger.debug(f"Registered {self.kind.value} type: {entry.id} (from {entry.source})")

    def _drop(self, entry_id: str) -> Optional[RegistryEntry]:
        # Caller holds the lock; returns the restored entry, if any
        existing = self._entries.pop(entry_id, None)
        if existing is None:
            return None

        stack = self._shadowed.get(entry_id)
        while stack:
            previous = stack.pop()
            if previous.source == existing.source:
                continue
            if not stack:
                self._shadowed.pop(entry_id, None)
            self._entries[entry_id] = previous
            logger.info(
                f"Restored {self.kind.value} type '{entry_id}' from extension '{previous.source}'"
            )
            return previous
        self._shadowed.pop(entry_id, None)

        builtin = self._baseline.get(entry_id)
        if builtin is not None and not existing.is_builtin:
            self._entries[entry_id] = builtin
            logger.info(f"Restored built-in {self.kind.value} type '{entry_id}'")
            return builtin

        logger.info(f"Unregistered {self.kind.value} type: {entry_id}")
        return None

    def _forget_shadowed(self, source: str, keep: Iterable[str] = ()) -> None:
        # Caller holds the lock
        keep = set(keep)
        for entry_id in list(self._shadowed):
            if entry_id in keep:
                continue
            stack = [e for e in self._shadowed[entry_id] if e.source != source]
            if stack:
                self._shadowed[entry_id] = stack
            else:
                del self._shadowed[entry_id]

    def _record_conflict(self, existing: RegistryEntry, entry: RegistryEntry) -> None:
        if existing.source == entry.source:
            logger.debug(
                f"{self.kind.value} type '{entry.id}' re-registered by {entry.source}"
            )
            return

        if existing.is_builtin:
            kind = ConflictKind.BUILTIN_OVERRIDE
            logger.warning(
                f"Extension '{entry.source}' overrides built-in {self.kind.value} type '{entry.id}'"
            )
        else:
            kind = ConflictKind.EXTENSION_COLLISION
            logger.warning(
                f"{self.kind.value} type '{entry.id}' from extension '{entry.source}' "
                f"replaces the one from extension '{existing.source}'"
            )
        conflict = RegistrationConflict(
            kind=kind,
            registry=self.kind,
            entry_id=entry.id,
            previous_source=existing.source,
            new_source=entry.source,
        )
        if conflict not in self.conflicts:
            self.conflicts.append(conflict)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, entry_id: str) -> Optional[RegistryEntry]:
        with self.lock:
            return self._entries.get(entry_id)

    def get_all(self) -> List[RegistryEntry]:
        with self.lock:
            return list(self._entries.values())

    def has(self, entry_id: str) -> bool:
        with self.lock:
            return entry_id in self._entries

    def ids(self) -> List[str]:
        with self.lock:
            return sorted(self._entries)

    def filter(self, predicate: Callable[[RegistryEntry], bool]) -> List[RegistryEntry]:
        return [e for e in self.get_all() if predicate(e)]

    def builtin_ids(self) -> List[str]:
        with self.lock:
            return sorted(self._baseline)

    def stats(self) -> Dict[str, Any]:
        with self.lock:
            return {
                "kind": self.kind.value,
                "total": len(self._entries),
                "builtin": len(self._baseline),
                "types": sorted(self._entries),
                "conflicts": len(self.conflicts),
                "listeners": len(self._listeners),
            }

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit_removed(self, entry_id: str) -> None:
        # A removal that restored a built-in reads as a registration
        current = self.get(entry_id)
        if current is not None:
            self._emit(RegistryEvent("registered", self.kind, entry_id, current))
        else:
            self._emit(RegistryEvent("unregistered", self.kind, entry_id))

    def _emit(self, event: RegistryEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    f"Error in {self.kind.value} registry listener for '{event.action}': {e}",
                    exc_info=True,
                )


class TypeRegistries:
    """
    The page, panel and layout registries behind a single lock.

    ``commit`` is the only path extensions take into the registries, so a
    descriptor's units become visible together or not at all.
    """

    def __init__(
        self,
        pages: Iterable[RegistryEntry] = (),
        panels: Iterable[RegistryEntry] = (),
        layouts: Iterable[RegistryEntry] = (),
    ):
        self.lock = threading.RLock()
        self.pages = TypeRegistry(EntryKind.PAGE, pages, lock=self.lock)
        self.panels = TypeRegistry(EntryKind.PANEL, panels, lock=self.lock)
        self.layouts = TypeRegistry(EntryKind.LAYOUT, layouts, lock=self.lock)

    @classmethod
    def with_builtins(cls) -> "TypeRegistries":
        """Registries seeded with the host's built-in types."""
        from .builtins import builtin_layout_templates, builtin_page_types, builtin_panel_types

        return cls(
            pages=builtin_page_types(),
            panels=builtin_panel_types(),
            layouts=builtin_layout_templates(),
        )

    def for_kind(self, kind: EntryKind) -> TypeRegistry:
        return {
            EntryKind.PAGE: self.pages,
            EntryKind.PANEL: self.panels,
            EntryKind.LAYOUT: self.layouts,
        }[kind]

    def all(self) -> Tuple[TypeRegistry, ...]:
        return (self.pages, self.panels, self.layouts)

    def commit(self, source: str, entries: Sequence[RegistryEntry], replace: bool = True) -> None:
        """
        Atomically register a source's units.

        Every entry is validated before anything changes. With ``replace``,
        units previously attributed to ``source`` that are not part of the
        new set are removed in the same critical section. Any failure rolls
        the registries back to their state before the call.

        Raises:
            RegistrationError: If any entry is invalid or ids repeat
        """
        seen = set()
        for entry in entries:
            if not isinstance(entry, RegistryEntry):
                raise RegistrationError(f"Expected a RegistryEntry, got {type(entry).__name__}")
            if entry.source != source:
                raise RegistrationError(
                    f"Entry '{entry.id}' is attributed to '{entry.source}', not '{source}'"
                )
            key = (entry.kind, entry.id)
            if key in seen:
                raise RegistrationError(f"{entry.kind.value} '{entry.id}' registered twice by '{source}'")
            seen.add(key)
            self.for_kind(entry.kind).validate(entry)

        with self.lock:
            snapshot = [
                (r, dict(r._entries), dict(r._baseline),
                 {k: list(v) for k, v in r._shadowed.items()}, len(r.conflicts))
                for r in self.all()
            ]
            dropped: List[Tuple[TypeRegistry, str]] = []
            try:
                if replace:
                    for registry in self.all():
                        registry._forget_shadowed(
                            source, keep=[i for k, i in seen if k == registry.kind]
                        )
                        for entry_id in [e.id for e in registry._entries.values() if e.source == source]:
                            if (registry.kind, entry_id) not in seen:
                                registry._drop(entry_id)
                                dropped.append((registry, entry_id))
                for entry in entries:
                    self.for_kind(entry.kind)._put(entry)
            except Exception:
                for registry, entries_before, baseline_before, shadowed_before, conflict_count in snapshot:
                    registry._entries = entries_before
                    registry._baseline = baseline_before
                    registry._shadowed = shadowed_before
                    del registry.conflicts[conflict_count:]
                raise

        for registry, entry_id in dropped:
            registry._emit_removed(entry_id)
        for entry in entries:
            self.for_kind(entry.kind)._emit(RegistryEvent("registered", entry.kind, entry.id, entry))
        logger.info(f"Committed {len(entries)} unit(s) from '{source}'")

    def remove_source(self, source: str) -> List[Tuple[EntryKind, str]]:
        """Remove a source's units from every registry."""
        removed: List[Tuple[EntryKind, str]] = []
        with self.lock:
            for registry in self.all():
                removed.extend((registry.kind, entry_id) for entry_id in registry.remove_source(source))
        return removed

    def reset(self) -> None:
        with self.lock:
            for registry in self.all():
                registry.reset()

    def stats(self) -> Dict[str, Any]:
        return {registry.kind.value: registry.stats() for registry in self.all()}
