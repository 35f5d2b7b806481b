"""
Render-time resolution of persisted type strings.

Pages and panels store only a ``type`` string. Resolution maps it to the
registry entry that renders it, or to a Fallback describing why it cannot,
so a missing or broken extension shows up as a placeholder instead of an
error.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple, Union

from .config_form import apply_defaults
from .manifest import EntryKind
from .registry import RegistryEntry, TypeRegistries

if TYPE_CHECKING:
    from .loader import ExtensionLoader

logger = logging.getLogger(__name__)


class FallbackReason(Enum):
    NOT_REGISTERED = "not registered"
    EXTENSION_FAILED = "registered but its extension failed to load"
    UNKNOWN_KIND = "unknown kind"


@dataclass(frozen=True)
class Fallback:
    """Why a type could not be resolved, plus what is available instead."""
    kind: str
    type_id: str
    available: Tuple[str, ...]
    reason: FallbackReason
    extension_id: Optional[str] = None
    detail: Optional[str] = None

    @property
    def message(self) -> str:
        text = f"{self.kind.capitalize()} type '{self.type_id}' is {self.reason.value}"
        if self.reason == FallbackReason.UNKNOWN_KIND:
            text = f"Cannot resolve '{self.type_id}': {self.reason.value} '{self.kind}'"
        if self.extension_id:
            text += f" ({self.extension_id}: {self.detail or 'unknown error'})"
        return text

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "type_id": self.type_id,
            "available": list(self.available),
            "reason": self.reason.value,
            "extension_id": self.extension_id,
            "detail": self.detail,
            "message": self.message,
        }

    def to_placeholder(self) -> Dict[str, Any]:
        """Payload for the visible placeholder drawn in place of the unit."""
        return {
            "placeholder": True,
            "title": f"Unavailable {self.kind}: {self.type_id}",
            "message": self.message,
            "available": list(self.available),
        }


@dataclass
class ResolvedInstance:
    """A persisted page or panel instance paired with what renders it."""
    instance_id: Optional[str]
    type_id: str
    target: Union[RegistryEntry, Fallback]
    config: Dict[str, Any] = field(default_factory=dict)

    @property
    def resolved(self) -> bool:
        return isinstance(self.target, RegistryEntry)


class Resolver:
    """Looks up type strings against the live registries."""

    def __init__(self, registries: TypeRegistries, loader: Optional["ExtensionLoader"] = None):
        self.registries = registries
        self.loader = loader

    def resolve(self, kind: Union[EntryKind, str], type_id: str) -> Union[RegistryEntry, Fallback]:
        """
        Resolve a type id of a kind.

        Never raises; anything that cannot be resolved comes back as a
        Fallback.
        """
        try:
            entry_kind = kind if isinstance(kind, EntryKind) else EntryKind(kind)
        except ValueError:
            return Fallback(
                kind=str(kind),
                type_id=type_id,
                available=(),
                reason=FallbackReason.UNKNOWN_KIND,
            )

        registry = self.registries.for_kind(entry_kind)
        entry = registry.get(type_id)
        if entry is not None:
            return entry

        available = tuple(registry.ids())
        owner = self.loader.failed_owner(entry_kind, type_id) if self.loader is not None else None
        if owner is not None:
            ext_id, reason = owner
            logger.debug(f"{entry_kind.value} type '{type_id}' unavailable: '{ext_id}' failed ({reason})")
            return Fallback(
                kind=entry_kind.value,
                type_id=type_id,
                available=available,
                reason=FallbackReason.EXTENSION_FAILED,
                extension_id=ext_id,
                detail=reason,
            )

        logger.debug(f"{entry_kind.value} type '{type_id}' is not registered")
        return Fallback(
            kind=entry_kind.value,
            type_id=type_id,
            available=available,
            reason=FallbackReason.NOT_REGISTERED,
        )

    def resolve_instance(self, kind: Union[EntryKind, str], instance: Dict[str, Any]) -> ResolvedInstance:
        """
        Resolve a persisted ``{id, type, config}`` record.

        The entry's ``default_config`` fills keys the stored config lacks.
        For a Fallback the stored config is passed through untouched.
        """
        type_id = str(instance.get("type") or "")
        stored = instance.get("config") or {}
        target = self.resolve(kind, type_id)

        if isinstance(target, RegistryEntry):
            config = apply_defaults(target.config_schema or (), stored, target.default_config)
        else:
            config = dict(stored)

        return ResolvedInstance(
            instance_id=instance.get("id"),
            type_id=type_id,
            target=target,
            config=config,
        )
