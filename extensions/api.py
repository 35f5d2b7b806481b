"""
Registration API handed to extension modules.

Extensions receive a RegistrationContext in their register() function.
Nothing they register is visible to the host until the loader commits the
staged units after register() returns.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from .errors import RegistrationError
from .manifest import EntryKind, ManifestDescriptor
from .registry import LayoutSlot, RegistryEntry, make_entry

logger = logging.getLogger(__name__)

# Flat compatibility identifier; an extension module may pin it via HOST_API
HOST_API = "pagehost/1"


class RegistrationContext:
    """
    API provided to extensions for registering page types, panel types
    and layout templates.
    """

    def __init__(self, descriptor: ManifestDescriptor):
        """
        Initialize RegistrationContext.

        Args:
            descriptor: Manifest of the extension being loaded
        """
        self.descriptor = descriptor
        self.extension_id = descriptor.id
        self._staged: List[RegistryEntry] = []

    @property
    def staged(self) -> List[RegistryEntry]:
        return list(self._staged)

    def register_panel(
        self,
        panel_id: str,
        component: Any,
        *,
        name: str = "",
        icon: Optional[str] = None,
        description: str = "",
        config_schema: Any = None,
        default_config: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> RegistryEntry:
        """
        Stage a panel type.

        Args:
            panel_id: Type id persisted in panel instances
            component: Component reference the renderer mounts
            config_schema: List of field definitions (or FieldSchema objects)
            default_config: Values used where the stored config has none

        Returns:
            The staged entry
        """
        return self._stage(make_entry(
            EntryKind.PANEL, panel_id, component,
            source=self.extension_id,
            name=name,
            icon=icon,
            description=description,
            config_schema=config_schema,
            default_config=default_config,
            metadata=metadata,
        ))

    def register_page(
        self,
        page_id: str,
        component: Any,
        *,
        name: str = "",
        icon: Optional[str] = None,
        description: str = "",
        config_schema: Any = None,
        default_config: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> RegistryEntry:
        """Stage a page type. Arguments as for register_panel()."""
        return self._stage(make_entry(
            EntryKind.PAGE, page_id, component,
            source=self.extension_id,
            name=name,
            icon=icon,
            description=description,
            config_schema=config_schema,
            default_config=default_config,
            metadata=metadata,
        ))

    def register_layout(
        self,
        layout_id: str,
        component: Any,
        slots: Sequence[Any],
        *,
        name: str = "",
        icon: Optional[str] = None,
        description: str = "",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> RegistryEntry:
        """
        Stage a layout template.

        Args:
            layout_id: Template id
            component: Component reference
            slots: LayoutSlot objects or slot dicts; at least one is required
        """
        return self._stage(make_entry(
            EntryKind.LAYOUT, layout_id, component,
            source=self.extension_id,
            name=name,
            icon=icon,
            description=description,
            slots=slots,
            metadata=metadata,
        ))

    def add(self, unit: Any) -> RegistryEntry:
        """
        Stage a unit given as a RegistryEntry or as a dict with a ``kind``.

        Raises:
            RegistrationError: If the unit cannot be interpreted
        """
        if isinstance(unit, RegistryEntry):
            if unit.source != self.extension_id:
                unit = make_entry(
                    unit.kind, unit.id, unit.component,
                    source=self.extension_id,
                    name=unit.name,
                    icon=unit.icon,
                    description=unit.description,
                    config_schema=unit.config_schema,
                    default_config=unit.default_config,
                    slots=unit.slots,
                    metadata=unit.metadata,
                )
            return self._stage(unit)

        if not isinstance(unit, dict):
            raise RegistrationError(
                f"Cannot register {type(unit).__name__}; expected a RegistryEntry or a dict"
            )

        try:
            kind = EntryKind(unit.get("kind"))
        except ValueError:
            raise RegistrationError(f"Unit has invalid kind {unit.get('kind')!r}")

        unit_id = unit.get("id")
        if not unit_id:
            raise RegistrationError(f"{kind.value} unit is missing 'id'")

        return self._stage(make_entry(
            kind, unit_id, unit.get("component"),
            source=self.extension_id,
            name=unit.get("name", ""),
            icon=unit.get("icon"),
            description=unit.get("description", ""),
            config_schema=unit.get("config_schema"),
            default_config=unit.get("default_config"),
            slots=[s if isinstance(s, LayoutSlot) else dict(s) for s in unit.get("slots") or ()],
            metadata=unit.get("metadata"),
        ))

    def _stage(self, entry: RegistryEntry) -> RegistryEntry:
        self._staged.append(entry)
        logger.debug(f"[{self.extension_id}] staged {entry.kind.value} '{entry.id}'")
        return entry

    def log_info(self, message: str) -> None:
        """Log info message with extension context."""
        logger.info(f"[{self.extension_id}] {message}")

    def log_warning(self, message: str) -> None:
        """Log warning message with extension context."""
        logger.warning(f"[{self.extension_id}] {message}")

    def log_error(self, message: str) -> None:
        """Log error message with extension context."""
        logger.error(f"[{self.extension_id}] {message}")
