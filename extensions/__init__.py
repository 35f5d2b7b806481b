"""
Pagehost Extension System

Provides the open set of page types, panel types and layout templates:
- Manifest discovery across ordered extension roots (manifest.json)
- Type registries seeded with built-ins
- Extension loading with per-extension failure containment
- Config-schema rendering and validation
- Render-time resolution with visible fallbacks
"""

from .errors import (
    ExtensionError,
    ScanError,
    ManifestRootError,
    LoadError,
    RegistrationError,
    SchemaError,
)
from .schema import FieldSchema, FieldOption, FieldValidation, parse_schema
from .manifest import (
    ExtensionKind,
    EntryKind,
    ComponentDeclaration,
    ManifestDescriptor,
)
from .store import ManifestStore, scan_roots
from .registry import (
    BUILTIN_SOURCE,
    LayoutSlot,
    RegistryEntry,
    RegistrationConflict,
    ConflictKind,
    TypeRegistry,
    TypeRegistries,
    make_entry,
)
from .api import HOST_API, RegistrationContext
from .loader import ExtensionLoader, LoadState, LoadStatus
from .resolution import Fallback, FallbackReason, Resolver, ResolvedInstance
from .host import ExtensionHost

__all__ = [
    "ExtensionError",
    "ScanError",
    "ManifestRootError",
    "LoadError",
    "RegistrationError",
    "SchemaError",
    "FieldSchema",
    "FieldOption",
    "FieldValidation",
    "parse_schema",
    "ExtensionKind",
    "EntryKind",
    "ComponentDeclaration",
    "ManifestDescriptor",
    "ManifestStore",
    "scan_roots",
    "BUILTIN_SOURCE",
    "LayoutSlot",
    "RegistryEntry",
    "RegistrationConflict",
    "ConflictKind",
    "TypeRegistry",
    "TypeRegistries",
    "make_entry",
    "HOST_API",
    "RegistrationContext",
    "ExtensionLoader",
    "LoadState",
    "LoadStatus",
    "Fallback",
    "FallbackReason",
    "Resolver",
    "ResolvedInstance",
    "ExtensionHost",
]
