"""
Host facade tying discovery, loading and resolution together.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

from .errors import ManifestRootError
from .loader import DEFAULT_LOAD_TIMEOUT, ExtensionLoader, LoadState
from .manifest import EntryKind, ManifestDescriptor
from .registry import RegistryEntry, TypeRegistries
from .resolution import Fallback, Resolver
from .store import ManifestStore, PathLike

logger = logging.getLogger(__name__)


class ExtensionHost:
    """
    Owns the manifest store, registries, loader and resolver of one host.
    """

    def __init__(
        self,
        roots: Iterable[PathLike] = (),
        disabled: Iterable[str] = (),
        load_timeout: float = DEFAULT_LOAD_TIMEOUT,
        registries: Optional[TypeRegistries] = None,
    ):
        """
        Initialize ExtensionHost.

        Args:
            roots: Extension roots in priority order (later wins)
            disabled: Extension ids that are listed but never loaded
            load_timeout: Per-extension load timeout in seconds
            registries: Registries to use (defaults to built-ins only)
        """
        self.store = ManifestStore(roots)
        self.disabled = set(disabled)
        self.registries = registries or TypeRegistries.with_builtins()
        self.loader = ExtensionLoader(self.registries, load_timeout=load_timeout)
        self.resolver = Resolver(self.registries, self.loader)
        self.diagnostics: List[str] = []
        self.started = False

    @classmethod
    def from_config(cls, config: Any) -> "ExtensionHost":
        """Build a host from a HostConfig (or anything with the same attributes)."""
        return cls(
            roots=config.extension_roots,
            disabled=config.disabled_extensions,
            load_timeout=config.load_timeout,
        )

    @property
    def roots(self) -> List[Path]:
        return list(self.store.roots)

    async def start(self) -> None:
        """
        Discover and load every enabled extension.

        Never raises. An unreadable set of roots is recorded in
        ``diagnostics`` and the host runs with built-ins only.
        """
        self.diagnostics.clear()
        try:
            snapshot = await self.store.rescan()
        except ManifestRootError as e:
            logger.error(f"Extension discovery failed: {e}")
            self.diagnostics.append(str(e))
            snapshot = ()

        loaded = 0
        for descriptor in snapshot:
            if descriptor.id in self.disabled:
                logger.info(f"Extension '{descriptor.id}' is disabled, not loading")
                continue
            state = await self.loader.load(descriptor)
            if state.is_loaded:
                loaded += 1

        self.started = True
        logger.info(f"Extension host started: {loaded}/{len(snapshot)} extensions loaded")

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------

    def list(self) -> List[ManifestDescriptor]:
        return self.store.list()

    def get(self, extension_id: str) -> Optional[ManifestDescriptor]:
        return self.store.get(extension_id)

    def state(self, extension_id: str) -> Optional[LoadState]:
        return self.loader.state(extension_id)

    def status(self) -> Dict[str, Any]:
        """Load states, registry stats, conflicts and diagnostics."""
        extensions = []
        for descriptor in self.store.list():
            state = self.loader.state(descriptor.id)
            if descriptor.id in self.disabled:
                status = "disabled"
            else:
                status = state.status.value if state is not None else "pending"
            extensions.append({
                "id": descriptor.id,
                "version": descriptor.version,
                "status": status,
                "reason": state.reason if state is not None else None,
                "units": state.to_dict()["units"] if state is not None else [],
                "has_stylesheet": self.loader.stylesheet(descriptor.id) is not None,
            })

        return {
            "started": self.started,
            "roots": [str(r) for r in self.store.roots],
            "extensions": extensions,
            "registries": self.registries.stats(),
            "conflicts": [
                c.to_dict() for registry in self.registries.all() for c in registry.conflicts
            ],
            "diagnostics": list(self.diagnostics),
        }

    async def reload(self, extension_id: Optional[str] = None) -> int:
        """
        Rescan, then reload one extension or all of them.

        Args:
            extension_id: Extension to reload; None reloads everything

        Returns:
            Number of extensions that ended up loaded
        """
        previous = {d.id for d in self.store.list()}
        try:
            snapshot = await self.store.rescan()
        except ManifestRootError as e:
            logger.error(f"Extension rescan failed: {e}")
            self.diagnostics.append(str(e))
            return 0

        current = {d.id: d for d in snapshot}

        if extension_id is not None:
            descriptor = current.get(extension_id)
            if descriptor is None:
                if extension_id in previous or self.loader.state(extension_id) is not None:
                    await self.loader.unload(extension_id)
                logger.warning(f"Extension '{extension_id}' not found after rescan")
                return 0
            if extension_id in self.disabled:
                await self.loader.unload(extension_id)
                return 0
            state = await self.loader.reload(extension_id, descriptor)
            return 1 if state.is_loaded else 0

        for ext_id in list(self.loader.states()):
            if ext_id not in current or ext_id in self.disabled:
                await self.loader.unload(ext_id)

        count = 0
        for descriptor in snapshot:
            if descriptor.id in self.disabled:
                continue
            state = await self.loader.reload(descriptor.id, descriptor)
            if state.is_loaded:
                count += 1
        logger.info(f"Reloaded {count}/{len(snapshot)} extensions")
        return count

    async def shutdown(self) -> int:
        """
        Unload every extension, running their ``unregister`` hooks.

        An error while unloading one extension is logged and does not stop
        the others from being unloaded.

        Returns:
            Number of extensions unloaded
        """
        count = 0
        for ext_id in list(self.loader.states()):
            try:
                await self.loader.unload(ext_id)
                count += 1
            except Exception as e:
                logger.error(f"Error shutting down extension '{ext_id}': {e}", exc_info=True)
        self.started = False
        logger.info(f"Extension host stopped: {count} extension(s) unloaded")
        return count

    def resolve(self, kind: Union[EntryKind, str], type_id: str) -> Union[RegistryEntry, Fallback]:
        return self.resolver.resolve(kind, type_id)
