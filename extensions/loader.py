"""
Extension loading.

Executes each descriptor's entry module, collects the units it offers and
commits them into the type registries. Failures are contained per
extension: the loader never raises to its caller, it records a ``failed``
LoadState instead.
"""

import asyncio
import importlib.util
import inspect
import logging
import sys
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from types import ModuleType
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .api import HOST_API, RegistrationContext
from .errors import LoadError, RegistrationError
from .manifest import EntryKind, ExtensionKind, ManifestDescriptor
from .registry import RegistryEntry, TypeRegistries, make_entry

logger = logging.getLogger(__name__)

DEFAULT_LOAD_TIMEOUT = 10.0
MODULE_PREFIX = "pagehost_ext_"


class LoadStatus(Enum):
    PENDING = "pending"
    LOADED = "loaded"
    FAILED = "failed"


@dataclass(frozen=True)
class LoadState:
    """Lifecycle state of one extension."""
    extension_id: str
    status: LoadStatus
    reason: Optional[str] = None
    units: Tuple[Tuple[str, str], ...] = ()  # (kind, type id)
    updated_at: float = 0.0

    @classmethod
    def pending(cls, extension_id: str) -> "LoadState":
        return cls(extension_id, LoadStatus.PENDING, updated_at=time.time())

    @classmethod
    def loaded(cls, extension_id: str, entries: Iterable[RegistryEntry]) -> "LoadState":
        units = tuple((e.kind.value, e.id) for e in entries)
        return cls(extension_id, LoadStatus.LOADED, units=units, updated_at=time.time())

    @classmethod
    def failed(cls, extension_id: str, reason: str) -> "LoadState":
        return cls(extension_id, LoadStatus.FAILED, reason=reason, updated_at=time.time())

    @property
    def is_loaded(self) -> bool:
        return self.status == LoadStatus.LOADED

    @property
    def is_failed(self) -> bool:
        return self.status == LoadStatus.FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "extension_id": self.extension_id,
            "status": self.status.value,
            "reason": self.reason,
            "units": [{"kind": kind, "id": type_id} for kind, type_id in self.units],
            "updated_at": self.updated_at,
        }


def module_name_for(extension_id: str) -> str:
    return MODULE_PREFIX + extension_id.replace("-", "_")


def import_entry(descriptor: ManifestDescriptor) -> ModuleType:
    """
    Import an extension's entry module from its file path.

    The entry may be a ``.py`` file or a package directory containing
    ``__init__.py``. The module is registered in ``sys.modules`` under a
    name derived from the extension id, replacing any earlier version.

    Raises:
        LoadError: If the entry does not exist or is not importable
        Exception: Whatever the module raises while executing
    """
    module_name = module_name_for(descriptor.id)
    path = Path(descriptor.entry_path)

    if path.is_dir():
        init_file = path / "__init__.py"
        if not init_file.is_file():
            raise LoadError(f"entry {path} is a directory without __init__.py")
        spec = importlib.util.spec_from_file_location(
            module_name, init_file, submodule_search_locations=[str(path)]
        )
    elif path.is_file():
        spec = importlib.util.spec_from_file_location(module_name, path)
    else:
        raise LoadError(f"entry not found: {path}")

    if spec is None or spec.loader is None:
        raise LoadError(f"cannot import entry {path}")

    module = importlib.util.module_from_spec(spec)
    sys.modules[module_name] = module
    try:
        spec.loader.exec_module(module)
    except BaseException:
        sys.modules.pop(module_name, None)
        raise
    return module


def read_stylesheet(path: Path) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise LoadError(f"cannot read stylesheet {path}: {e}") from e


class ExtensionLoader:
    """
    Loads extensions into a TypeRegistries instance.

    Calls for the same extension id are serialized; different ids may load
    concurrently but the host loads them in snapshot order.
    """

    def __init__(
        self,
        registries: TypeRegistries,
        load_timeout: float = DEFAULT_LOAD_TIMEOUT,
        host_api: str = HOST_API,
    ):
        """
        Initialize ExtensionLoader.

        Args:
            registries: Registries units are committed into
            load_timeout: Seconds allowed for import plus registration
            host_api: Compatibility identifier modules may pin via HOST_API
        """
        self.registries = registries
        self.load_timeout = load_timeout
        self.host_api = host_api

        self._states: Dict[str, LoadState] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._descriptors: Dict[str, ManifestDescriptor] = {}
        self._modules: Dict[str, ModuleType] = {}
        self._stylesheets: Dict[str, str] = {}
        # Units an extension last committed; kept after a failure so the
        # resolver can still attribute a missing type to it
        self._claimed: Dict[str, Set[Tuple[EntryKind, str]]] = {}

        self._queued_reloads: Dict[str, "asyncio.Future[LoadState]"] = {}
        self._reload_targets: Dict[str, ManifestDescriptor] = {}

    def _lock_for(self, extension_id: str) -> asyncio.Lock:
        lock = self._locks.get(extension_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[extension_id] = lock
        return lock

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self, descriptor: ManifestDescriptor) -> LoadState:
        """
        Load an extension unless it is already loaded.

        Args:
            descriptor: Manifest to load

        Returns:
            Resulting LoadState (never raises)
        """
        async with self._lock_for(descriptor.id):
            current = self._states.get(descriptor.id)
            if current is not None and current.is_loaded:
                return current
            return await self._load_locked(descriptor)

    async def _load_locked(self, descriptor: ManifestDescriptor) -> LoadState:
        ext_id = descriptor.id
        self._states[ext_id] = LoadState.pending(ext_id)
        self._descriptors[ext_id] = descriptor
        logger.info(f"Loading extension: {ext_id} ({descriptor.version})")

        try:
            entries, module, stylesheet = await asyncio.wait_for(
                self._execute(descriptor), timeout=self.load_timeout
            )
        except asyncio.TimeoutError:
            logger.error(f"Timed out loading extension '{ext_id}' after {self.load_timeout}s")
            return self._fail(ext_id, "timed out")
        except (LoadError, RegistrationError) as e:
            logger.error(f"Failed to load extension '{ext_id}': {e}")
            return self._fail(ext_id, str(e))
        except Exception as e:
            logger.error(f"Failed to load extension '{ext_id}': {e}", exc_info=True)
            return self._fail(ext_id, f"{type(e).__name__}: {e}")

        try:
            self.registries.commit(ext_id, entries, replace=True)
        except RegistrationError as e:
            logger.error(f"Failed to register units of extension '{ext_id}': {e}")
            return self._fail(ext_id, str(e))

        self._modules[ext_id] = module
        if stylesheet is not None:
            self._stylesheets[ext_id] = stylesheet
        else:
            self._stylesheets.pop(ext_id, None)
        self._claimed[ext_id] = {(e.kind, e.id) for e in entries}

        state = LoadState.loaded(ext_id, entries)
        self._states[ext_id] = state
        logger.info(f"Loaded extension: {ext_id} ({len(entries)} unit(s))")
        return state

    async def _execute(
        self, descriptor: ManifestDescriptor
    ) -> Tuple[List[RegistryEntry], ModuleType, Optional[str]]:
        # SystemExit has to become a LoadError before it leaves this
        # coroutine, otherwise the task wrapping it re-raises it into the loop
        try:
            return await self._run_entry(descriptor)
        except SystemExit as e:
            raise LoadError(f"SystemExit: {e.code}") from e

    async def _run_entry(
        self, descriptor: ManifestDescriptor
    ) -> Tuple[List[RegistryEntry], ModuleType, Optional[str]]:
        loop = asyncio.get_running_loop()

        module = await loop.run_in_executor(None, import_entry, descriptor)

        stylesheet = None
        if descriptor.style_path is not None:
            stylesheet = await loop.run_in_executor(None, read_stylesheet, descriptor.style_path)

        declared_api = getattr(module, "HOST_API", None)
        if declared_api is not None and declared_api != self.host_api:
            raise LoadError(
                f"incompatible host API {declared_api!r} (host provides {self.host_api!r})"
            )

        ctx = RegistrationContext(descriptor)
        register = getattr(module, "register", None)
        components = getattr(module, "components", None)

        if callable(register):
            if inspect.iscoroutinefunction(register):
                result = await register(ctx)
            else:
                result = await loop.run_in_executor(None, register, ctx)
                if inspect.isawaitable(result):
                    result = await result
            if result is not None:
                if isinstance(result, (RegistryEntry, dict)):
                    result = [result]
                for unit in result:
                    ctx.add(unit)
        elif isinstance(components, dict) and components:
            self._stage_components(ctx, descriptor, components)
        else:
            raise LoadError("no registration contract")

        return ctx.staged, module, stylesheet

    def _stage_components(
        self,
        ctx: RegistrationContext,
        descriptor: ManifestDescriptor,
        components: Dict[str, Any],
    ) -> None:
        """Stage units from a module-level ``components`` mapping."""
        if descriptor.components:
            for decl in descriptor.components:
                if decl.name not in components:
                    raise LoadError(f"component '{decl.name}' is declared in the manifest but not exported")
                ctx.add(make_entry(
                    decl.kind, decl.id, components[decl.name],
                    source=descriptor.id,
                    name=decl.display_name or descriptor.name,
                    icon=decl.icon or descriptor.icon,
                    description=decl.description or descriptor.description,
                    config_schema=decl.config_schema,
                    default_config=decl.default_config,
                    slots=decl.slots,
                    metadata={"category": decl.category} if decl.category else None,
                ))
            return

        if descriptor.kind == ExtensionKind.ADAPTER:
            raise LoadError("adapter extensions must declare their components in the manifest")

        kind = EntryKind(descriptor.kind.value)
        single = len(components) == 1
        for name, component in components.items():
            ctx.add(make_entry(
                kind, descriptor.id if single else name, component,
                source=descriptor.id,
                name=descriptor.name if single else name,
                icon=descriptor.icon,
                description=descriptor.description,
            ))

    def _fail(self, extension_id: str, reason: str) -> LoadState:
        removed = self.registries.remove_source(extension_id)
        if removed:
            logger.warning(
                f"Removed {len(removed)} unit(s) of extension '{extension_id}' after failed load"
            )
        self._modules.pop(extension_id, None)
        self._stylesheets.pop(extension_id, None)
        state = LoadState.failed(extension_id, reason)
        self._states[extension_id] = state
        return state

    # ------------------------------------------------------------------
    # Reload / unload
    # ------------------------------------------------------------------

    async def reload(
        self, extension_id: str, descriptor: Optional[ManifestDescriptor] = None
    ) -> LoadState:
        """
        Re-execute an extension and atomically replace its units.

        A reload that is queued but not yet running absorbs later requests
        for the same id; they all receive its result.

        Args:
            extension_id: Extension to reload
            descriptor: New manifest (defaults to the last one seen)

        Returns:
            Resulting LoadState
        """
        if descriptor is not None:
            self._reload_targets[extension_id] = descriptor

        queued = self._queued_reloads.get(extension_id)
        if queued is None:
            queued = asyncio.ensure_future(self._run_reload(extension_id))
            self._queued_reloads[extension_id] = queued
        else:
            logger.debug(f"Coalescing reload request for '{extension_id}'")
        return await asyncio.shield(queued)

    async def _run_reload(self, extension_id: str) -> LoadState:
        async with self._lock_for(extension_id):
            # Requests arriving from here on queue a fresh reload
            self._queued_reloads.pop(extension_id, None)
            descriptor = self._reload_targets.pop(extension_id, None) or self._descriptors.get(extension_id)
            if descriptor is None:
                logger.warning(f"Cannot reload unknown extension '{extension_id}'")
                return self._fail(extension_id, "unknown extension")
            logger.info(f"Reloading extension: {extension_id}")
            return await self._load_locked(descriptor)

    async def unload(self, extension_id: str) -> int:
        """
        Remove an extension's units and forget its module.

        Calls the module's optional ``unregister(ctx)`` hook. Errors from the
        hook are logged.

        Returns:
            Number of units removed
        """
        async with self._lock_for(extension_id):
            removed = self.registries.remove_source(extension_id)
            module = self._modules.pop(extension_id, None)
            descriptor = self._descriptors.pop(extension_id, None)

            hook = getattr(module, "unregister", None) if module is not None else None
            if callable(hook) and descriptor is not None:
                try:
                    result = hook(RegistrationContext(descriptor))
                    if inspect.isawaitable(result):
                        await result
                except (Exception, SystemExit) as e:
                    logger.error(f"Error in unregister hook of '{extension_id}': {e!r}", exc_info=True)

            sys.modules.pop(module_name_for(extension_id), None)
            self._states.pop(extension_id, None)
            self._stylesheets.pop(extension_id, None)
            self._claimed.pop(extension_id, None)

        logger.info(f"Unloaded extension: {extension_id} ({len(removed)} unit(s) removed)")
        return len(removed)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def state(self, extension_id: str) -> Optional[LoadState]:
        return self._states.get(extension_id)

    def states(self) -> Dict[str, LoadState]:
        return dict(self._states)

    def stylesheet(self, extension_id: str) -> Optional[str]:
        return self._stylesheets.get(extension_id)

    def module(self, extension_id: str) -> Optional[ModuleType]:
        return self._modules.get(extension_id)

    def failed_owner(self, kind: EntryKind, type_id: str) -> Optional[Tuple[str, str]]:
        """
        Find a failed extension that would have provided ``type_id``.

        Returns:
            (extension id, failure reason), or None
        """
        for ext_id, state in self._states.items():
            if not state.is_failed:
                continue
            descriptor = self._descriptors.get(ext_id)
            declared = descriptor is not None and descriptor.declares(kind, type_id)
            if declared or (kind, type_id) in self._claimed.get(ext_id, ()):
                return ext_id, state.reason or "unknown error"
        return None
