"""
Manifest discovery across one or more extension roots.

Roots are searched in order. When two roots contain an extension with the
same id, the later root wins, so a user directory listed after the bundled
one can replace a bundled extension.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .errors import ManifestRootError, ScanError
from .manifest import MANIFEST_FILENAME, ManifestDescriptor, parse_manifest_data

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def read_manifest(directory: Path, root: Optional[Path] = None) -> ManifestDescriptor:
    """
    Read and validate ``manifest.json`` in an extension directory.

    Raises:
        ScanError: If the file is missing, unreadable, not JSON or invalid
    """
    manifest_path = directory / MANIFEST_FILENAME
    if not manifest_path.is_file():
        raise ScanError(manifest_path, "no manifest file")

    try:
        with open(manifest_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ScanError(manifest_path, f"invalid JSON: {e}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ScanError(manifest_path, f"unreadable: {e}") from e

    return parse_manifest_data(data, directory, root=root, source=manifest_path)


def scan_roots(roots: Sequence[PathLike]) -> Tuple[ManifestDescriptor, ...]:
    """
    Synchronously scan extension roots.

    Args:
        roots: Root directories in priority order (later wins)

    Returns:
        Tuple of descriptors in discovery order

    Raises:
        ManifestRootError: If roots were given but none could be read
    """
    found: Dict[str, ManifestDescriptor] = {}
    readable = 0

    for raw_root in roots:
        root = Path(raw_root).expanduser()
        try:
            subdirs = sorted(p for p in root.iterdir() if p.is_dir())
        except OSError as e:
            logger.warning(f"Skipping extension root {root}: {e}")
            continue

        readable += 1
        logger.debug(f"Searching: {root}")

        seen_in_root = set()
        for ext_dir in subdirs:
            try:
                descriptor = read_manifest(ext_dir, root=root)
            except ScanError as e:
                logger.warning(f"Skipping extension directory: {e}")
                continue

            previous = found.pop(descriptor.id, None)
            if previous is not None:
                if descriptor.id in seen_in_root:
                    logger.warning(
                        f"Duplicate extension id '{descriptor.id}' in {root}: "
                        f"{ext_dir.name} replaces {previous.directory.name}"
                    )
                else:
                    logger.info(
                        f"Overriding extension '{descriptor.id}' from {previous.root} with {root}"
                    )
            found[descriptor.id] = descriptor
            seen_in_root.add(descriptor.id)

    if roots and readable == 0:
        raise ManifestRootError(roots)

    logger.info(f"Discovered {len(found)} extensions in {readable} root(s)")
    return tuple(found.values())


class ManifestStore:
    """
    Holds the current immutable snapshot of discovered manifests.
    """

    def __init__(self, roots: Iterable[PathLike] = ()):
        self.roots: List[Path] = [Path(r) for r in roots]
        # (descriptors, index by id), only ever replaced as a whole
        self._current: Tuple[Tuple[ManifestDescriptor, ...], Dict[str, ManifestDescriptor]] = ((), {})

    @property
    def snapshot(self) -> Tuple[ManifestDescriptor, ...]:
        return self._current[0]

    async def scan(self, roots: Optional[Sequence[PathLike]] = None) -> Tuple[ManifestDescriptor, ...]:
        """
        Scan roots without touching the stored snapshot.

        Args:
            roots: Roots to scan (defaults to the configured roots)

        Returns:
            New descriptor snapshot
        """
        targets = list(self.roots if roots is None else roots)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, scan_roots, targets)

    async def rescan(self) -> Tuple[ManifestDescriptor, ...]:
        """Scan the configured roots and swap in the result as the new snapshot."""
        snapshot = await self.scan()
        self._current = (snapshot, {d.id: d for d in snapshot})
        return snapshot

    def list(self) -> List[ManifestDescriptor]:
        return list(self._current[0])

    def get(self, extension_id: str) -> Optional[ManifestDescriptor]:
        return self._current[1].get(extension_id)
