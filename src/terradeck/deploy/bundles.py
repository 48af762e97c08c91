"""Sources of configuration bundles.

The code-generation pipeline that produces Terraform files lives outside
TerraDeck; it hands bundles over through a ``BundleSource``.
"""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from pathlib import Path

from terradeck.lib.errors import BundleNotFoundError, BundleReadError
from terradeck.lib.logging_config import get_logger
from terradeck.models.deployment import ConfigurationBundle, ConfigurationFile

logger = get_logger(__name__)


class BundleSource(ABC):
    """Abstract base class for configuration bundle providers."""

    @abstractmethod
    def fetch(self, reference_id: str) -> ConfigurationBundle:
        """Return the bundle for a reference id.

        Args:
            reference_id: Identifier assigned by the generation pipeline.

        Returns:
            The configuration bundle.

        Raises:
            BundleNotFoundError: If the reference is unknown.
            BundleReadError: If a stored file cannot be read as text.
        """


class InMemoryBundleSource(BundleSource):
    """Bundles held in memory, keyed by reference id."""

    def __init__(self, bundles: dict[str, ConfigurationBundle] | None = None) -> None:
        """Initialize with optional pre-registered bundles."""
        self._bundles: dict[str, ConfigurationBundle] = dict(bundles or {})
        self._lock = threading.Lock()

    def put(self, reference_id: str, bundle: ConfigurationBundle) -> None:
        """Register or replace a bundle."""
        with self._lock:
            self._bundles[reference_id] = bundle

    def fetch(self, reference_id: str) -> ConfigurationBundle:
        """Return a registered bundle."""
        with self._lock:
            bundle = self._bundles.get(reference_id)
        if bundle is None:
            raise BundleNotFoundError(reference_id)
        return bundle


class DirectoryBundleSource(BundleSource):
    """Bundles stored as directories under a root: ``<root>/<reference_id>/``.

    Every regular file below the reference directory becomes one bundle
    entry named by its relative POSIX path, in sorted order. Hidden files
    and directories (such as ``.terraform``) are skipped.
    """

    def __init__(self, root: str | Path) -> None:
        """Initialize with the bundle root directory."""
        self.root = Path(root)

    def fetch(self, reference_id: str) -> ConfigurationBundle:
        """Read a bundle directory from disk."""
        if not reference_id or "/" in reference_id or "\\" in reference_id:
            raise BundleNotFoundError(reference_id)
        if reference_id in (".", ".."):
            raise BundleNotFoundError(reference_id)

        directory = self.root / reference_id
        if not directory.is_dir():
            raise BundleNotFoundError(reference_id)
        return read_bundle_directory(directory)


def read_bundle_directory(directory: str | Path) -> ConfigurationBundle:
    """Read every non-hidden file below ``directory`` into a bundle.

    Raises:
        BundleNotFoundError: If ``directory`` does not exist.
        BundleReadError: If a file is unreadable or not UTF-8 text.
    """
    base = Path(directory)
    if not base.is_dir():
        raise BundleNotFoundError(str(directory))

    files: list[ConfigurationFile] = []
    for path in sorted(base.rglob("*")):
        relative = path.relative_to(base)
        if not path.is_file() or any(part.startswith(".") for part in relative.parts):
            continue
        name = relative.as_posix()
        try:
            content = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise BundleReadError(name, "not UTF-8 text") from exc
        except OSError as exc:
            raise BundleReadError(name, exc.strerror or str(exc)) from exc
        files.append(ConfigurationFile(name=name, content=content))

    logger.debug(f"Read {len(files)} configuration file(s) from {base}")
    return ConfigurationBundle(files=tuple(files))
