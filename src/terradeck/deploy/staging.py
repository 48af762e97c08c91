"""Staging of configuration bundles into per-job working directories."""

from __future__ import annotations

import asyncio
import re
import tempfile
from pathlib import Path

from terradeck.lib.errors import StagingError
from terradeck.lib.logging_config import get_logger
from terradeck.models.deployment import ConfigurationBundle

logger = get_logger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_name(subject_name: str, max_length: int = 40) -> str:
    """Turn a subject label into a directory-name prefix.

    Example:
        >>> sanitize_name("octo-org/web app")
        'octo-org_web_app'
    """
    cleaned = _UNSAFE_CHARS.sub("_", subject_name).strip("._")
    return cleaned[:max_length] or "deployment"


class ArtifactWriter:
    """Materialize configuration bundles on disk.

    Every job gets its own freshly created directory under ``work_root``;
    directories are never reused, so concurrent jobs cannot clobber each
    other's files, state or lock files.
    """

    def __init__(self, work_root: str | Path) -> None:
        """Initialize the writer.

        Args:
            work_root: Parent directory of all working directories.
        """
        self.work_root = Path(work_root)

    def create_working_directory(self, subject_name: str) -> Path:
        """Create a fresh, uniquely named working directory.

        Raises:
            StagingError: If the directory cannot be created.
        """
        try:
            self.work_root.mkdir(parents=True, exist_ok=True)
            path = tempfile.mkdtemp(
                prefix=f"{sanitize_name(subject_name)}-", dir=self.work_root
            )
        except OSError as exc:
            raise StagingError(
                f"Failed to create working directory under {self.work_root}: {exc}"
            ) from exc
        return Path(path).resolve()

    async def write(self, bundle: ConfigurationBundle, directory: Path) -> list[Path]:
        """Write every file of ``bundle`` into ``directory``.

        All names are validated before anything is written. Writing happens
        in a worker thread.

        Returns:
            Paths of the written files, in bundle order.

        Raises:
            StagingError: If the bundle is empty, a name escapes the
                directory, or any write fails.
        """
        if not bundle.files:
            raise StagingError("Configuration bundle contains no files")

        unsafe = [f.name for f in bundle.files if not f.is_safe()]
        if unsafe:
            raise StagingError(
                f"Configuration file names must be relative paths: {', '.join(unsafe)}"
            )

        return await asyncio.to_thread(self._write_files, bundle, directory)

    @staticmethod
    def _write_files(bundle: ConfigurationBundle, directory: Path) -> list[Path]:
        written: list[Path] = []
        for config_file in bundle.files:
            target = directory.joinpath(*config_file.relative_path.parts)
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(config_file.content, encoding="utf-8")
            except OSError as exc:
                raise StagingError(
                    f"Failed to write {config_file.name} to {directory}: {exc}"
                ) from exc
            logger.debug(f"Staged {target}")
            written.append(target)
        return written
