"""Local filesystem object store for inbound channels and the archive.

Inbound files live at ``<root>/<channel>/<file>``. Archiving moves a stored
document to ``<root>/<archive_dir>/<channel>/<org>/<ddmmYYYY>/<stem>_<HHMMSS><ext>``
and a rejected one to ``<root>/<archive_dir>/<sink>/<channel>/<ddmmYYYY>/...``,
returning a ``file://`` URI for the audit trail.
"""

import re
import shutil
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

from docmatch.models.documents import DocumentKind
from docmatch.utils.config import StorageConfig
from docmatch.utils.exceptions import ArchiveError
from docmatch.utils.logger import get_logger

logger = get_logger(__name__)

_UNSAFE_LABEL = re.compile(r"[^a-zA-Z0-9_\- ]")

DUPLICATE_SINK = "duplicate"
INVALID_SINK = "invalid"
SINKS = (DUPLICATE_SINK, INVALID_SINK)


def sanitize_label(label: str | None) -> str:
    """Make an archive label safe for use as a folder name.

    Characters outside letters, digits, ``_``, ``-`` and space become
    ``_``; the result is lower-cased. Blank labels become ``unknown``.
    """
    cleaned = _UNSAFE_LABEL.sub("_", (label or "").strip()).lower()
    return cleaned or "unknown"


class LocalArchiveStore:
    """Inbound and archive folders under one root directory.

    Args:
        config: Storage root and archive folder name.
        clock: Returns the current time; injectable for tests.
    """

    def __init__(
        self,
        config: StorageConfig | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config or StorageConfig()
        self.root = Path(self.config.root)
        self.archive_root = self.root / self.config.archive_dir
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def inbound_path(self, channel: DocumentKind, file_name: str) -> Path:
        """Location of a file in a channel's inbound folder.

        Raises:
            ValueError: The name contains a directory component.
        """
        if not file_name or Path(file_name).name != file_name:
            raise ValueError(f"Invalid file name: {file_name!r}")
        return self.root / channel.value / file_name

    def write_inbound(self, channel: DocumentKind, file_name: str, content: bytes) -> Path:
        """Drop a file into a channel, creating the folder if needed."""
        path = self.inbound_path(channel, file_name)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        logger.info("Received %s on channel %s", file_name, channel.value)
        return path

    def read(self, channel: DocumentKind, file_name: str) -> bytes:
        """Read an inbound file.

        Raises:
            FileNotFoundError: The file is not in the channel.
        """
        path = self.inbound_path(channel, file_name)
        if not path.is_file():
            raise FileNotFoundError(f"{file_name} not found on channel {channel.value}")
        return path.read_bytes()

    def list_inbound(self, channel: DocumentKind) -> list[str]:
        """Names of the files waiting in a channel, sorted."""
        folder = self.root / channel.value
        if not folder.is_dir():
            return []
        return sorted(p.name for p in folder.iterdir() if p.is_file())

    def archive(self, channel: DocumentKind, file_name: str, label: str | None) -> str:
        """Move a stored document's file into its organisation's archive folder.

        Args:
            channel: Channel the file arrived on.
            file_name: Name of the inbound file.
            label: Organisation the document belongs to.

        Returns:
            ``file://`` URI of the archived copy.

        Raises:
            ArchiveError: The file could not be moved.
        """
        folder = self.archive_root / channel.value / sanitize_label(label)
        return self._move(channel, file_name, folder)

    def archive_to_sink(self, channel: DocumentKind, file_name: str, sink: str) -> str:
        """Move a rejected file into the ``duplicate`` or ``invalid`` sink.

        Sinks live at ``<archive_dir>/<sink>/<channel>``, outside the
        per-channel organisation folders.

        Raises:
            ValueError: ``sink`` is not a known sink.
            ArchiveError: The file could not be moved.
        """
        if sink not in SINKS:
            raise ValueError(f"Unknown archive sink: {sink!r}")
        return self._move(channel, file_name, self.archive_root / sink / channel.value)

    def _move(self, channel: DocumentKind, file_name: str, base: Path) -> str:
        source = self.inbound_path(channel, file_name)
        now = self._clock()
        stem, suffix = Path(file_name).stem, Path(file_name).suffix
        folder = base / now.strftime("%d%m%Y")
        target = folder / f"{stem}_{now.strftime('%H%M%S')}{suffix}"

        counter = 1
        while target.exists():
            target = folder / f"{stem}_{now.strftime('%H%M%S')}_{counter}{suffix}"
            counter += 1

        try:
            folder.mkdir(parents=True, exist_ok=True)
            shutil.move(str(source), str(target))
        except OSError as exc:
            raise ArchiveError(f"Could not archive {file_name}: {exc}") from exc

        uri = target.resolve().as_uri()
        logger.info("Archived %s to %s", file_name, uri)
        return uri
