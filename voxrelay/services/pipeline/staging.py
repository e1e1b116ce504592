"""Temporary on-disk artifacts for voice payloads."""

import asyncio
import hashlib
import logging
import re
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable

from voxrelay.lib.exceptions import StagingError
from voxrelay.models.events import InboundVoiceNote

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")
MAX_PLAIN_ID = 128


class ArtifactStager:
    """
    Materialize voice payloads as files scoped to one pipeline run.

    Example:
        async with stager.stage(note, channel.download_media) as path:
            transcriber.transcribe(path)
        # path no longer exists here
    """

    EXTENSION = ".ogg"

    def __init__(self, staging_dir: Path):
        self.staging_dir = Path(staging_dir)

    def path_for(self, message_id: str) -> Path:
        """
        Staged file path for a message id.

        Short ids made only of safe characters are used as they are. Any
        other id is sanitized, shortened and suffixed with "+" and the
        SHA-256 of the raw id, so distinct ids never share a file.
        """
        plain = message_id and len(message_id) <= MAX_PLAIN_ID
        if plain and not _UNSAFE_CHARS.search(message_id):
            return self.staging_dir / f"{message_id}{self.EXTENSION}"

        safe_id = _UNSAFE_CHARS.sub("_", message_id)[:MAX_PLAIN_ID]
        digest = hashlib.sha256(message_id.encode("utf-8")).hexdigest()
        return self.staging_dir / f"{safe_id}+{digest}{self.EXTENSION}"

    @asynccontextmanager
    async def stage(
        self,
        note: InboundVoiceNote,
        download: Callable[[dict], Awaitable[bytes]],
    ) -> AsyncIterator[Path]:
        """
        Download a voice payload into the staging directory.

        The file is deleted when the block exits, on every path.

        Raises:
            StagingError: If the download or the write fails
        """
        path = self.path_for(note.message_id)

        try:
            try:
                audio = await download(note.audio_ref)
            except StagingError as e:
                e.message_id = note.message_id
                raise
            except Exception as e:
                raise StagingError(
                    f"Failed to download voice note: {e}", message_id=note.message_id
                ) from e

            if not audio:
                raise StagingError("Downloaded voice note is empty", message_id=note.message_id)

            try:
                await asyncio.to_thread(self._write, path, audio)
            except OSError as e:
                raise StagingError(
                    f"Failed to write voice note to {path}: {e}", message_id=note.message_id
                ) from e

            logger.debug(f"Staged {note.message_id} at {path} ({len(audio)} bytes)")
            yield path

        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not delete staged file {path}: {e}")

    def _write(self, path: Path, audio: bytes) -> None:
        self.staging_dir.mkdir(parents=True, exist_ok=True)
        path.write_bytes(audio)
