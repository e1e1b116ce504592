"""Credential storage with atomic JSON persistence.

All session credentials live in a single document so one write covers
both the identity block and the cached key material. Writes use the
temp file + os.replace pattern; a crash mid-write leaves the previous
document intact.
"""

import json
import logging
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Optional

from voxrelay.lib.exceptions import PersistenceError
from voxrelay.lib.timestamps import epoch_millis, format_timestamp, generate_timestamp, parse_timestamp
from voxrelay.models.session import Credentials

logger = logging.getLogger(__name__)


class CredentialStore:
    """
    Durable, crash-consistent credential storage.

    Layout inside `auth_dir`:
        creds.json                   current snapshot
        creds_backup_<epoch_ms>.json backups taken before risky reconnects
        connection_success           ISO timestamp of the last successful open
    """

    CREDENTIALS_FILE = "creds.json"
    BACKUP_PREFIX = "creds_backup_"
    CONNECTED_MARKER = "connection_success"

    def __init__(self, auth_dir: Path):
        """
        Initialize credential storage.

        Args:
            auth_dir: Directory for credentials and backups
        """
        self.auth_dir = Path(auth_dir)
        self.auth_dir.mkdir(parents=True, exist_ok=True)

    @property
    def credentials_path(self) -> Path:
        return self.auth_dir / self.CREDENTIALS_FILE

    @property
    def marker_path(self) -> Path:
        return self.auth_dir / self.CONNECTED_MARKER

    def read(self) -> Credentials:
        """
        Load the last written snapshot.

        Returns:
            Stored credentials, or empty Credentials when none exist or the
            document cannot be decoded
        """
        if not self.credentials_path.exists():
            return Credentials()

        try:
            with open(self.credentials_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return Credentials.from_document(data)

        except (json.JSONDecodeError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Corrupted credentials at {self.credentials_path}: {e}")
            return Credentials()

        except OSError as e:
            logger.error(f"Failed to read credentials at {self.credentials_path}: {e}")
            return Credentials()

    def write(self, credentials: Credentials) -> None:
        """
        Persist a credential snapshot atomically.

        Output is canonical JSON, so writing the same snapshot twice
        produces identical bytes.

        Args:
            credentials: Snapshot to persist

        Raises:
            PersistenceError: If the snapshot cannot be written
        """
        content = json.dumps(
            credentials.to_document(), indent=2, sort_keys=True, ensure_ascii=False
        )
        self._atomic_write(self.credentials_path, content, prefix=".creds_")
        logger.debug(f"Saved credentials to {self.credentials_path}")

    def backup(self, now: Optional[datetime] = None) -> Optional[Path]:
        """
        Copy the current snapshot to a timestamped backup.

        Args:
            now: Timestamp for the backup name (default: current time)

        Returns:
            Path of the backup, or None if there was nothing to back up

        Raises:
            PersistenceError: If the copy fails
        """
        if not self.credentials_path.exists():
            return None

        backup_path = self.auth_dir / f"{self.BACKUP_PREFIX}{epoch_millis(now)}.json"

        try:
            shutil.copyfile(self.credentials_path, backup_path)
        except OSError as e:
            raise PersistenceError(
                f"Failed to back up credentials: {e}",
                path=str(backup_path),
                operation="backup",
            ) from e

        logger.info(f"Credentials backed up to {backup_path}")
        return backup_path

    def list_backups(self) -> list[Path]:
        """List backups, oldest first."""
        return sorted(self.auth_dir.glob(f"{self.BACKUP_PREFIX}*.json"))

    def clear(self) -> bool:
        """
        Remove the current snapshot. Backups are kept.

        Returns:
            True if a snapshot was removed
        """
        try:
            self.credentials_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise PersistenceError(
                f"Failed to remove credentials: {e}",
                path=str(self.credentials_path),
                operation="delete",
            ) from e

        logger.info("Stored credentials cleared")
        return True

    def mark_connected(self, at: Optional[datetime] = None) -> None:
        """Record the time of the last successful connection."""
        at = at or generate_timestamp()
        self._atomic_write(self.marker_path, format_timestamp(at), prefix=".marker_")

    def last_connected(self) -> Optional[datetime]:
        """Time of the last successful connection, if recorded."""
        if not self.marker_path.exists():
            return None

        try:
            return parse_timestamp(self.marker_path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable connection marker: {e}")
            return None

    def _atomic_write(self, target: Path, content: str, prefix: str) -> None:
        temp_fd, temp_path = tempfile.mkstemp(
            dir=self.auth_dir,
            prefix=prefix,
            suffix=".tmp",
        )

        try:
            with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())

            # POSIX-atomic on the same filesystem
            os.replace(temp_path, target)

        except Exception as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise PersistenceError(
                f"Failed to write {target.name}: {e}",
                path=str(target),
                operation="write",
            ) from e
