"""
================================================================================
SNAPSHOT STORE - File Persistence with Locking and Backups
================================================================================

Persists the combined session snapshot (ledger, corporate actions, settings)
as a versioned JSON envelope:

    {"version": "1.0", "timestamp": ISO-8601, "application": ..., "data": {...}}

Every write goes through a filelock.FileLock on "<file>.lock" so two
processes never interleave writes. Backups are timestamped copies of the
envelope under the backup directory; only the newest N are kept.
================================================================================
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import filelock

from psx_tax.core.errors import DecodeFailureError
from psx_tax.utils.constants import (
    APPLICATION_NAME,
    BACKUP_DIR,
    DATA_FILE,
    DATA_VERSION,
    DEFAULT_KEEP_BACKUPS,
    FILE_LOCK_TIMEOUT_SECONDS,
)

logger = logging.getLogger("psx_tax_engine")

BACKUP_PREFIX = 'psx_tax_backup_'


def _write_json(target: Path, payload: dict):
    target.parent.mkdir(parents=True, exist_ok=True)
    lock = filelock.FileLock(str(target) + '.lock', timeout=FILE_LOCK_TIMEOUT_SECONDS)
    try:
        with lock:
            with open(target, 'w', encoding='utf-8') as f:
                json.dump(payload, f, indent=2)
    except filelock.Timeout:
        logger.error(f"Failed to acquire lock for {target}")
        raise


def _read_json(source: Path):
    try:
        with open(source, 'r', encoding='utf-8') as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise DecodeFailureError(f"Invalid JSON in {source}: {e}") from e


def _unwrap(envelope, source) -> dict:
    if not isinstance(envelope, dict) or not isinstance(envelope.get('data'), dict):
        raise DecodeFailureError(f"{source} is not a valid snapshot file (missing 'data')")
    version = envelope.get('version')
    if version != DATA_VERSION:
        logger.warning(f"Data version mismatch in {source}: {version} vs {DATA_VERSION}")
    return envelope['data']


class SnapshotStore:
    def __init__(self, data_file=None, backup_dir=None):
        self.data_file = Path(data_file) if data_file else DATA_FILE
        self.backup_dir = Path(backup_dir) if backup_dir else BACKUP_DIR

    def _envelope(self, data: dict) -> dict:
        return {
            'version': DATA_VERSION,
            'timestamp': datetime.now().isoformat(),
            'application': APPLICATION_NAME,
            'data': data,
        }

    def save(self, data: dict):
        _write_json(self.data_file, self._envelope(data))
        logger.info(f"Saved snapshot to {self.data_file}")

    def load(self) -> Optional[dict]:
        """Inner snapshot data, or None when nothing has been saved yet."""
        if not self.data_file.exists():
            return None
        return _unwrap(_read_json(self.data_file), self.data_file)

    def clear(self):
        if self.data_file.exists():
            self.data_file.unlink()
            logger.info(f"Removed {self.data_file}")

    # ------------------------------------------------------------------
    # Portable export/import
    # ------------------------------------------------------------------

    def export_to_file(self, data: dict, path) -> Path:
        target = Path(path)
        envelope = self._envelope(data)
        envelope['exportDate'] = envelope['timestamp']
        _write_json(target, envelope)
        logger.info(f"Exported snapshot to {target}")
        return target

    def import_from_file(self, path) -> dict:
        source = Path(path)
        if not source.exists():
            raise FileNotFoundError(f"Import file not found: {source}")
        return _unwrap(_read_json(source), source)

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    def create_backup(self, data: dict) -> Path:
        stamp = datetime.now().strftime('%Y%m%d_%H%M%S_%f')
        target = self.backup_dir / f"{BACKUP_PREFIX}{stamp}.json"
        counter = 1
        while target.exists():
            target = self.backup_dir / f"{BACKUP_PREFIX}{stamp}_{counter}.json"
            counter += 1
        _write_json(target, self._envelope(data))
        logger.info(f"Backup created: {target.name}")
        return target

    def list_backups(self) -> List[dict]:
        """Backups newest first; unreadable files are skipped."""
        if not self.backup_dir.exists():
            return []
        backups = []
        for path in self.backup_dir.glob(f"{BACKUP_PREFIX}*.json"):
            try:
                envelope = _read_json(path)
            except (DecodeFailureError, OSError) as e:
                logger.warning(f"Skipping invalid backup {path.name}: {e}")
                continue
            if not isinstance(envelope, dict):
                logger.warning(f"Skipping invalid backup {path.name}")
                continue
            backups.append({
                'path': path,
                'name': path.name,
                'timestamp': envelope.get('timestamp') or '',
                'version': envelope.get('version'),
            })
        backups.sort(key=lambda b: (b['timestamp'], b['name']), reverse=True)
        return backups

    def restore_backup(self, path, apply=None) -> dict:
        """
        Copy a backup over the data file. `apply` receives the decoded data
        first; if it raises, the data file is left as it was.
        """
        source = Path(path)
        if not source.is_absolute() and not source.exists():
            source = self.backup_dir / source
        if not source.exists():
            raise FileNotFoundError(f"Backup not found: {path}")
        data = _unwrap(_read_json(source), source)
        if apply is not None:
            apply(data)
        self.save(data)
        logger.info(f"Restored from backup: {source.name}")
        return data

    def cleanup_old_backups(self, keep_count=DEFAULT_KEEP_BACKUPS) -> int:
        backups = self.list_backups()
        removed = 0
        for backup in backups[keep_count:]:
            backup['path'].unlink()
            removed += 1
            logger.info(f"Deleted old backup: {backup['name']}")
        return removed

    def get_storage_info(self) -> dict:
        exists = self.data_file.exists()
        size = self.data_file.stat().st_size if exists else 0
        return {
            'data_file': str(self.data_file),
            'exists': exists,
            'size_bytes': size,
            'size_kb': round(size / 1024, 2),
            'backup_count': len(self.list_backups()),
        }
