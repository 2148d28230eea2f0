from __future__ import annotations

import logging
import shutil
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

LOG = logging.getLogger(__name__)

ARCHIVE_SUFFIXES = (".zip", ".tar.gz")


def enforce_retention(base_path: Path, retention_days: int, now: Optional[datetime] = None) -> int:
    """Delete dated workspaces and archives older than ``retention_days``. Returns the number removed."""
    if retention_days <= 0 or not base_path.exists():
        return 0

    cutoff = (now or datetime.now()) - timedelta(days=retention_days)
    removed = 0
    for child in base_path.iterdir():
        dir_date = _backup_date(child)
        if dir_date is None:
            LOG.debug("Skipping non-backup entry %s", child)
            continue

        if dir_date < cutoff:
            LOG.info("Removing expired backup %s", child)
            _remove_path(child)
            removed += 1
    return removed


def _backup_date(path: Path) -> Optional[datetime]:
    stem = path.name
    if path.is_file():
        suffix = next((s for s in ARCHIVE_SUFFIXES if stem.endswith(s)), None)
        if suffix is None:
            return None
        stem = stem[: -len(suffix)]
    elif not path.is_dir():
        return None

    try:
        return datetime.strptime(stem, "%Y-%m-%d")
    except ValueError:
        return None


def _remove_path(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path)
    else:
        path.unlink(missing_ok=True)
