"""
Whole-collection load and save, one file per entity type.

load_all() never lets one bad line stop the rest: the line is logged,
recorded in `failures` and copied to `<file>.rejected` so a later full
save does not lose it for good. save_all() writes a temp file in the
same directory and renames it over the target, so a crash mid-save
leaves the previous file in place.
"""
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import Callable, Iterable, List, Optional, TypeVar

from pharmacy.core.config import settings
from pharmacy.core.exceptions import BusinessError, ParseFailure, PharmacyError

logger = logging.getLogger(__name__)

T = TypeVar("T")

HEADER_PREFIX = "#"
FORMAT_KEY = "format="
REJECTED_SUFFIX = ".rejected"


def _target_mode(path: Path) -> int:
    """Permissions the saved file should end up with (mkstemp creates 0600)."""
    if path.exists():
        return stat.S_IMODE(path.stat().st_mode)
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask


class EntityStore:
    """File access for every collection under one data directory."""

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = Path(data_dir or settings.DATA_DIR)
        self.format_version = settings.RECORD_FORMAT_VERSION
        # Every skipped line and dropped reference since the store was created
        self.failures: List[PharmacyError] = []

    def path_for(self, file_name: str) -> Path:
        return self.data_dir / file_name

    def _read_header(self, path: Path, line: str) -> None:
        text = line[len(HEADER_PREFIX):].strip()
        if not text.startswith(FORMAT_KEY):
            return  # comment
        try:
            found = int(text[len(FORMAT_KEY):])
        except ValueError:
            raise BusinessError.format_version(path, text[len(FORMAT_KEY):], self.format_version)
        if found > self.format_version:
            raise BusinessError.format_version(path, found, self.format_version)

    def load_all(self, file_name: str, line_parser: Callable[[str], T]) -> List[T]:
        """
        Parse every line of a collection file.

        Missing file: created empty (with parent directories), [] returned.

        Raises:
            StorageError: the file exists but cannot be read, or cannot be created
            FormatVersionError: the header declares a newer record format
        """
        path = self.path_for(file_name)
        try:
            if not path.exists():
                path.parent.mkdir(parents=True, exist_ok=True)
                path.touch()
                logger.info(f"Created empty {path}")
                return []
            with open(path, "r", encoding="utf-8", newline="") as f:
                lines = f.read().split("\n")
        except OSError as e:
            raise BusinessError.storage_error(path, e) from e

        records = []
        rejected = []
        for line_number, line in enumerate(lines, start=1):
            line = line.rstrip("\r")
            if not line.strip():
                continue
            if line.startswith(HEADER_PREFIX):
                self._read_header(path, line)
                continue
            try:
                records.append(line_parser(line))
            except ParseFailure as e:
                logger.warning(f"Skipping {path.name} line {line_number}: {e}")
                self.failures.append(e)
                rejected.append(line)

        if rejected:
            self._keep_rejected(path, rejected)
        logger.debug(f"Loaded {len(records)} record(s) from {path}")
        return records

    def _keep_rejected(self, path: Path, lines: List[str]) -> None:
        rejected_path = path.with_name(path.name + REJECTED_SUFFIX)
        existing = set()
        try:
            if rejected_path.exists():
                existing = set(rejected_path.read_text(encoding="utf-8").splitlines())
            new_lines = [line for line in lines if line not in existing]
            if new_lines:
                with open(rejected_path, "a", encoding="utf-8", newline="") as f:
                    for line in new_lines:
                        f.write(line + "\n")
                logger.warning(f"{len(new_lines)} unreadable line(s) kept in {rejected_path}")
        except OSError as e:
            raise BusinessError.storage_error(rejected_path, e) from e

    def save_all(self, file_name: str, items: Iterable[T], line_formatter: Callable[[T], str]) -> None:
        """
        Replace the whole file with the given records.

        The old file is only replaced after the new content is on disk.
        On any failure it is left untouched and StorageError is raised.
        """
        path = self.path_for(file_name)
        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as f:
                f.write(f"{HEADER_PREFIX}{FORMAT_KEY}{self.format_version}\n")
                count = 0
                for item in items:
                    f.write(line_formatter(item) + "\n")
                    count += 1
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, _target_mode(path))
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise BusinessError.storage_error(path, e) from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        logger.debug(f"Saved {count} record(s) to {path}")
