# corpuscleaner/cleaner/duplicates.py
from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict
from pathlib import Path

from .clean import StageStats, delete_empty_file, ensure_parent, read_lines
from .mappings import HASH_ENCODING, TARGET_ENCODING

__all__ = ["DuplicateLineManager", "MAX_LINE_BUFFER_NUMBER"]

logger = logging.getLogger(__name__)

# Size of the sliding window of remembered line hashes
MAX_LINE_BUFFER_NUMBER = 10000


class DuplicateLineManager:
    """
    Bounded-memory exact duplicate detector.

    Remembers the MD5 of the last ``MAX_LINE_BUFFER_NUMBER`` distinct lines,
    evicting the oldest first. A line is only reported as duplicate when its
    first occurrence is still inside that window, so this is not a global
    deduplication of the corpus.

    The window is kept across calls: one manager shared by several files
    deduplicates across all of them.
    """

    def __init__(
        self,
        encoding: str = HASH_ENCODING,
        *,
        max_lines: int = MAX_LINE_BUFFER_NUMBER,
    ) -> None:
        if max_lines <= 0:
            raise ValueError("max_lines must be > 0")
        self.encoding = encoding
        self.max_lines = max_lines
        self._seen: OrderedDict[str, None] = OrderedDict()

    def __len__(self) -> int:
        return len(self._seen)

    def _digest(self, line: str) -> str:
        return hashlib.md5(line.encode(self.encoding)).hexdigest()

    def is_duplicate(self, line: str) -> bool:
        key = self._digest(line)
        if key in self._seen:
            return True

        if len(self._seen) >= self.max_lines:
            self._seen.popitem(last=False)
        self._seen[key] = None
        return False

    def drop_duplicate_lines(
        self,
        source_path: str | Path,
        source_encoding: str,
        target_path: str | Path,
        duplicate_log_path: str | Path,
        target_encoding: str = TARGET_ENCODING,
    ) -> StageStats:
        """
        Copy ``source_path`` to ``target_path`` without duplicate lines.

        Empty lines are skipped, duplicates are written to
        ``duplicate_log_path``. Outputs left empty are deleted.
        """
        target_path = ensure_parent(target_path)
        duplicate_log_path = ensure_parent(duplicate_log_path)
        stats = StageStats(stage="drop_duplicate_lines", source=str(source_path))

        with (
            target_path.open("w", encoding=target_encoding) as target,
            duplicate_log_path.open("w", encoding=target_encoding) as dup,
        ):
            for line in read_lines(source_path, source_encoding):
                if not line:
                    continue
                if self.is_duplicate(line):
                    dup.write(line + "\n")
                    stats.dropped += 1
                else:
                    target.write(line + "\n")
                    stats.kept += 1

        delete_empty_file(target_path, target_encoding)
        delete_empty_file(duplicate_log_path, target_encoding)
        logger.debug(
            "Dropped %d duplicate lines from [%s], window holds %d hashes.",
            stats.dropped,
            source_path,
            len(self._seen),
        )
        return stats
