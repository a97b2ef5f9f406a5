"""Class index to label correspondence table.

The correspondence file is plain text, one ``"<index> <label>"`` entry per
line, split on the first space:

    0 cat
    1 golden retriever

Lookups never fail: an index without an entry maps to its decimal string.
"""

import logging
from collections.abc import Iterator, Mapping
from pathlib import Path

logger = logging.getLogger(__name__)


class CorrespondenceTable:
    """Read-only mapping from class index to label.

    Example:
        >>> table = CorrespondenceTable.load("corresp.txt")
        >>> table.lookup(3)
        'cat'
        >>> table.lookup(999)
        '999'
    """

    def __init__(self, labels: Mapping[int, str] | None = None):
        self._labels: dict[int, str] = dict(labels or {})

    @classmethod
    def load(cls, path: str | Path | None) -> "CorrespondenceTable":
        """Load a correspondence file.

        An empty path yields an empty table. An unreadable file yields an
        empty table and an info message. Lines with an empty key are
        skipped; lines whose key is not a non-negative integer are skipped
        with a warning. Later duplicates overwrite earlier ones.

        Args:
            path: Correspondence file, or None/"" for no file.

        Returns:
            The loaded table.
        """
        table = cls()
        if not path:
            return table

        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                for lineno, line in enumerate(f, start=1):
                    table._parse_line(line.rstrip("\r\n"), path, lineno)
        except (OSError, UnicodeDecodeError) as e:
            logger.info(f"cannot open model corresp file={path}: {e}")
            table._labels.clear()

        return table

    def _parse_line(self, line: str, path: Path, lineno: int) -> None:
        key, sep, label = line.partition(" ")
        if not key:
            return
        if not sep:
            label = line
        if not (key.isascii() and key.isdigit()):
            logger.warning(
                f"Skipping corresp line {lineno} in {path}: "
                f"{key!r} is not a class index"
            )
            return
        self._labels[int(key)] = label

    def lookup(self, index: int) -> str:
        """Label for ``index``, or ``str(index)`` when there is none."""
        return self._labels.get(index, str(index))

    def items(self) -> Iterator[tuple[int, str]]:
        """Iterate over ``(index, label)`` pairs."""
        return iter(self._labels.items())

    def __len__(self) -> int:
        return len(self._labels)

    def __contains__(self, index: object) -> bool:
        return index in self._labels

    def __iter__(self) -> Iterator[int]:
        return iter(self._labels)

    def __repr__(self) -> str:
        return f"CorrespondenceTable({len(self)} labels)"


__all__ = ["CorrespondenceTable"]
