"""
Question/answer hand-off store.

The session writes its finalized QA list under a single key when it ends; the
feedback view reads it back once. Backed by a small JSON file so the CLI, the
API and the results view share it without a database.
"""

import json
import logging
from pathlib import Path

from pydantic import ValidationError

from mock_interview.session.schemas import QAPair

logger = logging.getLogger(__name__)

QA_DATA_KEY = "qaData"


class QAStore:
    """JSON-file store holding one ``qaData`` list."""

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Could not read QA store {self._path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def save(self, pairs: list[QAPair]) -> None:
        """Replace the stored QA list, keeping any other keys in the file."""
        data = self._read_all()
        data[QA_DATA_KEY] = [p.model_dump() for p in pairs]
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info(f"Saved {len(pairs)} QA pairs to {self._path}")

    def load(self) -> list[QAPair]:
        """Read the stored QA list in the order it was answered. Empty if missing or corrupt."""
        raw = self._read_all().get(QA_DATA_KEY, [])
        if not isinstance(raw, list):
            logger.error(f"QA store {self._path} has a non-list {QA_DATA_KEY!r} entry")
            return []
        try:
            return [QAPair.model_validate(item) for item in raw]
        except ValidationError as e:
            logger.error(f"QA store {self._path} holds invalid pairs: {e}")
            return []

    def clear(self) -> None:
        data = self._read_all()
        if data.pop(QA_DATA_KEY, None) is None:
            return
        self._path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
