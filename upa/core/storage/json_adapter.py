import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

from upa.core.errors import PersistenceError
from upa.utils.logger import get_logger

logger = get_logger("storage.json")


class JSONFileAdapter:
    """
    JSON document backend.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so a crash never leaves a half-written file.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

        if not self.path.parent.exists():
            self.path.parent.mkdir(parents=True, exist_ok=True)

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> Optional[Dict[str, Any]]:
        """
        Read the document.

        Returns:
            Parsed document, or None if the file does not exist

        Raises:
            PersistenceError: unreadable file or invalid JSON
        """
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise PersistenceError(f"Cannot read {self.path}: top level is not an object")
        return data

    def write(self, data: Dict[str, Any]) -> None:
        """
        Atomically replace the document.

        Raises:
            PersistenceError: on any I/O or encoding failure
        """
        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh, indent=2)
            os.replace(tmp_name, self.path)
            tmp_name = None
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Cannot write {self.path}: {e}") from e
        finally:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
