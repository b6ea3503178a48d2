"""
Durable key storage, a string mapping persisted to a JSON file.

Plays the role of browser local storage for the session key store: it
survives process restarts and is only emptied by an explicit logout.
"""
import os
import logging
import tempfile
from collections.abc import Iterator, MutableMapping
from pathlib import Path
from typing import Union

import orjson

logger = logging.getLogger("flowhaven.vault")


class FileKeyStorage(MutableMapping[str, str]):
    """``MutableMapping[str, str]`` persisted as JSON on every write.

    Writes go to a temporary file in the same directory and are moved into
    place with ``os.replace``, so readers never see a half-written file.
    """

    def __init__(self, path: Union[str, Path]):
        self._path = Path(path)
        self._data: dict[str, str] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = orjson.loads(self._path.read_bytes())
        except orjson.JSONDecodeError as err:
            logger.warning(
                "Key storage %s is corrupted, starting empty: %s",
                self._path, err,
            )
            return {}
        if not isinstance(data, dict):
            logger.warning("Key storage %s is not a mapping, ignoring", self._path)
            return {}
        return {str(k): str(v) for k, v in data.items()}

    def _flush(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}."
        )
        try:
            with os.fdopen(fd, "wb") as fp:
                fp.write(orjson.dumps(self._data))
            os.chmod(tmp, 0o600)
            os.replace(tmp, self._path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def reload(self) -> None:
        """Re-read the file, discarding in-memory state."""
        self._data = self._load()

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __setitem__(self, key: str, value: str) -> None:
        self._data[key] = value
        self._flush()

    def __delitem__(self, key: str) -> None:
        del self._data[key]
        self._flush()

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._data))

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"<FileKeyStorage path={str(self._path)!r} keys={list(self._data)}>"
