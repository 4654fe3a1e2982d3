from __future__ import annotations

import logging
import os
import re
from typing import Dict, List, Protocol

from identity_wallet.errors import ErrorKind, RecoveryError
from identity_wallet.models import BackupEnvelope

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,127}$")


def check_name(name: str) -> str:
    if not isinstance(name, str) or not _NAME_RE.match(name):
        raise RecoveryError(ErrorKind.INVALID_INPUT, f"Invalid backup name: {name!r}")
    return name


class BackupStore(Protocol):
    """Opaque byte-blob storage supplied by the host platform."""

    def put(self, name: str, blob: bytes) -> None: ...

    def get(self, name: str) -> bytes: ...

    def delete(self, name: str) -> None: ...

    def names(self) -> List[str]: ...


class MemoryBackupStore:
    def __init__(self) -> None:
        self._blobs: Dict[str, bytes] = {}

    def put(self, name: str, blob: bytes) -> None:
        self._blobs[check_name(name)] = bytes(blob)

    def get(self, name: str) -> bytes:
        return self._blobs[check_name(name)]

    def delete(self, name: str) -> None:
        del self._blobs[check_name(name)]

    def names(self) -> List[str]:
        return sorted(self._blobs)


class FileBackupStore:
    """One ``<name>.backup`` file per blob under a directory."""

    SUFFIX = ".backup"

    def __init__(self, dirpath: str):
        self.dirpath = dirpath
        os.makedirs(dirpath, exist_ok=True)

    def _path(self, name: str) -> str:
        return os.path.join(self.dirpath, f"{check_name(name)}{self.SUFFIX}")

    def put(self, name: str, blob: bytes) -> None:
        path = self._path(name)
        tmp = path + ".tmp"
        try:
            with open(tmp, "wb") as f:
                f.write(blob)
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise
        logger.debug(f"Stored {len(blob)} bytes at {path}")

    def get(self, name: str) -> bytes:
        path = self._path(name)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError:
            raise KeyError(name)

    def delete(self, name: str) -> None:
        try:
            os.remove(self._path(name))
        except FileNotFoundError:
            raise KeyError(name)

    def names(self) -> List[str]:
        return sorted(
            fn[: -len(self.SUFFIX)]
            for fn in os.listdir(self.dirpath)
            if fn.endswith(self.SUFFIX)
        )


def save_envelope(store: BackupStore, name: str, envelope: BackupEnvelope) -> None:
    store.put(name, envelope.to_bytes())


def load_envelope(store: BackupStore, name: str) -> BackupEnvelope:
    return BackupEnvelope.from_bytes(store.get(name))
