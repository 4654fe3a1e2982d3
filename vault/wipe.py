"""
In-place zeroing of secret buffers.

Only mutable buffers (bytearray, writable memoryview) can be wiped; that is
why seeds, passphrases and derived keys travel as bytearray inside the core.
"""

from __future__ import annotations

from typing import Optional, Union

Wipeable = Union[bytearray, memoryview]


def zeroize(*buffers: Optional[Wipeable]) -> None:
    """Overwrite each buffer with zeros. None entries are skipped."""
    for buf in buffers:
        if buf is None:
            continue
        view = memoryview(buf).cast("B")
        view[:] = bytes(len(view))
        view.release()
