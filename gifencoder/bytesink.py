"""
Growable output buffer for the encoder. Every record the writer produces goes through one of these.
"""

__all__ = (
    "ByteSink",
)

import typing as t


class ByteSink:
    """
    Append-only byte buffer. GIF is little endian, so write_short() stores the low byte first.

    A sink is owned by exactly one writer. Consumers either read the whole buffer with getvalue(),
    or take what has been produced so far with drain(), which also empties it.
    """
    def __init__(self):
        self._data = bytearray()

    def __len__(self) -> int:
        return len(self._data)

    def write_byte(self, value: int) -> None:
        self._data.append(value & 0xFF)

    def write_short(self, value: int) -> None:
        self._data.append(value & 0xFF)
        self._data.append((value >> 8) & 0xFF)

    def write_bytes(self, data: t.Union[bytes, bytearray, t.Sequence[int]],
                    offset: int = 0, length: t.Optional[int] = None) -> None:
        """
        Append a run of bytes. If length is given, only data[offset:offset + length] is written.
        """
        end = len(data) if length is None else offset + length
        self._data.extend(data[offset:end])

    def write_ascii(self, text: str) -> None:
        self._data.extend(text.encode("ascii"))

    def getvalue(self) -> bytes:
        return bytes(self._data)

    def drain(self) -> bytes:
        """
        Return everything written since the last drain, and empty the buffer.
        """
        data = bytes(self._data)
        self._data.clear()
        return data
