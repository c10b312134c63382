"""
GIF flavoured LZW compression of palette indices.

See 22. Table Based Image Data. and Appendix F in the GIF89a spec. The compressed codes are packed least
significant bit first, and the resulting bytes are chunked into data sub blocks.
"""

__all__ = (
    "LZWEncoder",
)

import logging
import typing as t

from .bytesink import ByteSink

logger = logging.getLogger(__name__)

# Codes never grow past 12 bits, so the code table holds at most 4096 entries.
BITS = 12
MAX_CODES = 1 << BITS

# Bytes are collected into packets and written out as a sub block once a packet is this long.
PACKET_SIZE = 254


def _max_code(n_bits: int) -> int:
    return (1 << n_bits) - 1


class LZWEncoder:
    """
    Compresses one frame of palette indices.

    encode() writes the LZW minimum code size byte, the data sub blocks and the zero length block
    terminator. The code table is keyed on (next index << 12) + prefix code, and is rebuilt whenever
    it fills up, which is signalled to the decoder with a clear code.
    """
    def __init__(self, width: int, height: int, pixels: t.Sequence[int], color_depth: int):
        self.width = width
        self.height = height
        self.pixels = pixels
        self.init_code_size = max(2, color_depth)

        self.table: t.Dict[int, int] = {}

        # Diagnostics, filled in by encode().
        self.resets = 0
        self.codes_emitted = 0
        self.max_codes = 0

        self._accum = bytearray()
        self._cur_accum = 0
        self._cur_bits = 0
        self._n_bits = 0
        self._maxcode = 0
        self._init_bits = 0
        self._free_ent = 0
        self._clear_flg = False
        self._clear_code = 0
        self._eof_code = 0

    def encode(self, sink: ByteSink) -> None:
        sink.write_byte(self.init_code_size)
        self._compress(self.init_code_size + 1, sink)
        sink.write_byte(0)  # block terminator

    def _compress(self, init_bits: int, sink: ByteSink) -> None:
        self._init_bits = init_bits
        self._clear_flg = False
        self._n_bits = init_bits
        self._maxcode = _max_code(init_bits)

        self._clear_code = 1 << (init_bits - 1)
        self._eof_code = self._clear_code + 1
        self._free_ent = self._clear_code + 2

        self._accum = bytearray()
        self._cur_accum = 0
        self._cur_bits = 0

        table = self.table
        table.clear()

        remaining = self.width * self.height
        pixels = iter(self.pixels)

        ent = next(pixels) & 0xFF
        remaining -= 1

        self._output(self._clear_code, sink)

        while remaining > 0:
            c = next(pixels) & 0xFF
            remaining -= 1

            fcode = (c << BITS) + ent
            code = table.get(fcode)
            if code is not None:
                ent = code
                continue

            self._output(ent, sink)
            ent = c

            if self._free_ent < MAX_CODES:
                table[fcode] = self._free_ent
                self._free_ent += 1
            else:
                self._clear_block(sink)

        self.max_codes = max(self.max_codes, self._free_ent)

        # Put out the final code.
        self._output(ent, sink)
        self._output(self._eof_code, sink)

    def _clear_block(self, sink: ByteSink) -> None:
        """
        The table is full. Throw it away and tell the decoder to do the same.
        """
        self.max_codes = max(self.max_codes, self._free_ent)
        self.table.clear()
        self._free_ent = self._clear_code + 2
        self._clear_flg = True
        self.resets += 1
        logger.debug("code table full after %d codes, emitting clear code", self.codes_emitted)
        self._output(self._clear_code, sink)

    def _output(self, code: int, sink: ByteSink) -> None:
        self.codes_emitted += 1

        self._cur_accum &= (1 << self._cur_bits) - 1
        if self._cur_bits > 0:
            self._cur_accum |= code << self._cur_bits
        else:
            self._cur_accum = code

        self._cur_bits += self._n_bits

        while self._cur_bits >= 8:
            self._char_out(self._cur_accum & 0xFF, sink)
            self._cur_accum >>= 8
            self._cur_bits -= 8

        # If the next entry is going to be too big for the code size, then increase it, if possible.
        if self._free_ent > self._maxcode or self._clear_flg:
            if self._clear_flg:
                self._n_bits = self._init_bits
                self._maxcode = _max_code(self._n_bits)
                self._clear_flg = False
            else:
                self._n_bits += 1
                if self._n_bits == BITS:
                    self._maxcode = MAX_CODES
                else:
                    self._maxcode = _max_code(self._n_bits)

        if code == self._eof_code:
            # At EOF, write the rest of the buffer.
            while self._cur_bits > 0:
                self._char_out(self._cur_accum & 0xFF, sink)
                self._cur_accum >>= 8
                self._cur_bits -= 8

            self._flush_packet(sink)

    def _char_out(self, byte: int, sink: ByteSink) -> None:
        self._accum.append(byte)
        if len(self._accum) >= PACKET_SIZE:
            self._flush_packet(sink)

    def _flush_packet(self, sink: ByteSink) -> None:
        if self._accum:
            sink.write_byte(len(self._accum))
            sink.write_bytes(self._accum)
            self._accum = bytearray()
