"""
Shared fixtures. Frames are small and generated from fixed seeds, so every run sees the same pixels.
"""

import random
import struct

import pytest


def solid_frame(width, height, color, alpha=255):
    r, g, b = color
    return bytes((r, g, b, alpha)) * (width * height)


def noise_frame(width, height, seed=0):
    rng = random.Random(seed)
    data = bytearray()
    for _ in range(width * height):
        data.extend((rng.randrange(256), rng.randrange(256), rng.randrange(256), 255))
    return bytes(data)


def _read_subblocks(data, pos):
    blocks = []
    while data[pos] != 0:
        size = data[pos]
        blocks.append(bytes(data[pos + 1:pos + 1 + size]))
        pos += 1 + size
    return blocks, pos + 1


class ParsedGif:
    """
    Just enough structure to check what the encoder wrote: the screen descriptor, the global table,
    and the sequence of extensions, images and the trailer.
    """
    def __init__(self, data):
        assert data[:6] == b"GIF89a"

        self.width, self.height, self.packed, self.background, self.aspect = struct.unpack_from("<HHBBB", data, 6)
        pos = 13

        self.global_table = None
        if self.packed & 0x80:
            size = 3 * 2 ** ((self.packed & 0x7) + 1)
            self.global_table = bytes(data[pos:pos + size])
            pos += size

        self.blocks = []
        while True:
            label = data[pos]
            if label == 0x3B:
                self.blocks.append({"kind": "trailer"})
                pos += 1
                break
            elif label == 0x21:
                ext_label = data[pos + 1]
                subblocks, pos = _read_subblocks(data, pos + 2)
                self.blocks.append({"kind": "extension", "label": ext_label, "subblocks": subblocks})
            elif label == 0x2C:
                left, top, width, height, packed = struct.unpack_from("<HHHHB", data, pos + 1)
                pos += 10
                local_table = None
                if packed & 0x80:
                    size = 3 * 2 ** ((packed & 0x7) + 1)
                    local_table = bytes(data[pos:pos + size])
                    pos += size
                code_size = data[pos]
                subblocks, pos = _read_subblocks(data, pos + 1)
                self.blocks.append({
                    "kind": "image",
                    "left": left,
                    "top": top,
                    "width": width,
                    "height": height,
                    "packed": packed,
                    "local_table": local_table,
                    "code_size": code_size,
                    "subblocks": subblocks
                })
            else:
                raise AssertionError("unexpected block {:02X} at {}".format(label, pos))

        self.trailing = bytes(data[pos:])

    def extensions(self, label):
        return [b for b in self.blocks if b["kind"] == "extension" and b["label"] == label]

    def images(self):
        return [b for b in self.blocks if b["kind"] == "image"]

    def graphic_controls(self):
        controls = []
        for ext in self.extensions(0xF9):
            block = ext["subblocks"][0]
            controls.append({
                "packed": block[0],
                "disposal": (block[0] >> 2) & 0x7,
                "transparent_flag": block[0] & 0x1,
                "delay": block[1] | (block[2] << 8),
                "transparent_index": block[3]
            })
        return controls

    def netscape(self):
        found = [e for e in self.extensions(0xFF) if e["subblocks"][0] == b"NETSCAPE2.0"]
        return found


@pytest.fixture
def make_solid():
    return solid_frame


@pytest.fixture
def make_noise():
    return noise_frame


@pytest.fixture
def parse_gif():
    return ParsedGif
