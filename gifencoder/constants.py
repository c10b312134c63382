"""
Constants and enums relating to GIF files. These are part of the public API.

There aren't actually many enumerations in the GIF format, mainly boolean flags and small integers.
"""

__all__ = (
    "GifVersion",
    "DisposalMethod",
    "REPEAT_NONE",
    "REPEAT_FOREVER",
    "DEFAULT_QUALITY"
)


from enum import Enum


# Repeat counts understood by the encoder. Anything above zero is a number of extra plays.
REPEAT_NONE = -1
REPEAT_FOREVER = 0

# Default NeuQuant sample factor. 1 visits every pixel, 30 is the sparsest sampling.
DEFAULT_QUALITY = 10


class GifVersion(Enum):
    """
    Gif version. str() gives the six ascii characters written at the start of the file.
    Only GIF89a exists here, since animation needs the graphic control extension.
    """
    GIF89a = 1

    def __str__(self) -> str:
        return self.name


class DisposalMethod(Enum):
    """
    Disposal method for animation frames. Tells how to treat the previous frame after it's been displayed.

    See section 23.c.iv, under Graphic Control Extension.
    """
    NONE = 0
    NO_DISPOSE = 1
    RESTORE_BACKGROUND = 2
    RESTORE_PREVIOUS = 3
