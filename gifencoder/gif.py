from enum import Enum
import logging
import typing as t

from .bytesink import ByteSink
from .constants import *
from .lzw import LZWEncoder
from .neuquant import NeuQuant

__all__ = (
    "Colortable",
    "GifWriter",
    "WriterState",
    "IndexedFrame",
    "LogicalScreenDescriptor",
    "ImageDescriptor",
    "GraphicControlExtension",
    "NetscapeLoopExtension",
    "GifEncoderException",
    "InvalidDimensions",
    "InvalidFrameSize",
    "SessionAlreadyStarted",
    "SessionAlreadyFinished"
)

logger = logging.getLogger(__name__)

# A type alias for color tables.
Colortable = t.Sequence[t.Tuple[int, int, int]]

# Internal constants for writing GIF files.

# Introduces an extension block. Always comes first. The byte after this is the extension label.
EXT_INTRODUCER = 0x21

# Extension labels.
EXT_GRAPHIC_CONTROL_LABEL = 0xF9
EXT_APPLICATION_LABEL = 0xFF

# Terminates a GIF file.
TRAILER_LABEL = 0x3B

# Introduces a new image.
IMAGE_SEPARATOR = 0x2C

# Application identifier and authentication code of the looping extension.
NETSCAPE_APP_ID = "NETSCAPE2.0"

# The quantizer always produces 8 bit indices.
COLOR_DEPTH = 8

# Largest value a 16 bit little endian field can hold.
MAX_DIMENSION = 0xFFFF


class GifEncoderException(Exception):
    """
    Base class for errors raised while encoding a GIF.
    """
    pass


class InvalidDimensions(GifEncoderException, ValueError):
    """
    Raised when a session is created with a width or height that can't be stored in a GIF.
    """
    pass


class InvalidFrameSize(GifEncoderException, ValueError):
    """
    Raised when a frame's pixel buffer isn't exactly width * height * 4 bytes long.
    """
    pass


class SessionAlreadyStarted(GifEncoderException):
    """
    Raised when the header is requested a second time, or after frames have been written.
    """
    pass


class SessionAlreadyFinished(GifEncoderException):
    """
    Raised on any write after the trailer.
    """
    pass


def _colortable_size(num_colors: int) -> int:
    """
    Size field for a color table holding num_colors entries. The table really holds
    2 ** (size + 1) entries, so this rounds up to the next power of two, with a minimum of 2.
    """
    size = 0
    while 2 ** (size + 1) < num_colors:
        size += 1
    return size


def _write_colortable(sink: ByteSink, table: Colortable, num_colors: int) -> None:
    """
    Write a color table. Works for both global and local tables. Unused slots are filled with black.
    """
    for (r, g, b) in table:
        sink.write_byte(r)
        sink.write_byte(g)
        sink.write_byte(b)

    for _ in range(num_colors - len(table)):
        sink.write_bytes(b"\x00\x00\x00")


class LogicalScreenDescriptor:
    """
    Model of the logical screen descriptor. Controls the size of
    the image, BG color, and global color table properties.

    This block is required, and will be available in all GIF versions.
    """
    def __init__(self):
        self.width = 0
        self.height = 0
        self.colortable_exists = False
        self.color_resolution = 0
        self.colortable_is_sorted = False
        self.colortable_size = 0
        self.background_color_index = 0
        self.pixel_aspect_ratio = 0

    def num_colors(self) -> int:
        return 2 ** (self.colortable_size + 1)

    def packed_fields(self) -> int:
        return (
            int(self.colortable_exists) << 7 |
            (self.color_resolution & 0x7) << 4 |
            int(self.colortable_is_sorted) << 3 |
            (self.colortable_size & 0x7)
        )

    def write(self, sink: ByteSink) -> None:
        sink.write_short(self.width)
        sink.write_short(self.height)
        sink.write_byte(self.packed_fields())
        sink.write_byte(self.background_color_index)
        sink.write_byte(self.pixel_aspect_ratio)


class ImageDescriptor:
    """
    Model of an image descriptor. Controls position and size of the image, and local color table properties.

    There is exactly one image descriptor per image in a GIF. Available in all GIF versions.
    """
    def __init__(self):
        self.leftpos = 0
        self.toppos = 0
        self.width = 0
        self.height = 0

        self.interlace = False

        # local colortable info
        self.colortable_exists = False
        self.colortable_is_sorted = False
        self.colortable_size = 0

    def num_colors(self) -> int:
        return 2 ** (self.colortable_size + 1)

    def packed_fields(self) -> int:
        # a table size is only meaningful when there is a table
        if not self.colortable_exists:
            return int(self.interlace) << 6

        return (
            1 << 7 |
            int(self.interlace) << 6 |
            int(self.colortable_is_sorted) << 5 |
            (self.colortable_size & 0x7)
        )

    def write(self, sink: ByteSink) -> None:
        sink.write_byte(IMAGE_SEPARATOR)
        sink.write_short(self.leftpos)
        sink.write_short(self.toppos)
        sink.write_short(self.width)
        sink.write_short(self.height)
        sink.write_byte(self.packed_fields())


class GraphicControlExtension:
    """
    Model of a graphic control extension block. This contains control parameters for animation. There is one
    graphic control block per image. GIF89a only.

    Note that this means each frame gets its own transparency, delay, and disposal method.
    """
    def __init__(self):
        self.disposal_method = DisposalMethod.NONE
        self.user_input_flag = False
        self.transparent_flag = False
        self.transparent_color = 0
        self.delay = 0  # specified in 1/100ths of a second

    def packed_fields(self) -> int:
        return (
            self.disposal_method.value << 2 |
            int(self.user_input_flag) << 1 |
            int(self.transparent_flag)
        )

    def write(self, sink: ByteSink) -> None:
        sink.write_byte(EXT_INTRODUCER)
        sink.write_byte(EXT_GRAPHIC_CONTROL_LABEL)
        sink.write_byte(4)  # data block size
        sink.write_byte(self.packed_fields())
        sink.write_short(self.delay)
        sink.write_byte(self.transparent_color)
        sink.write_byte(0)  # block terminator


class NetscapeLoopExtension:
    """
    Model of the NETSCAPE2.0 application extension, which asks viewers to loop the animation.

    loop_count is the number of extra plays, 0 meaning forever. It's written once, right after the
    global color table.
    """
    def __init__(self, loop_count: int = REPEAT_FOREVER):
        self.loop_count = loop_count

    def write(self, sink: ByteSink) -> None:
        sink.write_byte(EXT_INTRODUCER)
        sink.write_byte(EXT_APPLICATION_LABEL)
        sink.write_byte(len(NETSCAPE_APP_ID))  # block size
        sink.write_ascii(NETSCAPE_APP_ID)
        sink.write_byte(3)  # sub block size
        sink.write_byte(1)  # loop sub block id
        sink.write_short(self.loop_count)
        sink.write_byte(0)  # block terminator


class IndexedFrame:
    """
    Result of quantizing one frame: its palette, one palette index per pixel, and which
    palette entries are actually referenced.

    transparent_index is None when no transparent color was configured for the frame.
    """
    def __init__(self, palette: Colortable, indexed_pixels: bytearray, used_entry: t.Sequence[bool],
                 transparent_index: t.Optional[int] = None):
        self.palette = palette
        self.indexed_pixels = indexed_pixels
        self.used_entry = used_entry
        self.transparent_index = transparent_index

    def used_indices(self) -> t.List[int]:
        return [i for (i, used) in enumerate(self.used_entry) if used]


class WriterState(Enum):
    """
    Where a GifWriter is in the stream. Frames may only be written between start and finish.
    """
    NOT_STARTED = 0
    STARTED = 1
    FRAME_WRITTEN = 2
    FINISHED = 3


class GifWriter:
    """
    Writes a GIF89a stream, one frame at a time, into a ByteSink.

    The writer holds the encoder state. Changes to delay, dispose, transparent and sample apply to the
    next frame added, never to frames already written. repeat only matters until the first frame,
    since that's when the looping extension is written.

    Every frame is quantized on its own. The first frame's palette becomes the global color table and
    later frames carry their own local color table.
    """
    def __init__(self, width: int, height: int, sink: t.Optional[ByteSink] = None):
        for (name, value) in (("width", width), ("height", height)):
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidDimensions("{} must be an integer, got {!r}".format(name, value))
            if not 0 < value <= MAX_DIMENSION:
                msg = "{} must be between 1 and {}, got {}"
                raise InvalidDimensions(msg.format(name, MAX_DIMENSION, value))

        self.width = width
        self.height = height

        self.transparent: t.Optional[int] = None  # transparent color, 0xRRGGBB
        self.trans_index = 0  # transparent index in color table
        self.repeat = REPEAT_NONE
        self.delay = 0  # frame delay, in hundredths of a second
        self.dispose = -1  # disposal code, -1 clears any override and uses the default
        self.sample = DEFAULT_QUALITY

        self.palette: t.Optional[Colortable] = None  # palette of the last frame
        self.used_entry: t.List[bool] = []
        self.pal_size = 7  # color table size field

        self.first_frame = True
        self.frame_count = 0
        self.state = WriterState.NOT_STARTED

        self.sink = sink if sink is not None else ByteSink()

    @property
    def finished(self) -> bool:
        return self.state is WriterState.FINISHED

    def start(self) -> None:
        """
        Write the GIF header. Must come before any frame; add_frame() calls it if needed.
        """
        if self.finished:
            raise SessionAlreadyFinished("cannot start a GIF stream that has been finished")
        if self.state is not WriterState.NOT_STARTED:
            raise SessionAlreadyStarted("GIF header has already been written")

        self.sink.write_ascii(str(GifVersion.GIF89a))
        self.state = WriterState.STARTED
        logger.debug("started %dx%d GIF stream", self.width, self.height)

    def add_frame(self, pixels: t.Union[bytes, bytearray, memoryview, t.Sequence[int]]) -> IndexedFrame:
        """
        Quantize and write one frame. pixels is a row-major RGBA buffer, 4 bytes per pixel.
        The frame's records are written immediately.
        """
        if self.finished:
            raise SessionAlreadyFinished("cannot add frames after finish()")

        expected = self.width * self.height * 4
        if len(pixels) != expected:
            msg = "frame must be {} bytes ({}x{} RGBA), got {}"
            raise InvalidFrameSize(msg.format(expected, self.width, self.height, len(pixels)))

        if self.state is WriterState.NOT_STARTED:
            self.start()

        start_len = len(self.sink)
        frame = self.analyze_pixels(pixels)

        if self.first_frame:
            screen = self._write_lsd()
            _write_colortable(self.sink, frame.palette, screen.num_colors())  # global color table
            if self.repeat >= 0:
                # use NS app extension to indicate reps
                NetscapeLoopExtension(self.repeat).write(self.sink)

        self._write_graphic_ctrl_ext()
        image = self._write_image_desc()
        if image.colortable_exists:
            _write_colortable(self.sink, frame.palette, image.num_colors())  # local color table
        LZWEncoder(self.width, self.height, frame.indexed_pixels, COLOR_DEPTH).encode(self.sink)

        logger.debug("frame %d: %d bytes, delay %d, transparent index %s",
                     self.frame_count, len(self.sink) - start_len, self.delay,
                     frame.transparent_index)

        self.first_frame = False
        self.frame_count += 1
        self.state = WriterState.FRAME_WRITTEN

        return frame

    def finish(self) -> None:
        """
        Write the trailer. The stream isn't a valid GIF until this is done, and nothing can be
        written afterwards.
        """
        if self.finished:
            raise SessionAlreadyFinished("finish() has already been called")

        self.sink.write_byte(TRAILER_LABEL)
        self.state = WriterState.FINISHED
        logger.debug("finished GIF stream after %d frames", self.frame_count)

    def analyze_pixels(self, pixels: t.Union[bytes, bytearray, memoryview, t.Sequence[int]]) -> IndexedFrame:
        """
        Build the palette for a frame and map every pixel onto it.

        If a transparent color is set, it is matched against the palette entries the frame uses, and
        fully transparent pixels are then forced onto that index, whatever color they quantized to.
        """
        data = bytes(pixels)
        num_pixels = len(data) // 4

        # strip the alpha channel
        rgb = bytearray(num_pixels * 3)
        rgb[0::3] = data[0::4]
        rgb[1::3] = data[1::4]
        rgb[2::3] = data[2::4]

        quant = NeuQuant(rgb, self.sample)
        quant.build_colormap()
        colormap = quant.get_colormap()

        palette = [tuple(colormap[i:i + 3]) for i in range(0, len(colormap), 3)]
        used_entry = [False] * len(palette)
        indexed_pixels = bytearray(num_pixels)

        k = 0
        for j in range(num_pixels):
            index = quant.lookup_rgb(rgb[k], rgb[k + 1], rgb[k + 2])
            used_entry[index] = True
            indexed_pixels[j] = index
            k += 3

        self.palette = palette
        self.used_entry = used_entry
        self.pal_size = _colortable_size(len(palette))

        transparent_index = None
        if self.transparent is not None:
            self.trans_index = self.find_closest(self.transparent)
            transparent_index = self.trans_index

            for (position, alpha) in enumerate(data[3::4]):
                if alpha == 0:
                    indexed_pixels[position] = self.trans_index

        return IndexedFrame(palette, indexed_pixels, used_entry, transparent_index)

    def find_closest(self, color: int) -> int:
        """
        Return the index of the used palette entry closest to color (0xRRGGBB), or -1 if no frame has
        been quantized yet.
        """
        if self.palette is None:
            return -1

        r = (color & 0xFF0000) >> 16
        g = (color & 0x00FF00) >> 8
        b = color & 0x0000FF

        minpos = 0
        dmin = 256 * 256 * 256

        for (index, (pr, pg, pb)) in enumerate(self.palette):
            dr = r - pr
            dg = g - pg
            db = b - pb
            d = dr * dr + dg * dg + db * db
            if self.used_entry[index] and d < dmin:
                dmin = d
                minpos = index

        return minpos

    def _disposal_method(self) -> DisposalMethod:
        if self.dispose >= 0:
            return DisposalMethod(self.dispose)  # user override
        if self.transparent is None:
            return DisposalMethod.NONE
        # force clear if using transparent color
        return DisposalMethod.RESTORE_BACKGROUND

    def _write_lsd(self) -> LogicalScreenDescriptor:
        desc = LogicalScreenDescriptor()
        desc.width = self.width
        desc.height = self.height
        desc.colortable_exists = True
        desc.color_resolution = 7
        desc.colortable_size = self.pal_size
        desc.write(self.sink)
        return desc

    def _write_graphic_ctrl_ext(self) -> None:
        ext = GraphicControlExtension()
        ext.disposal_method = self._disposal_method()
        ext.transparent_flag = self.transparent is not None
        ext.transparent_color = self.trans_index
        ext.delay = self.delay
        ext.write(self.sink)

    def _write_image_desc(self) -> ImageDescriptor:
        desc = ImageDescriptor()
        desc.width = self.width
        desc.height = self.height

        # no LCT for the first frame, the global table is used instead
        if not self.first_frame:
            desc.colortable_exists = True
            desc.colortable_size = self.pal_size

        desc.write(self.sink)
        return desc
