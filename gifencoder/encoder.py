"""
Public encoding API. A GIFEncoder is one encoding session: configure it, add RGBA frames, finish it,
and collect the bytes either all at once or as they are produced.

    encoder = GIFEncoder(320, 240, EncoderOptions(repeat=0, delay=500))
    encoder.subscribe(stream.write)
    encoder.start()
    encoder.add_frame(pixels)
    encoder.finish()
"""

__all__ = (
    "EncoderOptions",
    "GIFEncoder",
    "encode",
    "parse_color"
)

import logging
import math
import typing as t

from .constants import *
from .gif import GifWriter, IndexedFrame, WriterState

logger = logging.getLogger(__name__)

Color = t.Union[int, str, t.Tuple[int, int, int]]
Pixels = t.Union[bytes, bytearray, memoryview, t.Sequence[int]]

DataCallback = t.Callable[[bytes], None]
EndCallback = t.Callable[[], None]


class _Unset:
    def __repr__(self) -> str:
        return "<unset>"


# Marks an option that wasn't given, since None is a meaningful transparent color.
_UNSET = _Unset()


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value) -> bool:
    if _is_int(value):
        return True
    return isinstance(value, float) and math.isfinite(value)


def parse_color(color: t.Optional[Color]) -> t.Optional[int]:
    """
    Normalize a color to a 0xRRGGBB integer. Accepts None, an integer, an (r, g, b) tuple,
    or a hex string such as "#ff0000" or "0xff0000".
    """
    if color is None:
        return None

    if _is_int(color):
        if not 0 <= color <= 0xFFFFFF:
            raise ValueError("color {:#x} is not a 24-bit RGB value".format(color))
        return color

    if isinstance(color, str):
        text = color.strip().lower()
        for prefix in ("#", "0x"):
            if text.startswith(prefix):
                text = text[len(prefix):]
                break
        if len(text) != 6:
            raise ValueError("bad color string {!r}".format(color))
        try:
            return int(text, 16)
        except ValueError:
            raise ValueError("bad color string {!r}".format(color)) from None

    if isinstance(color, (tuple, list)) and len(color) == 3:
        r, g, b = color
        if not all(_is_int(c) and 0 <= c <= 255 for c in (r, g, b)):
            raise ValueError("color components must be integers in 0..255, got {!r}".format(color))
        return (r << 16) | (g << 8) | b

    raise ValueError("unsupported color {!r}".format(color))


class EncoderOptions:
    """
    Encoder configuration. Every field is optional; fields that aren't given leave the current
    setting alone when the options are applied.

    - delay: time between frames, in milliseconds. Stored in the file as hundredths of a second.
    - frame_rate: frames per second, an alternative to delay. Setting both is an error.
    - disposal: disposal method (0-3 or a DisposalMethod). -1 is not ignored: it clears an earlier
      override and restores the default, which is RESTORE_BACKGROUND when a transparent color is set
      and NONE otherwise.
    - repeat: -1 for no looping extension, 0 to loop forever, N for N extra plays.
    - transparent: color to treat as transparent, or None for no transparency.
    - quality: NeuQuant sample factor. 1 is best and slowest, 10 is the default,
      values below 1 are clamped to 1.

    Options apply to the next frame written. repeat only has an effect before the first frame.
    """
    FIELDS = ("delay", "frame_rate", "disposal", "repeat", "transparent", "quality")

    def __init__(self, *, delay=_UNSET, frame_rate=_UNSET, disposal=_UNSET, repeat=_UNSET,
                 transparent=_UNSET, quality=_UNSET):
        if delay is not _UNSET and frame_rate is not _UNSET:
            raise ValueError("delay and frame_rate are mutually exclusive")

        if delay is not _UNSET:
            if not _is_number(delay) or not delay >= 0:
                raise ValueError("delay must be a non-negative number of milliseconds, got {!r}".format(delay))
            if delay >= (0xFFFF + 0.5) * 10:
                raise ValueError("delay {}ms does not fit in a GIF".format(delay))

        if frame_rate is not _UNSET:
            if not _is_number(frame_rate) or not frame_rate > 0:
                raise ValueError("frame_rate must be positive, got {!r}".format(frame_rate))
            if frame_rate * (0xFFFF + 0.5) <= 100:
                raise ValueError("frame_rate {} is too slow to fit in a GIF".format(frame_rate))

        if disposal is not _UNSET:
            if isinstance(disposal, DisposalMethod):
                disposal = disposal.value
            if not _is_int(disposal) or not -1 <= disposal <= 3:
                raise ValueError("disposal must be -1 or 0-3, got {!r}".format(disposal))

        if repeat is not _UNSET:
            if not _is_int(repeat) or not REPEAT_NONE <= repeat <= 0xFFFF:
                raise ValueError("repeat must be between -1 and 65535, got {!r}".format(repeat))

        if transparent is not _UNSET:
            transparent = parse_color(transparent)

        if quality is not _UNSET:
            if not _is_int(quality):
                raise ValueError("quality must be an integer, got {!r}".format(quality))
            if quality < 1:
                quality = 1

        self.delay = delay
        self.frame_rate = frame_rate
        self.disposal = disposal
        self.repeat = repeat
        self.transparent = transparent
        self.quality = quality

    @classmethod
    def from_mapping(cls, options: t.Mapping[str, t.Any]) -> "EncoderOptions":
        """
        Build options from a dict, e.g. parsed from a config file. Unknown keys are an error.
        """
        unknown = sorted(set(options) - set(cls.FIELDS))
        if unknown:
            raise ValueError("unknown encoder option(s): {}".format(", ".join(unknown)))

        return cls(**options)

    def is_set(self, name: str) -> bool:
        return getattr(self, name) is not _UNSET

    def apply(self, writer: GifWriter) -> None:
        if self.is_set("delay"):
            writer.delay = _round_half_up(self.delay / 10)
        if self.is_set("frame_rate"):
            writer.delay = _round_half_up(100 / self.frame_rate)
        if self.is_set("disposal"):
            writer.dispose = self.disposal
        if self.is_set("repeat"):
            writer.repeat = self.repeat
        if self.is_set("transparent"):
            writer.transparent = self.transparent
        if self.is_set("quality"):
            writer.sample = self.quality

        logger.debug("applied %r", self)

    def __repr__(self) -> str:
        fields = ", ".join("{}={!r}".format(name, getattr(self, name))
                           for name in self.FIELDS if self.is_set(name))
        return "EncoderOptions({})".format(fields)


class GIFEncoder:
    """
    One GIF encoding session.

    Bytes are written as soon as they are produced: the header on start(), all of a frame's records
    on add_frame() and the trailer on finish(). If any subscriber is registered, new bytes are handed
    to the subscribers after each of those calls and don't accumulate. Otherwise they can be read
    with get_data().
    """
    def __init__(self, width: int, height: int,
                 options: t.Optional[t.Union[EncoderOptions, t.Mapping[str, t.Any]]] = None):
        self.writer = GifWriter(width, height)

        self._data_callbacks: t.List[DataCallback] = []
        self._end_callbacks: t.List[EndCallback] = []

        if options is not None:
            self.configure(options)

    @property
    def width(self) -> int:
        return self.writer.width

    @property
    def height(self) -> int:
        return self.writer.height

    @property
    def finished(self) -> bool:
        return self.writer.finished

    def configure(self, options: t.Union[EncoderOptions, t.Mapping[str, t.Any]]) -> None:
        if not isinstance(options, EncoderOptions):
            options = EncoderOptions.from_mapping(options)
        options.apply(self.writer)

    def set_delay(self, milliseconds: float) -> None:
        """
        Set the delay before the next frame, and any frames after it.
        """
        self.configure(EncoderOptions(delay=milliseconds))

    def set_frame_rate(self, fps: float) -> None:
        self.configure(EncoderOptions(frame_rate=fps))

    def set_dispose(self, disposal: t.Union[int, DisposalMethod]) -> None:
        """
        Override the disposal method for the next frame and any frames after it. -1 drops the
        override again, rather than leaving the previous one in place.
        """
        self.configure(EncoderOptions(disposal=disposal))

    def set_repeat(self, repeat: int) -> None:
        """
        Set how many times the animation plays. Must be called before the first frame is added.
        """
        self.configure(EncoderOptions(repeat=repeat))

    def set_transparent(self, color: t.Optional[Color]) -> None:
        """
        Set the transparent color for the next frame and any frames after it. Colors change during
        quantization, so the used palette entry closest to this color becomes each frame's
        transparent index. None turns transparency off.
        """
        self.configure(EncoderOptions(transparent=color))

    def set_quality(self, quality: int) -> None:
        self.configure(EncoderOptions(quality=quality))

    def subscribe(self, on_data: DataCallback, on_end: t.Optional[EndCallback] = None) -> None:
        """
        Register callbacks. on_data receives each run of newly written bytes, on_end is called once
        the trailer has been delivered. Subscribers are dropped after finish().
        """
        self._data_callbacks.append(on_data)
        if on_end is not None:
            self._end_callbacks.append(on_end)

    def start(self) -> None:
        self.writer.start()
        self._emit()

    def add_frame(self, pixels: Pixels) -> IndexedFrame:
        frame = self.writer.add_frame(pixels)
        self._emit()
        return frame

    def finish(self) -> None:
        self.writer.finish()
        self._end()

    def write_frames(self, frames: t.Iterable[Pixels]) -> "GIFEncoder":
        """
        Encode a whole animation: start if needed, add every frame, then finish.
        """
        if self.writer.state is WriterState.NOT_STARTED:
            self.start()
        for pixels in frames:
            self.add_frame(pixels)
        self.finish()
        return self

    def get_data(self) -> bytes:
        """
        Bytes written so far that haven't been handed to a subscriber.
        """
        return self.writer.sink.getvalue()

    def _emit(self) -> None:
        if not self._data_callbacks:
            return
        if len(self.writer.sink):
            data = self.writer.sink.drain()
            for callback in self._data_callbacks:
                callback(data)

    def _end(self) -> None:
        if not self._data_callbacks and not self._end_callbacks:
            return
        self._emit()
        for callback in self._end_callbacks:
            callback()
        self._data_callbacks = []
        self._end_callbacks = []


def encode(width: int, height: int, frames: t.Iterable[Pixels],
           options: t.Optional[t.Union[EncoderOptions, t.Mapping[str, t.Any]]] = None) -> bytes:
    """
    Encode RGBA frames into a complete GIF and return its bytes.
    """
    return GIFEncoder(width, height, options).write_frames(frames).get_data()
