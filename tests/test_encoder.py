import io

import pytest
from PIL import Image

from gifencoder import (
    DisposalMethod,
    EncoderOptions,
    GIFEncoder,
    InvalidDimensions,
    SessionAlreadyFinished,
    encode,
    parse_color
)

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)


class TestEncoderOptions:
    def test_unknown_keyword_is_rejected(self):
        with pytest.raises(TypeError):
            EncoderOptions(loop=0)

    def test_unknown_mapping_key_is_rejected(self):
        with pytest.raises(ValueError, match="framerate"):
            EncoderOptions.from_mapping({"delay": 100, "framerate": 10})

    def test_from_mapping(self):
        options = EncoderOptions.from_mapping({"repeat": 0, "delay": 500, "quality": 10})
        assert options.repeat == 0
        assert options.delay == 500
        assert not options.is_set("transparent")

    def test_delay_and_frame_rate_are_exclusive(self):
        with pytest.raises(ValueError):
            EncoderOptions(delay=100, frame_rate=10)

    @pytest.mark.parametrize("quality, expected", [(0, 1), (-5, 1), (1, 1), (30, 30)])
    def test_quality_is_clamped(self, quality, expected):
        assert EncoderOptions(quality=quality).quality == expected

    @pytest.mark.parametrize("fields", [
        {"disposal": 4},
        {"disposal": -2},
        {"repeat": -2},
        {"repeat": 65536},
        {"delay": -1},
        {"frame_rate": 0},
        {"frame_rate": 0.0015},
        {"frame_rate": float("nan")},
        {"frame_rate": float("inf")},
        {"delay": float("nan")},
        {"delay": float("inf")},
        {"delay": 655355},
        {"quality": 2.5},
        {"transparent": "#12345"},
        {"transparent": (256, 0, 0)},
        {"transparent": 0x1000000},
    ])
    def test_bad_values(self, fields):
        with pytest.raises(ValueError):
            EncoderOptions(**fields)

    def test_disposal_method_enum_is_accepted(self):
        assert EncoderOptions(disposal=DisposalMethod.RESTORE_PREVIOUS).disposal == 3

    def test_repr_lists_set_fields(self):
        assert repr(EncoderOptions(repeat=0)) == "EncoderOptions(repeat=0)"


@pytest.mark.parametrize("color, expected", [
    (None, None),
    (0x00FF00, 0x00FF00),
    ((1, 2, 3), 0x010203),
    ("#FF8000", 0xFF8000),
    ("0x0000ff", 0x0000FF),
    ("abcdef", 0xABCDEF),
])
def test_parse_color(color, expected):
    assert parse_color(color) == expected


@pytest.mark.parametrize("milliseconds, hundredths", [(500, 50), (0, 0), (14, 1), (15, 2), (1000, 100)])
def test_delay_is_rounded_to_hundredths(milliseconds, hundredths):
    encoder = GIFEncoder(2, 2)
    encoder.set_delay(milliseconds)
    assert encoder.writer.delay == hundredths


@pytest.mark.parametrize("fps, hundredths", [(10, 10), (30, 3), (24, 4), (60, 2), (0.5, 200)])
def test_frame_rate_sets_delay(fps, hundredths):
    encoder = GIFEncoder(2, 2)
    encoder.set_frame_rate(fps)
    assert encoder.writer.delay == hundredths


def test_slowest_frame_rate_is_written_exactly(make_solid, parse_gif):
    encoder = GIFEncoder(2, 2, EncoderOptions(frame_rate=100 / 65535))
    encoder.add_frame(make_solid(2, 2, RED))
    encoder.finish()

    (control,) = parse_gif(encoder.get_data()).graphic_controls()
    assert control["delay"] == 65535


def test_longest_delay_is_written_exactly(make_solid, parse_gif):
    encoder = GIFEncoder(2, 2, EncoderOptions(delay=655349))
    encoder.add_frame(make_solid(2, 2, RED))
    encoder.finish()

    (control,) = parse_gif(encoder.get_data()).graphic_controls()
    assert control["delay"] == 65535


def test_bad_dimensions():
    with pytest.raises(InvalidDimensions):
        GIFEncoder(0, 10)


def test_setters_reach_the_writer():
    encoder = GIFEncoder(2, 2, {"repeat": 0})
    encoder.set_dispose(1)
    encoder.set_transparent("#00ff00")
    encoder.set_quality(0)

    assert encoder.writer.repeat == 0
    assert encoder.writer.dispose == 1
    assert encoder.writer.transparent == 0x00FF00
    assert encoder.writer.sample == 1

    encoder.set_transparent(None)
    assert encoder.writer.transparent is None


def test_negative_disposal_clears_the_override():
    encoder = GIFEncoder(2, 2)
    encoder.set_dispose(DisposalMethod.RESTORE_PREVIOUS)
    assert encoder.writer.dispose == 3

    encoder.set_dispose(-1)
    assert encoder.writer.dispose == -1


def test_last_delay_before_a_frame_wins(make_solid, parse_gif):
    encoder = GIFEncoder(2, 2)
    encoder.set_delay(100)
    encoder.set_delay(300)
    encoder.add_frame(make_solid(2, 2, RED))
    encoder.finish()

    (control,) = parse_gif(encoder.get_data()).graphic_controls()
    assert control["delay"] == 30


def test_subscribers_receive_bytes_as_they_are_written(make_solid):
    chunks = []
    ended = []

    encoder = GIFEncoder(4, 4)
    encoder.subscribe(chunks.append, lambda: ended.append(True))

    encoder.start()
    assert chunks == [b"GIF89a"]

    encoder.add_frame(make_solid(4, 4, RED))
    assert len(chunks) == 2
    assert ended == []

    encoder.finish()
    assert chunks[-1] == b"\x3b"
    assert ended == [True]

    # everything went to the subscriber
    assert encoder.get_data() == b""

    expected = encode(4, 4, [make_solid(4, 4, RED)])
    assert b"".join(chunks) == expected


def test_bytes_accumulate_without_subscribers(make_solid):
    encoder = GIFEncoder(4, 4)
    encoder.start()
    encoder.add_frame(make_solid(4, 4, RED))
    assert encoder.get_data().startswith(b"GIF89a")
    assert not encoder.finished

    encoder.finish()
    assert encoder.finished
    assert encoder.get_data().endswith(b"\x3b")

    with pytest.raises(SessionAlreadyFinished):
        encoder.add_frame(make_solid(4, 4, RED))


def test_write_frames_matches_manual_encoding(make_solid):
    frames = [make_solid(6, 6, color) for color in (RED, GREEN, BLUE)]

    manual = GIFEncoder(6, 6, EncoderOptions(repeat=0, delay=500))
    manual.start()
    for frame in frames:
        manual.add_frame(frame)
    manual.finish()

    streamed = GIFEncoder(6, 6, EncoderOptions(repeat=0, delay=500)).write_frames(iter(frames))

    assert streamed.get_data() == manual.get_data()
    assert encode(6, 6, frames, {"repeat": 0, "delay": 500}) == manual.get_data()


def test_output_is_reproducible(make_noise):
    frames = [make_noise(10, 10, seed=1), make_noise(10, 10, seed=2)]
    assert encode(10, 10, frames) == encode(10, 10, frames)


def test_pillow_reads_frames_timing_and_loop(make_solid):
    encoder = GIFEncoder(10, 6, EncoderOptions(repeat=2))
    for delay, color in ((100, RED), (250, GREEN), (40, BLUE)):
        encoder.set_delay(delay)
        encoder.add_frame(make_solid(10, 6, color))
    encoder.finish()

    with Image.open(io.BytesIO(encoder.get_data())) as img:
        assert img.size == (10, 6)
        assert img.n_frames == 3
        assert img.info["loop"] == 2

        durations = []
        colors = []
        for n in range(img.n_frames):
            img.seek(n)
            durations.append(img.info["duration"])
            colors.append(img.convert("RGB").getpixel((5, 3)))

    assert durations == [100, 250, 40]
    assert colors == [RED, GREEN, BLUE]


def test_pillow_sees_no_loop_by_default(make_solid):
    data = encode(2, 2, [make_solid(2, 2, RED)])
    with Image.open(io.BytesIO(data)) as img:
        assert img.n_frames == 1
        assert "loop" not in img.info


def test_pillow_reads_transparent_pixels(make_solid):
    pixels = bytearray(make_solid(4, 4, BLUE))
    pixels[3] = 0  # first pixel fully transparent

    encoder = GIFEncoder(4, 4, {"transparent": 0x0000FF})
    frame = encoder.add_frame(bytes(pixels))
    encoder.finish()

    with Image.open(io.BytesIO(encoder.get_data())) as img:
        assert img.mode == "P"
        assert img.info["transparency"] == frame.transparent_index
        assert img.getpixel((0, 0)) == frame.transparent_index
