import argparse
import logging
import os
import math

from gifencoder import Colortable, EncoderOptions, GIFEncoder, GifWriter
from PIL import Image, ImageDraw


VALID_MODES = [
    "encode",
    "palette",
    "help"
]


def prepare_argparser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=(
        "A tool for turning images into an animated GIF. Set mode with "
        "--mode/-m. Any arguments given that do not apply to the current mode "
        "will be ignored."
    ))

    parser.add_argument("--mode", "-m", type=str, choices=VALID_MODES, default="encode", help=(
        "Set operation mode. Default is \"encode\". Use mode \"help\" for more "
        "information on each mode."
    ))

    parser.add_argument("--path", "-i", type=str, action="append", default=None, help=(
        "An image to use as a frame. Repeat for each frame, in order. All "
        "frames must have the same size."
    ))
    parser.add_argument("--out", "-o", type=str, default=None, help=(
        "The GIF file to write. Defaults to the first frame's name with a "
        ".gif extension."
    ))

    timing = parser.add_mutually_exclusive_group()
    timing.add_argument("--delay", "-d", type=int, default=None, help=(
        "Delay between frames, in milliseconds."
    ))
    timing.add_argument("--fps", type=float, default=None, help=(
        "Frame rate, as an alternative to --delay."
    ))

    parser.add_argument("--repeat", "-r", type=int, default=0, help=(
        "-1 to play once, 0 to loop forever (default), N for N extra plays."
    ))
    parser.add_argument("--quality", "-q", type=int, default=10, help=(
        "Color quantization sample factor, 1 (best, slowest) to 30. "
        "Default is 10."
    ))
    parser.add_argument("--transparent", "-t", type=str, default=None, help=(
        "Transparent color as hex, e.g. \"#00ff00\". Fully transparent "
        "pixels are mapped to it."
    ))
    parser.add_argument("--dispose", type=int, default=None, choices=range(0, 4), help=(
        "Override the disposal method for every frame."
    ))

    parser.add_argument("--verbose", "-v", action="store_true", help=(
        "Log each frame as it is encoded."
    ))

    return parser


MODE_HELP = """Available modes:
help -
    Print this help text.

encode -
    The default mode. Encodes the images passed through --path, in order,
    into an animated GIF written to --out.

palette -
    Generate an image visualizing the palette the encoder picks for the
    first image passed through --path.
"""


def mode_help() -> None:
    print(MODE_HELP)


def load_frame(path: str) -> Image.Image:
    with Image.open(path) as img:
        return img.convert("RGBA")


def load_frames(paths, parser: argparse.ArgumentParser):
    frames = [load_frame(path) for path in paths]

    size = frames[0].size
    for path, frame in zip(paths, frames):
        if frame.size != size:
            msg = "{} is {}x{}, expected {}x{} like the first frame"
            parser.error(msg.format(path, frame.size[0], frame.size[1], size[0], size[1]))

    return frames


def build_options(args: argparse.Namespace, parser: argparse.ArgumentParser) -> EncoderOptions:
    fields = {
        "repeat": args.repeat,
        "quality": args.quality
    }

    if args.delay is not None:
        fields["delay"] = args.delay
    if args.fps is not None:
        fields["frame_rate"] = args.fps
    if args.dispose is not None:
        fields["disposal"] = args.dispose
    if args.transparent is not None:
        fields["transparent"] = args.transparent

    try:
        return EncoderOptions(**fields)
    except ValueError as e:
        parser.error(str(e))


def default_output(path: str) -> str:
    return os.path.splitext(os.path.basename(path))[0] + ".gif"


def mode_encode(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    options = build_options(args, parser)
    frames = load_frames(args.path, parser)

    width, height = frames[0].size
    output_name = args.out or default_output(args.path[0])

    with open(output_name, "wb") as f:
        encoder = GIFEncoder(width, height, options)
        encoder.subscribe(f.write)
        encoder.write_frames(frame.tobytes() for frame in frames)

    print("{} frames written to {}".format(len(frames), output_name))


def generate_palette_img(colortable: Colortable) -> Image.Image:
    palette_block_size = 25

    num_colors = len(colortable)

    h_blocks = int(math.sqrt(num_colors))
    w_blocks = h_blocks if h_blocks ** 2 == num_colors else h_blocks + 1

    # use "missing texture purple" as the background
    img = Image.new("RGB",
                    (palette_block_size * w_blocks, palette_block_size * h_blocks),
                    color=(249, 11, 243))
    imgdraw = ImageDraw.Draw(img)

    for n, color in enumerate(colortable):
        y_block = n // w_blocks
        x_block = n % w_blocks

        y = y_block * palette_block_size
        x = x_block * palette_block_size

        rect = (
            x,
            y,
            x + palette_block_size - 1,
            y + palette_block_size - 1
        )

        imgdraw.rectangle(rect, color)

    return img


def mode_palette(parser: argparse.ArgumentParser, args: argparse.Namespace) -> None:
    frame = load_frame(args.path[0])

    writer = GifWriter(*frame.size)
    writer.sample = max(1, args.quality)

    indexed = writer.analyze_pixels(frame.tobytes())

    output_name = os.path.splitext(os.path.basename(args.path[0]))[0] + "_palette.png"
    generate_palette_img(indexed.palette).save(output_name)

    print("Palette written to {} ({} colors in use)".format(output_name, len(indexed.used_indices())))


def main() -> None:
    parser = prepare_argparser()
    args = parser.parse_args()

    if args.mode == "help":
        mode_help()
        parser.exit()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(levelname)s %(name)s: %(message)s")

    if not args.path:
        parser.error("Must specify --path for non-help mode.")

    if args.mode == "encode":
        mode_encode(parser, args)
    elif args.mode == "palette":
        mode_palette(parser, args)
    else:
        raise Exception("internal error: invalid mode")


if __name__ == "__main__":
    main()
