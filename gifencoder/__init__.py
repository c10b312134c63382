"""
gifencoder is a small library for writing animated GIFs from raw RGBA frames. Each frame is reduced to
256 colors with NeuQuant, LZW compressed, and written out as soon as it is added.

Based on the GIF89a spec, currently hosted here:

https://www.w3.org/Graphics/GIF/spec-gif89a.txt
"""

import logging

from .bytesink import *
from .constants import *
from .encoder import *
from .gif import *
from .lzw import *
from .neuquant import *

__version__ = "0.1.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())
