"""
GIF Blur — GIF Container Codec
Reads a GIF byte stream into raw (uncomposited) frame patches and writes
indexed frames back out, keeping each frame's region, delay and disposal.

Decoding stops at the first structural problem after the header and keeps
what was read so far. A frame whose image data cannot be decompressed comes
back with an empty patch so the caller decides whether to skip it.
"""

import logging
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from core.region import FrameRegion

logger = logging.getLogger(__name__)

GIF_HEADERS = (b"GIF87a", b"GIF89a")

# Disposal methods (GIF89a graphic control extension, bits 2-4)
DISPOSAL_UNSPECIFIED = 0
DISPOSAL_NONE = 1
DISPOSAL_BACKGROUND = 2
DISPOSAL_PREVIOUS = 3

MAX_LZW_CODE = 4096
TRANSPARENT_ALPHA_CUTOFF = 128

_EXTENSION = 0x21
_IMAGE = 0x2C
_TRAILER = 0x3B
_GCE_LABEL = 0xF9
_APP_LABEL = 0xFF


class DecodeError(Exception):
    """GIF container unreadable or without usable frames."""
    pass


class _Truncated(Exception):
    pass


class LZWError(Exception):
    """Corrupt LZW image data."""
    pass


@dataclass(frozen=True)
class RawFrame:
    """One decoded frame patch, before compositing.

    patch: (height, width, 4) uint8 RGBA. Pixels using the transparent
        index have alpha 0. Empty (size 0) when the image data was unreadable.
    delay: Display time in milliseconds.
    """
    patch: np.ndarray
    region: FrameRegion
    disposal: int = DISPOSAL_UNSPECIFIED
    delay: int = 0
    transparent_index: int | None = None
    interlaced: bool = False

    @property
    def readable(self) -> bool:
        return self.patch.size > 0


@dataclass(frozen=True)
class DecodedGif:
    width: int
    height: int
    frames: tuple[RawFrame, ...]
    global_color_table: tuple[tuple[int, int, int], ...] | None = None
    background_index: int = 0
    loop_count: int | None = None
    truncated: bool = False


@dataclass
class EncodedFrame:
    """An indexed frame ready for writing.

    indices: (height, width) uint8 palette indexes.
    palette: Sequence of (r, g, b), at most 256 entries.
    delay_cs: Delay in centiseconds.
    """
    indices: np.ndarray
    palette: Sequence[tuple[int, int, int]]
    region: FrameRegion
    delay_cs: int = 10
    disposal: int = DISPOSAL_UNSPECIFIED
    transparent_index: int | None = None
    interlaced: bool = field(default=False)


# ---------------------------------------------------------------------------
# Reading
# ---------------------------------------------------------------------------

class _Reader:
    """Cursor over a bytes buffer that raises _Truncated past the end."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def u8(self) -> int:
        if self.pos >= len(self.data):
            raise _Truncated()
        value = self.data[self.pos]
        self.pos += 1
        return value

    def u16(self) -> int:
        lo = self.u8()
        return lo | (self.u8() << 8)

    def read(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise _Truncated()
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def sub_blocks(self) -> list[bytes]:
        """Read data sub-blocks up to and including the 0 terminator."""
        blocks = []
        while True:
            size = self.u8()
            if size == 0:
                return blocks
            blocks.append(self.read(size))


def _read_color_table(reader: _Reader, packed: int) -> np.ndarray:
    size = 2 << (packed & 0x07)
    raw = reader.read(3 * size)
    return np.frombuffer(raw, dtype=np.uint8).reshape(size, 3)


def decode_gif(data: bytes) -> DecodedGif:
    """Parse a GIF byte stream into raw frames.

    Raises:
        DecodeError: If the header or logical screen descriptor is unreadable.
    """
    if not data:
        raise DecodeError("Empty GIF data")
    data = bytes(data)
    if data[:6] not in GIF_HEADERS:
        raise DecodeError(f"Not a GIF file (header {data[:6]!r})")

    reader = _Reader(data)
    reader.pos = 6
    try:
        width = reader.u16()
        height = reader.u16()
        packed = reader.u8()
        background_index = reader.u8()
        reader.u8()  # pixel aspect ratio
        gct = _read_color_table(reader, packed) if packed & 0x80 else None
    except _Truncated:
        raise DecodeError("GIF truncated inside the logical screen descriptor")

    if width == 0 or height == 0:
        raise DecodeError(f"GIF logical screen has zero size ({width}x{height})")

    frames: list[RawFrame] = []
    loop_count = None
    gce = None
    truncated = False

    try:
        while True:
            block = reader.u8()
            if block == _TRAILER:
                break
            if block == _EXTENSION:
                label = reader.u8()
                blocks = reader.sub_blocks()
                if label == _GCE_LABEL and blocks and len(blocks[0]) >= 4:
                    gce = blocks[0]
                elif label == _APP_LABEL and blocks:
                    loop = _parse_loop_extension(blocks)
                    if loop is not None:
                        loop_count = loop
                continue
            if block == _IMAGE:
                frames.append(_read_image(reader, gce, gct, len(frames)))
                gce = None
                continue
            logger.warning("Unknown GIF block 0x%02x at offset %d; stopping", block, reader.pos - 1)
            truncated = True
            break
    except _Truncated:
        logger.warning("GIF stream truncated after %d frame(s)", len(frames))
        truncated = True

    gct_tuple = None
    if gct is not None:
        gct_tuple = tuple(tuple(int(c) for c in rgb) for rgb in gct)

    return DecodedGif(
        width=width,
        height=height,
        frames=tuple(frames),
        global_color_table=gct_tuple,
        background_index=background_index,
        loop_count=loop_count,
        truncated=truncated,
    )


def _parse_loop_extension(blocks: list[bytes]) -> int | None:
    """NETSCAPE2.0 / ANIMEXTS1.0 loop count, if this is one."""
    if blocks[0] not in (b"NETSCAPE2.0", b"ANIMEXTS1.0"):
        return None
    for sub in blocks[1:]:
        if len(sub) >= 3 and sub[0] == 1:
            return sub[1] | (sub[2] << 8)
    return None


def _read_image(reader: _Reader, gce: bytes | None, gct: np.ndarray | None,
                frame_index: int) -> RawFrame:
    left = reader.u16()
    top = reader.u16()
    width = reader.u16()
    height = reader.u16()
    packed = reader.u8()
    lct = _read_color_table(reader, packed) if packed & 0x80 else None
    interlaced = bool(packed & 0x40)
    min_code_size = reader.u8()
    image_data = b"".join(reader.sub_blocks())

    disposal = DISPOSAL_UNSPECIFIED
    delay = 0
    transparent_index = None
    if gce is not None:
        disposal = (gce[0] >> 2) & 0x07
        if disposal > DISPOSAL_PREVIOUS:
            disposal = DISPOSAL_UNSPECIFIED
        delay = (gce[1] | (gce[2] << 8)) * 10
        if gce[0] & 0x01:
            transparent_index = gce[3]

    region = FrameRegion(left, top, width, height)
    palette = lct if lct is not None else gct
    empty = np.zeros((0, 0, 4), dtype=np.uint8)

    if width == 0 or height == 0:
        logger.debug("Frame %d has an empty image descriptor", frame_index)
        patch = empty
    elif palette is None:
        logger.debug("Frame %d has no color table", frame_index)
        patch = empty
    else:
        try:
            indices = lzw_decode(image_data, min_code_size, width * height,
                                 fill=transparent_index or 0)
        except LZWError as e:
            logger.debug("Frame %d image data unreadable: %s", frame_index, e)
            patch = empty
        else:
            indices = indices.reshape(height, width)
            if interlaced:
                indices = deinterlace(indices)
            patch = indices_to_rgba(indices, palette, transparent_index)

    patch.setflags(write=False)
    return RawFrame(
        patch=patch,
        region=region,
        disposal=disposal,
        delay=delay,
        transparent_index=transparent_index,
        interlaced=interlaced,
    )


def lzw_decode(data: bytes, min_code_size: int, pixel_count: int, fill: int = 0) -> np.ndarray:
    """Decompress GIF LZW image data into a flat array of palette indexes.

    Short streams are padded with ``fill``; surplus pixels are dropped.

    Raises:
        LZWError: On an invalid code size or a code not yet in the table.
    """
    if not 1 <= min_code_size <= 11:
        raise LZWError(f"Invalid LZW minimum code size {min_code_size}")

    clear_code = 1 << min_code_size
    end_code = clear_code + 1
    base_table = [bytes((i,)) for i in range(clear_code)] + [b"", b""]
    table = list(base_table)
    code_size = min_code_size + 1
    out = bytearray()
    prev = None

    bit_buffer = 0
    bit_count = 0
    pos = 0
    n = len(data)

    while len(out) < pixel_count:
        while bit_count < code_size and pos < n:
            bit_buffer |= data[pos] << bit_count
            bit_count += 8
            pos += 1
        if bit_count < code_size:
            break  # ran out of data without an end code

        code = bit_buffer & ((1 << code_size) - 1)
        bit_buffer >>= code_size
        bit_count -= code_size

        if code == clear_code:
            table = list(base_table)
            code_size = min_code_size + 1
            prev = None
            continue
        if code == end_code:
            break

        if prev is None:
            if code >= clear_code:
                raise LZWError(f"First code {code} after clear is not a literal")
            entry = table[code]
            out += entry
            prev = entry
            continue

        if code < len(table):
            entry = table[code]
            added = prev + entry[:1]
        elif code == len(table):
            entry = prev + prev[:1]
            added = entry
        else:
            raise LZWError(f"Code {code} beyond table size {len(table)}")

        out += entry
        if len(table) < MAX_LZW_CODE:
            table.append(added)
            if len(table) == (1 << code_size) and code_size < 12:
                code_size += 1
        prev = entry

    if not out:
        raise LZWError("No pixels decoded")
    if len(out) < pixel_count:
        out += bytes((fill,)) * (pixel_count - len(out))
    return np.frombuffer(bytes(out[:pixel_count]), dtype=np.uint8)


def deinterlace(indices: np.ndarray) -> np.ndarray:
    """Reorder rows of an interlaced GIF image into display order."""
    height = indices.shape[0]
    order = []
    for start, step in ((0, 8), (4, 8), (2, 4), (1, 2)):
        order.extend(range(start, height, step))
    result = np.empty_like(indices)
    result[order] = indices
    return result


def indices_to_rgba(indices: np.ndarray, palette: np.ndarray,
                    transparent_index: int | None) -> np.ndarray:
    """Map palette indexes to RGBA. Out-of-table indexes come out black."""
    table = np.zeros((256, 4), dtype=np.uint8)
    size = min(len(palette), 256)
    table[:size, :3] = np.asarray(palette, dtype=np.uint8)[:size]
    table[:, 3] = 255
    if transparent_index is not None:
        table[transparent_index, 3] = 0
    return table[indices]


# ---------------------------------------------------------------------------
# Writing
# ---------------------------------------------------------------------------

def _u16(value: int) -> bytes:
    return bytes((value & 0xFF, (value >> 8) & 0xFF))


def _table_power(size: int) -> int:
    """Smallest p >= 1 with 2**p >= size."""
    power = 1
    while (1 << power) < size:
        power += 1
    return power


def encode_gif(width: int, height: int, frames: Sequence[EncodedFrame],
               loop_count: int | None = 0) -> bytes:
    """Write indexed frames as a GIF89a byte stream.

    Every frame carries a local color table, so frames may use different
    palettes. ``loop_count`` None omits the NETSCAPE2.0 loop extension.
    """
    if width <= 0 or height <= 0:
        raise ValueError("width and height must be > 0")
    if not frames:
        raise ValueError("at least one frame is required")

    data = bytearray(b"GIF89a")
    data += _u16(width)
    data += _u16(height)
    data.append(0x70)  # no global color table, 8-bit color resolution
    data.append(0)     # background color index
    data.append(0)     # pixel aspect ratio

    if loop_count is not None:
        data += b"!\xFF\x0BNETSCAPE2.0\x03\x01"
        data += _u16(max(0, min(0xFFFF, loop_count)))
        data.append(0)

    for frame in frames:
        data += _graphics_control_extension(frame)
        data += _image_block(frame)

    data.append(_TRAILER)
    return bytes(data)


def _graphics_control_extension(frame: EncodedFrame) -> bytes:
    packed = (frame.disposal & 0x07) << 2
    transparent = 0
    if frame.transparent_index is not None:
        packed |= 0x01
        transparent = frame.transparent_index
    delay = max(0, min(0xFFFF, int(frame.delay_cs)))
    return b"!\xF9\x04" + bytes((packed,)) + _u16(delay) + bytes((transparent, 0))


def _image_block(frame: EncodedFrame) -> bytes:
    region = frame.region
    indices = np.ascontiguousarray(frame.indices, dtype=np.uint8)
    if indices.shape != (region.height, region.width):
        raise ValueError(
            f"indices shape {indices.shape} does not match region "
            f"{region.width}x{region.height}"
        )
    if not 1 <= len(frame.palette) <= 256:
        raise ValueError("palette must have 1-256 colors")

    power = _table_power(len(frame.palette))
    table = bytearray()
    for r, g, b in frame.palette:
        table += bytes((int(r), int(g), int(b)))
    table += b"\x00" * ((1 << power) * 3 - len(table))

    packed = 0x80 | (power - 1)
    if frame.interlaced:
        packed |= 0x40
        order = []
        for start, step in ((0, 8), (4, 8), (2, 4), (1, 2)):
            order.extend(range(start, region.height, step))
        indices = indices[order]

    min_code_size = max(2, power)
    compressed = lzw_encode(indices.tobytes(), min_code_size)

    out = bytearray(b",")
    out += _u16(region.left) + _u16(region.top)
    out += _u16(region.width) + _u16(region.height)
    out.append(packed)
    out += table
    out.append(min_code_size)
    for i in range(0, len(compressed), 255):
        chunk = compressed[i:i + 255]
        out.append(len(chunk))
        out += chunk
    out.append(0)
    return bytes(out)


def lzw_encode(pixels: bytes, min_code_size: int) -> bytes:
    """Compress palette indexes with GIF-flavoured variable-width LZW."""
    clear_code = 1 << min_code_size
    end_code = clear_code + 1
    code_size = min_code_size + 1
    next_code = end_code + 1
    table: dict[int, int] = {}

    out = bytearray()
    bit_buffer = 0
    bit_count = 0

    def emit(code):
        nonlocal bit_buffer, bit_count
        bit_buffer |= code << bit_count
        bit_count += code_size
        while bit_count >= 8:
            out.append(bit_buffer & 0xFF)
            bit_buffer >>= 8
            bit_count -= 8

    emit(clear_code)
    if not pixels:
        emit(end_code)
        if bit_count:
            out.append(bit_buffer & 0xFF)
        return bytes(out)

    prefix = pixels[0]
    for k in pixels[1:]:
        key = (prefix << 8) | k
        code = table.get(key)
        if code is not None:
            prefix = code
            continue

        emit(prefix)
        if next_code < MAX_LZW_CODE:
            table[key] = next_code
            next_code += 1
            if next_code > (1 << code_size) and code_size < 12:
                code_size += 1
        else:
            emit(clear_code)
            table.clear()
            code_size = min_code_size + 1
            next_code = end_code + 1
        prefix = k

    emit(prefix)
    emit(end_code)
    if bit_count:
        out.append(bit_buffer & 0xFF)
    return bytes(out)
