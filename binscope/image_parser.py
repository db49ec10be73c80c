"""
Image Container Parsers — PNG chunks, JPEG markers, ISOBMFF/HEIC boxes.

Pixel data is located, never decoded: IDAT payloads, JPEG entropy-coded
scans and mdat boxes show up as opaque DATA regions.

PNG
───
  8-byte signature, then Length(4 BE) | Type(4) | Data | CRC(4) chunks
  until IEND. Every CRC is recomputed with zlib.crc32 over Type + Data.

JPEG
────
  Marker scan from SOI. FF FF is fill, FF 00 is byte stuffing. RSTn,
  SOI, EOI and TEM stand alone; every other marker carries a 2-byte
  big-endian length that includes itself. After SOS the entropy-coded
  data runs to the next FF that is not followed by 00 or D0–D7.

ISOBMFF / HEIC
──────────────
  Size(4 BE) | Type(4) [| LargeSize(8)] boxes. Size 0 runs to the end of
  the parent, size 1 means a 64-bit size follows. Container boxes are
  walked with an explicit stack bounded by ParserConfig.max_box_depth.
"""

from __future__ import annotations

import logging
import zlib
from typing import Optional

from .byte_reader import ByteReader
from .config import ParserConfig, DEFAULT_CONFIG
from .errors import TruncationError
from .fields import field_region, fmt_hex
from .palette import get_palette
from .regions import FileFormat, ParsedFile, Region, RegionKind
from .signatures import PNG_SIGNATURE, describe_brand

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════
#  PNG
# ══════════════════════════════════════════════════════════════

PNG_CHUNK_TYPES: dict[str, str] = {
    "IHDR": "Image Header",
    "PLTE": "Palette",
    "IDAT": "Image Data",
    "IEND": "Image End",
    "tEXt": "Textual Data",
    "zTXt": "Compressed Text",
    "iTXt": "International Text",
    "bKGD": "Background Color",
    "cHRM": "Primary Chromaticities",
    "gAMA": "Gamma",
    "hIST": "Histogram",
    "iCCP": "Embedded ICC Profile",
    "pHYs": "Physical Pixel Dimensions",
    "sBIT": "Significant Bits",
    "sPLT": "Suggested Palette",
    "sRGB": "Standard RGB Color Space",
    "tIME": "Image Last-Modification Time",
    "tRNS": "Transparency",
    "eXIf": "Exif Metadata",
    "acTL": "Animation Control",
    "fcTL": "Frame Control",
    "fdAT": "Frame Data",
}

PNG_COLOR_TYPES: dict[int, str] = {
    0: "Grayscale",
    2: "Truecolor (RGB)",
    3: "Indexed",
    4: "Grayscale + Alpha",
    6: "Truecolor + Alpha (RGBA)",
}

PNG_INTERLACE: dict[int, str] = {0: "None", 1: "Adam7"}


def parse_png(
    data,
    name: str = "",
    dark: bool = True,
    config: Optional[ParserConfig] = None,
) -> ParsedFile:
    """Walk PNG chunks up to IEND. Never raises."""
    config = config or DEFAULT_CONFIG
    palette = get_palette(dark)
    reader = ByteReader(data, little_endian=False)
    size = reader.size

    if size < 8 or bytes(data[:8]) != PNG_SIGNATURE:
        return ParsedFile.failed(name, data, FileFormat.PNG, "Invalid PNG signature")

    regions: list[Region] = [Region(
        name="PNG Signature",
        offset=0,
        size=8,
        kind=RegionKind.HEADER,
        color=palette["IMAGE_HEADER"],
        value="89 50 4E 47 0D 0A 1A 0A",
    )]

    pos = 8
    chunks = 0
    seen_iend = False
    while pos + 8 <= size and chunks < config.max_png_chunks:
        length = reader.u32(pos)
        ctype = reader.bytes_at(pos + 4, 4).decode("latin-1")
        total = 12 + length

        if pos + total > size:
            logger.debug("PNG chunk %r at 0x%X truncated (needs %d bytes)", ctype, pos, total)
            regions.append(Region(
                name=f"Truncated: {ctype}",
                offset=pos,
                size=size - pos,
                kind=RegionKind.UNKNOWN,
                color=palette["OVERLAY"],
                description=f"Chunk claims {length} bytes, only {size - pos - 8} remain",
            ))
            pos = size
            break

        regions.append(_png_chunk(reader, data, pos, length, ctype, palette))
        pos += total
        chunks += 1
        if ctype == "IEND":
            seen_iend = True
            break

    if pos < size:
        regions.append(_trailing(pos, size, palette, "after IEND" if seen_iend else "unparsed"))

    return ParsedFile(name=name, size=size, data=data, format=FileFormat.PNG, regions=regions)


def _png_chunk(reader: ByteReader, data, pos: int, length: int, ctype: str, palette) -> Region:
    desc = PNG_CHUNK_TYPES.get(ctype, "Unknown Chunk")
    crc_off = pos + 8 + length
    stored = reader.u32(crc_off)
    computed = zlib.crc32(bytes(data[pos + 4:crc_off])) & 0xFFFFFFFF
    crc_ok = stored == computed

    chunk = Region(
        name=f"Chunk: {ctype}",
        offset=pos,
        size=length + 12,
        kind=RegionKind.RECORD,
        color=palette["PNG_CHUNK"],
        description=desc,
        details={
            "Length": length,
            "Type": ctype,
            "CRC": fmt_hex(stored, 8),
            "CRC OK": "Yes" if crc_ok else f"No (computed {fmt_hex(computed, 8)})",
        },
    )
    chunk.add_child(field_region("Length", pos, 4, palette, length))
    chunk.add_child(field_region("Type", pos + 4, 4, palette, ctype, desc))

    if ctype == "IHDR" and length >= 13:
        d = pos + 8
        width = reader.u32(d)
        height = reader.u32(d + 4)
        bit_depth = reader.u8(d + 8)
        color_type = reader.u8(d + 9)
        compression = reader.u8(d + 10)
        filter_method = reader.u8(d + 11)
        interlace = reader.u8(d + 12)
        color_text = PNG_COLOR_TYPES.get(color_type, "Unknown")
        chunk.details.update({
            "Width": width,
            "Height": height,
            "BitDepth": bit_depth,
            "ColorType": f"{color_type} ({color_text})",
            "Interlace": PNG_INTERLACE.get(interlace, "Unknown"),
        })
        for child in (
            field_region("Width", d, 4, palette, width),
            field_region("Height", d + 4, 4, palette, height),
            field_region("BitDepth", d + 8, 1, palette, bit_depth),
            field_region("ColorType", d + 9, 1, palette, color_type, color_text),
            field_region("Compression", d + 10, 1, palette, compression),
            field_region("Filter", d + 11, 1, palette, filter_method),
            field_region("Interlace", d + 12, 1, palette, interlace,
                         PNG_INTERLACE.get(interlace, "Unknown")),
        ):
            chunk.add_child(child)
    if length > 0:
        chunk.add_child(Region(
            name="Data",
            offset=pos + 8,
            size=length,
            kind=RegionKind.DATA,
            color=palette["IMAGE_DATA"],
            description="Compressed Image Data" if ctype == "IDAT" else "Chunk Data",
        ))

    chunk.add_child(field_region(
        "CRC", crc_off, 4, palette, fmt_hex(stored, 8), "CRC OK" if crc_ok else "CRC mismatch"))
    return chunk


def _trailing(pos: int, size: int, palette, why: str) -> Region:
    return Region(
        name="Trailing Data",
        offset=pos,
        size=size - pos,
        kind=RegionKind.UNKNOWN,
        color=palette["OVERLAY"],
        description=f"{size - pos} bytes {why}",
    )


# ══════════════════════════════════════════════════════════════
#  JPEG
# ══════════════════════════════════════════════════════════════

JPEG_MARKERS: dict[int, str] = {
    0x01: "TEM (Temporary)",
    0xC0: "SOF0 (Baseline DCT)",
    0xC1: "SOF1 (Extended Sequential DCT)",
    0xC2: "SOF2 (Progressive DCT)",
    0xC3: "SOF3 (Lossless)",
    0xC4: "DHT (Define Huffman Table)",
    0xC5: "SOF5 (Differential Sequential DCT)",
    0xC6: "SOF6 (Differential Progressive DCT)",
    0xC7: "SOF7 (Differential Lossless)",
    0xC8: "JPG (Reserved)",
    0xC9: "SOF9 (Extended Sequential, Arithmetic)",
    0xCA: "SOF10 (Progressive, Arithmetic)",
    0xCB: "SOF11 (Lossless, Arithmetic)",
    0xCC: "DAC (Define Arithmetic Coding)",
    0xCD: "SOF13 (Differential Sequential, Arithmetic)",
    0xCE: "SOF14 (Differential Progressive, Arithmetic)",
    0xCF: "SOF15 (Differential Lossless, Arithmetic)",
    0xD8: "SOI (Start of Image)",
    0xD9: "EOI (End of Image)",
    0xDA: "SOS (Start of Scan)",
    0xDB: "DQT (Define Quantization Table)",
    0xDC: "DNL (Define Number of Lines)",
    0xDD: "DRI (Define Restart Interval)",
    0xDE: "DHP (Define Hierarchical Progression)",
    0xDF: "EXP (Expand Reference Components)",
    0xFE: "COM (Comment)",
}
JPEG_MARKERS.update({0xD0 + n: f"RST{n} (Restart)" for n in range(8)})
JPEG_MARKERS.update({0xE0 + n: f"APP{n}" for n in range(16)})
JPEG_MARKERS[0xE0] = "APP0 (JFIF)"
JPEG_MARKERS[0xE1] = "APP1 (EXIF)"

_SOF_MARKERS = {m for m in range(0xC0, 0xD0)} - {0xC4, 0xC8, 0xCC}


def _is_standalone(marker: int) -> bool:
    return 0xD0 <= marker <= 0xD9 or marker == 0x01


def parse_jpeg(
    data,
    name: str = "",
    dark: bool = True,
    config: Optional[ParserConfig] = None,
) -> ParsedFile:
    """Walk JPEG marker segments from SOI to EOI. Never raises."""
    config = config or DEFAULT_CONFIG
    palette = get_palette(dark)
    reader = ByteReader(data, little_endian=False)
    size = reader.size

    if size < 2 or bytes(data[:2]) != b"\xFF\xD8":
        return ParsedFile.failed(name, data, FileFormat.JPEG, "Invalid JPEG signature (no SOI)")

    regions: list[Region] = []
    pos = 0
    segments = 0
    seen_eoi = False

    while pos < size - 1 and segments < config.max_jpeg_segments:
        if reader.u8(pos) != 0xFF:
            pos = data.find(b"\xFF", pos, size - 1)
            if pos == -1:
                break
            continue
        marker = reader.u8(pos + 1)
        if marker == 0xFF:
            pos += 1
            continue
        if marker == 0x00:
            pos += 2
            continue

        marker_name = JPEG_MARKERS.get(marker, f"Unknown Marker (0xFF{marker:02X})")
        short = marker_name.split(" ")[0]
        segments += 1

        if _is_standalone(marker):
            regions.append(Region(
                name=short,
                offset=pos,
                size=2,
                kind=RegionKind.RECORD,
                color=palette["JPEG_SEGMENT"],
                description=marker_name,
                value=f"FF {marker:02X}",
            ))
            pos += 2
            if marker == 0xD9:
                seen_eoi = True
                break
            continue

        if pos + 4 > size:
            logger.debug("JPEG marker %s at 0x%X has no length field", short, pos)
            break
        length = reader.u16(pos + 2)
        if length < 2:
            logger.debug("JPEG segment %s at 0x%X has invalid length %d", short, pos, length)
            break

        segment = _jpeg_segment(reader, pos, marker, length, marker_name, palette)
        regions.append(segment)
        if pos + 2 + length > size:
            logger.debug("JPEG segment %s at 0x%X truncated", short, pos)
            pos = size
            break
        pos += 2 + length

        if marker == 0xDA:
            scan_end = _entropy_end(data, pos, size)
            if scan_end > pos:
                regions.append(Region(
                    name="Entropy Data",
                    offset=pos,
                    size=scan_end - pos,
                    kind=RegionKind.DATA,
                    color=palette["IMAGE_DATA"],
                    description="Huffman coded image data",
                ))
                pos = scan_end

    if seen_eoi and pos < size:
        regions.append(_trailing(pos, size, palette, "after EOI"))

    return ParsedFile(name=name, size=size, data=data, format=FileFormat.JPEG, regions=regions)


def _entropy_end(data, start: int, size: int) -> int:
    """Offset of the first real marker after `start` (end of file if none)."""
    pos = start
    while True:
        idx = data.find(b"\xFF", pos, size - 1)
        if idx == -1:
            return size
        nxt = data[idx + 1]
        if nxt != 0x00 and not 0xD0 <= nxt <= 0xD7:
            return idx
        pos = idx + 2


def _jpeg_segment(reader: ByteReader, pos, marker, length, marker_name, palette) -> Region:
    end = min(reader.size, pos + 2 + length)
    segment = Region(
        name=marker_name.split(" ")[0],
        offset=pos,
        size=end - pos,
        kind=RegionKind.RECORD,
        color=palette["JPEG_SEGMENT"],
        description=marker_name,
        details={"Length": length},
    )
    segment.add_child(field_region("Marker", pos, 2, palette, f"FF {marker:02X}"))
    segment.add_child(field_region("Length", pos + 2, 2, palette, length))

    try:
        if marker in _SOF_MARKERS and length >= 8:
            precision = reader.u8(pos + 4)
            height = reader.u16(pos + 5)
            width = reader.u16(pos + 7)
            components = reader.u8(pos + 9)
            segment.details.update({
                "Width": width,
                "Height": height,
                "Precision": precision,
                "Components": components,
            })
            segment.add_child(field_region("Precision", pos + 4, 1, palette, precision))
            segment.add_child(field_region("Height", pos + 5, 2, palette, height))
            segment.add_child(field_region("Width", pos + 7, 2, palette, width))
            segment.add_child(field_region("Components", pos + 9, 1, palette, components))
            return segment

        if 0xE0 <= marker <= 0xEF and length > 2:
            ident = reader.cstring(pos + 4, min(length - 2, 64))
            if ident:
                segment.details["Identifier"] = ident
                segment.description = f"{marker_name.split(' ')[0]} ({ident})"
                segment.add_child(field_region("Identifier", pos + 4, len(ident), palette, ident))
        elif marker == 0xFE and length > 2:
            segment.details["Comment"] = reader.cstring(pos + 4, min(length - 2, 64))
    except TruncationError as e:
        logger.debug("JPEG segment at 0x%X truncated: %s", pos, e)

    if length > 2:
        segment.add_child(Region(
            name="Data",
            offset=pos + 4,
            size=length - 2,
            kind=RegionKind.DATA,
            color=palette["IMAGE_DATA"],
        ))
    return segment


# ══════════════════════════════════════════════════════════════
#  ISOBMFF / HEIC
# ══════════════════════════════════════════════════════════════

BOX_CONTAINERS = frozenset({
    "moov", "trak", "edts", "mdia", "minf", "dinf", "stbl", "mvex",
    "moof", "traf", "mfra", "skip", "udta", "meta", "ipro", "sinf",
    "fiin", "paen", "strk", "iprp", "ipco",
})

# Containers that start with a FullBox version/flags word
_FULL_BOX_CONTAINERS = frozenset({"meta"})


def _printable_type(raw: bytes) -> bool:
    return all(32 <= b < 127 for b in raw)


def parse_isobmff(
    data,
    name: str = "",
    dark: bool = True,
    config: Optional[ParserConfig] = None,
) -> ParsedFile:
    """Walk the ISOBMFF box tree (HEIC, AVIF, MP4, MOV). Never raises."""
    config = config or DEFAULT_CONFIG
    palette = get_palette(dark)
    reader = ByteReader(data, little_endian=False)
    size = reader.size

    regions: list[Region] = []
    # (parent region or None for top level, start, end, depth)
    stack: list[tuple[Optional[Region], int, int, int]] = [(None, 0, size, 0)]
    boxes = 0

    while stack and boxes < config.max_boxes:
        parent, pos, end, depth = stack.pop()
        pending: list[tuple[Optional[Region], int, int, int]] = []

        while pos + 8 <= end and boxes < config.max_boxes:
            size32 = reader.u32(pos)
            raw_type = reader.bytes_at(pos + 4, 4)
            if not _printable_type(raw_type):
                logger.debug("Invalid box type %r at 0x%X, stopping level", raw_type, pos)
                break
            btype = raw_type.decode("latin-1")

            header_size = 8
            box_size = size32
            if size32 == 1:
                if pos + 16 > end:
                    break
                box_size = reader.u64(pos + 8)
                header_size = 16
            elif size32 == 0:
                box_size = end - pos
            if box_size < header_size:
                logger.debug("Box %r at 0x%X has invalid size %d", btype, pos, box_size)
                break

            box_end = min(pos + box_size, end)
            if pos + box_size > end:
                logger.debug("Box %r at 0x%X overruns its parent, clamped", btype, pos)

            box = _box(reader, pos, box_end, btype, size32, box_size, header_size, palette)
            boxes += 1

            if btype in BOX_CONTAINERS:
                content = pos + header_size
                if btype in _FULL_BOX_CONTAINERS and content + 4 <= box_end:
                    box.add_child(field_region(
                        "Ver/Flags", content, 4, palette, fmt_hex(reader.u32(content))))
                    content += 4
                if depth + 1 >= config.max_box_depth:
                    logger.debug("Box nesting limit reached at %r (0x%X)", btype, pos)
                    box.description = "Nesting limit reached"
                elif content < box_end:
                    pending.append((box, content, box_end, depth + 1))
            elif btype != "mdat" and box_end > pos + header_size:
                box.add_child(Region(
                    name="Data",
                    offset=pos + header_size,
                    size=box_end - (pos + header_size),
                    kind=RegionKind.DATA,
                    color=palette["IMAGE_DATA"],
                ))

            if parent is None:
                regions.append(box)
            else:
                parent.add_child(box)
            pos = box_end

        # Reverse so the first container at this level is walked first
        stack.extend(reversed(pending))

    if not regions:
        return ParsedFile.failed(name, data, FileFormat.HEIC, "No ISOBMFF boxes found")

    return ParsedFile(name=name, size=size, data=data, format=FileFormat.HEIC, regions=regions)


def _box(reader, pos, box_end, btype, size32, box_size, header_size, palette) -> Region:
    box = Region(
        name=f"Box: {btype}",
        offset=pos,
        size=box_end - pos,
        kind=RegionKind.RECORD,
        color=palette["HEIC_BOX"],
        details={"Type": btype, "Size": box_size},
    )
    box.add_child(field_region("Size", pos, 4, palette, size32))
    box.add_child(field_region("Type", pos + 4, 4, palette, btype))
    if header_size == 16:
        box.add_child(field_region("LargeSize", pos + 8, 8, palette, box_size))

    if btype == "ftyp" and pos + 16 <= box_end:
        major = reader.bytes_at(pos + 8, 4)
        minor = reader.u32(pos + 12)
        brands = [
            reader.bytes_at(b, 4).decode("latin-1")
            for b in range(pos + 16, box_end - 3, 4)
        ]
        major_text = major.decode("latin-1")
        box.description = f"File Type: {major_text} ({describe_brand(major)})"
        box.details.update({
            "MajorBrand": major_text,
            "MinorVer": minor,
            "CompatibleBrands": ", ".join(brands) if brands else "None",
        })
    return box
