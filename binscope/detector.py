"""
Format Detector — sniff magic bytes and dispatch to one parser.

detect() is total: whatever the input, it returns a ParsedFile. An
unknown magic falls back to the PE parser, which reports why the bytes
are not a PE; an exception escaping any parser is logged with its
traceback and turned into an is_valid=False shell.
"""

import os
import logging
from typing import Callable, Optional

from .config import ParserConfig, DEFAULT_CONFIG
from .elf_parser import parse_elf
from .errors import UnsupportedVariant
from .image_parser import parse_isobmff, parse_jpeg, parse_png
from .macho_parser import parse_macho
from .mmap_reader import load_file
from .pe_parser import parse_pe
from .regions import FileFormat, ParsedFile
from .signatures import match_header

logger = logging.getLogger(__name__)

PARSERS: dict[str, Callable[..., ParsedFile]] = {
    FileFormat.PE: parse_pe,
    FileFormat.ELF: parse_elf,
    FileFormat.MACHO: parse_macho,
    FileFormat.PNG: parse_png,
    FileFormat.JPEG: parse_jpeg,
    FileFormat.HEIC: parse_isobmff,
}


def sniff_format(data) -> str:
    """
    Identify the container format from the leading bytes.

    Returns:
        A FileFormat constant.

    Raises:
        UnsupportedVariant: the buffer is shorter than 4 bytes or no
            known magic matches.
    """
    if len(data) < 4:
        raise UnsupportedVariant(f"Buffer too small to identify ({len(data)} bytes)")
    info = match_header(data)
    if info is None:
        head = " ".join(f"{b:02X}" for b in bytes(data[:4]))
        raise UnsupportedVariant(f"Unrecognised magic: {head}")
    return info.format


def detect(
    data,
    name: str = "",
    dark: bool = True,
    config: Optional[ParserConfig] = None,
) -> ParsedFile:
    """
    Parse `data` with the parser its magic selects.

    Args:
        data: bytes, bytearray, read-only mmap or memoryview
        name: Display name carried into the ParsedFile
        dark: Palette selector
        config: Limits and policies (DEFAULT_CONFIG when omitted)

    Returns:
        ParsedFile. Never raises.
    """
    config = config or DEFAULT_CONFIG
    if isinstance(data, memoryview):
        data = data.tobytes()

    try:
        fmt = sniff_format(data)
    except UnsupportedVariant as e:
        logger.debug("%s: %s, falling back to PE", name or "<buffer>", e.message)
        fmt = FileFormat.PE

    parser = PARSERS[fmt]
    try:
        parsed = parser(data, name, dark, config)
    except Exception as e:
        logger.warning("%s parser failed on %s: %s", fmt, name or "<buffer>", e, exc_info=True)
        return ParsedFile.failed(name, data, fmt, f"Parser error: {e}")

    if not parsed.is_valid:
        logger.debug("%s: %s parse invalid: %s", name or "<buffer>", fmt, parsed.error)
    return parsed


def parse_file(
    path: str,
    name: Optional[str] = None,
    dark: bool = True,
    config: Optional[ParserConfig] = None,
) -> ParsedFile:
    """
    Read a file from disk and detect it.

    The whole file is read into memory so the ParsedFile owns its
    buffer; use mmap_reader.FileReader directly to parse a mapping.
    """
    data = load_file(path)
    return detect(data, name or os.path.basename(path), dark, config)
