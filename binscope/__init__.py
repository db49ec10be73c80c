# binscope — Multi-format binary structure viewer core
# Pure-Python header decoding into a normalized region tree + byte search.
#
# Architecture (bottom → top):
#   config         — ParserConfig: limits and display policies
#   errors         — Exception taxonomy (structural / truncation / search)
#   palette        — Dark/light colour tags for region kinds
#   regions        — Region, SectionInfo, ParsedFile + invariant checks
#   byte_reader    — Bounds-checked, endian-aware field reads
#   mmap_reader    — Read-only file loading (mmap with plain-read fallback)
#   signatures     — Magic-byte database for format sniffing
#   fields         — Hex / flag formatting and field-region helpers
#   pe_parser      — Windows PE / PE32+
#   elf_parser     — ELF32 / ELF64, either byte order
#   macho_parser   — Mach-O thin + Fat/Universal
#   image_parser   — PNG chunks, JPEG markers, ISOBMFF/HEIC boxes
#   detector       — Sniff + dispatch (never raises)
#   address_map    — File offset ↔ virtual address via section table
#   search         — Hex / ASCII / UTF-16LE / regex scanning

__version__ = "1.0.0"

from .config import ParserConfig, DEFAULT_CONFIG
from .errors import (
    BinscopeError,
    StructuralError,
    TruncationError,
    UnsupportedVariant,
    SearchInputError,
)
from .regions import (
    Region,
    RegionKind,
    SectionInfo,
    ParsedFile,
    FileFormat,
    IntValue,
    TextValue,
)
from .detector import detect, parse_file, sniff_format
from .address_map import to_virtual_address, to_file_offset
from .search import search, SearchResult, CancelToken

__all__ = [
    "ParserConfig",
    "DEFAULT_CONFIG",
    "BinscopeError",
    "StructuralError",
    "TruncationError",
    "UnsupportedVariant",
    "SearchInputError",
    "Region",
    "RegionKind",
    "SectionInfo",
    "ParsedFile",
    "FileFormat",
    "IntValue",
    "TextValue",
    "detect",
    "parse_file",
    "sniff_format",
    "to_virtual_address",
    "to_file_offset",
    "search",
    "SearchResult",
    "CancelToken",
]
