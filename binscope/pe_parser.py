"""
PE Parser — Windows Portable Executable (EXE / DLL / SYS).

LAYOUT WALKED
─────────────
  DOS header (64 bytes, 'MZ', e_lfanew at 0x3C)
  DOS stub (64 .. e_lfanew, when non-empty)
  NT headers at e_lfanew
       ├─ Signature 'PE\\0\\0'
       ├─ File header (20 bytes)
       └─ Optional header (SizeOfOptionalHeader bytes)
            • magic 0x10B → PE32:  ImageBase/stack/heap are 4 bytes, BaseOfData present
            • magic 0x20B → PE32+: ImageBase/stack/heap are 8 bytes, no BaseOfData
            └─ Data directories (≤ 16 × 8 bytes; only non-empty ones emitted)
  Section headers (NumberOfSections × 40 bytes)
  Section raw data (PointerToRawData / SizeOfRawData, clamped to file)
  Overlay (header padding, slack between sections, bytes past the end)

Every field is little-endian. Bad DOS magic, bad PE signature or a
header too short to read stop the walk; what was collected so far is
returned with is_valid=False. Truncated tables are clamped.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from .byte_reader import ByteReader
from .config import ParserConfig, DEFAULT_CONFIG
from .errors import StructuralError, TruncationError
from .fields import decode_flags, field_region, fmt_hex, name_or_hex
from .palette import get_palette
from .regions import FileFormat, ParsedFile, Region, RegionKind, SectionInfo

logger = logging.getLogger(__name__)

DOS_HEADER_SIZE = 64
FILE_HEADER_SIZE = 20
SECTION_HEADER_SIZE = 40
DATA_DIRECTORY_SIZE = 8

DOS_MAGIC = 0x5A4D            # 'MZ'
PE_SIGNATURE = 0x00004550     # 'PE\0\0'
PE32_MAGIC = 0x10B
PE32PLUS_MAGIC = 0x20B


# ══════════════════════════════════════════════════════════════
#  Lookup tables
# ══════════════════════════════════════════════════════════════

MACHINE_TYPES: dict[int, str] = {
    0x014C: "Intel 386 (x86)",
    0x0162: "MIPS R3000",
    0x0166: "MIPS R4000",
    0x01C0: "ARM",
    0x01C2: "ARM Thumb",
    0x01C4: "ARM Thumb-2",
    0x01F0: "PowerPC",
    0x0200: "Intel Itanium",
    0x5032: "RISC-V 32",
    0x5064: "RISC-V 64",
    0x8664: "AMD64 (x64)",
    0xAA64: "ARM64",
}

FILE_CHARACTERISTICS: dict[int, str] = {
    0x0001: "RELOCS_STRIPPED",
    0x0002: "EXECUTABLE_IMAGE",
    0x0004: "LINE_NUMS_STRIPPED",
    0x0008: "LOCAL_SYMS_STRIPPED",
    0x0010: "AGGRESSIVE_WS_TRIM",
    0x0020: "LARGE_ADDRESS_AWARE",
    0x0080: "BYTES_REVERSED_LO",
    0x0100: "32BIT_MACHINE",
    0x0200: "DEBUG_STRIPPED",
    0x0400: "REMOVABLE_RUN_FROM_SWAP",
    0x0800: "NET_RUN_FROM_SWAP",
    0x1000: "SYSTEM",
    0x2000: "DLL",
    0x4000: "UP_SYSTEM_ONLY",
    0x8000: "BYTES_REVERSED_HI",
}

DLL_CHARACTERISTICS: dict[int, str] = {
    0x0020: "HIGH_ENTROPY_VA",
    0x0040: "DYNAMIC_BASE",
    0x0080: "FORCE_INTEGRITY",
    0x0100: "NX_COMPAT",
    0x0200: "NO_ISOLATION",
    0x0400: "NO_SEH",
    0x0800: "NO_BIND",
    0x1000: "APPCONTAINER",
    0x2000: "WDM_DRIVER",
    0x4000: "GUARD_CF",
    0x8000: "TERMINAL_SERVER_AWARE",
}

SECTION_CHARACTERISTICS: dict[int, str] = {
    0x00000020: "CNT_CODE",
    0x00000040: "CNT_INITIALIZED_DATA",
    0x00000080: "CNT_UNINITIALIZED_DATA",
    0x00000200: "LNK_INFO",
    0x00000800: "LNK_REMOVE",
    0x00001000: "LNK_COMDAT",
    0x00008000: "GPREL",
    0x01000000: "LNK_NRELOC_OVFL",
    0x02000000: "MEM_DISCARDABLE",
    0x04000000: "MEM_NOT_CACHED",
    0x08000000: "MEM_NOT_PAGED",
    0x10000000: "MEM_SHARED",
    0x20000000: "MEM_EXECUTE",
    0x40000000: "MEM_READ",
    0x80000000: "MEM_WRITE",
}

SUBSYSTEMS: dict[int, str] = {
    1: "NATIVE",
    2: "WINDOWS_GUI",
    3: "WINDOWS_CUI",
    5: "OS2_CUI",
    7: "POSIX_CUI",
    9: "WINDOWS_CE_GUI",
    10: "EFI_APPLICATION",
    11: "EFI_BOOT_SERVICE_DRIVER",
    12: "EFI_RUNTIME_DRIVER",
    13: "EFI_ROM",
    14: "XBOX",
    16: "WINDOWS_BOOT_APPLICATION",
}

DATA_DIRECTORY_NAMES = (
    "Export", "Import", "Resource", "Exception", "Security", "BaseReloc",
    "Debug", "Architecture", "GlobalPtr", "TLS", "LoadConfig", "BoundImport",
    "IAT", "DelayImport", "COM", "Reserved",
)

# Rendered as decimal; every other optional-header field as hex
_DECIMAL_FIELDS = {
    "MajorLinkerVersion", "MinorLinkerVersion",
    "MajorOperatingSystemVersion", "MinorOperatingSystemVersion",
    "MajorImageVersion", "MinorImageVersion",
    "MajorSubsystemVersion", "MinorSubsystemVersion",
    "Win32VersionValue", "NumberOfRvaAndSizes",
}

_FIELD_NOTES = {
    "AddressOfEntryPoint": "RVA of entry point",
    "ImageBase": "Preferred load address",
    "SectionAlignment": "Alignment in memory",
    "FileAlignment": "Alignment on disk",
    "SizeOfHeaders": "Combined size of all headers",
}


def _optional_header_layout(is64: bool) -> list[tuple[str, int]]:
    """(name, width) for every fixed optional-header field, in file order."""
    ptr = 8 if is64 else 4
    layout = [
        ("Magic", 2),
        ("MajorLinkerVersion", 1),
        ("MinorLinkerVersion", 1),
        ("SizeOfCode", 4),
        ("SizeOfInitializedData", 4),
        ("SizeOfUninitializedData", 4),
        ("AddressOfEntryPoint", 4),
        ("BaseOfCode", 4),
    ]
    if not is64:
        layout.append(("BaseOfData", 4))
    layout += [
        ("ImageBase", ptr),
        ("SectionAlignment", 4),
        ("FileAlignment", 4),
        ("MajorOperatingSystemVersion", 2),
        ("MinorOperatingSystemVersion", 2),
        ("MajorImageVersion", 2),
        ("MinorImageVersion", 2),
        ("MajorSubsystemVersion", 2),
        ("MinorSubsystemVersion", 2),
        ("Win32VersionValue", 4),
        ("SizeOfImage", 4),
        ("SizeOfHeaders", 4),
        ("CheckSum", 4),
        ("Subsystem", 2),
        ("DllCharacteristics", 2),
        ("SizeOfStackReserve", ptr),
        ("SizeOfStackCommit", ptr),
        ("SizeOfHeapReserve", ptr),
        ("SizeOfHeapCommit", ptr),
        ("LoaderFlags", 4),
        ("NumberOfRvaAndSizes", 4),
    ]
    return layout


# ══════════════════════════════════════════════════════════════
#  Main entry point
# ══════════════════════════════════════════════════════════════

def parse_pe(
    data,
    name: str = "",
    dark: bool = True,
    config: Optional[ParserConfig] = None,
) -> ParsedFile:
    """Parse a PE image. Never raises; failures come back as is_valid=False.

    Args:
        data: File bytes (bytes, bytearray or read-only mmap)
        name: Display name
        dark: Palette selector (affects Region.color only)
        config: Limits; DEFAULT_CONFIG when omitted

    Returns:
        ParsedFile with format PE
    """
    config = config or DEFAULT_CONFIG
    palette = get_palette(dark)
    reader = ByteReader(data, little_endian=True)
    regions: list[Region] = []
    sections: list[SectionInfo] = []

    if reader.size < DOS_HEADER_SIZE:
        return ParsedFile.failed(name, data, FileFormat.PE, "File too small")

    try:
        _walk(reader, regions, sections, palette, config)
    except StructuralError as e:
        return ParsedFile.failed(name, data, FileFormat.PE, e.message, regions)
    except TruncationError as e:
        logger.debug("PE header truncated: %s", e)
        return ParsedFile.failed(
            name, data, FileFormat.PE, f"Truncated PE header: {e.message}", regions)

    _fill_gaps(regions, reader.size, palette)

    return ParsedFile(
        name=name,
        size=reader.size,
        data=data,
        format=FileFormat.PE,
        regions=regions,
        sections=sections,
    )


def _walk(
    reader: ByteReader,
    regions: list[Region],
    sections: list[SectionInfo],
    palette: dict,
    config: ParserConfig,
):
    """Fill `regions`/`sections` in place so a failure keeps partial output."""
    # ── DOS header ──
    e_magic = reader.u16(0)
    if e_magic != DOS_MAGIC:
        raise StructuralError("Invalid DOS signature (not MZ)")

    e_lfanew = reader.u32(0x3C)
    dos = Region(
        name="DOS Header",
        offset=0,
        size=DOS_HEADER_SIZE,
        kind=RegionKind.HEADER,
        color=palette["DOS"],
        description="Legacy DOS header",
        details={"e_magic": fmt_hex(e_magic, 4), "e_lfanew": fmt_hex(e_lfanew, 8)},
    )
    dos.add_child(field_region("e_magic", 0, 2, palette, "MZ", "DOS signature"))
    dos.add_child(field_region(
        "e_lfanew", 0x3C, 4, palette, fmt_hex(e_lfanew, 8), "Offset to NT headers"))
    regions.append(dos)

    if e_lfanew + 4 > reader.size:
        raise StructuralError("Invalid PE offset")

    # ── DOS stub ──
    if e_lfanew > DOS_HEADER_SIZE:
        regions.append(Region(
            name="DOS Stub",
            offset=DOS_HEADER_SIZE,
            size=e_lfanew - DOS_HEADER_SIZE,
            kind=RegionKind.DATA,
            color=palette["DOS"],
            description="Real-mode stub program",
        ))

    # ── NT headers ──
    if reader.u32(e_lfanew) != PE_SIGNATURE:
        raise StructuralError("Invalid PE signature")

    fh_off = e_lfanew + 4
    if not reader.has(fh_off, FILE_HEADER_SIZE):
        raise StructuralError("File header truncated")

    size_of_opt = reader.u16(fh_off + 16)
    nt_size = min(4 + FILE_HEADER_SIZE + size_of_opt, reader.size - e_lfanew)
    nt = Region(
        name="NT Headers",
        offset=e_lfanew,
        size=nt_size,
        kind=RegionKind.HEADER,
        color=palette["NT"],
    )
    nt.add_child(field_region("Signature", e_lfanew, 4, palette, "PE\\0\\0"))
    nt.add_child(_file_header(reader, fh_off, palette))

    opt_off = fh_off + FILE_HEADER_SIZE
    if size_of_opt > 0:
        opt = _optional_header(reader, opt_off, size_of_opt, palette, config)
        if opt is not None:
            nt.add_child(opt)
    regions.append(nt)

    # ── Section headers + data ──
    num_sections = reader.u16(fh_off + 2)
    sh_off = opt_off + size_of_opt
    _section_table(reader, sh_off, num_sections, regions, sections, palette)


# ══════════════════════════════════════════════════════════════
#  Header pieces
# ══════════════════════════════════════════════════════════════

def _file_header(reader: ByteReader, off: int, palette: dict) -> Region:
    machine = reader.u16(off)
    num_sections = reader.u16(off + 2)
    timestamp = reader.u32(off + 4)
    sym_ptr = reader.u32(off + 8)
    num_syms = reader.u32(off + 12)
    size_of_opt = reader.u16(off + 16)
    characteristics = reader.u16(off + 18)

    try:
        stamp = datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
    except (OverflowError, OSError, ValueError):
        stamp = "Invalid timestamp"

    region = Region(
        name="File Header",
        offset=off,
        size=FILE_HEADER_SIZE,
        kind=RegionKind.HEADER,
        color=palette["NT"],
        details={
            "Machine": fmt_hex(machine, 4),
            "NumberOfSections": num_sections,
            "Characteristics": fmt_hex(characteristics, 4),
        },
    )
    for child in (
        field_region("Machine", off, 2, palette, fmt_hex(machine, 4),
                     MACHINE_TYPES.get(machine, "Unknown")),
        field_region("NumberOfSections", off + 2, 2, palette, num_sections,
                     "Number of sections"),
        field_region("TimeDateStamp", off + 4, 4, palette, fmt_hex(timestamp, 8), stamp),
        field_region("PointerToSymbolTable", off + 8, 4, palette, fmt_hex(sym_ptr, 8),
                     "Offset to COFF symbol table"),
        field_region("NumberOfSymbols", off + 12, 4, palette, num_syms,
                     "Number of symbols"),
        field_region("SizeOfOptionalHeader", off + 16, 2, palette, size_of_opt,
                     "Size of the optional header"),
        field_region("Characteristics", off + 18, 2, palette,
                     fmt_hex(characteristics, 4),
                     decode_flags(characteristics, FILE_CHARACTERISTICS)),
    ):
        region.add_child(child)
    return region


def _optional_header(
    reader: ByteReader,
    off: int,
    declared_size: int,
    palette: dict,
    config: ParserConfig,
) -> Optional[Region]:
    """Decode the optional header; fields past the buffer or declared size are dropped."""
    size = min(declared_size, reader.remaining(off))
    if size < 2:
        return None

    magic = reader.u16(off)
    is64 = magic == PE32PLUS_MAGIC
    if magic == PE32PLUS_MAGIC:
        kind_text = "PE32+ (64-bit)"
    elif magic == PE32_MAGIC:
        kind_text = "PE32 (32-bit)"
    else:
        kind_text = f"Unknown magic {fmt_hex(magic, 4)} (read as PE32)"

    region = Region(
        name="Optional Header",
        offset=off,
        size=size,
        kind=RegionKind.HEADER,
        color=palette["OPTIONAL"],
        description=kind_text,
        details={"Magic": fmt_hex(magic, 4)},
    )

    values: dict[str, int] = {}
    pos = off
    for field_name, width in _optional_header_layout(is64):
        if pos + width > off + size:
            logger.debug("Optional header ends before %s", field_name)
            break
        raw = reader.uint(pos, width)
        values[field_name] = raw
        if field_name == "Magic":
            desc = kind_text
        elif field_name == "Subsystem":
            desc = SUBSYSTEMS.get(raw, "Unknown")
        elif field_name == "DllCharacteristics":
            desc = decode_flags(raw, DLL_CHARACTERISTICS)
        else:
            desc = _FIELD_NOTES.get(field_name)
        shown = raw if field_name in _DECIMAL_FIELDS else fmt_hex(raw)
        region.add_child(field_region(field_name, pos, width, palette, shown, desc))
        pos += width

    if "AddressOfEntryPoint" in values:
        region.details["AddressOfEntryPoint"] = fmt_hex(values["AddressOfEntryPoint"], 8)
    if "ImageBase" in values:
        region.details["ImageBase"] = fmt_hex(values["ImageBase"])

    if "NumberOfRvaAndSizes" in values:
        dirs = _data_directories(
            reader, pos, off + size, values["NumberOfRvaAndSizes"], palette, config)
        if dirs is not None:
            region.add_child(dirs)
    return region


def _data_directories(
    reader: ByteReader,
    off: int,
    limit: int,
    declared_count: int,
    palette: dict,
    config: ParserConfig,
) -> Optional[Region]:
    count = min(declared_count, config.pe_max_data_directories)
    span = min(count * DATA_DIRECTORY_SIZE, max(0, limit - off))
    if count == 0 or span == 0:
        return None

    region = Region(
        name="Data Directories",
        offset=off,
        size=span,
        kind=RegionKind.TABLE_ENTRY,
        color=palette["DATA_DIR"],
    )
    for i in range(count):
        entry_off = off + i * DATA_DIRECTORY_SIZE
        if entry_off + DATA_DIRECTORY_SIZE > limit:
            break
        rva = reader.u32(entry_off)
        size = reader.u32(entry_off + 4)
        if rva == 0 and size == 0:
            continue
        entry = Region(
            name=f"{DATA_DIRECTORY_NAMES[i]} Directory",
            offset=entry_off,
            size=DATA_DIRECTORY_SIZE,
            kind=RegionKind.TABLE_ENTRY,
            color=palette["DATA_DIR"],
            details={"RVA": fmt_hex(rva, 8), "Size": fmt_hex(size, 8)},
        )
        entry.add_child(field_region("RVA", entry_off, 4, palette, fmt_hex(rva, 8)))
        entry.add_child(field_region("Size", entry_off + 4, 4, palette, fmt_hex(size, 8)))
        region.add_child(entry)
    return region


def _section_table(
    reader: ByteReader,
    sh_off: int,
    num_sections: int,
    regions: list[Region],
    sections: list[SectionInfo],
    palette: dict,
):
    if num_sections == 0 or sh_off >= reader.size:
        return

    fits = min(num_sections, reader.remaining(sh_off) // SECTION_HEADER_SIZE)
    if fits < num_sections:
        logger.debug("Section table truncated: %d of %d headers fit", fits, num_sections)
    if fits == 0:
        return

    table = Region(
        name="Section Headers",
        offset=sh_off,
        size=fits * SECTION_HEADER_SIZE,
        kind=RegionKind.TABLE_ENTRY,
        color=palette["SECTION_HEADER"],
    )
    data_regions: list[Region] = []

    for i in range(fits):
        off = sh_off + i * SECTION_HEADER_SIZE
        sec_name = reader.fixed_string(off, 8)
        virtual_size = reader.u32(off + 8)
        virtual_address = reader.u32(off + 12)
        raw_size = reader.u32(off + 16)
        raw_ptr = reader.u32(off + 20)
        characteristics = reader.u32(off + 36)

        sections.append(SectionInfo(
            name=sec_name,
            virtual_address=virtual_address,
            virtual_size=virtual_size,
            file_offset=raw_ptr,
            file_size=raw_size,
        ))

        header = Region(
            name=f"Header: {sec_name}",
            offset=off,
            size=SECTION_HEADER_SIZE,
            kind=RegionKind.TABLE_ENTRY,
            color=palette["SECTION_HEADER"],
            details={
                "Name": sec_name,
                "VirtualSize": fmt_hex(virtual_size, 8),
                "VirtualAddress": fmt_hex(virtual_address, 8),
                "RawSize": fmt_hex(raw_size, 8),
                "RawPtr": fmt_hex(raw_ptr, 8),
                "Characteristics": decode_flags(characteristics, SECTION_CHARACTERISTICS),
            },
        )
        header.add_child(field_region("Name", off, 8, palette, sec_name))
        header.add_child(field_region(
            "VirtualSize", off + 8, 4, palette, fmt_hex(virtual_size, 8)))
        header.add_child(field_region(
            "VirtualAddress", off + 12, 4, palette, fmt_hex(virtual_address, 8)))
        header.add_child(field_region(
            "SizeOfRawData", off + 16, 4, palette, fmt_hex(raw_size, 8)))
        header.add_child(field_region(
            "PointerToRawData", off + 20, 4, palette, fmt_hex(raw_ptr, 8)))
        header.add_child(field_region(
            "Characteristics", off + 36, 4, palette, fmt_hex(characteristics, 8),
            decode_flags(characteristics, SECTION_CHARACTERISTICS)))
        table.add_child(header)

        if raw_size > 0 and 0 < raw_ptr < reader.size:
            data_regions.append(Region(
                name=f"Section: {sec_name}",
                offset=raw_ptr,
                size=min(raw_size, reader.size - raw_ptr),
                kind=RegionKind.DATA,
                color=palette["SECTION_DATA"],
                description=f"Raw data for section {sec_name}",
            ))

    regions.append(table)
    data_regions.sort(key=lambda r: r.offset)
    regions.extend(data_regions)


def _fill_gaps(regions: list[Region], file_size: int, palette: dict):
    """
    Sort top-level regions by offset and report every uncovered byte range.

    Gaps between structures (header padding before the first section,
    slack between sections) become "Overlay / Padding"; bytes past the
    furthest structure become "Overlay / EOF".
    """
    regions.sort(key=lambda r: r.offset)
    gaps = []
    covered = 0
    for region in regions:
        if region.offset > covered:
            gaps.append(Region(
                name="Overlay / Padding",
                offset=covered,
                size=region.offset - covered,
                kind=RegionKind.UNKNOWN,
                color=palette["OVERLAY"],
                description="Bytes not claimed by any header or section",
            ))
        covered = max(covered, region.end)

    if covered < file_size:
        gaps.append(Region(
            name="Overlay / EOF",
            offset=covered,
            size=file_size - covered,
            kind=RegionKind.UNKNOWN,
            color=palette["OVERLAY"],
            description="Data appended past the last mapped structure",
        ))

    regions.extend(gaps)
    regions.sort(key=lambda r: r.offset)
