"""
ELF Parser — ELF32 / ELF64, little- and big-endian.

LAYOUT WALKED
─────────────
  e_ident (16 bytes: magic, class, data encoding, version, OS/ABI)
  ELF header (52 bytes for ELF32, 64 for ELF64)
  Program headers at e_phoff  (e_phnum × e_phentsize)
  Section headers at e_shoff  (e_shnum × e_shentsize)
  Section data (skipped for SHT_NOBITS)

The class byte picks the pointer width (4 or 8) and the data byte picks
the byte order used for every field after e_ident. Section names are
resolved in a second pass once the e_shstrndx string table is known.
A stripped binary with no section headers still gets address mapping
from its PT_LOAD segments.
"""

from __future__ import annotations

import logging
from typing import Optional

from .byte_reader import ByteReader
from .config import ParserConfig, DEFAULT_CONFIG
from .errors import StructuralError, TruncationError
from .fields import decode_flags, field_region, fmt_hex, name_or_hex
from .palette import get_palette
from .regions import FileFormat, ParsedFile, Region, RegionKind, SectionInfo

logger = logging.getLogger(__name__)

ELF_MAGIC = b"\x7FELF"
EI_NIDENT = 16
EI_CLASS = 4
EI_DATA = 5
EI_VERSION = 6
EI_OSABI = 7
EI_ABIVERSION = 8

ELFCLASS32 = 1
ELFCLASS64 = 2
ELFDATA2LSB = 1
ELFDATA2MSB = 2

SHT_NULL = 0
SHT_STRTAB = 3
SHT_NOBITS = 8
PT_LOAD = 1

# Smallest entry sizes this parser can decode
_PHDR_MIN = {False: 32, True: 56}
_SHDR_MIN = {False: 40, True: 64}


# ══════════════════════════════════════════════════════════════
#  Lookup tables
# ══════════════════════════════════════════════════════════════

E_TYPES: dict[int, str] = {
    0: "ET_NONE",
    1: "ET_REL (Relocatable)",
    2: "ET_EXEC (Executable)",
    3: "ET_DYN (Shared Object)",
    4: "ET_CORE (Core File)",
}

MACHINE_TYPES: dict[int, str] = {
    0x00: "No Machine",
    0x02: "SPARC",
    0x03: "x86",
    0x08: "MIPS",
    0x14: "PowerPC",
    0x15: "PowerPC64",
    0x16: "S390",
    0x28: "ARM",
    0x2B: "SPARC V9",
    0x32: "IA-64",
    0x3E: "x86-64",
    0xB7: "AArch64",
    0xF3: "RISC-V",
    0xF7: "BPF",
    0x102: "LoongArch",
}

OSABI_NAMES: dict[int, str] = {
    0: "System V",
    1: "HP-UX",
    2: "NetBSD",
    3: "Linux",
    6: "Solaris",
    7: "AIX",
    8: "IRIX",
    9: "FreeBSD",
    12: "OpenBSD",
    64: "ARM EABI",
    97: "ARM",
    255: "Standalone",
}

PT_TYPES: dict[int, str] = {
    0: "PT_NULL",
    1: "PT_LOAD",
    2: "PT_DYNAMIC",
    3: "PT_INTERP",
    4: "PT_NOTE",
    5: "PT_SHLIB",
    6: "PT_PHDR",
    7: "PT_TLS",
    0x6474E550: "PT_GNU_EH_FRAME",
    0x6474E551: "PT_GNU_STACK",
    0x6474E552: "PT_GNU_RELRO",
    0x6474E553: "PT_GNU_PROPERTY",
}

SH_TYPES: dict[int, str] = {
    0: "SHT_NULL",
    1: "SHT_PROGBITS",
    2: "SHT_SYMTAB",
    3: "SHT_STRTAB",
    4: "SHT_RELA",
    5: "SHT_HASH",
    6: "SHT_DYNAMIC",
    7: "SHT_NOTE",
    8: "SHT_NOBITS",
    9: "SHT_REL",
    10: "SHT_SHLIB",
    11: "SHT_DYNSYM",
    14: "SHT_INIT_ARRAY",
    15: "SHT_FINI_ARRAY",
    16: "SHT_PREINIT_ARRAY",
    17: "SHT_GROUP",
    18: "SHT_SYMTAB_SHNDX",
    0x6FFFFFF6: "SHT_GNU_HASH",
    0x6FFFFFFD: "SHT_GNU_verdef",
    0x6FFFFFFE: "SHT_GNU_verneed",
    0x6FFFFFFF: "SHT_GNU_versym",
}

SH_FLAGS: dict[int, str] = {
    0x001: "WRITE",
    0x002: "ALLOC",
    0x004: "EXECINSTR",
    0x010: "MERGE",
    0x020: "STRINGS",
    0x040: "INFO_LINK",
    0x080: "LINK_ORDER",
    0x100: "OS_NONCONFORMING",
    0x200: "GROUP",
    0x400: "TLS",
    0x800: "COMPRESSED",
}


def segment_flags(p_flags: int) -> str:
    """PF_R/PF_W/PF_X rendered the way readelf does ('R E', 'RW ')."""
    return (
        ("R" if p_flags & 0x4 else "-")
        + ("W" if p_flags & 0x2 else "-")
        + ("X" if p_flags & 0x1 else "-")
    )


# ══════════════════════════════════════════════════════════════
#  Main entry point
# ══════════════════════════════════════════════════════════════

def parse_elf(
    data,
    name: str = "",
    dark: bool = True,
    config: Optional[ParserConfig] = None,
) -> ParsedFile:
    """Parse an ELF object. Never raises; failures come back as is_valid=False."""
    config = config or DEFAULT_CONFIG
    palette = get_palette(dark)
    size = len(data)

    if size < EI_NIDENT:
        return ParsedFile.failed(name, data, FileFormat.ELF, "File too small")
    if bytes(data[:4]) != ELF_MAGIC:
        return ParsedFile.failed(name, data, FileFormat.ELF, "Invalid ELF magic")

    regions: list[Region] = []
    sections: list[SectionInfo] = []
    try:
        _walk(data, regions, sections, palette, config)
    except StructuralError as e:
        return ParsedFile.failed(name, data, FileFormat.ELF, e.message, regions)
    except TruncationError as e:
        logger.debug("ELF header truncated: %s", e)
        return ParsedFile.failed(
            name, data, FileFormat.ELF, f"Truncated ELF header: {e.message}", regions)

    regions.sort(key=lambda r: r.offset)
    return ParsedFile(
        name=name,
        size=size,
        data=data,
        format=FileFormat.ELF,
        regions=regions,
        sections=sections,
    )


def _walk(data, regions, sections, palette, config):
    ident = ByteReader(data)
    ei_class = ident.u8(EI_CLASS)
    ei_data = ident.u8(EI_DATA)
    if ei_class not in (ELFCLASS32, ELFCLASS64):
        raise StructuralError(f"Unsupported ELF class {ei_class}")

    is64 = ei_class == ELFCLASS64
    is_le = ei_data != ELFDATA2MSB
    reader = ident.with_endian(is_le)
    ptr = 8 if is64 else 4
    header_size = 64 if is64 else 52

    # ── ELF header ──
    hdr = _elf_header(reader, is64, ei_class, ei_data, header_size, palette)
    regions.append(hdr)

    off = 24
    e_entry = reader.uint(off, ptr)
    e_phoff = reader.uint(off + ptr, ptr)
    e_shoff = reader.uint(off + 2 * ptr, ptr)
    off += 3 * ptr + 4                                      # skip e_flags
    e_phentsize = reader.u16(off + 2)
    e_phnum = reader.u16(off + 4)
    e_shentsize = reader.u16(off + 6)
    e_shnum = reader.u16(off + 8)
    e_shstrndx = reader.u16(off + 10)
    logger.debug(
        "ELF%d %s entry=0x%X phnum=%d shnum=%d",
        64 if is64 else 32, "LE" if is_le else "BE", e_entry, e_phnum, e_shnum)

    # ── Program headers ──
    segments = _program_headers(
        reader, is64, e_phoff, e_phnum, e_phentsize, regions, palette)

    # ── Section headers ──
    _section_headers(
        reader, is64, e_shoff, e_shnum, e_shentsize, e_shstrndx,
        regions, sections, palette, config)

    if not sections:
        _segments_as_sections(reader, segments, regions, sections, palette)


# ══════════════════════════════════════════════════════════════
#  Pieces
# ══════════════════════════════════════════════════════════════

def _elf_header(reader, is64, ei_class, ei_data, header_size, palette) -> Region:
    if not reader.has(0, header_size):
        raise TruncationError(
            f"need {header_size} header bytes, file has {reader.size}",
            offset=0, size=header_size)

    ptr = 8 if is64 else 4
    e_type = reader.u16(16)
    e_machine = reader.u16(18)
    osabi = reader.u8(EI_OSABI)
    entry = reader.uint(24, ptr)
    phoff = reader.uint(24 + ptr, ptr)
    shoff = reader.uint(24 + 2 * ptr, ptr)
    flags_off = 24 + 3 * ptr
    e_flags = reader.u32(flags_off)
    shstrndx = reader.u16(flags_off + 14)

    class_text = "64-bit" if is64 else "32-bit"
    if ei_data == ELFDATA2LSB:
        data_text = "Little Endian"
    elif ei_data == ELFDATA2MSB:
        data_text = "Big Endian"
    else:
        data_text = f"Invalid ({ei_data}), read as Little Endian"
    type_text = E_TYPES.get(e_type, "Unknown")
    machine_text = MACHINE_TYPES.get(e_machine, f"Unknown ({fmt_hex(e_machine)})")
    osabi_text = name_or_hex(OSABI_NAMES, osabi)

    region = Region(
        name="ELF Header",
        offset=0,
        size=header_size,
        kind=RegionKind.HEADER,
        color=palette["ELF_HEADER"],
        description=f"ELF {class_text} {'LSB' if ei_data != ELFDATA2MSB else 'MSB'} {type_text}",
        details={
            "Class": class_text,
            "Data": data_text,
            "OS/ABI": osabi_text,
            "Type": type_text,
            "Machine": machine_text,
            "Entry": fmt_hex(entry),
            "Flags": fmt_hex(e_flags),
            "PHOffset": fmt_hex(phoff),
            "SHOffset": fmt_hex(shoff),
            "SHStringIdx": shstrndx,
        },
    )
    for child in (
        field_region("Magic", 0, 4, palette, "\\x7FELF"),
        field_region("Class", EI_CLASS, 1, palette, ei_class, class_text),
        field_region("Data", EI_DATA, 1, palette, ei_data, data_text),
        field_region("Version", EI_VERSION, 1, palette, reader.u8(EI_VERSION)),
        field_region("OS/ABI", EI_OSABI, 1, palette, osabi, osabi_text),
        field_region("ABI Version", EI_ABIVERSION, 1, palette, reader.u8(EI_ABIVERSION)),
        field_region("Type", 16, 2, palette, fmt_hex(e_type), type_text),
        field_region("Machine", 18, 2, palette, fmt_hex(e_machine), machine_text),
        field_region("Version", 20, 4, palette, reader.u32(20)),
        field_region("Entry", 24, ptr, palette, fmt_hex(entry), "Entry point address"),
        field_region("PHOffset", 24 + ptr, ptr, palette, fmt_hex(phoff)),
        field_region("SHOffset", 24 + 2 * ptr, ptr, palette, fmt_hex(shoff)),
        field_region("Flags", flags_off, 4, palette, fmt_hex(e_flags)),
        field_region("EHSize", flags_off + 4, 2, palette, reader.u16(flags_off + 4)),
        field_region("PHEntSize", flags_off + 6, 2, palette, reader.u16(flags_off + 6)),
        field_region("PHNum", flags_off + 8, 2, palette, reader.u16(flags_off + 8)),
        field_region("SHEntSize", flags_off + 10, 2, palette, reader.u16(flags_off + 10)),
        field_region("SHNum", flags_off + 12, 2, palette, reader.u16(flags_off + 12)),
        field_region("SHStrNdx", flags_off + 14, 2, palette, shstrndx),
    ):
        region.add_child(child)
    return region


def _table_fit(reader: ByteReader, table_off: int, count: int, entsize: int) -> int:
    """Number of whole entries of a table that lie inside the buffer."""
    if table_off <= 0 or count == 0 or entsize == 0 or table_off >= reader.size:
        return 0
    fits = min(count, reader.remaining(table_off) // entsize)
    if fits < count:
        logger.debug(
            "ELF table at 0x%X truncated: %d of %d entries fit", table_off, fits, count)
    return fits


def _program_headers(reader, is64, phoff, phnum, phentsize, regions, palette) -> list[dict]:
    """Decode program headers; returns the decoded entries for later use."""
    if phentsize and phentsize < _PHDR_MIN[is64]:
        logger.debug("Program header entry size %d too small, skipping table", phentsize)
        return []
    fits = _table_fit(reader, phoff, phnum, phentsize)
    if fits == 0:
        return []

    table = Region(
        name="Program Headers",
        offset=phoff,
        size=fits * phentsize,
        kind=RegionKind.TABLE_ENTRY,
        color=palette["PROGRAM_HEADER"],
    )
    segments = []
    for i in range(fits):
        off = phoff + i * phentsize
        if is64:
            p_type = reader.u32(off)
            p_flags = reader.u32(off + 4)
            p_offset = reader.u64(off + 8)
            p_vaddr = reader.u64(off + 16)
            p_filesz = reader.u64(off + 32)
            p_memsz = reader.u64(off + 40)
            p_align = reader.u64(off + 48)
        else:
            p_type = reader.u32(off)
            p_offset = reader.u32(off + 4)
            p_vaddr = reader.u32(off + 8)
            p_filesz = reader.u32(off + 16)
            p_memsz = reader.u32(off + 20)
            p_flags = reader.u32(off + 24)
            p_align = reader.u32(off + 28)

        type_text = name_or_hex(PT_TYPES, p_type)
        segments.append({
            "index": i, "type": p_type, "offset": p_offset, "vaddr": p_vaddr,
            "filesz": p_filesz, "memsz": p_memsz, "flags": p_flags,
        })
        table.add_child(Region(
            name=f"PH {i}: {type_text}",
            offset=off,
            size=phentsize,
            kind=RegionKind.TABLE_ENTRY,
            color=palette["PROGRAM_HEADER"],
            description=segment_flags(p_flags),
            details={
                "Type": type_text,
                "Offset": fmt_hex(p_offset),
                "VAddr": fmt_hex(p_vaddr),
                "FileSz": fmt_hex(p_filesz),
                "MemSz": fmt_hex(p_memsz),
                "Flags": f"{fmt_hex(p_flags)} ({segment_flags(p_flags)})",
                "Align": fmt_hex(p_align),
            },
        ))
    regions.append(table)
    return segments


def _section_headers(
    reader, is64, shoff, shnum, shentsize, shstrndx, regions, sections, palette, config,
):
    if shentsize and shentsize < _SHDR_MIN[is64]:
        logger.debug("Section header entry size %d too small, skipping table", shentsize)
        return
    fits = _table_fit(reader, shoff, shnum, shentsize)
    if fits == 0:
        return

    # First pass: raw headers
    raw = []
    for i in range(fits):
        off = shoff + i * shentsize
        if is64:
            raw.append({
                "index": i, "header": off,
                "name_idx": reader.u32(off),
                "type": reader.u32(off + 4),
                "flags": reader.u64(off + 8),
                "addr": reader.u64(off + 16),
                "offset": reader.u64(off + 24),
                "size": reader.u64(off + 32),
                "entsize": reader.u64(off + 56),
            })
        else:
            raw.append({
                "index": i, "header": off,
                "name_idx": reader.u32(off),
                "type": reader.u32(off + 4),
                "flags": reader.u32(off + 8),
                "addr": reader.u32(off + 12),
                "offset": reader.u32(off + 16),
                "size": reader.u32(off + 20),
                "entsize": reader.u32(off + 36),
            })

    strtab_off = -1
    if 0 < shstrndx < len(raw) and raw[shstrndx]["type"] == SHT_STRTAB:
        strtab_off = raw[shstrndx]["offset"]

    # Second pass: names, regions, address map
    table = Region(
        name="Section Headers",
        offset=shoff,
        size=fits * shentsize,
        kind=RegionKind.TABLE_ENTRY,
        color=palette["SECTION_HEADER"],
    )
    data_regions: list[Region] = []
    for sec in raw:
        sec_name = f"Section {sec['index']}"
        if strtab_off > 0 and sec["name_idx"] > 0:
            name_off = strtab_off + sec["name_idx"]
            if name_off < reader.size:
                sec_name = reader.cstring(name_off, config.max_string_length)

        type_text = name_or_hex(SH_TYPES, sec["type"])
        flags_text = decode_flags(sec["flags"], SH_FLAGS)
        table.add_child(Region(
            name=f"SH: {sec_name or type_text}",
            offset=sec["header"],
            size=shentsize,
            kind=RegionKind.TABLE_ENTRY,
            color=palette["SECTION_HEADER"],
            description=flags_text,
            details={
                "Name": sec_name,
                "Type": type_text,
                "Addr": fmt_hex(sec["addr"]),
                "Offset": fmt_hex(sec["offset"]),
                "Size": fmt_hex(sec["size"]),
                "EntSize": fmt_hex(sec["entsize"]),
                "Flags": f"{fmt_hex(sec['flags'])} ({flags_text})",
            },
        ))

        if sec["type"] == SHT_NULL:
            continue
        sections.append(SectionInfo(
            name=sec_name,
            virtual_address=sec["addr"],
            virtual_size=sec["size"],
            file_offset=sec["offset"],
            file_size=0 if sec["type"] == SHT_NOBITS else sec["size"],
        ))

        if sec["type"] != SHT_NOBITS and sec["size"] > 0 and 0 < sec["offset"] < reader.size:
            data_regions.append(Region(
                name=f"Section: {sec_name}",
                offset=sec["offset"],
                size=min(sec["size"], reader.size - sec["offset"]),
                kind=RegionKind.DATA,
                color=palette["SECTION_DATA"],
                description=f"{type_text} - {sec_name}",
            ))

    regions.append(table)
    regions.extend(data_regions)


def _segments_as_sections(reader, segments, regions, sections, palette):
    """Stripped binary: expose PT_LOAD segments for display and address mapping."""
    for seg in segments:
        if seg["type"] != PT_LOAD or seg["filesz"] == 0:
            continue
        if seg["offset"] >= reader.size:
            continue
        label = f"Segment {seg['index']} ({segment_flags(seg['flags'])})"
        sections.append(SectionInfo(
            name=label,
            virtual_address=seg["vaddr"],
            virtual_size=seg["memsz"],
            file_offset=seg["offset"],
            file_size=seg["filesz"],
        ))
        regions.append(Region(
            name=f"Segment: {label}",
            offset=seg["offset"],
            size=min(seg["filesz"], reader.size - seg["offset"]),
            kind=RegionKind.DATA,
            color=palette["SECTION_DATA"],
            description="PT_LOAD",
        ))
