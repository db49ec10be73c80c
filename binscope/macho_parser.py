"""
Mach-O Parser — thin images and Fat/Universal binaries.

LAYOUT WALKED
─────────────
  Fat header (8 bytes, always big-endian on disk unless CIGAM)
  └─ fat_arch[nfat_arch]     20 bytes each (fat_arch_64: 32 bytes)
       └─ Slice at fat_arch.offset → a complete thin Mach-O
  Thin Mach-O
  ├─ mach_header (28 bytes) / mach_header_64 (32 bytes)
  └─ Load commands (ncmds, walked by cmdsize)
       ├─ LC_SEGMENT / LC_SEGMENT_64 → section headers + segment data
       ├─ LC_MAIN                    → entry offset
       ├─ LC_UUID                    → UUID string
       └─ dylib / dylinker / rpath   → path strings

The magic picks both word size and byte order. Inside a Fat slice,
segment and section file offsets are relative to the slice start; with
ParserConfig.fat_rebase_offsets they are rebased to absolute file
offsets so every region and SectionInfo is in whole-file coordinates.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Optional

from .byte_reader import ByteReader
from .config import ParserConfig, DEFAULT_CONFIG
from .errors import StructuralError, TruncationError
from .fields import decode_flags, field_region, fmt_hex, name_or_hex
from .palette import get_palette
from .regions import FileFormat, ParsedFile, Region, RegionKind, SectionInfo
from .signatures import (
    FAT_CIGAM, FAT_CIGAM_64, FAT_MAGIC_64, FAT_MAGICS,
    MH_CIGAM, MH_CIGAM_64, MH_MAGIC_64, THIN_MAGICS,
)

logger = logging.getLogger(__name__)

FAT_HEADER_SIZE = 8
FAT_ARCH_SIZE = 20
FAT_ARCH_64_SIZE = 32
# More arches than this is not a Universal binary (a Java class file
# carries its major version where nfat_arch would be)
FAT_MAX_ARCHS = 30

LC_REQ_DYLD = 0x80000000
LC_SEGMENT = 0x1
LC_SEGMENT_64 = 0x19
LC_UUID = 0x1B
LC_MAIN = 0x28 | LC_REQ_DYLD

SECTION_TYPE_MASK = 0xFF
_ZEROFILL_TYPES = {0x1, 0xC, 0x12}         # S_ZEROFILL, S_GB_ZEROFILL, S_THREAD_LOCAL_ZEROFILL


# ══════════════════════════════════════════════════════════════
#  Lookup tables
# ══════════════════════════════════════════════════════════════

LC_TYPES: dict[int, str] = {
    0x1: "LC_SEGMENT",
    0x2: "LC_SYMTAB",
    0x3: "LC_SYMSEG",
    0x4: "LC_THREAD",
    0x5: "LC_UNIXTHREAD",
    0x6: "LC_LOADFVMLIB",
    0x7: "LC_IDFVMLIB",
    0x8: "LC_IDENT",
    0x9: "LC_FVMFILE",
    0xA: "LC_PREPAGE",
    0xB: "LC_DYSYMTAB",
    0xC: "LC_LOAD_DYLIB",
    0xD: "LC_ID_DYLIB",
    0xE: "LC_LOAD_DYLINKER",
    0xF: "LC_ID_DYLINKER",
    0x10: "LC_PREBOUND_DYLIB",
    0x11: "LC_ROUTINES",
    0x12: "LC_SUB_FRAMEWORK",
    0x13: "LC_SUB_UMBRELLA",
    0x14: "LC_SUB_CLIENT",
    0x15: "LC_SUB_LIBRARY",
    0x16: "LC_TWOLEVEL_HINTS",
    0x17: "LC_PREBIND_CKSUM",
    0x18 | LC_REQ_DYLD: "LC_LOAD_WEAK_DYLIB",
    0x19: "LC_SEGMENT_64",
    0x1A: "LC_ROUTINES_64",
    0x1B: "LC_UUID",
    0x1C | LC_REQ_DYLD: "LC_RPATH",
    0x1D: "LC_CODE_SIGNATURE",
    0x1E: "LC_SEGMENT_SPLIT_INFO",
    0x1F | LC_REQ_DYLD: "LC_REEXPORT_DYLIB",
    0x20: "LC_LAZY_LOAD_DYLIB",
    0x21: "LC_ENCRYPTION_INFO",
    0x22: "LC_DYLD_INFO",
    0x22 | LC_REQ_DYLD: "LC_DYLD_INFO_ONLY",
    0x23 | LC_REQ_DYLD: "LC_LOAD_UPWARD_DYLIB",
    0x24: "LC_VERSION_MIN_MACOSX",
    0x25: "LC_VERSION_MIN_IPHONEOS",
    0x26: "LC_FUNCTION_STARTS",
    0x27: "LC_DYLD_ENVIRONMENT",
    0x28 | LC_REQ_DYLD: "LC_MAIN",
    0x29: "LC_DATA_IN_CODE",
    0x2A: "LC_SOURCE_VERSION",
    0x2B: "LC_DYLIB_CODE_SIGN_DRS",
    0x2C: "LC_ENCRYPTION_INFO_64",
    0x2D: "LC_LINKER_OPTION",
    0x2E: "LC_LINKER_OPTIMIZATION_HINT",
    0x2F: "LC_VERSION_MIN_TVOS",
    0x30: "LC_VERSION_MIN_WATCHOS",
    0x31: "LC_NOTE",
    0x32: "LC_BUILD_VERSION",
    0x33 | LC_REQ_DYLD: "LC_DYLD_EXPORTS_TRIE",
    0x34 | LC_REQ_DYLD: "LC_DYLD_CHAINED_FIXUPS",
}

# Commands whose payload starts with an lc_str offset at +8
_DYLIB_COMMANDS = {0xC, 0xD, 0x18 | LC_REQ_DYLD, 0x1F | LC_REQ_DYLD, 0x20, 0x23 | LC_REQ_DYLD}
_PATH_COMMANDS = {0xE, 0xF, 0x27, 0x1C | LC_REQ_DYLD}

CPU_TYPES: dict[int, str] = {
    7: "x86",
    0x1000007: "x86_64",
    12: "ARM",
    0x100000C: "ARM64",
    0x200000C: "ARM64_32",
    18: "PowerPC",
    0x1000012: "PowerPC64",
}

FILE_TYPES: dict[int, str] = {
    0x1: "MH_OBJECT",
    0x2: "MH_EXECUTE",
    0x3: "MH_FVMLIB",
    0x4: "MH_CORE",
    0x5: "MH_PRELOAD",
    0x6: "MH_DYLIB",
    0x7: "MH_DYLINKER",
    0x8: "MH_BUNDLE",
    0x9: "MH_DYLIB_STUB",
    0xA: "MH_DSYM",
    0xB: "MH_KEXT_BUNDLE",
    0xC: "MH_FILESET",
}

HEADER_FLAGS: dict[int, str] = {
    0x1: "NOUNDEFS",
    0x2: "INCRLINK",
    0x4: "DYLDLINK",
    0x8: "BINDATLOAD",
    0x10: "PREBOUND",
    0x20: "SPLIT_SEGS",
    0x80: "TWOLEVEL",
    0x100: "FORCE_FLAT",
    0x200: "NOMULTIDEFS",
    0x400: "NOFIXPREBINDING",
    0x800: "PREBINDABLE",
    0x1000: "ALLMODSBOUND",
    0x2000: "SUBSECTIONS_VIA_SYMBOLS",
    0x4000: "CANONICAL",
    0x8000: "WEAK_DEFINES",
    0x10000: "BINDS_TO_WEAK",
    0x20000: "ALLOW_STACK_EXECUTION",
    0x40000: "ROOT_SAFE",
    0x80000: "SETUID_SAFE",
    0x100000: "NO_REEXPORTED_DYLIBS",
    0x200000: "PIE",
    0x400000: "DEAD_STRIPPABLE_DYLIB",
    0x800000: "HAS_TLV_DESCRIPTORS",
    0x1000000: "NO_HEAP_EXECUTION",
    0x2000000: "APP_EXTENSION_SAFE",
}


def cpu_name(cputype: int) -> str:
    return CPU_TYPES.get(cputype) or fmt_hex(cputype & 0xFFFFFFFF)


def _packed_version(v: int) -> str:
    """xxxx.yy.zz nibble-packed dylib version."""
    return f"{v >> 16}.{(v >> 8) & 0xFF}.{v & 0xFF}"


# ══════════════════════════════════════════════════════════════
#  Main entry point
# ══════════════════════════════════════════════════════════════

def parse_macho(
    data,
    name: str = "",
    dark: bool = True,
    config: Optional[ParserConfig] = None,
) -> ParsedFile:
    """Parse a thin or Fat Mach-O. Never raises; failures come back as is_valid=False."""
    config = config or DEFAULT_CONFIG
    palette = get_palette(dark)
    size = len(data)

    if size < 28:
        return ParsedFile.failed(name, data, FileFormat.MACHO, "File too small")

    magic = ByteReader(data, little_endian=False).u32(0)
    regions: list[Region] = []
    sections: list[SectionInfo] = []

    try:
        if magic in FAT_MAGICS:
            _parse_fat(data, magic, regions, sections, palette, config)
        elif magic in THIN_MAGICS:
            slice_regions, slice_sections = _parse_slice(
                data, 0, size, palette, config)
            regions.extend(slice_regions)
            sections.extend(slice_sections)
        else:
            raise StructuralError(f"Invalid Mach-O magic {fmt_hex(magic, 8)}")
    except StructuralError as e:
        return ParsedFile.failed(name, data, FileFormat.MACHO, e.message, regions)
    except TruncationError as e:
        logger.debug("Mach-O header truncated: %s", e)
        return ParsedFile.failed(
            name, data, FileFormat.MACHO, f"Truncated Mach-O header: {e.message}", regions)

    regions.sort(key=lambda r: r.offset)
    return ParsedFile(
        name=name,
        size=size,
        data=data,
        format=FileFormat.MACHO,
        regions=regions,
        sections=sections,
    )


# ══════════════════════════════════════════════════════════════
#  Fat / Universal
# ══════════════════════════════════════════════════════════════

def _parse_fat(data, magic, regions, sections, palette, config):
    is_le = magic in (FAT_CIGAM, FAT_CIGAM_64)
    is64 = magic in (FAT_MAGIC_64, FAT_CIGAM_64)
    reader = ByteReader(data, little_endian=is_le)
    nfat = reader.u32(4)
    if nfat > FAT_MAX_ARCHS:
        raise StructuralError(f"Implausible fat arch count {nfat}")

    header = Region(
        name="Fat Header",
        offset=0,
        size=FAT_HEADER_SIZE,
        kind=RegionKind.HEADER,
        color=palette["FAT_HEADER"],
        description="Universal binary (64-bit offsets)" if is64 else "Universal binary",
        details={"Magic": fmt_hex(magic, 8), "NumArchs": nfat},
    )
    header.add_child(field_region("Magic", 0, 4, palette, fmt_hex(magic, 8)))
    header.add_child(field_region("NFatArch", 4, 4, palette, nfat))
    regions.append(header)

    arch_size = FAT_ARCH_64_SIZE if is64 else FAT_ARCH_SIZE
    taken: list[tuple[int, int]] = []

    for i in range(nfat):
        off = FAT_HEADER_SIZE + i * arch_size
        if not reader.has(off, arch_size):
            logger.debug("Fat arch table truncated at entry %d", i)
            break

        cputype = reader.i32(off)
        cpusubtype = reader.i32(off + 4)
        if is64:
            slice_off = reader.u64(off + 8)
            slice_size = reader.u64(off + 16)
            align = reader.u32(off + 24)
        else:
            slice_off = reader.u32(off + 8)
            slice_size = reader.u32(off + 12)
            align = reader.u32(off + 16)
        cpu = cpu_name(cputype)

        regions.append(Region(
            name=f"Arch Def: {cpu}",
            offset=off,
            size=arch_size,
            kind=RegionKind.TABLE_ENTRY,
            color=palette["FAT_HEADER"],
            details={
                "CpuType": cpu,
                "CpuSubtype": fmt_hex(cpusubtype & 0xFFFFFFFF),
                "Offset": fmt_hex(slice_off),
                "Size": fmt_hex(slice_size),
                "Align": align,
            },
        ))

        if slice_off == 0 or slice_off >= reader.size or slice_size == 0:
            logger.debug("Fat slice %d (%s) outside file, skipped", i, cpu)
            continue
        slice_end = min(slice_off + slice_size, reader.size)
        if any(slice_off < end and start < slice_end for start, end in taken):
            logger.debug("Fat slice %d (%s) overlaps an earlier slice, skipped", i, cpu)
            continue
        taken.append((slice_off, slice_end))

        container = Region(
            name=f"Slice: {cpu}",
            offset=slice_off,
            size=slice_end - slice_off,
            kind=RegionKind.RECORD,
            color=palette["OVERLAY"],
            description=f"Full binary for {cpu}",
        )
        try:
            slice_regions, slice_sections = _parse_slice(
                data, slice_off, slice_end, palette, config, prefix=f"[{cpu}] ")
        except (StructuralError, TruncationError) as e:
            logger.debug("Fat slice %d (%s) not parsed: %s", i, cpu, e)
            container.description = f"Unreadable slice: {e.message}"
        else:
            for region in slice_regions:
                container.add_child(region)
            sections.extend(slice_sections)
        regions.append(container)


# ══════════════════════════════════════════════════════════════
#  Thin Mach-O (one slice)
# ══════════════════════════════════════════════════════════════

def _parse_slice(
    data,
    base: int,
    limit: int,
    palette: dict,
    config: ParserConfig,
    prefix: str = "",
) -> tuple[list[Region], list[SectionInfo]]:
    """
    Parse the Mach-O image occupying [base, limit).

    Raises StructuralError for a bad magic and TruncationError if the
    header itself does not fit; load-command damage only shortens the walk.
    """
    magic = ByteReader(data, little_endian=False).u32(base)
    if magic not in THIN_MAGICS:
        raise StructuralError(f"Invalid Mach-O magic {fmt_hex(magic, 8)} at {fmt_hex(base)}")

    is_le = magic in (MH_CIGAM, MH_CIGAM_64)
    is64 = magic in (MH_MAGIC_64, MH_CIGAM_64)
    reader = ByteReader(data, little_endian=is_le)
    header_size = 32 if is64 else 28
    if base + header_size > limit:
        raise TruncationError(
            f"Mach-O header needs {header_size} bytes", offset=base, size=header_size)

    cputype = reader.i32(base + 4)
    cpusubtype = reader.i32(base + 8)
    filetype = reader.u32(base + 12)
    ncmds = reader.u32(base + 16)
    sizeofcmds = reader.u32(base + 20)
    flags = reader.u32(base + 24)
    cpu = cpu_name(cputype)
    filetype_text = name_or_hex(FILE_TYPES, filetype)
    flags_text = decode_flags(flags, HEADER_FLAGS)

    regions: list[Region] = []
    sections: list[SectionInfo] = []

    header = Region(
        name=f"{prefix}Mach-O Header",
        offset=base,
        size=header_size,
        kind=RegionKind.HEADER,
        color=palette["MACHO_HEADER"],
        description=f"{'64-bit' if is64 else '32-bit'} Mach-O ({cpu}, {'LE' if is_le else 'BE'})",
        details={
            "Magic": fmt_hex(magic, 8),
            "CpuType": cpu,
            "FileType": filetype_text,
            "NCmds": ncmds,
            "SizeOfCmds": sizeofcmds,
            "Flags": fmt_hex(flags),
        },
    )
    for child in (
        field_region("Magic", base, 4, palette, fmt_hex(magic, 8)),
        field_region("CpuType", base + 4, 4, palette, fmt_hex(cputype & 0xFFFFFFFF), cpu),
        field_region("CpuSubtype", base + 8, 4, palette, fmt_hex(cpusubtype & 0xFFFFFFFF)),
        field_region("FileType", base + 12, 4, palette, filetype, filetype_text),
        field_region("NCmds", base + 16, 4, palette, ncmds),
        field_region("SizeOfCmds", base + 20, 4, palette, sizeofcmds),
        field_region("Flags", base + 24, 4, palette, fmt_hex(flags), flags_text),
    ):
        header.add_child(child)
    if is64:
        header.add_child(field_region("Reserved", base + 28, 4, palette, reader.u32(base + 28)))
    regions.append(header)

    # ── Load commands ──
    ctx = _SliceContext(
        reader=reader, base=base, limit=limit, is64=is64, cpu=cpu, prefix=prefix,
        header_size=header_size, sizeofcmds=sizeofcmds,
        palette=palette, config=config,
    )
    commands = _load_commands(ctx, ncmds, regions, sections)
    if commands is not None:
        regions.append(commands)

    regions.sort(key=lambda r: r.offset)
    return regions, sections


@dataclass
class _SliceContext:
    """Per-slice state shared by the load-command decoders."""
    reader: ByteReader
    base: int                   # Slice start in the whole file
    limit: int                  # Slice end (exclusive)
    is64: bool
    cpu: str
    prefix: str                 # "[cpu] " inside a Fat binary
    header_size: int
    sizeofcmds: int
    palette: dict
    config: ParserConfig

    def absolute(self, file_offset: int) -> int:
        """Slice-relative file offset → whole-file offset."""
        if self.config.fat_rebase_offsets:
            return self.base + file_offset
        return file_offset


def _load_commands(ctx: _SliceContext, ncmds: int, regions, sections) -> Optional[Region]:
    reader = ctx.reader
    palette = ctx.palette
    start = ctx.base + ctx.header_size
    if start >= ctx.limit or ncmds == 0:
        return None

    count = min(ncmds, ctx.config.max_load_commands)
    if count < ncmds:
        logger.debug("Load command count %d capped at %d", ncmds, count)

    commands: list[Region] = []
    pos = start
    for i in range(count):
        if pos + 8 > ctx.limit:
            logger.debug("Load command %d starts past slice end", i)
            break
        cmd = reader.u32(pos)
        cmdsize = reader.u32(pos + 4)
        if cmdsize < 8 or pos + cmdsize > ctx.limit:
            logger.debug(
                "Load command %d at 0x%X has bad cmdsize %d, stopping walk", i, pos, cmdsize)
            break

        cmd_name = name_or_hex(LC_TYPES, cmd)
        region = Region(
            name=cmd_name,
            offset=pos,
            size=cmdsize,
            kind=RegionKind.RECORD,
            color=palette["LOAD_COMMAND"],
            details={"Command": fmt_hex(cmd), "Size": cmdsize},
        )
        region.add_child(field_region("Command", pos, 4, palette, fmt_hex(cmd), cmd_name))
        region.add_child(field_region("CmdSize", pos + 4, 4, palette, cmdsize))

        try:
            if cmd in (LC_SEGMENT, LC_SEGMENT_64):
                _segment(ctx, pos, cmdsize, cmd == LC_SEGMENT_64, region, regions, sections)
            elif cmd == LC_MAIN:
                _entry_point(ctx, pos, cmdsize, region)
            elif cmd == LC_UUID:
                _uuid(ctx, pos, cmdsize, region)
            elif cmd in _DYLIB_COMMANDS:
                _dylib(ctx, pos, cmdsize, region)
            elif cmd in _PATH_COMMANDS:
                _path_string(ctx, pos, cmdsize, region)
        except TruncationError as e:
            logger.debug("%s at 0x%X truncated: %s", cmd_name, pos, e)

        commands.append(region)
        pos += cmdsize

    span = max(ctx.sizeofcmds, pos - start)
    container = Region(
        name=f"{ctx.prefix}Load Commands",
        offset=start,
        size=min(span, ctx.limit - start),
        kind=RegionKind.RECORD,
        color=palette["LOAD_COMMAND"],
        description=f"{len(commands)} of {ncmds} commands",
    )
    for region in commands:
        container.add_child(region)
    return container


def _segment(ctx: _SliceContext, pos, cmdsize, seg64, region, regions, sections):
    reader = ctx.reader
    palette = ctx.palette
    seg_header = 72 if seg64 else 56
    if cmdsize < seg_header:
        logger.debug("Segment command at 0x%X shorter than its header", pos)
        return

    seg_name = reader.fixed_string(pos + 8, 16)
    if seg64:
        vmaddr = reader.u64(pos + 24)
        vmsize = reader.u64(pos + 32)
        fileoff = reader.u64(pos + 40)
        filesize = reader.u64(pos + 48)
        nsects = reader.u32(pos + 64)
    else:
        vmaddr = reader.u32(pos + 24)
        vmsize = reader.u32(pos + 28)
        fileoff = reader.u32(pos + 32)
        filesize = reader.u32(pos + 36)
        nsects = reader.u32(pos + 48)

    region.name = f"{region.name} ({seg_name})"
    region.details.update({
        "SegmentName": seg_name,
        "NSects": nsects,
        "VMAddr": fmt_hex(vmaddr),
        "VMSize": fmt_hex(vmsize),
        "FileOff": fmt_hex(fileoff),
        "FileSize": fmt_hex(filesize),
    })
    region.add_child(field_region("SegName", pos + 8, 16, palette, seg_name))

    # ── Section headers ──
    sect_size = 80 if seg64 else 68
    sect_off = pos + seg_header
    cmd_end = pos + cmdsize
    for _ in range(nsects):
        if sect_off + sect_size > cmd_end:
            logger.debug("Section headers of %s run past their command", seg_name)
            break
        sect_name = reader.fixed_string(sect_off, 16)
        seg_ref = reader.fixed_string(sect_off + 16, 16)
        if seg64:
            addr = reader.u64(sect_off + 32)
            size = reader.u64(sect_off + 40)
            offset = reader.u32(sect_off + 48)
            sflags = reader.u32(sect_off + 64)
        else:
            addr = reader.u32(sect_off + 32)
            size = reader.u32(sect_off + 36)
            offset = reader.u32(sect_off + 40)
            sflags = reader.u32(sect_off + 56)
        zerofill = (sflags & SECTION_TYPE_MASK) in _ZEROFILL_TYPES
        real_offset = ctx.absolute(offset) if offset else 0

        region.add_child(Region(
            name=f"Section: {sect_name}",
            offset=sect_off,
            size=sect_size,
            kind=RegionKind.TABLE_ENTRY,
            color=palette["SECTION_HEADER"],
            description="zerofill" if zerofill else None,
            details={
                "Name": sect_name,
                "Segment": seg_ref,
                "Address": fmt_hex(addr),
                "Size": fmt_hex(size),
                "Offset": fmt_hex(offset),
                "RealOffset": fmt_hex(real_offset),
                "Flags": fmt_hex(sflags, 8),
            },
        ))
        sections.append(SectionInfo(
            name=f"{ctx.prefix}{seg_ref}.{sect_name}",
            virtual_address=addr,
            virtual_size=size,
            file_offset=real_offset,
            file_size=0 if zerofill else size,
        ))
        sect_off += sect_size

    # ── Segment data ──
    if filesize == 0:
        return
    if ctx.config.macho_skip_header_overlap and fileoff < ctx.header_size + ctx.sizeofcmds:
        return
    seg_start = ctx.absolute(fileoff)
    if seg_start >= ctx.limit:
        logger.debug("Segment %s data starts past slice end", seg_name)
        return
    regions.append(Region(
        name=f"{ctx.prefix}Segment: {seg_name}",
        offset=seg_start,
        size=min(filesize, ctx.limit - seg_start),
        kind=RegionKind.DATA,
        color=palette["SEGMENT"],
        description=f"Data for {seg_name} ({ctx.cpu})",
    ))


def _entry_point(ctx: _SliceContext, pos, cmdsize, region):
    if cmdsize < 24:
        return
    entryoff = ctx.reader.u64(pos + 8)
    stacksize = ctx.reader.u64(pos + 16)
    region.details["EntryOffset"] = fmt_hex(entryoff)
    region.details["StackSize"] = fmt_hex(stacksize)
    region.add_child(field_region(
        "EntryOff", pos + 8, 8, ctx.palette, fmt_hex(entryoff), "File offset of main()"))
    region.add_child(field_region("StackSize", pos + 16, 8, ctx.palette, fmt_hex(stacksize)))


def _uuid(ctx: _SliceContext, pos, cmdsize, region):
    if cmdsize < 24:
        return
    text = str(uuid.UUID(bytes=ctx.reader.bytes_at(pos + 8, 16))).upper()
    region.details["UUID"] = text
    region.add_child(field_region("UUID", pos + 8, 16, ctx.palette, text))


def _lc_string(ctx: _SliceContext, pos, cmdsize) -> Optional[tuple[int, str]]:
    """Decode the lc_str at +8: (absolute offset, text) or None if it is out of range."""
    str_off = ctx.reader.u32(pos + 8)
    if str_off < 12 or str_off >= cmdsize:
        return None
    limit = min(ctx.config.max_string_length, cmdsize - str_off)
    return pos + str_off, ctx.reader.cstring(pos + str_off, limit)


def _dylib(ctx: _SliceContext, pos, cmdsize, region):
    if cmdsize < 24:
        return
    current = ctx.reader.u32(pos + 16)
    compat = ctx.reader.u32(pos + 20)
    region.details["CurrentVersion"] = _packed_version(current)
    region.details["CompatVersion"] = _packed_version(compat)
    decoded = _lc_string(ctx, pos, cmdsize)
    if decoded is None:
        return
    str_pos, path = decoded
    region.details["Path"] = path
    region.description = path
    region.add_child(field_region("Name", str_pos, len(path), ctx.palette, path))


def _path_string(ctx: _SliceContext, pos, cmdsize, region):
    if cmdsize < 12:
        return
    decoded = _lc_string(ctx, pos, cmdsize)
    if decoded is None:
        return
    str_pos, path = decoded
    region.details["Path"] = path
    region.description = path
    region.add_child(field_region("Path", str_pos, len(path), ctx.palette, path))
