"""
Synthetic binaries for the test suite, built byte by byte with struct.

Every builder returns (data, info): the file bytes and a dict of the
offsets / addresses the tests assert against. Layouts are packed with
no alignment padding unless a builder is asked for it, so region spans
can be checked exactly.
"""

import struct
import zlib
from typing import Optional

PE_MARKER = b"Hello, BinScope!"
ELF_MARKER = b"ELF-MARKER"
MACHO_MARKER = b"MACHO-MARKER"
DOS_STUB_TEXT = b"This program cannot be run in DOS mode.\r\r\n$"

MH_MAGIC = 0xFEEDFACE
MH_MAGIC_64 = 0xFEEDFACF
CPU_X86_64 = 0x1000007
CPU_ARM64 = 0x100000C
CPU_X86 = 7


# ══════════════════════════════════════════════════════════════
#  PE
# ══════════════════════════════════════════════════════════════

def build_pe(
    pe64: bool = False,
    overlay: bytes = b"OVERLAY-TAIL" * 4,
    e_lfanew: int = 64,
    first_section: Optional[int] = None,
):
    """
    DOS header | [stub] | NT headers | 2 section headers | [padding] | .text | .data | overlay.

    With the defaults e_lfanew = 64 and section data starts right after
    the headers, so the top-level regions tile the file with no gaps.
    A larger e_lfanew inserts a DOS stub; first_section moves the raw
    section data to a file-aligned offset, leaving header padding.
    """
    dos = bytearray(64)
    dos[0:2] = b"MZ"
    struct.pack_into("<I", dos, 0x3C, e_lfanew)
    stub = bytearray(e_lfanew - 64)
    stub[:len(DOS_STUB_TEXT)] = DOS_STUB_TEXT[:len(stub)]

    num_sections = 2
    opt_size = (112 if pe64 else 96) + 16 * 8
    headers_end = e_lfanew + 4 + 20 + opt_size + num_sections * 40

    text_size, data_size = 0x200, 0x100
    text_ptr = headers_end if first_section is None else first_section
    assert text_ptr >= headers_end
    data_ptr = text_ptr + text_size
    text_va, data_va = 0x1000, 0x2000
    image_base = 0x140000000 if pe64 else 0x400000

    file_header = struct.pack(
        "<HHIIIHH",
        0x8664 if pe64 else 0x014C,     # Machine
        num_sections,
        0x5F5E1000,                     # TimeDateStamp
        0, 0,                           # Symbol table
        opt_size,
        0x0102 if not pe64 else 0x0022, # EXECUTABLE_IMAGE | 32BIT / LARGE_ADDRESS_AWARE
    )

    if pe64:
        opt = struct.pack(
            "<HBB5IQ2I6H4I2H4Q2I",
            0x20B, 14, 0,
            text_size, data_size, 0, text_va, text_va,
            image_base, 0x1000, 0x200,
            6, 0, 0, 0, 6, 0,
            0, 0x3000, headers_end, 0,
            3, 0x8160,
            0x100000, 0x1000, 0x100000, 0x1000,
            0, 16,
        )
    else:
        opt = struct.pack(
            "<HBB9I6H4I2H6I",
            0x10B, 14, 0,
            text_size, data_size, 0, text_va, text_va, data_va,
            image_base, 0x1000, 0x200,
            6, 0, 0, 0, 6, 0,
            0, 0x3000, headers_end, 0,
            2, 0x0140,
            0x100000, 0x1000, 0x100000, 0x1000,
            0, 16,
        )
    dirs = bytearray(16 * 8)
    struct.pack_into("<II", dirs, 1 * 8, data_va, 0x40)      # Import
    struct.pack_into("<II", dirs, 12 * 8, data_va + 0x80, 0x10)  # IAT
    opt += bytes(dirs)
    assert len(opt) == opt_size

    sections = b"".join([
        struct.pack("<8sIIIIIIHHI", b".text", text_size, text_va, text_size, text_ptr,
                    0, 0, 0, 0, 0x60000020),
        struct.pack("<8sIIIIIIHHI", b".data", data_size, data_va, data_size, data_ptr,
                    0, 0, 0, 0, 0xC0000040),
    ])

    text = bytearray(text_size)
    text[0:3] = b"\x55\x8B\xEC"
    marker_offset_in_text = 0x40
    text[marker_offset_in_text:marker_offset_in_text + len(PE_MARKER)] = PE_MARKER
    data_section = bytes(range(data_size))

    data = bytes(dos) + bytes(stub) + b"PE\x00\x00" + file_header + opt + sections
    assert len(data) == headers_end
    data += bytes(text_ptr - headers_end)
    data += bytes(text) + data_section + overlay

    info = {
        "headers_end": headers_end,
        "section_table": headers_end - num_sections * 40,
        "text_ptr": text_ptr,
        "text_va": text_va,
        "data_ptr": data_ptr,
        "data_va": data_va,
        "overlay_offset": data_ptr + data_size,
        "overlay_size": len(overlay),
        "marker_offset": text_ptr + marker_offset_in_text,
        "opt_offset": e_lfanew + 24,
        "opt_size": opt_size,
        "image_base": image_base,
    }
    return data, info


# ══════════════════════════════════════════════════════════════
#  ELF
# ══════════════════════════════════════════════════════════════

def build_elf(elf64: bool = True, little_endian: bool = True, with_sections: bool = True):
    """
    ELF header | 2 program headers | .text | .shstrtab | section headers.

    Sections: NULL, .text (PROGBITS), .bss (NOBITS), .shstrtab.
    With with_sections=False the file stops after .text (stripped).
    """
    e = "<" if little_endian else ">"
    hdr_size = 64 if elf64 else 52
    ph_ent = 56 if elf64 else 32
    sh_ent = 64 if elf64 else 40
    base = 0x400000

    phoff = hdr_size
    text_off = phoff + 2 * ph_ent
    text_size = 64
    strtab = b"\x00.text\x00.bss\x00.shstrtab\x00"
    strtab_off = text_off + text_size
    shoff = strtab_off + 24
    text_va = base + text_off

    ident = b"\x7FELF" + bytes([
        2 if elf64 else 1,
        1 if little_endian else 2,
        1,          # EI_VERSION
        3,          # Linux
    ]) + bytes(8)

    shnum = 4 if with_sections else 0
    hdr_fmt = e + ("16sHHIQQQIHHHHHH" if elf64 else "16sHHIIIIIHHHHHH")
    header = struct.pack(
        hdr_fmt, ident,
        2,                              # ET_EXEC
        0x3E if elf64 else 0x03,
        1,
        text_va, phoff, shoff if with_sections else 0,
        0, hdr_size, ph_ent, 2, sh_ent, shnum, 3 if with_sections else 0,
    )
    assert len(header) == hdr_size

    def phdr(p_type, flags, offset, vaddr, filesz, memsz, align):
        if elf64:
            return struct.pack(e + "IIQQQQQQ", p_type, flags, offset, vaddr, vaddr,
                               filesz, memsz, align)
        return struct.pack(e + "IIIIIIII", p_type, offset, vaddr, vaddr,
                           filesz, memsz, flags, align)

    phdrs = (
        phdr(1, 5, text_off, text_va, text_size, text_size, 0x1000)     # PT_LOAD R-X
        + phdr(0x6474E551, 6, 0, 0, 0, 0, 16)                           # PT_GNU_STACK
    )

    text = bytearray(text_size)
    text[0:16] = b"\x90" * 16
    text[16:16 + len(ELF_MARKER)] = ELF_MARKER

    data = header + phdrs + bytes(text)

    def shdr(name, sh_type, flags, addr, offset, size):
        if elf64:
            return struct.pack(e + "IIQQQQIIQQ", name, sh_type, flags, addr, offset, size,
                               0, 0, 1, 0)
        return struct.pack(e + "IIIIIIIIII", name, sh_type, flags, addr, offset, size,
                           0, 0, 1, 0)

    if with_sections:
        data += strtab + bytes(24 - len(strtab))
        data += (
            shdr(0, 0, 0, 0, 0, 0)
            + shdr(1, 1, 0x6, text_va, text_off, text_size)             # .text
            + shdr(7, 8, 0x3, 0x600000, strtab_off, 0x100)              # .bss
            + shdr(12, 3, 0, 0, strtab_off, len(strtab))                # .shstrtab
        )

    info = {
        "phoff": phoff,
        "text_off": text_off,
        "text_va": text_va,
        "text_size": text_size,
        "strtab_off": strtab_off,
        "shoff": shoff,
        "marker_offset": text_off + 16,
        "entry": text_va,
    }
    return data, info


# ══════════════════════════════════════════════════════════════
#  Mach-O
# ══════════════════════════════════════════════════════════════

DYLIB_PATH = "/usr/lib/libSystem.B.dylib"
UUID_BYTES = bytes(range(0x10, 0x20))


def build_macho(is64: bool = True, little_endian: bool = True, cputype: int = CPU_X86_64):
    """
    Thin image: header | __TEXT, __DATA segments (1 section each) |
    LC_MAIN | LC_UUID | LC_LOAD_DYLIB | __text bytes | __data bytes.

    All file offsets are relative to the image start, as in a Fat slice.
    """
    e = "<" if little_endian else ">"
    hdr_size = 32 if is64 else 28
    seg_size = 72 if is64 else 56
    sect_size = 80 if is64 else 68
    seg_cmd = seg_size + sect_size
    path = DYLIB_PATH.encode() + b"\x00"
    dylib_cmd = 24 + ((len(path) + 7) // 8) * 8
    sizeofcmds = 2 * seg_cmd + 24 + 24 + dylib_cmd
    ncmds = 5

    text_off = hdr_size + sizeofcmds
    data_off = text_off + 32
    total = data_off + 32
    vm_text = 0x100000000 if is64 else 0x1000
    vm_data = vm_text + 0x1000

    if is64:
        header = struct.pack(e + "IiiIIIII", MH_MAGIC_64, cputype, 3, 2, ncmds, sizeofcmds,
                             0x200085, 0)
    else:
        header = struct.pack(e + "IiiIIII", MH_MAGIC, cputype, 3, 2, ncmds, sizeofcmds,
                             0x200085)

    def segment(name, vmaddr, fileoff, filesize, sect_name, sect_addr, sect_off, sect_len):
        if is64:
            seg = struct.pack(e + "II16sQQQQiiII", 0x19, seg_cmd, name, vmaddr, 0x1000,
                              fileoff, filesize, 5, 5, 1, 0)
            sect = struct.pack(e + "16s16sQQIIIIIIII", sect_name, name, sect_addr, sect_len,
                               sect_off, 4, 0, 0, 0x80000400, 0, 0, 0)
        else:
            seg = struct.pack(e + "II16sIIIIiiII", 0x1, seg_cmd, name, vmaddr, 0x1000,
                              fileoff, filesize, 5, 5, 1, 0)
            sect = struct.pack(e + "16s16sIIIIIIIII", sect_name, name, sect_addr, sect_len,
                               sect_off, 4, 0, 0, 0x80000400, 0, 0)
        assert len(seg) == seg_size and len(sect) == sect_size
        return seg + sect

    cmds = (
        segment(b"__TEXT", vm_text, 0, data_off, b"__text", vm_text + text_off, text_off, 32)
        + segment(b"__DATA", vm_data, data_off, 32, b"__data", vm_data, data_off, 32)
        + struct.pack(e + "IIQQ", 0x80000028, 24, text_off, 0)                  # LC_MAIN
        + struct.pack(e + "II", 0x1B, 24) + UUID_BYTES                          # LC_UUID
        + struct.pack(e + "IIIIII", 0xC, dylib_cmd, 24, 2, 0x05276403, 0x10000)
        + path + bytes(dylib_cmd - 24 - len(path))
    )
    assert len(cmds) == sizeofcmds

    text = MACHO_MARKER + bytes(32 - len(MACHO_MARKER))
    data = header + cmds + text + bytes(range(32))
    assert len(data) == total

    info = {
        "header_size": hdr_size,
        "sizeofcmds": sizeofcmds,
        "text_off": text_off,
        "text_va": vm_text + text_off,
        "data_off": data_off,
        "data_va": vm_data,
        "entry_off": text_off,
        "marker_offset": text_off,
        "size": total,
    }
    return data, info


def build_fat(cputypes=(CPU_X86_64, CPU_ARM64), fat64: bool = False, slice_align: int = 0x1000):
    """
    Fat header (big-endian) + one thin 64-bit slice per cputype.

    Slice i starts at (i + 1) * slice_align.
    """
    slices = [build_macho(cputype=cpu) for cpu in cputypes]
    magic = 0xCAFEBABF if fat64 else 0xCAFEBABE
    out = bytearray(struct.pack(">II", magic, len(slices)))
    offsets = []
    for i, (cpu, (blob, _)) in enumerate(zip(cputypes, slices)):
        off = (i + 1) * slice_align
        offsets.append(off)
        if fat64:
            out += struct.pack(">iiQQII", cpu, 3, off, len(blob), 12, 0)
        else:
            out += struct.pack(">iiIII", cpu, 3, off, len(blob), 12)
    for off, (blob, _) in zip(offsets, slices):
        out += bytes(off - len(out))
        out += blob

    info = {
        "slice_offsets": offsets,
        "slice_infos": [i for _, i in slices],
        "slice_sizes": [len(b) for b, _ in slices],
    }
    return bytes(out), info


# ══════════════════════════════════════════════════════════════
#  Images
# ══════════════════════════════════════════════════════════════

def png_chunk(ctype: bytes, payload: bytes, crc=None) -> bytes:
    if crc is None:
        crc = zlib.crc32(ctype + payload) & 0xFFFFFFFF
    return struct.pack(">I", len(payload)) + ctype + payload + struct.pack(">I", crc)


def build_png(width: int = 4, height: int = 2, bad_crc: bool = False, trailing: bytes = b""):
    """Signature | IHDR | tEXt | IDAT | IEND [| trailing]."""
    ihdr = struct.pack(">IIBBBBB", width, height, 8, 2, 0, 0, 0)
    raw = b"".join(b"\x00" + bytes(3 * width) for _ in range(height))
    chunks = [
        png_chunk(b"IHDR", ihdr),
        png_chunk(b"tEXt", b"Comment\x00binscope", crc=0xDEADBEEF if bad_crc else None),
        png_chunk(b"IDAT", zlib.compress(raw)),
        png_chunk(b"IEND", b""),
    ]
    data = b"\x89PNG\r\n\x1A\n" + b"".join(chunks)
    info = {
        "chunk_offsets": [8 + sum(len(c) for c in chunks[:i]) for i in range(len(chunks))],
        "chunk_sizes": [len(c) for c in chunks],
        "iend_end": len(data),
    }
    return data + trailing, info


ENTROPY = b"\x12\x34\xFF\x00\x56\xFF\xD0\x78\x9A\xBC"


def build_jpeg(trailing: bytes = b"", fill: int = 0):
    """
    SOI | APP0 JFIF | [FF fill] | DQT | SOF0 | DHT | SOS | entropy data | EOI.

    `fill` inserts that many 0xFF padding bytes ahead of the DQT marker.
    """
    app0 = b"\xFF\xE0" + struct.pack(">H", 16) + b"JFIF\x00\x01\x01\x00\x00\x01\x00\x01\x00\x00"
    dqt = b"\xFF\xDB" + struct.pack(">H", 67) + b"\x00" + bytes(range(64))
    sof0 = b"\xFF\xC0" + struct.pack(">HBHHB", 17, 8, 16, 32, 3) + bytes([
        1, 0x22, 0, 2, 0x11, 1, 3, 0x11, 1])
    dht = b"\xFF\xC4" + struct.pack(">H", 31) + bytes(29)
    sos = b"\xFF\xDA" + struct.pack(">HB", 12, 3) + bytes([1, 0, 2, 0x11, 3, 0x11, 0, 63, 0])

    parts = [b"\xFF\xD8", app0, b"\xFF" * fill, dqt, sof0, dht, sos]
    sos_end = sum(len(p) for p in parts)
    data = b"".join(parts) + ENTROPY + b"\xFF\xD9"
    info = {
        "dqt_offset": sum(len(p) for p in parts[:3]),
        "sof0_offset": sum(len(p) for p in parts[:4]),
        "entropy_offset": sos_end,
        "entropy_size": len(ENTROPY),
        "eoi_offset": sos_end + len(ENTROPY),
        "width": 32,
        "height": 16,
    }
    return data + trailing, info


def box(btype: bytes, payload: bytes = b"") -> bytes:
    return struct.pack(">I", 8 + len(payload)) + btype + payload


def build_heic():
    """ftyp | meta(hdlr, iprp(ipco(ispe))) | mdat | free (64-bit size)."""
    ftyp = box(b"ftyp", b"heic" + struct.pack(">I", 0) + b"mif1heic")
    hdlr = box(b"hdlr", bytes(4) + bytes(4) + b"pict" + bytes(12) + b"\x00")
    ispe = box(b"ispe", bytes(4) + struct.pack(">II", 640, 480))
    iprp = box(b"iprp", box(b"ipco", ispe))
    meta = box(b"meta", bytes(4) + hdlr + iprp)
    mdat = box(b"mdat", bytes(range(16)))
    large = struct.pack(">I", 1) + b"free" + struct.pack(">Q", 20) + b"\xAA" * 4

    data = ftyp + meta + mdat + large
    info = {
        "meta_offset": len(ftyp),
        "hdlr_offset": len(ftyp) + 12,
        "iprp_offset": len(ftyp) + 12 + len(hdlr),
        "ispe_offset": len(ftyp) + 12 + len(hdlr) + 16,
        "mdat_offset": len(ftyp) + len(meta),
        "large_offset": len(ftyp) + len(meta) + len(mdat),
    }
    return data, info


def build_nested_boxes(depth: int) -> bytes:
    """ftyp followed by `depth` nested moov boxes around one free box."""
    inner = box(b"free", b"\x00" * 4)
    for _ in range(depth):
        inner = box(b"moov", inner)
    return box(b"ftyp", b"isom" + bytes(4)) + inner
