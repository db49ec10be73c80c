"""
Format Signature Database — magic bytes the detector sniffs.

Exported for the detector:
  • HEADER_SIGNATURES  — list of (magic_bytes, SignatureInfo) matched at offset 0
  • FTYP_BRANDS        — dict mapping ISOBMFF major brand → description
  • SignatureInfo      — one recognised magic and the parser family it selects

Mach-O magics are listed in both byte orders: the 32/64-bit thin
header may be written big- or little-endian, and Fat headers exist in
32- and 64-bit offset variants. Java class files share 0xCAFEBABE
with Fat Mach-O; the Mach-O parser rejects them by their arch count.
"""

from dataclasses import dataclass
from typing import Optional

from .regions import FileFormat


@dataclass(frozen=True)
class SignatureInfo:
    """One recognisable file magic."""
    format: str                 # FileFormat constant
    description: str
    offset: int = 0             # Where the magic sits in the file


# ══════════════════════════════════════════════════════════════
#  Mach-O / Fat magic numbers (read as big-endian uint32)
# ══════════════════════════════════════════════════════════════

MH_MAGIC = 0xFEEDFACE           # 32-bit, big-endian file
MH_CIGAM = 0xCEFAEDFE           # 32-bit, little-endian file
MH_MAGIC_64 = 0xFEEDFACF        # 64-bit, big-endian file
MH_CIGAM_64 = 0xCFFAEDFE        # 64-bit, little-endian file
FAT_MAGIC = 0xCAFEBABE
FAT_CIGAM = 0xBEBAFECA
FAT_MAGIC_64 = 0xCAFEBABF
FAT_CIGAM_64 = 0xBFBAFECA

THIN_MAGICS = frozenset({MH_MAGIC, MH_CIGAM, MH_MAGIC_64, MH_CIGAM_64})
FAT_MAGICS = frozenset({FAT_MAGIC, FAT_CIGAM, FAT_MAGIC_64, FAT_CIGAM_64})
MACHO_MAGICS = THIN_MAGICS | FAT_MAGICS


# ── Executables ──
SIG_PE = SignatureInfo(FileFormat.PE, "Windows PE (MZ)")
SIG_ELF = SignatureInfo(FileFormat.ELF, "ELF object")
SIG_MACHO = SignatureInfo(FileFormat.MACHO, "Mach-O image")
SIG_FAT = SignatureInfo(FileFormat.MACHO, "Mach-O Universal (Fat)")

# ── Images ──
SIG_PNG = SignatureInfo(FileFormat.PNG, "PNG Image")
SIG_JPEG = SignatureInfo(FileFormat.JPEG, "JPEG Image")
SIG_ISOBMFF = SignatureInfo(FileFormat.HEIC, "ISO Base Media (ftyp)", offset=4)

PNG_SIGNATURE = b"\x89PNG\r\n\x1A\n"
JPEG_SOI = b"\xFF\xD8\xFF"
FTYP_TAG = b"ftyp"


# ═════════════════════════════════════════════════════════════
#  HEADER_SIGNATURES — Fixed magic bytes at offset 0
# ═════════════════════════════════════════════════════════════
# Longest first; the first hit wins.

HEADER_SIGNATURES: list[tuple[bytes, SignatureInfo]] = [
    (PNG_SIGNATURE,             SIG_PNG),
    (b"\x7FELF",                SIG_ELF),
    (b"\xFE\xED\xFA\xCE",       SIG_MACHO),
    (b"\xCE\xFA\xED\xFE",       SIG_MACHO),
    (b"\xFE\xED\xFA\xCF",       SIG_MACHO),
    (b"\xCF\xFA\xED\xFE",       SIG_MACHO),
    (b"\xCA\xFE\xBA\xBE",       SIG_FAT),
    (b"\xBE\xBA\xFE\xCA",       SIG_FAT),
    (b"\xCA\xFE\xBA\xBF",       SIG_FAT),
    (b"\xBF\xBA\xFE\xCA",       SIG_FAT),
    (JPEG_SOI,                  SIG_JPEG),
    (b"MZ",                     SIG_PE),
]


# ═════════════════════════════════════════════════════════════
#  FTYP_BRANDS — ISOBMFF major brands (display only)
# ═════════════════════════════════════════════════════════════

FTYP_BRANDS: dict[bytes, str] = {
    b"heic": "HEIC Image",
    b"heix": "HEIC Image (10-bit)",
    b"hevc": "HEIF Image Sequence",
    b"hevx": "HEIF Image Sequence",
    b"heim": "HEIC Multi-layer",
    b"heis": "HEIC Scalable",
    b"mif1": "HEIF Image",
    b"msf1": "HEIF Image Sequence",
    b"avif": "AVIF Image",
    b"avis": "AVIF Image Sequence",
    b"isom": "MP4 (ISO Base Media)",
    b"iso2": "MP4 (ISO Base Media v2)",
    b"mp41": "MP4 v1",
    b"mp42": "MP4 v2",
    b"M4V ": "iTunes Video",
    b"M4A ": "iTunes Audio",
    b"qt  ": "QuickTime Movie",
    b"3gp4": "3GPP",
    b"3gp5": "3GPP",
    b"crx ": "Canon CR3 RAW",
}


def match_header(data) -> Optional[SignatureInfo]:
    """Return the signature whose magic starts `data`, or None."""
    head = bytes(data[:16])
    for magic, info in HEADER_SIGNATURES:
        if head.startswith(magic):
            return info
    if len(head) >= 8 and head[4:8] == FTYP_TAG:
        return SIG_ISOBMFF
    return None


def describe_brand(brand: bytes) -> str:
    return FTYP_BRANDS.get(brand, "ISO Base Media")
