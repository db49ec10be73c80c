"""
Region Model — the normalized output shape of every format parser.

A parsed file is a forest of Region nodes. Each node names one
structurally meaningful byte range (a header, a table entry, a chunk,
a single field) and may carry an interpreted value, a description and
a details mapping.

INVARIANTS
──────────
  • offset ≥ 0, size ≥ 0, offset + size ≤ file size.
  • Every child lies inside its parent. Region.add_child() enforces
    this by clamping, so a parser cannot emit a violating tree.
  • Siblings are produced in ascending-offset order but MAY overlap
    (a Mach-O __TEXT segment contains its own header, a PE section can
    start inside the header area). Overlap is a property of the formats.

The ParsedFile wrapper keeps the raw buffer by reference. Nothing in
this package writes to it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, Optional, Union

logger = logging.getLogger(__name__)


# ─────────────────────────────────────────────────────────────
#  Closed tag sets
# ─────────────────────────────────────────────────────────────

class RegionKind:
    """Structural role of a region."""
    HEADER = "header"               # DOS/NT/ELF/Mach-O/Fat header, signatures
    TABLE_ENTRY = "table_entry"     # Section / program / data-directory entry
    DATA = "data"                   # Section, segment, chunk or entropy payload
    RECORD = "record"               # Load command, box, chunk, marker segment
    FIELD = "field"                 # Single scalar field
    UNKNOWN = "unknown"             # Overlay / unclassified bytes

    ALL = frozenset({HEADER, TABLE_ENTRY, DATA, RECORD, FIELD, UNKNOWN})


class FileFormat:
    """Which parser produced a ParsedFile."""
    PE = "PE"
    ELF = "ELF"
    MACHO = "Mach-O"
    PNG = "PNG"
    JPEG = "JPEG"
    HEIC = "HEIC"

    ALL = frozenset({PE, ELF, MACHO, PNG, JPEG, HEIC})


# ─────────────────────────────────────────────────────────────
#  Scalar values (tagged: integer vs. text)
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class IntValue:
    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class TextValue:
    value: str

    def __str__(self) -> str:
        return self.value


Scalar = Union[IntValue, TextValue]


def to_scalar(raw) -> Optional[Scalar]:
    """Wrap a plain int/str into its tagged form (None passes through)."""
    if raw is None or isinstance(raw, (IntValue, TextValue)):
        return raw
    if isinstance(raw, bool):
        raise TypeError("bool is not a region value")
    if isinstance(raw, int):
        return IntValue(raw)
    if isinstance(raw, str):
        return TextValue(raw)
    raise TypeError(f"unsupported region value type: {type(raw).__name__}")


# ─────────────────────────────────────────────────────────────
#  Region
# ─────────────────────────────────────────────────────────────

@dataclass
class Region:
    """One interpreted byte range of a file."""
    name: str
    offset: int
    size: int
    kind: str = RegionKind.UNKNOWN
    color: str = ""
    value: Optional[Scalar] = None
    description: Optional[str] = None
    details: dict[str, Union[int, str]] = field(default_factory=dict)
    children: list[Region] = field(default_factory=list)

    def __post_init__(self):
        if self.kind not in RegionKind.ALL:
            raise ValueError(f"unknown region kind: {self.kind!r}")
        if self.offset < 0 or self.size < 0:
            raise ValueError(
                f"region {self.name!r} has negative range "
                f"(offset={self.offset}, size={self.size})")
        self.value = to_scalar(self.value)

    @property
    def end(self) -> int:
        return self.offset + self.size

    def contains(self, other: Union[int, Region]) -> bool:
        """True if an offset, or a whole region, lies inside this one."""
        if isinstance(other, Region):
            return self.offset <= other.offset and other.end <= self.end
        return self.offset <= other < self.end

    def add_child(self, child: Region) -> Optional[Region]:
        """
        Append a child, clamped to this region's byte range.

        A child that starts outside the parent is dropped; one that
        overruns the parent's end is shortened. Returns the appended
        child, or None if it was dropped.
        """
        starts_outside = child.offset < self.offset or child.offset > self.end
        if starts_outside or (child.offset == self.end and child.size > 0):
            logger.debug(
                "Dropping child %r at 0x%X: outside parent %r [0x%X, 0x%X)",
                child.name, child.offset, self.name, self.offset, self.end)
            return None
        if child.end > self.end:
            logger.debug(
                "Clamping child %r: 0x%X bytes → 0x%X",
                child.name, child.size, self.end - child.offset)
            child.size = self.end - child.offset
            _clamp_subtree(child)
        self.children.append(child)
        return child

    def sort_children(self):
        self.children.sort(key=lambda r: r.offset)

    def to_dict(self) -> dict:
        out: dict = {
            "name": self.name,
            "offset": self.offset,
            "size": self.size,
            "kind": self.kind,
            "color": self.color,
        }
        if self.value is not None:
            out["value"] = self.value.value
            out["value_type"] = "int" if isinstance(self.value, IntValue) else "text"
        if self.description:
            out["description"] = self.description
        if self.details:
            out["details"] = dict(self.details)
        if self.children:
            out["children"] = [c.to_dict() for c in self.children]
        return out


def _clamp_subtree(parent: Region):
    """Re-apply the containment rule below a region that was shortened."""
    stack = [parent]
    while stack:
        node = stack.pop()
        kept = []
        for child in node.children:
            if child.offset > node.end or (child.offset == node.end and child.size > 0):
                continue
            if child.end > node.end:
                child.size = node.end - child.offset
            kept.append(child)
            stack.append(child)
        node.children = kept


def walk_regions(regions: list[Region]) -> Iterator[tuple[int, Region, Optional[Region]]]:
    """
    Depth-first, pre-order walk of a region forest.

    Yields (depth, region, parent). Uses an explicit stack so hostile
    nesting depth cannot exhaust the interpreter stack.
    """
    stack: list[tuple[int, Region, Optional[Region]]] = [
        (0, r, None) for r in reversed(regions)
    ]
    while stack:
        depth, region, parent = stack.pop()
        yield depth, region, parent
        for child in reversed(region.children):
            stack.append((depth + 1, child, region))


def check_region_invariants(regions: list[Region], file_size: int) -> list[str]:
    """Return every containment/bounds violation in the forest (empty = sound)."""
    problems = []
    for _depth, region, parent in walk_regions(regions):
        if region.size < 0 or region.offset < 0:
            problems.append(f"{region.name}: negative range")
        if region.end > file_size:
            problems.append(
                f"{region.name}: ends at 0x{region.end:X} past file size 0x{file_size:X}")
        if parent is not None and not parent.contains(region):
            problems.append(
                f"{region.name}: [0x{region.offset:X}, 0x{region.end:X}) "
                f"outside parent {parent.name} "
                f"[0x{parent.offset:X}, 0x{parent.end:X})")
    return problems


# ─────────────────────────────────────────────────────────────
#  Section table entry (address mapping only)
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SectionInfo:
    """One section/segment's file range and its mapped address range."""
    name: str
    virtual_address: int
    virtual_size: int
    file_offset: int
    file_size: int

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "virtual_address": self.virtual_address,
            "virtual_size": self.virtual_size,
            "file_offset": self.file_offset,
            "file_size": self.file_size,
        }


# ─────────────────────────────────────────────────────────────
#  Parsed file
# ─────────────────────────────────────────────────────────────

@dataclass
class ParsedFile:
    """
    Result of one parse. Always returned, never raised.

    `data` is the caller's buffer (bytes, bytearray or a read-only mmap),
    held by reference.
    """
    name: str
    size: int
    data: object
    format: str
    regions: list[Region] = field(default_factory=list)
    sections: list[SectionInfo] = field(default_factory=list)
    is_valid: bool = True
    error: Optional[str] = None

    @classmethod
    def failed(
        cls,
        name: str,
        data,
        fmt: str,
        error: str,
        regions: Optional[list[Region]] = None,
    ) -> ParsedFile:
        """Shell for a parse that stopped early (regions kept if given)."""
        return cls(
            name=name,
            size=len(data),
            data=data,
            format=fmt,
            regions=sorted(regions or [], key=lambda r: r.offset),
            sections=[],
            is_valid=False,
            error=error,
        )

    @property
    def has_sections(self) -> bool:
        return bool(self.sections)

    def read(self, offset: int, size: int) -> bytes:
        """Bytes of a selected range, clamped to the buffer."""
        if offset < 0 or offset >= self.size or size <= 0:
            return b""
        return bytes(self.data[offset:min(self.size, offset + size)])

    def region_at(self, offset: int) -> list[Region]:
        """
        Path of regions covering `offset`, outermost first.

        Among overlapping siblings the last one wins, matching draw order.
        Empty when no region covers the offset.
        """
        path: list[Region] = []
        level = self.regions
        while True:
            hit = None
            for region in level:
                if region.contains(offset):
                    hit = region
            if hit is None:
                return path
            path.append(hit)
            level = hit.children

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "size": self.size,
            "format": self.format,
            "is_valid": self.is_valid,
            "error": self.error,
            "regions": [r.to_dict() for r in self.regions],
            "sections": [s.to_dict() for s in self.sections],
        }
