"""
File offset ↔ virtual address mapping over a flat section table.

Both lookups take the first section (in table order) whose range holds
the input. Overlapping tables (Fat slices, ELF sections inside
segments) therefore resolve the way the parser listed them.
"""

from typing import Optional, Sequence

from .regions import SectionInfo


def to_virtual_address(offset: int, sections: Sequence[SectionInfo]) -> Optional[int]:
    """
    Map a file offset to the address it is loaded at.

    Returns virtual_address + delta for the first section whose raw
    range contains `offset`, provided delta is inside the section's
    virtual size. An offset before the first section's raw data (the
    header area) is returned unchanged. Anything else yields None.
    """
    for sec in sections:
        if sec.file_offset <= offset < sec.file_offset + sec.file_size:
            delta = offset - sec.file_offset
            if delta < sec.virtual_size:
                return sec.virtual_address + delta

    if sections and offset < sections[0].file_offset:
        return offset
    return None


def to_file_offset(address: int, sections: Sequence[SectionInfo]) -> Optional[int]:
    """
    Map a virtual address back to its file offset.

    Only bytes backed by file data map; addresses in a section's
    zero-filled tail (virtual_size > file_size) yield None.
    """
    for sec in sections:
        if sec.virtual_address <= address < sec.virtual_address + sec.virtual_size:
            delta = address - sec.virtual_address
            if delta < sec.file_size:
                return sec.file_offset + delta
    return None
