"""
Parser & Search Configuration — limits and display policies.

Every limit that bounds work on untrusted input lives here, next to the
two Mach-O display heuristics that callers may want to switch off.
A single frozen instance (DEFAULT_CONFIG) is shared by every parser;
pass your own ParserConfig to detect() / search() to override.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ParserConfig:
    """Tunable limits for parsing and searching."""
    # ── Search ──
    max_search_results: int = 2000              # Hard cap per search call
    regex_size_limit: int = 50 * 1024 * 1024    # Largest buffer regex mode accepts
    search_block_size: int = 4 * 1024 * 1024    # Bytes scanned between cancel checks
    regex_check_interval: int = 256             # Regex matches between cancel checks

    # ── Structure walks ──
    max_box_depth: int = 32                     # ISOBMFF nesting cap
    max_boxes: int = 10000                      # ISOBMFF boxes per file
    max_png_chunks: int = 10000
    max_jpeg_segments: int = 10000
    max_load_commands: int = 4096               # Mach-O, per slice
    max_string_length: int = 256                # NUL-terminated string reads
    pe_max_data_directories: int = 16

    # ── Mach-O display heuristics ──
    # Skip a segment's data region when it starts inside header + load commands
    macho_skip_header_overlap: bool = True
    # Treat segment/section file offsets inside a Fat slice as slice-relative
    fat_rebase_offsets: bool = True


DEFAULT_CONFIG = ParserConfig()
