"""
Region colour palettes.

Colours are display tags only. Parsers pick a slot by name so the UI
never needs per-format logic; the dark palette overrides the few slots
that are unreadable on a dark background.
"""

COLORS: dict[str, str] = {
    # PE
    "DOS": "#4682B4",               # Steel blue
    "NT": "#228B22",                # Forest green
    "OPTIONAL": "#FFA500",          # Orange
    "DATA_DIR": "#DAA520",          # Gold
    # Shared executable slots
    "SECTION_HEADER": "#800080",    # Purple
    "SECTION_DATA": "#D3D3D3",      # Light gray
    "OVERLAY": "#696969",           # Dark gray
    # ELF
    "ELF_HEADER": "#2E8B57",        # Sea green
    "PROGRAM_HEADER": "#CD853F",    # Peru
    # Mach-O
    "MACHO_HEADER": "#1E90FF",      # Dodger blue
    "FAT_HEADER": "#8B4513",        # Saddle brown
    "LOAD_COMMAND": "#9370DB",      # Medium purple
    "SEGMENT": "#708090",           # Slate gray
    # Images
    "IMAGE_HEADER": "#DC143C",      # Crimson
    "PNG_CHUNK": "#FF8C00",         # Dark orange
    "JPEG_SEGMENT": "#B22222",      # Firebrick
    "HEIC_BOX": "#4169E1",          # Royal blue
    "IMAGE_DATA": "#BDB76B",        # Dark khaki
    # Generic
    "FIELD": "#00CED1",             # Dark turquoise
    "DEFAULT": "#A0A0A0",
    "SEARCH_HIGHLIGHT": "#FFFF00",
    "SEARCH_CURRENT": "#FF4500",
}

DARK_COLORS: dict[str, str] = {
    **COLORS,
    "SECTION_DATA": "#4A5568",
    "FIELD": "#20B2AA",
    "IMAGE_DATA": "#6B6B3A",
    "SEARCH_HIGHLIGHT": "#B7950B",
    "SEARCH_CURRENT": "#E53E3E",
}


def get_palette(dark: bool = True) -> dict[str, str]:
    """Return the palette for the current theme."""
    return DARK_COLORS if dark else COLORS
