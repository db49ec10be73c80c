"""
Search Engine — hex, ASCII, UTF-16LE and regex scanning over a ParsedFile.

SCANNING MODEL
──────────────
  • Literal modes (hex / ascii / unicode) encode the query to bytes and
    scan the buffer block by block with bytes.find. Consecutive blocks
    overlap by len(pattern) - 1 bytes, so a match straddling a block
    boundary is found exactly once.
  • Regex mode (ascii only) decodes the buffer as latin-1, one char per
    byte, so match indices are file offsets. Buffers above
    ParserConfig.regex_size_limit are refused outright.
  • A CancelToken is checked between blocks. In regex mode it is checked
    before the scan and then every regex_check_interval matches, so a
    regex that never matches runs to the end once started. Cancelling
    returns whatever was found so far.

Results are ascending by offset and capped at max_search_results.
Each carries the virtual address of its offset when the file has a
section table.
"""

import re
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from .address_map import to_virtual_address
from .config import ParserConfig, DEFAULT_CONFIG
from .errors import SearchInputError
from .mmap_reader import iter_blocks
from .regions import ParsedFile

logger = logging.getLogger(__name__)

MODE_HEX = "hex"
MODE_ASCII = "ascii"
MODE_UNICODE = "unicode"
MODES = (MODE_HEX, MODE_ASCII, MODE_UNICODE)

_WHITESPACE = re.compile(r"\s+")
_HEX_PREFIX = re.compile(r"0x", re.IGNORECASE)
_HEX_DIGITS = re.compile(r"[0-9A-Fa-f]+")

ProgressCallback = Callable[[int, int], None]


@dataclass
class SearchResult:
    """One match."""
    offset: int                         # File offset of the first matched byte
    size: int                           # Matched length in bytes
    virtual_address: Optional[int]      # None if no section maps the offset
    matched_text: str                   # Query as matched (regex: the matched text)

    def to_dict(self) -> dict:
        return {
            "offset": self.offset,
            "size": self.size,
            "virtual_address": self.virtual_address,
            "matched_text": self.matched_text,
        }


@dataclass
class CancelToken:
    """Cooperative cancellation flag, set from another thread."""
    is_cancelled: bool = False

    def cancel(self):
        self.is_cancelled = True


# ══════════════════════════════════════════════════════════════
#  Query encoding
# ══════════════════════════════════════════════════════════════

def parse_hex_query(query: str) -> tuple[bytes, str]:
    """
    "4D 5A", "0x4d5a", "4d5a90" → (pattern bytes, normalised hex text).

    Raises:
        SearchInputError: odd digit count or a non-hex character.
    """
    clean = _HEX_PREFIX.sub("", _WHITESPACE.sub("", query))
    if len(clean) % 2 != 0 or not _HEX_DIGITS.fullmatch(clean):
        raise SearchInputError(f"Invalid hex string: {query!r}")
    return bytes.fromhex(clean), clean.upper()


def encode_query(query: str, mode: str) -> tuple[bytes, str]:
    """Encode a literal query for `mode`; returns (pattern, matched_text)."""
    if mode == MODE_HEX:
        return parse_hex_query(query)
    if mode == MODE_ASCII:
        try:
            return query.encode("latin-1"), query
        except UnicodeEncodeError as e:
            raise SearchInputError(
                f"ASCII search supports single-byte characters only: {e.object[e.start]!r}"
            ) from e
    if mode == MODE_UNICODE:
        try:
            return query.encode("utf-16-le"), query
        except UnicodeEncodeError as e:
            raise SearchInputError(f"Query is not encodable as UTF-16: {e}") from e
    raise SearchInputError(f"Unknown search mode: {mode!r}")


# ══════════════════════════════════════════════════════════════
#  Main entry point
# ══════════════════════════════════════════════════════════════

def search(
    file: ParsedFile,
    query: str,
    mode: str,
    use_regex: bool = False,
    cancel: Optional[CancelToken] = None,
    config: Optional[ParserConfig] = None,
    progress: Optional[ProgressCallback] = None,
) -> list[SearchResult]:
    """
    Find every occurrence of `query` in `file`.

    Args:
        file: Parsed file whose buffer is scanned
        query: Hex digits, text, or a regular expression
        mode: "hex", "ascii" or "unicode"
        use_regex: Treat query as a regex (ascii mode only; ignored for hex)
        cancel: Checked between blocks; a cancelled search returns partial results
        config: Result cap, block size, regex limits
        progress: Called with (scanned_bytes, total_bytes)

    Returns:
        Ascending list of SearchResult, at most config.max_search_results.

    Raises:
        SearchInputError: unknown mode, malformed hex, unencodable text,
            invalid regex, regex in unicode mode, or regex over a buffer
            larger than config.regex_size_limit.
    """
    config = config or DEFAULT_CONFIG
    if mode not in MODES:
        raise SearchInputError(f"Unknown search mode: {mode!r}")

    if use_regex and mode == MODE_UNICODE:
        raise SearchInputError("Regex is not supported for unicode search")
    if use_regex and mode == MODE_ASCII:
        if file.size > config.regex_size_limit:
            raise SearchInputError(
                f"File too large for regex search "
                f"({file.size} bytes, limit {config.regex_size_limit})")
        if not query:
            return []
        return _regex_search(file, query, cancel, config, progress)

    if not query:
        return []
    pattern, matched_text = encode_query(query, mode)
    return _literal_search(file, pattern, matched_text, cancel, config, progress)


def _result(file: ParsedFile, offset: int, size: int, text: str) -> SearchResult:
    va = to_virtual_address(offset, file.sections) if file.sections else None
    return SearchResult(offset=offset, size=size, virtual_address=va, matched_text=text)


def _literal_search(
    file: ParsedFile,
    pattern: bytes,
    matched_text: str,
    cancel: Optional[CancelToken],
    config: ParserConfig,
    progress: Optional[ProgressCallback],
) -> list[SearchResult]:
    data = file.data
    total = file.size
    results: list[SearchResult] = []
    block_size = max(config.search_block_size, len(pattern))

    for block_start, block_end in iter_blocks(
        total, block_size=block_size, overlap=len(pattern) - 1,
    ):
        if cancel is not None and cancel.is_cancelled:
            logger.info(
                "Search cancelled at 0x%X with %d results", block_start, len(results))
            return results

        pos = block_start
        while True:
            idx = data.find(pattern, pos, block_end)
            if idx == -1:
                break
            results.append(_result(file, idx, len(pattern), matched_text))
            if len(results) >= config.max_search_results:
                logger.debug("Search result cap (%d) reached", config.max_search_results)
                return results
            pos = idx + 1

        if progress is not None:
            progress(block_end, total)

    return results


def _regex_search(
    file: ParsedFile,
    query: str,
    cancel: Optional[CancelToken],
    config: ParserConfig,
    progress: Optional[ProgressCallback],
) -> list[SearchResult]:
    """
    Run one finditer pass over the whole buffer.

    The token is checked before the scan and then only when a match is
    produced, so a pattern that never matches cannot be stopped midway.
    regex_size_limit bounds how long such a scan can take.
    """
    try:
        regex = re.compile(query)
    except re.error as e:
        raise SearchInputError(f"Invalid regular expression: {e}") from e

    if cancel is not None and cancel.is_cancelled:
        logger.info("Regex search cancelled before scanning")
        return []

    text = bytes(file.data).decode("latin-1")
    total = file.size
    results: list[SearchResult] = []
    interval = max(1, config.regex_check_interval)

    for count, match in enumerate(regex.finditer(text)):
        if count % interval == 0:
            if cancel is not None and cancel.is_cancelled:
                logger.info(
                    "Regex search cancelled at 0x%X with %d results",
                    match.start(), len(results))
                return results
            if progress is not None:
                progress(match.start(), total)

        # Empty matches are stepped over by finditer and not reported
        if match.end() == match.start():
            continue
        results.append(_result(file, match.start(), match.end() - match.start(), match.group(0)))
        if len(results) >= config.max_search_results:
            logger.debug("Search result cap (%d) reached", config.max_search_results)
            break

    if progress is not None:
        progress(total, total)
    return results
