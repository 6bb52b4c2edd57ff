"""
Tolerant XMLTV scanner

Locates ``<channel>`` and ``<programme>`` element boundaries with a linear
hand-written scanner instead of parsing the whole document, so one broken
element (or a truncated download) only costs that element. Sub-elements are
read from each isolated block with lxml's recovering parser.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator
import html
import logging
import re

from lxml import etree  # type: ignore

from epg_bridge.services.fetch_types import EpgProgramme, RawChannel


logger = logging.getLogger(__name__)

SCANNED_ELEMENTS = ("channel", "programme")

_TAG_NAME_TERMINATORS = frozenset(" \t\r\n/>")

_FRAGMENT_PARSER = etree.XMLParser(
    recover=True,
    resolve_entities=False,
    no_network=True,
    remove_comments=True,
    remove_pis=True,
)

_XML_PREDEFINED_ENTITIES = frozenset({"amp", "lt", "gt", "quot", "apos"})
_CDATA_RE = re.compile(r"(<!\[CDATA\[.*?\]\]>)", re.DOTALL)
_ENTITY_OR_AMPERSAND_RE = re.compile(r"&(?:([A-Za-z][A-Za-z0-9]*);|(#[0-9]+;|#x[0-9A-Fa-f]+;))?")
_STRAY_LT_RE = re.compile(r"<(?![A-Za-z_/!?])")


@dataclass(slots=True)
class ScanResult:
    """Records and raw element blocks found in one XMLTV document."""
    channels: list[RawChannel] = field(default_factory=list)
    programmes: list[EpgProgramme] = field(default_factory=list)
    channel_blocks: list[str] = field(default_factory=list)
    programme_blocks: list[str] = field(default_factory=list)
    skipped_elements: int = 0


@dataclass(frozen=True, slots=True)
class ScannedElement:
    tag: str
    attributes: dict[str, str]
    block: str


class ElementScanner:
    """Yield top-level XMLTV elements of interest from raw text.

    Every character is visited a bounded number of times: closing-tag lookups
    use ``str.find`` and a tag whose closing form no longer appears in the
    rest of the document is never searched for again.
    """

    def __init__(self, text: str, tags: tuple[str, ...] = SCANNED_ELEMENTS):
        self._text = text
        self._tags = tags
        self._unclosable: set[str] = set()
        self.skipped = 0

    def __iter__(self) -> Iterator[ScannedElement]:
        text = self._text
        pos = 0

        while True:
            start = text.find("<", pos)
            if start == -1:
                return

            tag = self._tag_at(start)
            if tag is None:
                pos = start + 1
                continue

            open_end = _find_tag_end(text, start + 1 + len(tag))
            if open_end == -1:
                # Unterminated opening tag runs to EOF (truncated document)
                self.skipped += 1
                return

            opening = text[start:open_end + 1]
            attributes = parse_attributes(opening, tag)

            if opening.endswith("/>"):
                yield ScannedElement(tag, attributes, opening)
                pos = open_end + 1
                continue

            close = self._find_close(tag, open_end + 1)
            if close == -1:
                logger.debug("Skipping unclosed <%s> at offset %s", tag, start)
                self.skipped += 1
                pos = open_end + 1
                continue

            block_end = close + len(tag) + 3
            yield ScannedElement(tag, attributes, text[start:block_end])
            pos = block_end

    def _tag_at(self, index: int) -> str | None:
        """Return the scanned tag opening at ``index``, if any."""
        text = self._text
        for tag in self._tags:
            end = index + 1 + len(tag)
            if text.startswith(tag, index + 1) and end < len(text) and text[end] in _TAG_NAME_TERMINATORS:
                return tag
        return None

    def _find_close(self, tag: str, pos: int) -> int:
        if tag in self._unclosable:
            return -1

        close = self._text.find(f"</{tag}>", pos)
        if close == -1:
            self._unclosable.add(tag)
            return -1

        # An opening of the same element before our close means this one was
        # never closed; the close belongs to the later element.
        reopen = self._text.find(f"<{tag}", pos, close)
        while reopen != -1:
            if self._tag_at(reopen) == tag:
                return -1
            reopen = self._text.find(f"<{tag}", reopen + 1, close)

        return close


def _find_tag_end(text: str, pos: int) -> int:
    """Index of the ``>`` ending the tag that continues at ``pos``, honouring quotes."""
    while True:
        gt = text.find(">", pos)
        if gt == -1:
            return -1

        double = text.find('"', pos, gt)
        single = text.find("'", pos, gt)
        quotes = [index for index in (double, single) if index != -1]
        if not quotes:
            return gt

        quote_start = min(quotes)
        quote_end = text.find(text[quote_start], quote_start + 1)
        if quote_end == -1:
            return -1
        pos = quote_end + 1


def parse_attributes(opening: str, tag: str) -> dict[str, str]:
    """Read ``name="value"`` pairs from an opening tag.

    Unquoted values run to the next whitespace. The first occurrence of a
    repeated attribute wins. Entities in values are unescaped.
    """
    body = opening[len(tag) + 1:-1]
    if body.endswith("/"):
        body = body[:-1]

    attributes: dict[str, str] = {}
    pos = 0
    length = len(body)

    while pos < length:
        eq = body.find("=", pos)
        if eq == -1:
            break

        name_tokens = body[pos:eq].split()
        name = name_tokens[-1] if name_tokens else ""

        value_start = eq + 1
        while value_start < length and body[value_start].isspace():
            value_start += 1

        if value_start < length and body[value_start] in "\"'":
            quote = body[value_start]
            value_end = body.find(quote, value_start + 1)
            if value_end == -1:
                value = body[value_start + 1:]
                pos = length
            else:
                value = body[value_start + 1:value_end]
                pos = value_end + 1
        else:
            value_end = value_start
            while value_end < length and not body[value_end].isspace():
                value_end += 1
            value = body[value_start:value_end]
            pos = value_end

        if name and name not in attributes:
            attributes[name] = html.unescape(value)

    return attributes


def _replace_entity(match: re.Match) -> str:
    name, numeric = match.group(1), match.group(2)
    if numeric or name in _XML_PREDEFINED_ENTITIES:
        return match.group(0)
    if name is None:
        return "&amp;"
    decoded = html.unescape(match.group(0))
    if decoded == match.group(0):
        return f"&amp;{name};"
    return decoded.replace("&", "&amp;").replace("<", "&lt;")


def _escape_stray_markup(block: str) -> str:
    """
    Make guide text survive the XML parser.

    Bare ``&`` and ``<`` are escaped and HTML named entities (``&nbsp;``,
    ``&aacute;``) are decoded; CDATA sections are left alone.
    """
    parts = _CDATA_RE.split(block)
    for index in range(0, len(parts), 2):
        text = _ENTITY_OR_AMPERSAND_RE.sub(_replace_entity, parts[index])
        parts[index] = _STRAY_LT_RE.sub("&lt;", text)
    return "".join(parts)


def _parse_fragment(block: str) -> etree._Element | None:
    """Parse an isolated element block, returning None when nothing is recoverable."""
    try:
        return etree.fromstring(_escape_stray_markup(block).encode("utf-8"), _FRAGMENT_PARSER)
    except etree.XMLSyntaxError:
        return None


def _get_text(element: etree._Element | None, tag: str, default: str = "") -> str:
    """Safely extract text from the first ``tag`` child of ``element``"""
    if element is None:
        return default
    child = element.find(tag)
    if child is None:
        return default
    text = "".join(child.itertext()).strip()
    return text or default


def scan_xmltv(text: str) -> ScanResult:
    """
    Extract channel and programme records from raw XMLTV text.

    Args:
        text: Decoded XMLTV document (possibly truncated or malformed)

    Returns:
        ScanResult with records in document order and the raw element blocks
        for passthrough output. Missing attributes or sub-elements become
        empty strings.
    """
    result = ScanResult()
    scanner = ElementScanner(text)

    for element in scanner:
        fragment = _parse_fragment(element.block)

        if element.tag == "channel":
            result.channels.append(RawChannel(
                id=element.attributes.get("id", ""),
                display_name=_get_text(fragment, "display-name"),
            ))
            result.channel_blocks.append(element.block)
        else:
            result.programmes.append(EpgProgramme(
                start=element.attributes.get("start", ""),
                stop=element.attributes.get("stop", ""),
                channel_id=element.attributes.get("channel", ""),
                title=_get_text(fragment, "title"),
                description=_get_text(fragment, "desc"),
            ))
            result.programme_blocks.append(element.block)

    result.skipped_elements = scanner.skipped
    logger.debug(
        "XMLTV scan complete: %s channels, %s programmes, %s skipped",
        len(result.channels),
        len(result.programmes),
        result.skipped_elements,
    )
    return result
