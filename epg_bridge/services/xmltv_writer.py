"""
Merged XMLTV output

Concatenates the raw channel and programme blocks of every source into one
document for IPTV players. Blocks are passed through untouched and are not
deduplicated.
"""
from typing import Iterable
from xml.sax.saxutils import quoteattr

from epg_bridge.services.fetch_types import EpgDataset


XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
EMPTY_XMLTV = f"{XML_DECLARATION}\n<tv></tv>"


def render_blocks(blocks: Iterable[str], generator_name: str) -> str:
    body = "\n".join(blocks)
    return (
        f"{XML_DECLARATION}\n"
        f"<tv generator-info-name={quoteattr(generator_name)}>\n"
        f"{body}\n"
        f"</tv>"
    )


def render_merged_xmltv(dataset: EpgDataset | None, generator_name: str) -> str:
    """Render the dataset's raw blocks (channels first, then programmes)."""
    if dataset is None:
        return render_blocks((), generator_name)
    return render_blocks(dataset.xmltv_blocks, generator_name)
