"""
Channel name normalization

Two deliberately different canonicalizations:

* ``normalize_channel_id`` follows XMLTV channel-id conventions
  (``Telefe.ar``, ``Canal.9.ar``).
* ``normalize_display_name`` follows provider stream names
  (``AR: TELEFE HD``, ``CANAL: TN ᴴᴰ (Backup)``).

Both return an uppercase token made of ``A-Z``, ``0-9`` and single spaces.
Keep them separate: unifying them lowers matching precision.
"""
import re
import unicodedata


STYLIZED_QUALITY_MARKERS = ("ᵁᴴᴰ", "ᴴᴰ", "ᴿᴬᵂ", "ʰᵉᵛᶜ", "⁶⁰ᶠᵖˢ", "³⁸⁴⁰ᴾ")

DISPLAY_NAME_PREFIXES = ("ARGENTINA", "CANAL", "AR", "LA")

_COUNTRY_SUFFIX_RE = re.compile(r"\.[A-Z]{2}$")
_CANAL_ID_PREFIX_RE = re.compile(r"^CANAL\.\s*")
_PARENTHESIZED_RE = re.compile(r"\([^()]*\)")
_DISPLAY_PREFIX_RE = re.compile(
    r"^\s*(?:(?:" + "|".join(DISPLAY_NAME_PREFIXES) + r")\s*[:|.]|CANAL\s)\s*"
)
_QUALITY_TAG_RE = re.compile(r"(?<![A-Z0-9])(?:FHD|UHD|HD|SD)(?![A-Z0-9])")
_NON_TOKEN_RE = re.compile(r"[^A-Z0-9 ]")
_WHITESPACE_RE = re.compile(r"\s+")


def _fold_accents(value: str) -> str:
    """Turn accented letters into their base letter (``Á`` -> ``A``)."""
    decomposed = unicodedata.normalize("NFKD", value)
    return "".join(char for char in decomposed if not unicodedata.combining(char))


def _replace_ampersands(value: str) -> str:
    return value.replace("&AMP;", "&").replace("&", "AND")


def _finish(value: str) -> str:
    value = _NON_TOKEN_RE.sub("", value)
    return _WHITESPACE_RE.sub(" ", value).strip()


def normalize_channel_id(raw_id: str) -> str:
    """Canonicalize an XMLTV channel id for comparison."""
    if not raw_id:
        return ""
    value = _fold_accents(raw_id).upper().strip()
    value = _COUNTRY_SUFFIX_RE.sub("", value)
    value = _CANAL_ID_PREFIX_RE.sub("", value)
    value = value.replace(".", " ")
    value = _PARENTHESIZED_RE.sub(" ", value)
    value = _replace_ampersands(value)
    return _finish(value)


def _strip_prefixes(value: str) -> str:
    """Drop leading network prefixes (``AR:``, ``CANAL 13``) until none is left."""
    while True:
        stripped = _DISPLAY_PREFIX_RE.sub("", value, count=1)
        if stripped == value:
            return value
        value = stripped


def normalize_display_name(raw_name: str) -> str:
    """Canonicalize a provider stream / channel display name for comparison.

    Quality tags are removed only as whole words: ``TELEFEHD`` stays as is.
    """
    if not raw_name:
        return ""
    value = raw_name
    for marker in STYLIZED_QUALITY_MARKERS:
        value = value.replace(marker, " ")
    value = _fold_accents(value).upper()
    value = _strip_prefixes(value)
    value = _PARENTHESIZED_RE.sub(" ", value)
    value = _replace_ampersands(value)
    value = value.replace(".", " ")
    value = _finish(value)
    value = _QUALITY_TAG_RE.sub(" ", value)
    # Dropping tags can expose another prefix ("HD CANAL 13")
    value = _strip_prefixes(_WHITESPACE_RE.sub(" ", value).strip())
    return value
