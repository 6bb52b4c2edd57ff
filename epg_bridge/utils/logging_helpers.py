"""
Structured logging helpers for consistent log formatting.
"""
import logging
from urllib.parse import urlsplit, urlunsplit, parse_qsl, urlencode


SENSITIVE_QUERY_KEYS = frozenset({"password", "pass", "token", "key"})


def sanitize_url_for_logging(url: str) -> str:
    """Remove credentials (userinfo and password-like query values) from a URL."""
    if "://" not in url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url

    netloc = parts.netloc
    if "@" in netloc:
        netloc = "***:***@" + netloc.rsplit("@", 1)[1]

    query = parts.query
    if query:
        pairs = [
            (key, "***" if key.lower() in SENSITIVE_QUERY_KEYS else value)
            for key, value in parse_qsl(query, keep_blank_values=True)
        ]
        query = urlencode(pairs, safe="*")

    return urlunsplit((parts.scheme, netloc, parts.path, query, parts.fragment))


def log_section_start(logger: logging.Logger, section_name: str) -> None:
    """Log the start of a processing section."""
    logger.info(f"Starting: {section_name}")


def log_section_end(logger: logging.Logger, section_name: str) -> None:
    """Log the end of a processing section."""
    logger.info(f"Completed: {section_name}")


def log_source_processing(logger: logging.Logger, idx: int, total: int, url: str) -> None:
    """
    Log source processing header.

    Args:
        logger: Logger instance
        idx: Current source index (1-based)
        total: Total number of sources
        url: Source URL being processed (sanitized before logging)
    """
    logger.info(f"Processing source {idx}/{total}: {sanitize_url_for_logging(url)}")


def log_merge_summary(
    logger: logging.Logger,
    channels_count: int,
    programmes_count: int,
    duplicates_dropped: int,
) -> None:
    """
    Log merge operation summary.

    Args:
        logger: Logger instance
        channels_count: Number of merged channels
        programmes_count: Number of merged programmes
        duplicates_dropped: Channels dropped because their normalized id was already seen
    """
    logger.info(
        f"Merge summary - Channels: {channels_count}, Programmes: {programmes_count}, "
        f"Duplicate channels dropped: {duplicates_dropped}"
    )
