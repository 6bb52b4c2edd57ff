"""
Database operations for providers and selections

This module contains the CRUD operations backing the provider-compatible API:
provider credentials, client short codes and selected stream IDs.
"""
import logging
import secrets
from collections.abc import Sequence
from uuid import uuid4

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from epg_bridge.models import Provider, Selection


logger = logging.getLogger(__name__)

# No 0/o, 1/l/i: codes are typed into TV remotes
SHORT_CODE_ALPHABET = "abcdefghjkmnpqrstuvwxyz23456789"
SHORT_CODE_LENGTH = 6


def generate_short_code(length: int = SHORT_CODE_LENGTH) -> str:
    return "".join(secrets.choice(SHORT_CODE_ALPHABET) for _ in range(length))


async def get_provider(db: AsyncSession, provider_id: str) -> Provider | None:
    return await db.get(Provider, provider_id)


async def get_provider_by_short_code(db: AsyncSession, short_code: str) -> Provider | None:
    result = await db.execute(select(Provider).where(Provider.short_code == short_code))
    return result.scalar_one_or_none()


async def find_provider_by_credentials(
    db: AsyncSession,
    url: str,
    username: str,
    password: str
) -> Provider | None:
    result = await db.execute(
        select(Provider).where(
            Provider.url == url,
            Provider.username == username,
            Provider.password == password,
        )
    )
    return result.scalars().first()


async def upsert_provider(
    db: AsyncSession,
    url: str,
    username: str,
    password: str,
    provider_id: str | None = None
) -> Provider:
    """
    Create a provider, or update the credentials of an existing one.

    Registering identical credentials again reuses the existing provider ID.

    Args:
        db: Database session
        url: Upstream base URL
        username: Upstream username
        password: Upstream password
        provider_id: Explicit ID to update (generated when omitted and no match exists)

    Returns:
        The stored provider
    """
    provider = None
    if provider_id:
        provider = await get_provider(db, provider_id)
    if provider is None:
        provider = await find_provider_by_credentials(db, url, username, password)

    if provider is None:
        provider = Provider(
            id=provider_id or str(uuid4()),
            url=url,
            username=username,
            password=password,
        )
        db.add(provider)
        logger.info("Registered new provider %s", provider.id)
    else:
        provider.url = url
        provider.username = username
        provider.password = password
        logger.debug("Updated credentials for provider %s", provider.id)

    await db.flush()
    return provider


async def get_or_create_short_code(db: AsyncSession, provider: Provider) -> str:
    """Return the provider's short code, assigning a unique one on first use."""
    if provider.short_code:
        return provider.short_code

    while True:
        code = generate_short_code()
        if await get_provider_by_short_code(db, code) is None:
            break

    provider.short_code = code
    await db.flush()
    logger.info("Assigned short code %s to provider %s", code, provider.id)
    return code


async def save_selections(db: AsyncSession, provider_id: str, stream_ids: Sequence[int]) -> int:
    """
    Replace the provider's selected streams.

    Returns:
        Number of distinct stream IDs stored
    """
    unique_ids = list(dict.fromkeys(stream_ids))
    await db.execute(delete(Selection).where(Selection.provider_id == provider_id))
    db.add_all(Selection(provider_id=provider_id, stream_id=stream_id) for stream_id in unique_ids)
    await db.flush()
    logger.info("Stored %s selected stream(s) for provider %s", len(unique_ids), provider_id)
    return len(unique_ids)


async def get_selections(db: AsyncSession, provider_id: str) -> list[int]:
    result = await db.execute(
        select(Selection.stream_id)
        .where(Selection.provider_id == provider_id)
        .order_by(Selection.stream_id)
    )
    return list(result.scalars().all())
