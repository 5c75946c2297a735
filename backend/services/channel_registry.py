"""
Channel registry: (tenant → platform channel) bindings.

A channel must reference an existing tenant when it is created. Channels are
not deduplicated: binding the same identifier twice yields two rows.
"""

import logging
import uuid
from typing import Optional

from models.schemas import Channel, Platform
from services.errors import InvalidChannel
from services.store import KeyValueStore, CHANNELS_KEY, load_records, save_records
from services.tenant_registry import get_tenant

logger = logging.getLogger(__name__)

# Legacy heuristic: YouTube channel IDs start with "UC"; everything else is
# treated as a TikTok username. Only the batch importer relies on it.
YOUTUBE_ID_PREFIX = "UC"


def infer_platform(external_identifier: str) -> Platform:
    if external_identifier.startswith(YOUTUBE_ID_PREFIX):
        return "youtube"
    return "tiktok"


def default_channel_name(platform: Platform, external_identifier: str) -> str:
    if platform == "youtube":
        return f"YT Channel ({external_identifier})"
    return f"@{external_identifier}"


def new_channel_id() -> str:
    return f"c_{uuid.uuid4().hex[:12]}"


def load_channels(store: KeyValueStore) -> list[Channel]:
    return load_records(store, CHANNELS_KEY, Channel)


def save_channels(store: KeyValueStore, channels: list[Channel]) -> None:
    save_records(store, CHANNELS_KEY, channels)


def list_channels(store: KeyValueStore, tenant_id: Optional[str] = None) -> list[Channel]:
    channels = load_channels(store)
    if tenant_id is None:
        return channels
    return [c for c in channels if c.tenant_id == tenant_id]


def bind_channel(
    store: KeyValueStore,
    tenant_id: str,
    platform: Platform,
    external_identifier: str,
    display_name: Optional[str] = None,
) -> Channel:
    """
    Bind a platform channel to an existing tenant.

    Raises:
        TenantNotFound: tenant_id does not exist
        InvalidChannel: empty external identifier
    """
    external_identifier = external_identifier.strip()
    if not external_identifier:
        raise InvalidChannel("external_identifier must not be empty")

    with store.transaction():
        get_tenant(store, tenant_id)

        channel = Channel(
            id=new_channel_id(),
            tenant_id=tenant_id,
            platform=platform,
            external_identifier=external_identifier,
            display_name=display_name or default_channel_name(platform, external_identifier),
        )
        save_channels(store, load_channels(store) + [channel])

    logger.info(f"Channel bound: {platform} '{external_identifier}' → tenant {tenant_id}")
    return channel
