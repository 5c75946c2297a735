"""
Batch import of tenants and channels from a comma-separated payload.

Payload format (one data row per line, optional header row):
  displayName,secret,splitRatio,channelDisplayName,channelExternalIdentifier
  demo1,123456,75,MyChannel,UC12345...

Rules:
  - The first line is a header (and skipped) when its first cell, lowercased,
    is one of HEADER_LABELS
  - Blank lines are skipped; fields are whitespace-stripped; extra trailing
    fields are ignored
  - A row with fewer than 5 fields, or a split ratio with no leading number,
    aborts the whole import with MalformedRow(line_number); nothing is written
  - The split ratio is read from its leading number, so "75%" imports as 75
  - Tenants are resolved by display_name: persisted tenants first, then ones
    created earlier in the same payload
  - Every row creates a new channel; the platform is inferred from the
    identifier (see channel_registry.infer_platform)
  - split_ratio is NOT range-checked here (out-of-range values are kept as-is)

Two phases:
  1. parse_payload(): pure, turns text into ImportRow objects or raises
  2. import_payload(): resolves tenants and writes tenants + channels once,
     inside a single store transaction
"""

import logging
import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone

from models.schemas import Channel, ImportResult, Tenant
from services.channel_registry import (
    infer_platform,
    load_channels,
    new_channel_id,
    save_channels,
)
from services.errors import MalformedRow, StorageUnavailable
from services.store import KeyValueStore
from services.tenant_registry import (
    TENANT_ROLE,
    find_tenant_by_name,
    load_tenants,
    new_tenant_id,
    save_tenants,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Column layout (0-based)
# ---------------------------------------------------------------------------
COL_DISPLAY_NAME = 0
COL_SECRET = 1
COL_SPLIT_RATIO = 2
COL_CHANNEL_NAME = 3
COL_CHANNEL_ID = 4
REQUIRED_FIELDS = 5

HEADER_LABELS = {"username", "displayname", "display_name"}

LEADING_NUMBER = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


@dataclass(frozen=True)
class ImportRow:
    line_number: int
    display_name: str
    secret: str
    split_ratio: float
    channel_name: str
    channel_identifier: str


# ===========================================================================
# Public API
# ===========================================================================

def import_payload(store: KeyValueStore, payload: str) -> ImportResult:
    """
    Parse the payload and merge it into the tenant and channel registries.

    Returns:
        ImportResult with the number of tenants and channels created

    Raises:
        MalformedRow: any data row is malformed (no state is changed)
    """
    # ------------------------------------------------------------------
    # Step 1: Parse every row before touching the store
    # ------------------------------------------------------------------
    rows = parse_payload(payload)
    logger.info(f"Batch import parsed: {len(rows)} data rows")

    # ------------------------------------------------------------------
    # Step 2: Resolve tenants and accumulate new records, then commit once
    # ------------------------------------------------------------------
    with store.transaction():
        existing_tenants = load_tenants(store)
        existing_channels = load_channels(store)

        new_tenants: list[Tenant] = []
        new_channels: list[Channel] = []
        now = datetime.now(timezone.utc)

        for row in rows:
            tenant = (
                find_tenant_by_name(existing_tenants, row.display_name)
                or find_tenant_by_name(new_tenants, row.display_name)
            )
            if tenant is None:
                tenant = Tenant(
                    id=new_tenant_id(),
                    display_name=row.display_name,
                    secret=row.secret,
                    role=TENANT_ROLE,
                    split_ratio=row.split_ratio,
                    created_at=now,
                )
                new_tenants.append(tenant)
                logger.debug(f"  Line {row.line_number}: new tenant '{row.display_name}'")

            new_channels.append(Channel(
                id=new_channel_id(),
                tenant_id=tenant.id,
                platform=infer_platform(row.channel_identifier),
                external_identifier=row.channel_identifier,
                display_name=row.channel_name,
            ))

        _commit(store, existing_tenants, new_tenants, existing_channels, new_channels)

    logger.info(
        f"Batch import committed: {len(new_tenants)} tenants, "
        f"{len(new_channels)} channels created"
    )
    return ImportResult(
        tenants_created=len(new_tenants),
        channels_created=len(new_channels),
    )


def parse_payload(payload: str) -> list[ImportRow]:
    """
    Turn the payload text into ImportRow objects.

    Line numbers are 1-based over the stripped payload, counting the header
    and blank lines, so they match what the user sees in their file.
    """
    lines = [line.rstrip("\r") for line in payload.strip().split("\n")]
    if not lines:
        return []

    start_idx = 1 if _is_header(lines[0]) else 0
    rows: list[ImportRow] = []

    for idx in range(start_idx, len(lines)):
        line = lines[idx].strip()
        if not line:
            continue

        line_number = idx + 1
        parts = [p.strip() for p in line.split(",")]
        if len(parts) < REQUIRED_FIELDS:
            logger.warning(
                f"Batch import aborted: line {line_number} has {len(parts)} fields, "
                f"expected {REQUIRED_FIELDS}"
            )
            raise MalformedRow(line_number)

        rows.append(ImportRow(
            line_number=line_number,
            display_name=parts[COL_DISPLAY_NAME],
            secret=parts[COL_SECRET],
            split_ratio=_parse_ratio(parts[COL_SPLIT_RATIO], line_number),
            channel_name=parts[COL_CHANNEL_NAME],
            channel_identifier=parts[COL_CHANNEL_ID],
        ))

    return rows


# ===========================================================================
# Private helpers
# ===========================================================================

def _is_header(first_line: str) -> bool:
    first_cell = first_line.split(",", 1)[0]
    return first_cell.strip().lower() in HEADER_LABELS


def _parse_ratio(raw_value: str, line_number: int) -> float:
    match = LEADING_NUMBER.match(raw_value.strip())
    ratio = float(match.group(0)) if match else math.nan

    if not math.isfinite(ratio):
        logger.warning(f"Batch import aborted: line {line_number} split ratio '{raw_value}' is not a number")
        raise MalformedRow(line_number, "invalid split ratio")
    return ratio


def _commit(
    store: KeyValueStore,
    existing_tenants: list[Tenant],
    new_tenants: list[Tenant],
    existing_channels: list[Channel],
    new_channels: list[Channel],
) -> None:
    """Write tenants then channels; roll tenants back if the channel write fails."""
    save_tenants(store, existing_tenants + new_tenants)
    try:
        save_channels(store, existing_channels + new_channels)
    except StorageUnavailable:
        logger.error("Channel write failed during batch import, restoring tenant registry")
        save_tenants(store, existing_tenants)
        raise
