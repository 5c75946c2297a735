"""
Distribution ledger and content catalogue.

A distribution is one content item delivered to one tenant. Its view_count
starts at a small seed value and afterwards only grows (see services/traffic.py).
Distributions are never deleted, including when their tenant is.
"""

import logging
import random
import uuid
from datetime import datetime, timezone
from typing import Optional

from models.schemas import ContentItem, DistributionEvent
from services.errors import InvalidDistribution, UnknownReference
from services.store import (
    KeyValueStore,
    CONTENT_KEY,
    DISTRIBUTIONS_KEY,
    load_records,
    save_records,
)
from services.tenant_registry import OPERATOR_ROLE, get_tenant

logger = logging.getLogger(__name__)

# Initial traction: new distributions start with uniform [0, SEED_VIEWS_MAX) views
SEED_VIEWS_MAX = 1_000


def load_content(store: KeyValueStore) -> list[ContentItem]:
    return load_records(store, CONTENT_KEY, ContentItem)


def load_distributions(store: KeyValueStore) -> list[DistributionEvent]:
    return load_records(store, DISTRIBUTIONS_KEY, DistributionEvent)


def save_distributions(store: KeyValueStore, distributions: list[DistributionEvent]) -> None:
    save_records(store, DISTRIBUTIONS_KEY, distributions)


def list_distributions(
    store: KeyValueStore,
    tenant_id: Optional[str] = None,
) -> list[DistributionEvent]:
    distributions = load_distributions(store)
    if tenant_id is None:
        return distributions
    return [d for d in distributions if d.tenant_id == tenant_id]


def create_content(
    store: KeyValueStore,
    title: str,
    description: str = "",
    tags: Optional[list[str]] = None,
) -> ContentItem:
    title = title.strip()
    if not title:
        raise InvalidDistribution("title must not be empty")

    item = ContentItem(
        id=f"s_{uuid.uuid4().hex[:12]}",
        title=title,
        description=description,
        tags=[t.strip() for t in (tags or []) if t.strip()],
        uploaded_at=datetime.now(timezone.utc),
    )
    with store.transaction():
        save_records(store, CONTENT_KEY, load_content(store) + [item])

    logger.info(f"Content created: '{item.title}' ({item.id})")
    return item


def distribute_content(
    store: KeyValueStore,
    title: str,
    description: str,
    tags: Optional[list[str]],
    tenant_ids: list[str],
    rng: Optional[random.Random] = None,
) -> tuple[ContentItem, list[DistributionEvent]]:
    """
    Create a content item and hand it out to every listed tenant.

    All tenants are validated before anything is written, so a bad id leaves
    both the catalogue and the ledger untouched.

    Args:
        tenant_ids: Target tenants (duplicates collapse to one distribution)
        rng:        Random source for the seed view counts (tests pass a seeded one)

    Returns:
        (content_item, new_distributions)

    Raises:
        InvalidDistribution: empty title or no target tenants
        TenantNotFound:      a target tenant does not exist
        UnknownReference:    a target tenant is the operator
    """
    rng = rng or random.Random()
    targets = list(dict.fromkeys(tenant_ids))
    if not targets:
        raise InvalidDistribution("at least one tenant must be selected")
    if not title.strip():
        raise InvalidDistribution("title must not be empty")

    with store.transaction():
        for tenant_id in targets:
            tenant = get_tenant(store, tenant_id)
            if tenant.role == OPERATOR_ROLE:
                raise UnknownReference("tenant", tenant_id, "operator cannot receive distributions")

        item = create_content(store, title, description, tags)
        now = datetime.now(timezone.utc)
        new_distributions = [
            DistributionEvent(
                id=f"d_{uuid.uuid4().hex[:12]}",
                content_id=item.id,
                tenant_id=tenant_id,
                created_at=now,
                view_count=rng.randrange(SEED_VIEWS_MAX),
                outcome="success",
            )
            for tenant_id in targets
        ]
        save_distributions(store, load_distributions(store) + new_distributions)

    logger.info(f"Distributed '{item.title}' to {len(new_distributions)} tenants")
    return item, new_distributions


def record_views(store: KeyValueStore, distribution_id: str, increment: int) -> DistributionEvent:
    """Add views to one distribution. Views never decrease."""
    if increment < 0:
        raise InvalidDistribution(f"view increment must be >= 0, got {increment}")

    with store.transaction():
        distributions = load_distributions(store)
        for i, dist in enumerate(distributions):
            if dist.id == distribution_id:
                updated = dist.model_copy(update={"view_count": dist.view_count + increment})
                distributions[i] = updated
                save_distributions(store, distributions)
                return updated

    raise UnknownReference("distribution", distribution_id)
