"""
Global rate configuration (price per 1000 views + platform fee).

There is exactly one RateConfig per store. It is never attached to past
distributions: every revenue computation reads the current value, so a change
here retroactively reprices all historical views.
"""

import logging
import math

import config
from models.schemas import RateConfig
from services.errors import InvalidConfig
from services.store import KeyValueStore, SETTINGS_KEY

logger = logging.getLogger(__name__)


def default_rate_config() -> RateConfig:
    return RateConfig(
        price_per_thousand_views=config.DEFAULT_PRICE_PER_THOUSAND_VIEWS,
        platform_fee_percent=config.DEFAULT_PLATFORM_FEE_PERCENT,
    )


def get_rate_config(store: KeyValueStore) -> RateConfig:
    raw = store.get(SETTINGS_KEY)
    if raw is None:
        return default_rate_config()
    return RateConfig.model_validate(raw)


def set_rate_config(store: KeyValueStore, new_config: RateConfig) -> RateConfig:
    """
    Validate and persist a new rate config.

    Raises:
        InvalidConfig: price < 0, fee outside [0, 100], or a non-finite value.
    """
    price = new_config.price_per_thousand_views
    fee = new_config.platform_fee_percent

    if not math.isfinite(price) or price < 0:
        raise InvalidConfig(f"price_per_thousand_views must be >= 0, got {price}")
    if not math.isfinite(fee) or not 0 <= fee <= 100:
        raise InvalidConfig(f"platform_fee_percent must be within [0, 100], got {fee}")

    store.set(SETTINGS_KEY, new_config.model_dump(mode="json"))
    logger.info(
        f"Rate config updated: price_per_1k={price}, platform_fee={fee}% "
        f"(applies to all historical distributions)"
    )
    return new_config
