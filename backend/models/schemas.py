"""
Pydantic models for the revenue split ledger.

Stored records (persisted as JSON lists in the key-value store):
  - Tenant: An account entitled to a share of distribution revenue
  - Channel: A platform channel bound to a tenant
  - ContentItem: A piece of content handed out to tenants
  - DistributionEvent: One content item delivered to one tenant, with a growing view counter
  - Withdrawal: A tenant's request to pay out their available balance
  - RateConfig: The global price-per-1000-views and platform fee (singleton)

Derived models (computed on every read, never stored):
  - DistributionRevenue, TenantRevenue, PlatformOverview
  - ImportResult

API request models live at the bottom of this module.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal, Optional


Role = Literal["operator", "tenant"]
Platform = Literal["youtube", "tiktok"]
Outcome = Literal["success", "failed"]
WithdrawalStatus = Literal["pending", "completed"]


# ---------------------------------------------------------------------------
# Tenant: split_ratio is a percentage of gross revenue (0 and 100 both valid)
# ---------------------------------------------------------------------------
class Tenant(BaseModel):
    id: str
    display_name: str
    secret: str
    role: Role = "tenant"
    split_ratio: float = 0.0
    created_at: datetime


# ---------------------------------------------------------------------------
# Channel: duplicates per (platform, external_identifier) are tolerated
# ---------------------------------------------------------------------------
class Channel(BaseModel):
    id: str
    tenant_id: str
    platform: Platform
    external_identifier: str  # channel ID for youtube, username for tiktok
    display_name: str


class ContentItem(BaseModel):
    id: str
    title: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    uploaded_at: datetime


# ---------------------------------------------------------------------------
# DistributionEvent: view_count only ever grows (traffic mutator)
# ---------------------------------------------------------------------------
class DistributionEvent(BaseModel):
    id: str
    content_id: str
    tenant_id: str
    created_at: datetime
    view_count: int = Field(default=0, ge=0)
    outcome: Outcome = "success"


class Withdrawal(BaseModel):
    id: str
    tenant_id: str
    amount: float = Field(gt=0)
    requested_at: datetime
    status: WithdrawalStatus = "pending"


# ---------------------------------------------------------------------------
# RateConfig: read at computation time, applies retroactively to all history
# ---------------------------------------------------------------------------
class RateConfig(BaseModel):
    price_per_thousand_views: float
    platform_fee_percent: float = 0.0


# ---------------------------------------------------------------------------
# Derived revenue views
#
# gross = (views / 1000) * price_per_thousand_views
# net   = gross * split_ratio / 100
# No rounding here: round only when formatting for display/export.
# ---------------------------------------------------------------------------
class DistributionRevenue(BaseModel):
    distribution: DistributionEvent
    content_title: Optional[str] = None
    gross_revenue: float = 0.0
    net_revenue: float = 0.0


class TenantRevenue(BaseModel):
    tenant_id: str
    display_name: str
    split_ratio: float
    total_views: int = 0
    gross_revenue: float = 0.0
    net_revenue: float = 0.0
    withdrawn: float = 0.0
    available_balance: float = 0.0


class PlatformOverview(BaseModel):
    total_views: int = 0
    total_gross_revenue: float = 0.0
    active_tenants: int = 0
    pending_payout: float = 0.0  # sum of pending withdrawal amounts


class ImportResult(BaseModel):
    tenants_created: int = 0
    channels_created: int = 0


# ---------------------------------------------------------------------------
# API request models
# ---------------------------------------------------------------------------
class TenantCreateRequest(BaseModel):
    display_name: str
    secret: str
    split_ratio: float = 0.0


class RatioUpdateRequest(BaseModel):
    split_ratio: float


class ChannelBindRequest(BaseModel):
    platform: Platform
    external_identifier: str
    display_name: Optional[str] = None


class ImportRequest(BaseModel):
    payload: str


class DistributeRequest(BaseModel):
    title: str
    description: str = ""
    tags: list[str] = Field(default_factory=list)
    tenant_ids: list[str]


class TenantRevenueResponse(BaseModel):
    summary: TenantRevenue
    distributions: list[DistributionRevenue]


class TenantPublic(BaseModel):
    """Tenant as returned by the API: everything except the secret."""
    id: str
    display_name: str
    role: Role = "tenant"
    split_ratio: float = 0.0
    created_at: datetime
