"""
Revenue Split Ledger: FastAPI application.

Operator endpoints:
  GET  /api/settings                     current rate config
  PUT  /api/settings                     replace rate config (retroactive)
  GET  /api/tenants                      list tenants
  POST /api/tenants                      create tenant
  PATCH  /api/tenants/{id}/ratio         edit split ratio
  DELETE /api/tenants/{id}               delete tenant
  POST /api/import                       batch import tenants + channels
  GET  /api/distributions                list distributions
  POST /api/distributions                distribute content to tenants
  GET  /api/revenue                      per-tenant revenue
  GET  /api/overview                     platform totals
  GET  /api/revenue/export?format=...    download CSV / XLSX revenue report
  POST /api/withdrawals/{id}/complete    mark a withdrawal completed

Tenant endpoints:
  GET  /api/tenants/{id}/channels        list channels
  POST /api/tenants/{id}/channels        bind channel
  GET  /api/tenants/{id}/revenue         revenue summary + per-distribution revenue
  GET  /api/tenants/{id}/withdrawals     withdrawal history (most recent first)
  POST /api/tenants/{id}/withdrawals     withdraw entire available balance

Error handling:
  Every LedgerError maps to a status code in ERROR_STATUS and a body of
  {"detail": {"status": "error", "message": ...}}.

Background work:
  The traffic simulator starts on app startup and is cancelled on shutdown.
"""

import os
import logging
from typing import Literal

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse

import config
from models.schemas import (
    Channel,
    ChannelBindRequest,
    DistributeRequest,
    DistributionEvent,
    ImportRequest,
    ImportResult,
    PlatformOverview,
    RateConfig,
    RatioUpdateRequest,
    Tenant,
    TenantCreateRequest,
    TenantPublic,
    TenantRevenue,
    TenantRevenueResponse,
    Withdrawal,
)
from services import attribution
from services.batch_import import import_payload
from services.channel_registry import bind_channel, list_channels
from services.distribution_ledger import distribute_content, list_distributions
from services.errors import (
    InsufficientBalance,
    InvalidChannel,
    InvalidConfig,
    InvalidDistribution,
    InvalidTenant,
    LedgerError,
    MalformedRow,
    StorageUnavailable,
    TenantNotFound,
    UnknownReference,
)
from services.rate_config import get_rate_config, set_rate_config
from services.revenue_export import generate_report
from services.store import KeyValueStore, create_store
from services.tenant_registry import (
    OPERATOR_ROLE,
    create_tenant,
    delete_tenant,
    get_tenant,
    list_tenants,
    update_split_ratio,
)
from services.traffic import TrafficSimulator
from services.withdrawal_ledger import complete_withdrawal, list_withdrawals, request_withdrawal

# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

ERROR_STATUS: dict[type[LedgerError], int] = {
    InvalidConfig: 400,
    InvalidTenant: 400,
    InvalidChannel: 400,
    InvalidDistribution: 400,
    MalformedRow: 400,
    InsufficientBalance: 409,
    TenantNotFound: 404,
    UnknownReference: 404,
    StorageUnavailable: 503,
}

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Revenue Split Ledger",
    description="Per-view revenue attribution, tenant balances and batch tenant import",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

store = create_store()
traffic = TrafficSimulator(store, config.TRAFFIC_INTERVAL_SECONDS)


def get_store() -> KeyValueStore:
    return store


@app.on_event("startup")
async def startup_event():
    os.makedirs(config.OUTPUT_DIR, exist_ok=True)
    traffic.start()


@app.on_event("shutdown")
async def shutdown_event():
    await traffic.stop()


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError):
    status_code = ERROR_STATUS.get(type(exc), 400)
    logger.warning(f"{request.method} {request.url.path} → {status_code}: {exc}")
    return JSONResponse(
        status_code=status_code,
        content={"detail": {"status": "error", "message": str(exc)}},
    )


# ===========================================================================
# Rate config
# ===========================================================================

@app.get("/api/settings", response_model=RateConfig)
async def read_settings(store: KeyValueStore = Depends(get_store)):
    return get_rate_config(store)


@app.put("/api/settings", response_model=RateConfig)
async def write_settings(new_config: RateConfig, store: KeyValueStore = Depends(get_store)):
    return set_rate_config(store, new_config)


# ===========================================================================
# Tenants + channels
# ===========================================================================

@app.get("/api/tenants", response_model=list[TenantPublic])
async def read_tenants(include_operator: bool = False, store: KeyValueStore = Depends(get_store)):
    return list_tenants(store, include_operator=include_operator)


@app.post("/api/tenants", response_model=TenantPublic, status_code=201)
async def add_tenant(request: TenantCreateRequest, store: KeyValueStore = Depends(get_store)):
    return create_tenant(store, request.display_name, request.secret, request.split_ratio)


@app.patch("/api/tenants/{tenant_id}/ratio", response_model=TenantPublic)
async def edit_ratio(
    tenant_id: str,
    request: RatioUpdateRequest,
    store: KeyValueStore = Depends(get_store),
):
    return update_split_ratio(store, tenant_id, request.split_ratio)


@app.delete("/api/tenants/{tenant_id}", response_model=TenantPublic)
async def remove_tenant(tenant_id: str, store: KeyValueStore = Depends(get_store)):
    return delete_tenant(store, tenant_id)


@app.get("/api/tenants/{tenant_id}/channels", response_model=list[Channel])
async def read_channels(tenant_id: str, store: KeyValueStore = Depends(get_store)):
    get_tenant(store, tenant_id)
    return list_channels(store, tenant_id)


@app.post("/api/tenants/{tenant_id}/channels", response_model=Channel, status_code=201)
async def add_channel(
    tenant_id: str,
    request: ChannelBindRequest,
    store: KeyValueStore = Depends(get_store),
):
    return bind_channel(
        store, tenant_id, request.platform, request.external_identifier, request.display_name
    )


@app.post("/api/import", response_model=ImportResult)
async def batch_import(request: ImportRequest, store: KeyValueStore = Depends(get_store)):
    result = import_payload(store, request.payload)
    logger.info(
        f"Successfully imported {result.tenants_created} tenants "
        f"& {result.channels_created} channels"
    )
    return result


# ===========================================================================
# Distributions
# ===========================================================================

@app.get("/api/distributions", response_model=list[DistributionEvent])
async def read_distributions(tenant_id: str | None = None, store: KeyValueStore = Depends(get_store)):
    return list_distributions(store, tenant_id)


@app.post("/api/distributions", response_model=list[DistributionEvent], status_code=201)
async def distribute(request: DistributeRequest, store: KeyValueStore = Depends(get_store)):
    _, distributions = distribute_content(
        store, request.title, request.description, request.tags, request.tenant_ids
    )
    return distributions


# ===========================================================================
# Revenue
# ===========================================================================

@app.get("/api/revenue", response_model=list[TenantRevenue])
async def read_revenue(store: KeyValueStore = Depends(get_store)):
    return attribution.revenue_by_tenant(attribution.take_snapshot(store))


@app.get("/api/overview", response_model=PlatformOverview)
async def read_overview(store: KeyValueStore = Depends(get_store)):
    return attribution.platform_overview(attribution.take_snapshot(store))


@app.get("/api/tenants/{tenant_id}/revenue", response_model=TenantRevenueResponse)
async def read_tenant_revenue(tenant_id: str, store: KeyValueStore = Depends(get_store)):
    snapshot = attribution.take_snapshot(store)
    tenant = _require_payable_tenant(snapshot, tenant_id)
    return TenantRevenueResponse(
        summary=attribution.tenant_revenue(snapshot, tenant),
        distributions=attribution.distributions_for_tenant(snapshot, tenant),
    )


@app.get("/api/revenue/export")
async def export_revenue(
    format: Literal["csv", "xlsx"] = "csv",
    store: KeyValueStore = Depends(get_store),
):
    snapshot = attribution.take_snapshot(store)
    filepath = generate_report(
        attribution.revenue_by_tenant(snapshot),
        snapshot.rate,
        fmt=format,
    )
    filename = os.path.basename(filepath)

    media_type = (
        "text/csv"
        if format == "csv"
        else "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
    )
    return FileResponse(
        filepath,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


# ===========================================================================
# Withdrawals
# ===========================================================================

@app.get("/api/tenants/{tenant_id}/withdrawals", response_model=list[Withdrawal])
async def read_withdrawals(tenant_id: str, store: KeyValueStore = Depends(get_store)):
    get_tenant(store, tenant_id)
    return list(list_withdrawals(store, tenant_id))


@app.post("/api/tenants/{tenant_id}/withdrawals", response_model=Withdrawal, status_code=201)
async def withdraw(tenant_id: str, store: KeyValueStore = Depends(get_store)):
    return request_withdrawal(store, tenant_id)


@app.post("/api/withdrawals/{withdrawal_id}/complete", response_model=Withdrawal)
async def finish_withdrawal(withdrawal_id: str, store: KeyValueStore = Depends(get_store)):
    return complete_withdrawal(store, withdrawal_id)


# ===========================================================================
# Helpers
# ===========================================================================

def _require_payable_tenant(snapshot: attribution.LedgerSnapshot, tenant_id: str) -> Tenant:
    tenant = next((t for t in snapshot.tenants if t.id == tenant_id), None)
    if tenant is None:
        raise TenantNotFound(tenant_id)
    if tenant.role == OPERATOR_ROLE:
        raise UnknownReference("tenant", tenant_id, "operator has no revenue")
    return tenant


# ===========================================================================
# Main entry point
# ===========================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
