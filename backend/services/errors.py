"""
Error taxonomy for the revenue split ledger.

Every error raised by the services derives from LedgerError so the API layer
can map the whole family to HTTP responses in one place. All of them are
raised before any state is mutated; callers can retry with corrected input.

  InvalidConfig        rate config values out of range
  InvalidTenant        tenant create/edit input rejected
  InvalidChannel       channel binding input rejected
  InvalidDistribution  distribution request rejected
  InsufficientBalance  withdrawal requested below the minimum
  MalformedRow         batch import line failure (carries the line number)
  TenantNotFound       operation against a nonexistent tenant id
  UnknownReference     operation against a nonexistent record of another kind
  StorageUnavailable   the key-value store could not be read or written
"""


class LedgerError(Exception):
    """Base class for all ledger errors."""


class InvalidConfig(LedgerError):
    pass


class InvalidTenant(LedgerError):
    pass


class InvalidChannel(LedgerError):
    pass


class InvalidDistribution(LedgerError):
    pass


class InsufficientBalance(LedgerError):
    def __init__(self, tenant_id: str, available: float, minimum: float):
        self.tenant_id = tenant_id
        self.available = available
        self.minimum = minimum
        super().__init__(
            f"Available balance {available:.2f} for tenant '{tenant_id}' "
            f"is below the minimum withdrawal of {minimum:.2f}"
        )


class MalformedRow(LedgerError):
    def __init__(self, line_number: int, reason: str = "invalid format"):
        self.line_number = line_number
        self.reason = reason
        super().__init__(f"Line {line_number} {reason}")


class TenantNotFound(LedgerError):
    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant not found: {tenant_id}")


class UnknownReference(LedgerError):
    def __init__(self, kind: str, ref_id: str, reason: str = "not found"):
        self.kind = kind
        self.ref_id = ref_id
        super().__init__(f"{kind} {ref_id}: {reason}")


class StorageUnavailable(LedgerError):
    pass
