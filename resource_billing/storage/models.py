"""
Data models for storage layer.

Defines database entities and data structures.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

# Largest value a SQLite INTEGER column can hold.
SQLITE_MAX_INTEGER = 2 ** 63 - 1


@dataclass(frozen=True)
class MigrationRecord:
    """Ledger entry marking a migration as applied."""
    name: str
    applied_at: datetime


@dataclass(frozen=True)
class PricingPlanComponent:
    """One priced component of a plan, evaluated by the pricing engine."""
    name: str
    formula: str
    vat_code: str
    currency_code: str


@dataclass(frozen=True)
class PricingPlan:
    """Effective-dated revision of a pricing plan.

    Several revisions may share a plan_guid; each is keyed by valid_from.
    memory_in_mb and storage_in_mb describe the footprint a provisioned
    instance of the plan represents and are 0 for unmetered plans.
    """
    name: str
    plan_guid: str
    valid_from: datetime
    components: List[PricingPlanComponent] = field(default_factory=list)
    memory_in_mb: int = 0
    storage_in_mb: int = 0
    number_of_nodes: int = 1

    def __post_init__(self):
        """Validate footprint values are non-negative."""
        if self.memory_in_mb < 0:
            raise ValueError("memory_in_mb cannot be negative")
        if self.storage_in_mb < 0:
            raise ValueError("storage_in_mb cannot be negative")
        if self.number_of_nodes < 0:
            raise ValueError("number_of_nodes cannot be negative")


@dataclass(frozen=True)
class VATRate:
    """Effective-dated VAT rate."""
    code: str
    valid_from: datetime
    rate: float


@dataclass(frozen=True)
class CurrencyRate:
    """Effective-dated currency conversion rate."""
    code: str
    valid_from: datetime
    rate: float


@dataclass(frozen=True)
class UsageEvent:
    """Raw usage event as appended by the event collector.

    Append-only: once written these rows are never modified. raw_message
    is the JSON payload exactly as received from upstream.
    """
    created_at: datetime
    guid: str
    raw_message: str


@dataclass(frozen=True)
class AppUsageEvent:
    """Typed view of an app (compute workload) usage event."""
    created_at: datetime
    event_guid: str
    state: str
    app_guid: str
    app_name: Optional[str]
    org_guid: Optional[str]
    space_guid: Optional[str]
    plan_guid: Optional[str]
    instance_count: int = 0
    memory_in_mb_per_instance: int = 0

    @property
    def memory_in_mb(self) -> int:
        """Total memory footprint across all instances, 0 when it cannot be stored."""
        total = self.memory_in_mb_per_instance * self.instance_count
        if total > SQLITE_MAX_INTEGER:
            return 0
        return total


@dataclass(frozen=True)
class ServiceUsageEvent:
    """Typed view of a provisioned service instance usage event."""
    created_at: datetime
    event_guid: str
    state: str
    service_instance_guid: str
    service_instance_name: Optional[str]
    org_guid: Optional[str]
    space_guid: Optional[str]
    service_plan_guid: Optional[str]


@dataclass(frozen=True)
class ResourceDuration:
    """Billable interval for one resource.

    stop is None while the resource is still running. memory_in_mb and
    storage_in_mb are None for resources whose footprint comes from the
    pricing plan rather than from the usage events.
    """
    guid: str
    resource_type: str
    start: datetime
    stop: Optional[datetime]
    plan_guid: Optional[str]
    resource_name: Optional[str] = None
    org_guid: Optional[str] = None
    space_guid: Optional[str] = None
    plan_name: Optional[str] = None
    memory_in_mb: Optional[int] = None
    storage_in_mb: Optional[int] = None

    def __post_init__(self):
        """Validate the interval is not reversed."""
        if self.stop is not None and self.stop < self.start:
            raise ValueError("stop must not be before start")
