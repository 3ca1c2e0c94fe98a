"""
Domain types shared by the analysis engine, the approval registry and the API.

Metric records and reports are immutable values. Change proposals carry their
current/proposed snapshots as a tagged union keyed by change_type, so each
change kind has exactly one payload shape.
"""

import enum
import uuid
from datetime import date, datetime
from typing import Annotated, Any, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

# Break-even ACOS reported when there are no sales yet but royalty economics
# are configured. Heuristic default, overridable via settings.
DEFAULT_BREAK_EVEN_ACOS = 30.0


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class ChangeType(str, enum.Enum):
    BID_ADJUSTMENT = "bid_adjustment"
    STATE_CHANGE = "state_change"
    BUDGET_CHANGE = "budget_change"
    ADD_NEGATIVE_KEYWORD = "add_negative_keyword"


class ChangeStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXECUTED = "executed"
    FAILED = "failed"


class TargetType(str, enum.Enum):
    CAMPAIGN = "campaign"
    AD_GROUP = "ad_group"
    KEYWORD = "keyword"


class OutcomeStatus(str, enum.Enum):
    EXECUTED = "executed"
    FAILED = "failed"
    APPROVED_UNEXECUTED = "approved_unexecuted"
    REJECTED = "rejected"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"


# ══════════════════════════════════════════════════════════════════════
#  CAMPAIGN STRUCTURE
# ══════════════════════════════════════════════════════════════════════

class CampaignRecord(BaseModel):
    id: str = Field(min_length=1)
    name: str
    campaign_type: Literal["sponsoredProducts", "sponsoredBrands", "sponsoredDisplay"] = "sponsoredProducts"
    state: Literal["enabled", "paused", "archived"]
    daily_budget: float = Field(ge=0)
    start_date: Optional[str] = None  # YYYYMMDD
    end_date: Optional[str] = None
    targeting_type: Literal["manual", "auto"] = "manual"


class KeywordRecord(BaseModel):
    id: str = Field(min_length=1)
    ad_group_id: str
    campaign_id: str
    keyword_text: str
    match_type: Literal["broad", "phrase", "exact"]
    state: Literal["enabled", "paused", "archived"]
    bid: float = Field(ge=0)


# ══════════════════════════════════════════════════════════════════════
#  METRICS & REPORTS
# ══════════════════════════════════════════════════════════════════════

class MetricRecord(BaseModel):
    """One campaign on one calendar day, as ingested from Amazon reports."""
    model_config = ConfigDict(frozen=True)

    campaign_id: str
    date: date
    impressions: int = Field(default=0, ge=0)
    clicks: int = Field(default=0, ge=0)
    spend: float = Field(default=0.0, ge=0)
    sales: float = Field(default=0.0, ge=0)
    orders: int = Field(default=0, ge=0)
    units_sold: int = Field(default=0, ge=0)
    kenp_royalties: Optional[float] = Field(default=None, ge=0)
    kenp_pages_read: Optional[int] = Field(default=None, ge=0)


class ProfitabilityConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    royalty_per_unit: float = Field(default=0.0, ge=0)
    # Informational only: royalties use the reported kenp_royalties, never pages x rate
    kenp_rate_per_page: Optional[float] = Field(default=None, ge=0)
    break_even_acos_fallback: float = DEFAULT_BREAK_EVEN_ACOS


class MetricTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    impressions: int = 0
    clicks: int = 0
    spend: float = 0.0
    sales: float = 0.0
    orders: int = 0
    units_sold: int = 0
    kenp_royalties: float = 0.0


class ReportPeriod(BaseModel):
    """Dates actually present in the input; both None when there was no data."""
    model_config = ConfigDict(frozen=True)

    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @property
    def is_empty(self) -> bool:
        return self.start_date is None


class ROIReport(BaseModel):
    model_config = ConfigDict(frozen=True)

    campaign_id: str
    campaign_name: str
    period: ReportPeriod

    # Raw totals
    total_spend: float
    total_sales: float
    total_orders: int
    total_units_sold: int
    total_impressions: int
    total_clicks: int
    total_kenp_royalties: float

    # Derived ratios
    acos: float
    roas: float
    ctr: float
    cpc: float
    conversion_rate: float
    estimated_royalties: float
    estimated_profit: float
    profit_margin: float
    break_even_acos: float


class PeriodChanges(BaseModel):
    model_config = ConfigDict(frozen=True)

    spend_change: float
    sales_change: float
    acos_change: float
    profit_change: float
    impressions_change: float
    clicks_change: float


class PeriodComparison(BaseModel):
    model_config = ConfigDict(frozen=True)

    current_period: ROIReport
    previous_period: ROIReport
    changes: PeriodChanges


class DailyTrend(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: date
    spend: float
    sales: float
    acos: float
    impressions: int
    clicks: int


# ══════════════════════════════════════════════════════════════════════
#  CHANGE PAYLOADS — one shape per change kind
# ══════════════════════════════════════════════════════════════════════

_VALUE_CONFIG = ConfigDict(frozen=True, extra="forbid")


class BidValue(BaseModel):
    model_config = _VALUE_CONFIG
    bid: float = Field(ge=0)


class StateSnapshot(BaseModel):
    """Current state as stored."""
    model_config = _VALUE_CONFIG
    state: Literal["enabled", "paused", "archived"]


class StateValue(BaseModel):
    """Proposed state. Archived is terminal on Amazon Ads and is never proposed."""
    model_config = _VALUE_CONFIG
    state: Literal["enabled", "paused"]


class BudgetValue(BaseModel):
    model_config = _VALUE_CONFIG
    daily_budget: float = Field(ge=0)


class NegativeKeywordValue(BaseModel):
    model_config = _VALUE_CONFIG
    keyword_text: str = Field(min_length=1)
    match_type: Literal["negativeExact", "negativePhrase"]


class NoValue(BaseModel):
    """Current value of an addition: nothing exists yet."""
    model_config = _VALUE_CONFIG


class BidAdjustment(BaseModel):
    model_config = ConfigDict(frozen=True)
    change_type: Literal["bid_adjustment"] = "bid_adjustment"
    current_value: BidValue
    proposed_value: BidValue


class StateChange(BaseModel):
    model_config = ConfigDict(frozen=True)
    change_type: Literal["state_change"] = "state_change"
    current_value: StateSnapshot
    proposed_value: StateValue


class BudgetChange(BaseModel):
    model_config = ConfigDict(frozen=True)
    change_type: Literal["budget_change"] = "budget_change"
    current_value: BudgetValue
    proposed_value: BudgetValue


class NegativeKeywordAddition(BaseModel):
    model_config = ConfigDict(frozen=True)
    change_type: Literal["add_negative_keyword"] = "add_negative_keyword"
    current_value: NoValue = NoValue()
    proposed_value: NegativeKeywordValue


ChangeSpec = Annotated[
    Union[BidAdjustment, StateChange, BudgetChange, NegativeKeywordAddition],
    Field(discriminator="change_type"),
]

_change_spec_adapter = TypeAdapter(ChangeSpec)


class ProposalValidationError(ValueError):
    """Current/proposed payloads do not match the declared change kind."""


def _as_payload(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if value is None:
        return {}
    return value


def build_change_spec(change_type: Union[ChangeType, str], current_value: Any, proposed_value: Any):
    """
    Validate a (kind, current, proposed) triple into its typed change spec.
    Accepts payload models or plain dicts (e.g. JSON read back from the DB).
    """
    kind = change_type.value if isinstance(change_type, ChangeType) else change_type
    try:
        return _change_spec_adapter.validate_python({
            "change_type": kind,
            "current_value": _as_payload(current_value),
            "proposed_value": _as_payload(proposed_value),
        })
    except ValidationError as e:
        raise ProposalValidationError(f"Invalid {kind} payload: {e}") from e


# ══════════════════════════════════════════════════════════════════════
#  PROPOSALS & HISTORY
# ══════════════════════════════════════════════════════════════════════

class ChangeTarget(BaseModel):
    model_config = ConfigDict(frozen=True)

    target_type: TargetType
    target_id: str = Field(min_length=1)
    target_name: Optional[str] = None


class ChangeProposal(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    change: ChangeSpec
    target: ChangeTarget
    reason: Optional[str] = None
    status: ChangeStatus
    created_at: datetime
    reviewed_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None
    error_message: Optional[str] = None

    @property
    def change_type(self) -> ChangeType:
        return ChangeType(self.change.change_type)

    @property
    def current_value(self) -> BaseModel:
        return self.change.current_value

    @property
    def proposed_value(self) -> BaseModel:
        return self.change.proposed_value


class ChangeHistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    pending_change_id: Optional[uuid.UUID]
    target_type: str
    target_id: str
    change_type: str
    old_value: Optional[dict] = None
    new_value: dict
    executed_at: datetime
    success: bool
    api_response: Optional[dict] = None


class ChangeOutcome(BaseModel):
    """Result of an approve/reject call. Conflict and not-found are values, not exceptions."""
    model_config = ConfigDict(frozen=True)

    status: OutcomeStatus
    proposal_id: uuid.UUID
    proposal: Optional[ChangeProposal] = None
    current_status: Optional[ChangeStatus] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status not in (OutcomeStatus.CONFLICT, OutcomeStatus.NOT_FOUND)
