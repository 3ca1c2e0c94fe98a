"""
KDP Ads Optimizer — Database Models
Campaign structure, daily metrics, and the change approval queue.
"""

import uuid
import datetime as dt
from datetime import datetime
from sqlalchemy import (
    String, Text, Float, Integer, BigInteger, Boolean, Date, DateTime,
    JSON, ForeignKey, Index, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship
from kdp_ads.database import Base
from kdp_ads.schemas import ChangeStatus
from kdp_ads.utils import utcnow as _utcnow


# ══════════════════════════════════════════════════════════════════════
#  CAMPAIGNS — Sponsored Products campaigns synced from Amazon Ads
# ══════════════════════════════════════════════════════════════════════

class Campaign(Base):
    """Amazon Ads campaign, keyed by the Amazon campaign id."""
    __tablename__ = "campaigns"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(String(512), nullable=False)
    campaign_type: Mapped[str] = mapped_column(String(50), default="sponsoredProducts")
    # campaign_type: sponsoredProducts, sponsoredBrands, sponsoredDisplay
    state: Mapped[str] = mapped_column(String(20), nullable=False)  # enabled / paused / archived
    daily_budget: Mapped[float] = mapped_column(Float, nullable=False)
    start_date: Mapped[str] = mapped_column(String(20), nullable=True)  # YYYYMMDD
    end_date: Mapped[str] = mapped_column(String(20), nullable=True)
    targeting_type: Mapped[str] = mapped_column(String(20), default="manual")  # manual / auto
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    keywords: Mapped[list["Keyword"]] = relationship("Keyword", back_populates="campaign", cascade="all, delete-orphan")

    __table_args__ = (
        Index("ix_campaigns_state", "state"),
    )


# ══════════════════════════════════════════════════════════════════════
#  KEYWORDS — Targeting keywords with their current bid
# ══════════════════════════════════════════════════════════════════════

class Keyword(Base):
    """Amazon Ads keyword, keyed by the Amazon keyword id."""
    __tablename__ = "keywords"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    ad_group_id: Mapped[str] = mapped_column(String(255), nullable=False)
    campaign_id: Mapped[str] = mapped_column(String(255), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    keyword_text: Mapped[str] = mapped_column(Text, nullable=False)
    match_type: Mapped[str] = mapped_column(String(20), nullable=False)  # broad, phrase, exact
    state: Mapped[str] = mapped_column(String(20), nullable=False)
    bid: Mapped[float] = mapped_column(Float, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    # Relationships
    campaign: Mapped["Campaign"] = relationship("Campaign", back_populates="keywords")

    __table_args__ = (
        Index("ix_keywords_campaign_id", "campaign_id"),
        Index("ix_keywords_ad_group_id", "ad_group_id"),
    )


# ══════════════════════════════════════════════════════════════════════
#  CAMPAIGN METRICS DAILY — One row per campaign per date
# ══════════════════════════════════════════════════════════════════════

class CampaignMetricsDaily(Base):
    """
    Daily campaign performance. Re-ingesting the same (campaign, date)
    replaces the row, so the latest report always wins.
    """
    __tablename__ = "campaign_metrics_daily"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    campaign_id: Mapped[str] = mapped_column(String(255), ForeignKey("campaigns.id", ondelete="CASCADE"), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)

    impressions: Mapped[int] = mapped_column(BigInteger, default=0)
    clicks: Mapped[int] = mapped_column(Integer, default=0)
    spend: Mapped[float] = mapped_column(Float, default=0.0)
    sales: Mapped[float] = mapped_column(Float, default=0.0)
    orders: Mapped[int] = mapped_column(Integer, default=0)
    units_sold: Mapped[int] = mapped_column(Integer, default=0)
    # Kindle Edition Normalized Pages (page-read royalties)
    kenp_royalties: Mapped[float] = mapped_column(Float, nullable=True)
    kenp_pages_read: Mapped[int] = mapped_column(Integer, nullable=True)

    synced_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("campaign_id", "date", name="uq_campaign_metrics_daily"),
        Index("ix_cmd_campaign_id", "campaign_id"),
        Index("ix_cmd_date", "date"),
    )


# ══════════════════════════════════════════════════════════════════════
#  PENDING CHANGES — Approval queue before pushing to Amazon Ads
# ══════════════════════════════════════════════════════════════════════

class PendingChange(Base):
    """
    Approval queue: every change to Amazon Ads is proposed here first.
    Status only moves forward: pending -> approved -> executed | failed,
    or pending -> rejected. Transitions are conditional updates on status.
    """
    __tablename__ = "pending_changes"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    change_type: Mapped[str] = mapped_column(String(50), nullable=False)
    # change_type values: bid_adjustment, state_change, budget_change, add_negative_keyword
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)  # campaign, ad_group, keyword
    target_id: Mapped[str] = mapped_column(String(255), nullable=False)
    target_name: Mapped[str] = mapped_column(String(512), nullable=True)

    # Current vs proposed, validated against change_type before insert
    current_value: Mapped[dict] = mapped_column(JSON, nullable=False)
    proposed_value: Mapped[dict] = mapped_column(JSON, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=True)

    # Approval workflow
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=ChangeStatus.PENDING.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    reviewed_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    executed_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    error_message: Mapped[str] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_pending_changes_status", "status"),
        Index("ix_pending_changes_created_at", "created_at"),
        Index("ix_pending_changes_target", "target_type", "target_id"),
    )


# ══════════════════════════════════════════════════════════════════════
#  CHANGE HISTORY — Append-only record of every execution attempt
# ══════════════════════════════════════════════════════════════════════

class ChangeHistory(Base):
    """One row per execution attempt (success or failure). Never updated."""
    __tablename__ = "change_history"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    pending_change_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("pending_changes.id"), nullable=True)
    target_type: Mapped[str] = mapped_column(String(20), nullable=False)
    target_id: Mapped[str] = mapped_column(String(255), nullable=False)
    change_type: Mapped[str] = mapped_column(String(50), nullable=False)
    old_value: Mapped[dict] = mapped_column(JSON, nullable=True)
    new_value: Mapped[dict] = mapped_column(JSON, nullable=False)
    executed_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    api_response: Mapped[dict] = mapped_column(JSON, nullable=True)

    __table_args__ = (
        Index("ix_change_history_pending_change_id", "pending_change_id"),
        Index("ix_change_history_executed_at", "executed_at"),
    )
