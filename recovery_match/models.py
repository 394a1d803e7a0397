from datetime import date, datetime

from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import (
    Boolean, Date, DateTime, Float, ForeignKey, Integer, JSON, Text, UniqueConstraint,
)

# Match workflow states, in lifecycle order
MATCH_STATUSES = ("pending", "notified", "applied", "awarded", "funded", "rejected")

OPPORTUNITY_STATUSES = ("active", "inactive", "draft", "closed")

CAPITAL_SOURCE_TYPES = ("FEMA", "Insurance", "Grant")
CAPITAL_SOURCE_STATUSES = ("current", "projected")


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    email: Mapped[str | None] = mapped_column(Text)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    user_type: Mapped[str] = mapped_column(Text, nullable=False, default="practitioner")  # survivor | practitioner | admin
    organization_id: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)


class Property(Base):
    __tablename__ = "properties"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    survivor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    address: Mapped[str] = mapped_column(Text, nullable=False)
    zip_code: Mapped[str | None] = mapped_column(Text)
    primary_residence: Mapped[bool] = mapped_column(Boolean, default=False)


class HouseholdGroup(Base):
    __tablename__ = "household_groups"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    property_id: Mapped[int | None] = mapped_column(ForeignKey("properties.id"))


class HouseholdMember(Base):
    __tablename__ = "household_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    group_id: Mapped[int | None] = mapped_column(ForeignKey("household_groups.id"))
    name: Mapped[str] = mapped_column(Text, nullable=False)
    annual_income: Mapped[float | None] = mapped_column(Float)
    qualifying_tags: Mapped[list | None] = mapped_column(JSON)  # ["disaster:ida-2021", "veteran:true"]


class FundingOpportunity(Base):
    __tablename__ = "funding_opportunities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    organization_id: Mapped[int | None] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active")
    award_amount: Mapped[float | None] = mapped_column(Float)
    award_minimum: Mapped[float | None] = mapped_column(Float)
    award_maximum: Mapped[float | None] = mapped_column(Float)
    application_start_date: Mapped[date | None] = mapped_column(Date)
    application_end_date: Mapped[date | None] = mapped_column(Date)
    eligibility_criteria: Mapped[list | dict | None] = mapped_column(JSON, default=list)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)


class CapitalSource(Base):
    __tablename__ = "capital_sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    survivor_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    type: Mapped[str] = mapped_column(Text, nullable=False)      # FEMA | Insurance | Grant
    name: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)    # current | projected
    description: Mapped[str | None] = mapped_column(Text)
    funding_category: Mapped[str | None] = mapped_column(Text, default="standard")
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)


class OpportunityMatch(Base):
    __tablename__ = "opportunity_matches"
    __table_args__ = (
        UniqueConstraint("opportunity_id", "survivor_id", name="uq_opportunity_survivor"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    opportunity_id: Mapped[int] = mapped_column(ForeignKey("funding_opportunities.id"), nullable=False)
    survivor_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False)
    match_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    match_criteria: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    notes: Mapped[str | None] = mapped_column(Text)

    last_checked_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now, onupdate=datetime.now)

    # Workflow audit
    applied_at: Mapped[datetime | None] = mapped_column(DateTime)
    applied_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    awarded_at: Mapped[datetime | None] = mapped_column(DateTime)
    awarded_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    award_amount: Mapped[float | None] = mapped_column(Float)
    funded_at: Mapped[datetime | None] = mapped_column(DateTime)
    funded_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime)
    rejected_by_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"))

    # Ledger entry created when the grant was awarded
    capital_source_id: Mapped[int | None] = mapped_column(ForeignKey("capital_sources.id", ondelete="SET NULL"))

    # Display fields for match listings, loaded in the same query
    opportunity: Mapped[FundingOpportunity] = relationship(foreign_keys=[opportunity_id], lazy="joined")
    survivor: Mapped[User] = relationship(foreign_keys=[survivor_id], lazy="joined")

    @property
    def opportunity_name(self) -> str | None:
        return self.opportunity.name if self.opportunity else None

    @property
    def survivor_name(self) -> str | None:
        return self.survivor.name if self.survivor else None

    @property
    def application_end_date(self) -> date | None:
        return self.opportunity.application_end_date if self.opportunity else None
