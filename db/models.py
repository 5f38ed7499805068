"""SQLAlchemy ORM models for persisted airdrop snapshots."""

from sqlalchemy import ForeignKey, MetaData, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


class AirdropSnapshots(Base):
    __tablename__ = "airdrop_snapshots"

    id: Mapped[str] = mapped_column(primary_key=True)
    proposal_id: Mapped[int] = mapped_column(nullable=False)
    period: Mapped[str] = mapped_column(nullable=False)
    status: Mapped[str] = mapped_column(nullable=False, default="running")
    started_at: Mapped[str] = mapped_column(nullable=False)
    completed_at: Mapped[str | None] = mapped_column()
    snapshot_timestamp: Mapped[str | None] = mapped_column()
    total_voters: Mapped[int] = mapped_column(nullable=False, default=0)
    total_proxied_accounts: Mapped[int] = mapped_column(nullable=False, default=0)
    eligible_count: Mapped[int] = mapped_column(nullable=False, default=0)
    total_airdrop: Mapped[float] = mapped_column(nullable=False)
    months: Mapped[int] = mapped_column(nullable=False)
    monthly_budget: Mapped[float] = mapped_column(nullable=False)
    total_counted_stake: Mapped[float] = mapped_column(nullable=False, default=0)
    total_allocated_tokens: Mapped[int] = mapped_column(nullable=False, default=0)
    total_vesting_fund: Mapped[float | None] = mapped_column()
    total_vesting_shares: Mapped[float | None] = mapped_column()
    warnings: Mapped[str | None] = mapped_column()
    error_details: Mapped[str | None] = mapped_column()
    entries = relationship(
        "AllocationEntries",
        back_populates="snapshot",
        cascade="all, delete-orphan",
        order_by="AllocationEntries.rank",
    )


class AllocationEntries(Base):
    __tablename__ = "allocation_entries"

    id: Mapped[str] = mapped_column(primary_key=True)
    snapshot_id: Mapped[str] = mapped_column(
        ForeignKey("airdrop_snapshots.id"),
        nullable=False,
    )
    rank: Mapped[int] = mapped_column(nullable=False)
    account: Mapped[str] = mapped_column(nullable=False)
    role: Mapped[str] = mapped_column(nullable=False)
    stake_held: Mapped[float] = mapped_column(nullable=False, default=0)
    stake_delegated_from: Mapped[float] = mapped_column(nullable=False, default=0)
    total_counted_stake: Mapped[float] = mapped_column(nullable=False, default=0)
    share_percent: Mapped[float] = mapped_column(nullable=False, default=0)
    token_allocation: Mapped[int] = mapped_column(nullable=False, default=0)
    is_eligible: Mapped[bool] = mapped_column(nullable=False)
    proxy_target: Mapped[str | None] = mapped_column()

    __table_args__ = (UniqueConstraint("snapshot_id", "account"),)
    snapshot = relationship("AirdropSnapshots", back_populates="entries")
