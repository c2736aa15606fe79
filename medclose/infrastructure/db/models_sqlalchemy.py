from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    MetaData,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, relationship
from sqlalchemy.sql import expression

naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    # avoid constraint_name token to allow unnamed CheckConstraint
    "ck": "ck_%(table_name)s_%(column_0_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=naming_convention)


class Base(DeclarativeBase):
    metadata = metadata


def utc_now() -> datetime:
    # stored naive: DateTime columns carry no offset
    return datetime.now(UTC).replace(tzinfo=None)


class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(Integer, primary_key=True)
    event_ts = Column(DateTime, nullable=False, default=utc_now)
    user_id = Column(Integer, nullable=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(String, nullable=False)
    action = Column(String, nullable=False)
    payload_json = Column(Text, nullable=True)

    __table_args__ = (Index("ix_audit_log_entity_type_entity_id", "entity_type", "entity_id"),)


class HospitalCatalog(Base):
    __tablename__ = "hospital_catalog"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    closing_day = Column(Integer, nullable=True)
    is_custom = Column(Boolean, nullable=False, server_default=expression.false())
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        CheckConstraint(
            "closing_day IS NULL OR (closing_day >= 1 AND closing_day <= 31)",
            name="ck_hospital_catalog_closing_day",
        ),
    )


class UserHospital(Base):
    __tablename__ = "user_hospitals"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    catalog_hospital_id = Column(Integer, ForeignKey("hospital_catalog.id"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    hospital = relationship("HospitalCatalog", lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_id", "catalog_hospital_id", name="uq_user_hospitals_user_catalog"),
        Index("ix_user_hospitals_user_id", "user_id"),
    )


class ReportGroup(Base):
    __tablename__ = "user_report_groups"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    user_hospital_id = Column(Integer, ForeignKey("user_hospitals.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    sort_order = Column(Integer, nullable=False, server_default=expression.literal(0))
    is_active = Column(Boolean, nullable=False, server_default=expression.true())
    created_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        Index("ix_user_report_groups_hospital_sort", "user_hospital_id", "sort_order"),
    )


class MedicalAct(Base):
    __tablename__ = "medical_acts"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    user_hospital_id = Column(Integer, ForeignKey("user_hospitals.id", ondelete="CASCADE"), nullable=False)
    name = Column(String, nullable=False)
    unit_type = Column(String, CheckConstraint("unit_type in ('hours','units')"), nullable=False)
    unit_value = Column(Float, nullable=True)
    unit_value_principal = Column(Float, nullable=True)
    unit_value_assistant = Column(Float, nullable=True)
    requires_patients = Column(Boolean, nullable=False, server_default=expression.false())
    supports_roles = Column(Boolean, nullable=False, server_default=expression.false())
    pricing_rules_json = Column(Text, nullable=True)
    user_report_group_id = Column(
        Integer, ForeignKey("user_report_groups.id", ondelete="SET NULL"), nullable=True
    )
    is_active = Column(Boolean, nullable=False, server_default=expression.true())
    sort_order = Column(Integer, nullable=False, server_default=expression.literal(0))
    created_at = Column(DateTime, nullable=False, default=utc_now)

    group = relationship("ReportGroup", lazy="joined")

    __table_args__ = (
        UniqueConstraint("user_hospital_id", "name", name="uq_medical_acts_hospital_name"),
    )


class Entry(Base):
    __tablename__ = "entries"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    user_hospital_id = Column(Integer, ForeignKey("user_hospitals.id", ondelete="CASCADE"), nullable=False)
    act_id = Column(Integer, ForeignKey("medical_acts.id"), nullable=False)
    date = Column(Date, nullable=False)
    start_at = Column(DateTime, nullable=True)
    end_at = Column(DateTime, nullable=True)
    quantity = Column(Float, nullable=False)
    notes = Column(Text, nullable=True)
    patients_count = Column(Integer, nullable=True)
    role = Column(String, CheckConstraint("role in ('principal','assistant')"), nullable=True)
    total_amount = Column(Float, nullable=True)
    calculation_detail_json = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    act = relationship("MedicalAct", lazy="joined")

    __table_args__ = (
        CheckConstraint(
            "start_at IS NULL OR end_at IS NULL OR end_at > start_at",
            name="ck_entries_end_after_start",
        ),
        Index("ix_entries_user_hospital_date", "user_id", "user_hospital_id", "date"),
    )


class HospitalClosure(Base):
    __tablename__ = "hospital_closures"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False)
    user_hospital_id = Column(Integer, ForeignKey("user_hospitals.id", ondelete="CASCADE"), nullable=False)
    period_start_calc = Column(Date, nullable=False)
    period_end_calc = Column(Date, nullable=False)
    period_start = Column(Date, nullable=False)
    period_end = Column(Date, nullable=False)
    is_adjusted = Column(Boolean, nullable=False, server_default=expression.false())
    adjust_reason = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    __table_args__ = (
        UniqueConstraint(
            "user_hospital_id",
            "period_start_calc",
            "period_end_calc",
            name="uq_hospital_closures_period_calc",
        ),
    )


class ClosureGroupStatus(Base):
    __tablename__ = "hospital_closure_group_status"

    id = Column(Integer, primary_key=True)
    closure_id = Column(Integer, ForeignKey("hospital_closures.id", ondelete="CASCADE"), nullable=False)
    user_report_group_id = Column(
        Integer, ForeignKey("user_report_groups.id", ondelete="CASCADE"), nullable=True
    )
    is_consolidated = Column(Boolean, nullable=False, server_default=expression.false())
    consolidated_at = Column(DateTime, nullable=True)

    __table_args__ = (
        UniqueConstraint("closure_id", "user_report_group_id", name="uq_closure_group_status_group"),
        # NULLs are distinct in a plain unique constraint; one ungrouped row per closure
        Index(
            "ux_closure_group_status_ungrouped",
            "closure_id",
            unique=True,
            sqlite_where=expression.text("user_report_group_id IS NULL"),
            postgresql_where=expression.text("user_report_group_id IS NULL"),
        ),
    )
