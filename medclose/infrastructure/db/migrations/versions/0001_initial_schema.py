"""Hospitals, acts, entries, closures and consolidation status"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("event_ts", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("entity_type", sa.String(), nullable=False),
        sa.Column("entity_id", sa.String(), nullable=False),
        sa.Column("action", sa.String(), nullable=False),
        sa.Column("payload_json", sa.Text(), nullable=True),
    )
    op.create_index("ix_audit_log_entity_type_entity_id", "audit_log", ["entity_type", "entity_id"], unique=False)

    op.create_table(
        "hospital_catalog",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("closing_day", sa.Integer(), nullable=True),
        sa.Column("is_custom", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_by", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.CheckConstraint(
            "closing_day IS NULL OR (closing_day >= 1 AND closing_day <= 31)",
            name="ck_hospital_catalog_closing_day",
        ),
    )

    op.create_table(
        "user_hospitals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("catalog_hospital_id", sa.Integer(), sa.ForeignKey("hospital_catalog.id"), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.UniqueConstraint("user_id", "catalog_hospital_id", name="uq_user_hospitals_user_catalog"),
    )
    op.create_index("ix_user_hospitals_user_id", "user_hospitals", ["user_id"], unique=False)

    op.create_table(
        "user_report_groups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "user_hospital_id",
            sa.Integer(),
            sa.ForeignKey("user_hospitals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
    )
    op.create_index(
        "ix_user_report_groups_hospital_sort", "user_report_groups", ["user_hospital_id", "sort_order"], unique=False
    )

    op.create_table(
        "medical_acts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "user_hospital_id",
            sa.Integer(),
            sa.ForeignKey("user_hospitals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("unit_type", sa.String(), nullable=False),
        sa.Column("unit_value", sa.Float(), nullable=True),
        sa.Column("unit_value_principal", sa.Float(), nullable=True),
        sa.Column("unit_value_assistant", sa.Float(), nullable=True),
        sa.Column("requires_patients", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("supports_roles", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("pricing_rules_json", sa.Text(), nullable=True),
        sa.Column(
            "user_report_group_id",
            sa.Integer(),
            sa.ForeignKey("user_report_groups.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("1")),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.CheckConstraint("unit_type in ('hours','units')", name="ck_medical_acts_unit_type"),
        sa.UniqueConstraint("user_hospital_id", "name", name="uq_medical_acts_hospital_name"),
    )

    op.create_table(
        "entries",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "user_hospital_id",
            sa.Integer(),
            sa.ForeignKey("user_hospitals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("act_id", sa.Integer(), sa.ForeignKey("medical_acts.id"), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_at", sa.DateTime(), nullable=True),
        sa.Column("end_at", sa.DateTime(), nullable=True),
        sa.Column("quantity", sa.Float(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("patients_count", sa.Integer(), nullable=True),
        sa.Column("role", sa.String(), nullable=True),
        sa.Column("total_amount", sa.Float(), nullable=True),
        sa.Column("calculation_detail_json", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.CheckConstraint("role in ('principal','assistant')", name="ck_entries_role"),
        sa.CheckConstraint(
            "start_at IS NULL OR end_at IS NULL OR end_at > start_at",
            name="ck_entries_end_after_start",
        ),
    )
    op.create_index(
        "ix_entries_user_hospital_date", "entries", ["user_id", "user_hospital_id", "date"], unique=False
    )

    op.create_table(
        "hospital_closures",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "user_hospital_id",
            sa.Integer(),
            sa.ForeignKey("user_hospitals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("period_start_calc", sa.Date(), nullable=False),
        sa.Column("period_end_calc", sa.Date(), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column("is_adjusted", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("adjust_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("(CURRENT_TIMESTAMP)")),
        sa.UniqueConstraint(
            "user_hospital_id",
            "period_start_calc",
            "period_end_calc",
            name="uq_hospital_closures_period_calc",
        ),
    )

    op.create_table(
        "hospital_closure_group_status",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "closure_id",
            sa.Integer(),
            sa.ForeignKey("hospital_closures.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_report_group_id",
            sa.Integer(),
            sa.ForeignKey("user_report_groups.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("is_consolidated", sa.Boolean(), nullable=False, server_default=sa.text("0")),
        sa.Column("consolidated_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("closure_id", "user_report_group_id", name="uq_closure_group_status_group"),
    )
    op.create_index(
        "ux_closure_group_status_ungrouped",
        "hospital_closure_group_status",
        ["closure_id"],
        unique=True,
        sqlite_where=sa.text("user_report_group_id IS NULL"),
        postgresql_where=sa.text("user_report_group_id IS NULL"),
    )


def downgrade() -> None:
    op.drop_index("ux_closure_group_status_ungrouped", table_name="hospital_closure_group_status")
    op.drop_table("hospital_closure_group_status")
    op.drop_table("hospital_closures")
    op.drop_index("ix_entries_user_hospital_date", table_name="entries")
    op.drop_table("entries")
    op.drop_table("medical_acts")
    op.drop_index("ix_user_report_groups_hospital_sort", table_name="user_report_groups")
    op.drop_table("user_report_groups")
    op.drop_index("ix_user_hospitals_user_id", table_name="user_hospitals")
    op.drop_table("user_hospitals")
    op.drop_table("hospital_catalog")
    op.drop_index("ix_audit_log_entity_type_entity_id", table_name="audit_log")
    op.drop_table("audit_log")
