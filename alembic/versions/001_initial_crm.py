"""Initial CRM schema: contacts, deals, activities, reminders, tags,
Gmail accounts, processed emails, email drafts and churn reasons.

Revision ID: 001_initial_crm
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import UUID, JSON

# revision identifiers, used by Alembic.
revision: str = "001_initial_crm"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _id() -> sa.Column:
    return sa.Column(
        "id", UUID(as_uuid=True), primary_key=True, server_default=sa.text("gen_random_uuid()")
    )


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now())


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True)


def _fk(name: str, target: str, ondelete: str) -> sa.Column:
    return sa.Column(
        name, UUID(as_uuid=True), sa.ForeignKey(f"{target}.id", ondelete=ondelete), nullable=True
    )


def upgrade() -> None:
    op.create_table(
        "contacts",
        _id(),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("company", sa.String(255), nullable=True),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("property_type", sa.String(50), nullable=True),
        sa.Column("website", sa.String(500), nullable=True),
        sa.Column("linkedin_url", sa.String(500), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("source", sa.String(50), nullable=True),
        sa.Column("tags", JSON(), server_default=sa.text("'[]'::json")),
        _created_at(),
        _updated_at(),
    )
    op.create_index("contacts_email_idx", "contacts", ["email"])
    op.create_index("contacts_company_idx", "contacts", ["company"])
    op.create_index("contacts_created_at_idx", "contacts", ["created_at"])

    op.create_table(
        "gmail_accounts",
        _id(),
        sa.Column("email", sa.String(255), unique=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=False),
        sa.Column("expiry_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), server_default=sa.text("true")),
        sa.Column("label_filter", sa.String(255), nullable=True),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )

    op.create_table(
        "deals",
        _id(),
        _fk("contact_id", "contacts", "CASCADE"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("stage", sa.String(50), nullable=False, server_default="lead"),
        sa.Column("tier", sa.String(50), nullable=True),
        sa.Column("value", sa.Numeric(10, 2), nullable=True),
        sa.Column("billing_period", sa.String(20), server_default="monthly"),
        sa.Column("property_count", sa.Integer(), server_default="1"),
        sa.Column("property_count_range", sa.String(50), nullable=True),
        sa.Column("lead_source", sa.String(50), nullable=True),
        sa.Column("current_system", sa.String(255), nullable=True),
        sa.Column("pain_point", sa.Text(), nullable=True),
        sa.Column("probability", sa.Integer(), server_default="10"),
        sa.Column("expected_close_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("next_step", sa.Text(), nullable=True),
        sa.Column("follow_up_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("lost_reason", sa.Text(), nullable=True),
        sa.Column("last_stage", sa.String(50), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("sort_order", sa.Integer(), server_default="0"),
        _fk("gmail_account_id", "gmail_accounts", "SET NULL"),
        sa.Column("enquiry_type", sa.String(50), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("deals_contact_id_idx", "deals", ["contact_id"])
    op.create_index("deals_stage_idx", "deals", ["stage"])
    op.create_index("deals_expected_close_idx", "deals", ["expected_close_date"])
    op.create_index("deals_created_at_idx", "deals", ["created_at"])

    op.create_table(
        "activities",
        _id(),
        _fk("deal_id", "deals", "CASCADE"),
        _fk("contact_id", "contacts", "CASCADE"),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("subject", sa.String(500), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("outcome", sa.String(50), nullable=True),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
    )
    op.create_index("activities_deal_id_idx", "activities", ["deal_id"])
    op.create_index("activities_contact_id_idx", "activities", ["contact_id"])
    op.create_index("activities_created_at_idx", "activities", ["created_at"])

    op.create_table(
        "reminders",
        _id(),
        _fk("deal_id", "deals", "CASCADE"),
        _fk("contact_id", "contacts", "CASCADE"),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("due_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_completed", sa.Boolean(), server_default=sa.text("false")),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("priority", sa.String(20), server_default="medium"),
        _created_at(),
    )
    op.create_index("reminders_due_at_idx", "reminders", ["due_at"])
    op.create_index("reminders_is_completed_idx", "reminders", ["is_completed"])

    op.create_table(
        "tags",
        _id(),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("color", sa.String(20), server_default="gray"),
        _created_at(),
    )

    op.create_table(
        "processed_emails",
        _id(),
        _fk("gmail_account_id", "gmail_accounts", "SET NULL"),
        sa.Column("gmail_message_id", sa.String(255), unique=True, nullable=False),
        sa.Column("from_email", sa.String(255), nullable=True),
        sa.Column("subject", sa.String(500), nullable=True),
        _fk("contact_id", "contacts", "SET NULL"),
        _fk("deal_id", "deals", "SET NULL"),
        _created_at(),
    )

    op.create_table(
        "email_drafts",
        _id(),
        _fk("processed_email_id", "processed_emails", "SET NULL"),
        _fk("gmail_account_id", "gmail_accounts", "SET NULL"),
        _fk("contact_id", "contacts", "SET NULL"),
        _fk("deal_id", "deals", "SET NULL"),
        sa.Column("original_from_email", sa.String(255), nullable=False),
        sa.Column("original_from_name", sa.String(255), nullable=True),
        sa.Column("original_subject", sa.String(500), nullable=True),
        sa.Column("original_body", sa.Text(), nullable=True),
        sa.Column("original_received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("draft_subject", sa.String(500), nullable=True),
        sa.Column("draft_body", sa.Text(), nullable=True),
        sa.Column("tone", sa.String(50), server_default="professional"),
        sa.Column("status", sa.String(20), server_default="pending"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sent_gmail_message_id", sa.String(255), nullable=True),
        sa.Column("gmail_thread_id", sa.String(255), nullable=True),
        sa.Column("gmail_message_id", sa.String(255), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("email_drafts_status_idx", "email_drafts", ["status"])
    op.create_index("email_drafts_created_at_idx", "email_drafts", ["created_at"])

    op.create_table(
        "churn_reasons",
        _id(),
        sa.Column("organization_id", UUID(as_uuid=True), nullable=False),
        sa.Column("reason", sa.String(50), nullable=False),
        sa.Column("details", sa.Text(), nullable=True),
        sa.Column("health_score_at_churn", sa.Integer(), nullable=True),
        _created_at(),
    )
    op.create_index("churn_reasons_org_idx", "churn_reasons", ["organization_id"])


def downgrade() -> None:
    op.drop_table("churn_reasons")
    op.drop_table("email_drafts")
    op.drop_table("processed_emails")
    op.drop_table("tags")
    op.drop_table("reminders")
    op.drop_table("activities")
    op.drop_table("deals")
    op.drop_table("gmail_accounts")
    op.drop_table("contacts")
