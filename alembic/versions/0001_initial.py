"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18

"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

def upgrade() -> None:
    op.create_table(
        "corporations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("corporation_name", sa.String(length=120), nullable=False),
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("verify_status", sa.String(length=20), nullable=False, server_default="unverified"),
        sa.Column("first_name", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("middle_initial", sa.String(length=1), nullable=False, server_default=""),
        sa.Column("last_name", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("suffix", sa.String(length=10), nullable=False, server_default=""),
        sa.Column("contact_number", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("emergency_contact_name", sa.String(length=120), nullable=False, server_default=""),
        sa.Column("emergency_contact_number", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("corporation_id", sa.String(length=36), nullable=True),
        sa.Column("pfp_id", sa.String(length=512), nullable=True),
        sa.Column("last_sign_in_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_profiles_email", "profiles", ["email"], unique=True)
    op.create_index("ix_profiles_role", "profiles", ["role"], unique=False)
    op.create_index("ix_profiles_status", "profiles", ["status"], unique=False)
    op.create_index("ix_profiles_corporation_id", "profiles", ["corporation_id"], unique=False)

    op.create_table(
        "contracts",
        sa.Column("id", sa.String(length=20), primary_key=True),
        sa.Column("contract_status_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("airline_id", sa.String(length=36), nullable=False),
        sa.Column("delivery_id", sa.String(length=36), nullable=True),
        sa.Column("owner_first_name", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("owner_middle_initial", sa.String(length=1), nullable=False, server_default=""),
        sa.Column("owner_last_name", sa.String(length=50), nullable=False, server_default=""),
        sa.Column("owner_contact", sa.String(length=20), nullable=False, server_default=""),
        sa.Column("flight_number", sa.String(length=8), nullable=False, server_default=""),
        sa.Column("luggage_quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("luggage_description", sa.Text(), nullable=False, server_default=""),
        sa.Column("delivery_address", sa.String(length=300), nullable=False, server_default=""),
        sa.Column("address_line_1", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("address_line_2", sa.String(length=200), nullable=False, server_default=""),
        sa.Column("pickup_location", sa.String(length=300), nullable=False, server_default=""),
        sa.Column("pickup_location_geo", sa.String(length=120), nullable=True),
        sa.Column("current_location", sa.String(length=300), nullable=True),
        sa.Column("current_location_geo", sa.String(length=120), nullable=True),
        sa.Column("drop_off_location", sa.String(length=300), nullable=False, server_default=""),
        sa.Column("drop_off_location_geo", sa.String(length=120), nullable=True),
        sa.Column("delivery_charge", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("delivery_surcharge", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("delivery_discount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("pickup_proof", sa.String(length=512), nullable=True),
        sa.Column("passenger_id_proof", sa.String(length=512), nullable=True),
        sa.Column("passenger_form_proof", sa.String(length=512), nullable=True),
        sa.Column("delivery_proof", sa.String(length=512), nullable=True),
        sa.Column("failure_proof", sa.String(length=512), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("pickup_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_contracts_contract_status_id", "contracts", ["contract_status_id"], unique=False)
    op.create_index("ix_contracts_airline_id", "contracts", ["airline_id"], unique=False)
    op.create_index("ix_contracts_delivery_id", "contracts", ["delivery_id"], unique=False)

    op.create_table(
        "pricing",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("city", sa.String(length=120), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "push_tokens",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), nullable=False),
        sa.Column("device_id", sa.String(length=120), nullable=False, server_default="unknown-device"),
        sa.Column("token", sa.String(length=255), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "device_id", name="uq_push_tokens_user_device"),
    )
    op.create_index("ix_push_tokens_user_id", "push_tokens", ["user_id"], unique=False)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("actor_user_id", sa.String(length=36), nullable=False),
        sa.Column("action", sa.String(length=80), nullable=False),
        sa.Column("entity_type", sa.String(length=40), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("details_json", sa.Text(), nullable=False, server_default="{}"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_actor_user_id", "audit_logs", ["actor_user_id"], unique=False)
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"], unique=False)
    op.create_index("ix_audit_logs_entity", "audit_logs", ["entity_type", "entity_id"], unique=False)


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("push_tokens")
    op.drop_table("pricing")
    op.drop_table("contracts")
    op.drop_table("profiles")
    op.drop_table("corporations")
