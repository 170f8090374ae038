"""demand, alert log, settings and users

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19T09:00:00.000000Z
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "auth_user",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("username", sa.String(length=128), nullable=False),
        sa.Column("full_name", sa.String(length=256), nullable=False, server_default=""),
        sa.Column("password_hash", sa.String(length=512), nullable=False, server_default=""),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="construction"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )
    op.create_index("ix_auth_user_username", "auth_user", ["username"], unique=True)
    op.create_index("ix_auth_user_created_at", "auth_user", ["created_at"], unique=False)

    op.create_table(
        "dvs_demand",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("project", sa.String(length=128), nullable=False),
        sa.Column("demand_no", sa.String(length=64), nullable=False),
        sa.Column("item", sa.String(length=256), nullable=False),
        sa.Column("unit", sa.String(length=32), nullable=False, server_default=""),
        sa.Column("demanded_qty", sa.Float(), nullable=False, server_default="0"),
        sa.Column("supplied_qty", sa.Float(), nullable=False, server_default="0"),
        sa.Column("pending_qty", sa.Float(), nullable=False, server_default="0"),
        sa.Column("priority", sa.String(length=16), nullable=False, server_default="Medium"),
        sa.Column("status", sa.String(length=24), nullable=False, server_default="Pending"),
        sa.Column("delayed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("supplied_date", sa.DateTime(), nullable=True),
        sa.Column("remarks", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=128), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
    )
    op.create_index("ix_dvs_demand_created_at", "dvs_demand", ["created_at"], unique=False)
    op.create_index("ix_dvs_demand_project", "dvs_demand", ["project"], unique=False)
    op.create_index("ix_dvs_demand_demand_no", "dvs_demand", ["demand_no"], unique=False)
    op.create_index("ix_dvs_demand_priority", "dvs_demand", ["priority"], unique=False)
    op.create_index("ix_dvs_demand_status", "dvs_demand", ["status"], unique=False)
    op.create_index("ix_dvs_demand_project_created", "dvs_demand", ["project", "created_at"], unique=False)

    op.create_table(
        "dvs_alert",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("alert_type", sa.String(length=64), nullable=False),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("message", sa.Text(), nullable=False, server_default=""),
        sa.Column("ok", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("demand_id", sa.Integer(), nullable=True),
    )
    op.create_index("ix_dvs_alert_created_at", "dvs_alert", ["created_at"], unique=False)
    op.create_index("ix_dvs_alert_alert_type", "dvs_alert", ["alert_type"], unique=False)
    op.create_index("ix_dvs_alert_demand_id", "dvs_alert", ["demand_id"], unique=False)
    op.create_index("ix_dvs_alert_type_created", "dvs_alert", ["alert_type", "created_at"], unique=False)

    op.create_table(
        "sys_setting",
        sa.Column("key", sa.String(length=64), primary_key=True),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("value", sa.JSON(), nullable=False),
    )


def downgrade():
    op.drop_table("sys_setting")

    op.drop_index("ix_dvs_alert_type_created", table_name="dvs_alert")
    op.drop_index("ix_dvs_alert_demand_id", table_name="dvs_alert")
    op.drop_index("ix_dvs_alert_alert_type", table_name="dvs_alert")
    op.drop_index("ix_dvs_alert_created_at", table_name="dvs_alert")
    op.drop_table("dvs_alert")

    op.drop_index("ix_dvs_demand_project_created", table_name="dvs_demand")
    op.drop_index("ix_dvs_demand_status", table_name="dvs_demand")
    op.drop_index("ix_dvs_demand_priority", table_name="dvs_demand")
    op.drop_index("ix_dvs_demand_demand_no", table_name="dvs_demand")
    op.drop_index("ix_dvs_demand_project", table_name="dvs_demand")
    op.drop_index("ix_dvs_demand_created_at", table_name="dvs_demand")
    op.drop_table("dvs_demand")

    op.drop_index("ix_auth_user_created_at", table_name="auth_user")
    op.drop_index("ix_auth_user_username", table_name="auth_user")
    op.drop_table("auth_user")
