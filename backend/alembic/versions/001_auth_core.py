"""Create auth core tables

Revision ID: 001
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None

JSONB = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _uuid(name: str, *args, **kwargs) -> sa.Column:
    return sa.Column(name, sa.Uuid(as_uuid=True), *args, **kwargs)


def _ts(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(name, sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        "tenants",
        _uuid("id", primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("domain", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
    )

    op.create_table(
        "tenant_email_settings",
        _uuid("tenant_id", sa.ForeignKey("tenants.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("from_email", sa.String(255), nullable=True),
        sa.Column("from_name", sa.String(255), nullable=True),
        sa.Column("support_email", sa.String(255), nullable=True),
        sa.Column("logo_url", sa.String(), nullable=True),
        sa.Column("primary_color", sa.String(16), nullable=True),
        sa.Column("domain", sa.String(255), nullable=True),
        _ts("updated_at"),
    )

    op.create_table(
        "users",
        _uuid("id", primary_key=True),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password_hash", sa.String(), nullable=True),
        _ts("email_confirmed_at", nullable=True),
        sa.Column("user_metadata", JSONB, nullable=False, server_default="{}"),
        _ts("last_sign_in_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "user_profiles",
        _uuid("id", sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        _uuid("tenant_id", sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("first_name", sa.String(255), nullable=False),
        sa.Column("last_name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("role", sa.String(32), nullable=False, server_default="member"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("created_at"),
        _ts("updated_at"),
    )
    op.create_index("ix_user_profiles_tenant_id", "user_profiles", ["tenant_id"])

    op.create_table(
        "otp_tokens",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("code_hash", sa.String(64), nullable=False),
        sa.Column("purpose", sa.String(32), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_used", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("used_at", nullable=True),
        sa.Column("meta", JSONB, nullable=False, server_default="{}"),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        _ts("created_at"),
    )
    op.create_index(
        "ix_otp_tokens_lookup", "otp_tokens", ["tenant_id", "email", "purpose", "is_used"]
    )

    op.create_table(
        "mfa_totp",
        _uuid("user_id", sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("secret_encrypted", sa.String(), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_used_counter", sa.BigInteger(), nullable=True),
        _ts("created_at"),
        _ts("verified_at", nullable=True),
    )

    op.create_table(
        "mfa_backup_codes",
        _uuid("id", primary_key=True),
        _uuid("user_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("code_hash", sa.String(64), nullable=False),
        _ts("used_at", nullable=True),
        _ts("created_at"),
    )
    op.create_index("ix_mfa_backup_codes_user_id", "mfa_backup_codes", ["user_id"])

    op.create_table(
        "trusted_devices",
        _uuid("id", primary_key=True),
        _uuid("user_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("device_id", sa.String(128), nullable=False),
        sa.Column("device_name", sa.String(255), nullable=True),
        sa.Column("device_type", sa.String(32), nullable=True),
        sa.Column("fingerprint_hash", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("is_trusted", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("trusted_at", nullable=True),
        _ts("trust_expires_at", nullable=True),
        sa.Column("last_ip", sa.String(64), nullable=True),
        _ts("last_seen_at", nullable=True),
        _ts("created_at"),
        sa.UniqueConstraint("user_id", "device_id", name="uq_trusted_device_user_device"),
    )
    op.create_index("ix_trusted_devices_user_id", "trusted_devices", ["user_id"])

    op.create_table(
        "user_sessions",
        _uuid("id", primary_key=True),
        _uuid("user_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("session_token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("device_id", sa.String(128), nullable=True),
        sa.Column("device_type", sa.String(32), nullable=True),
        sa.Column("browser", sa.String(64), nullable=True),
        sa.Column("os", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("country", sa.String(64), nullable=True),
        sa.Column("city", sa.String(128), nullable=True),
        sa.Column("auth_method", sa.String(32), nullable=False, server_default="password"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("mfa_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        _ts("last_activity_at"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _ts("created_at"),
        _ts("revoked_at", nullable=True),
    )
    op.create_index("ix_user_sessions_user_active", "user_sessions", ["user_id", "is_active"])

    op.create_table(
        "sso_connections",
        _uuid("id", primary_key=True),
        _uuid("tenant_id", sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("allowed_domains", JSONB, nullable=False, server_default="[]"),
        sa.Column("default_role", sa.String(32), nullable=False, server_default="member"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        _ts("created_at"),
        sa.UniqueConstraint("tenant_id", "provider", name="uq_sso_connection_tenant_provider"),
    )
    op.create_index("ix_sso_connections_tenant_id", "sso_connections", ["tenant_id"])

    op.create_table(
        "oauth_states",
        sa.Column("state", sa.String(128), primary_key=True),
        _uuid("tenant_id", sa.ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False),
        _uuid(
            "connection_id",
            sa.ForeignKey("sso_connections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("redirect_path", sa.String(512), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _ts("used_at", nullable=True),
        _ts("created_at"),
    )

    op.create_table(
        "oauth_identities",
        _uuid("id", primary_key=True),
        _uuid("user_id", sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("provider_subject", sa.String(255), nullable=False),
        sa.Column("email_at_link_time", sa.String(320), nullable=True),
        _ts("created_at"),
        sa.UniqueConstraint("provider", "provider_subject", name="uq_oauth_provider_subject"),
    )
    op.create_index("ix_oauth_identities_user_id", "oauth_identities", ["user_id"])

    op.create_table(
        "auth_audit_events",
        _uuid("id", primary_key=True),
        sa.Column("event_type", sa.String(64), nullable=False),
        sa.Column("outcome", sa.String(16), nullable=False),
        sa.Column("reason_code", sa.String(64), nullable=True),
        _uuid("user_id", nullable=True),
        _uuid("tenant_id", nullable=True),
        sa.Column("email", sa.String(320), nullable=True),
        sa.Column("ip_address", sa.String(64), nullable=True),
        sa.Column("user_agent", sa.String(), nullable=True),
        sa.Column("request_id", sa.String(128), nullable=True),
        sa.Column("meta", JSONB, nullable=False, server_default="{}"),
        _ts("created_at"),
    )
    op.create_index(
        "ix_auth_audit_events_type_created", "auth_audit_events", ["event_type", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("ix_auth_audit_events_type_created", table_name="auth_audit_events")
    op.drop_table("auth_audit_events")
    op.drop_index("ix_oauth_identities_user_id", table_name="oauth_identities")
    op.drop_table("oauth_identities")
    op.drop_table("oauth_states")
    op.drop_index("ix_sso_connections_tenant_id", table_name="sso_connections")
    op.drop_table("sso_connections")
    op.drop_index("ix_user_sessions_user_active", table_name="user_sessions")
    op.drop_table("user_sessions")
    op.drop_index("ix_trusted_devices_user_id", table_name="trusted_devices")
    op.drop_table("trusted_devices")
    op.drop_index("ix_mfa_backup_codes_user_id", table_name="mfa_backup_codes")
    op.drop_table("mfa_backup_codes")
    op.drop_table("mfa_totp")
    op.drop_index("ix_otp_tokens_lookup", table_name="otp_tokens")
    op.drop_table("otp_tokens")
    op.drop_index("ix_user_profiles_tenant_id", table_name="user_profiles")
    op.drop_table("user_profiles")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
    op.drop_table("tenant_email_settings")
    op.drop_table("tenants")
