"""tenancy schema and invitation procedures

Revision ID: 3b1e9c2a7d40
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b1e9c2a7d40"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


_UUID = postgresql.UUID(as_uuid=True)
_NOW = sa.text("now()")
_GEN_UUID = sa.text("gen_random_uuid()")


ENSURE_ROLE = """
CREATE OR REPLACE FUNCTION ensure_role(p_scope text, p_type text)
RETURNS uuid
LANGUAGE plpgsql
AS $$
DECLARE
    v_id uuid;
BEGIN
    INSERT INTO roles (id, scope, type)
    VALUES (gen_random_uuid(), p_scope, p_type)
    ON CONFLICT ON CONSTRAINT uq_roles_scope_type DO NOTHING;

    SELECT id INTO v_id FROM roles WHERE scope = p_scope AND type = p_type;
    RETURN v_id;
END;
$$;
"""

CREATE_ORGANIZATION = """
CREATE OR REPLACE FUNCTION create_organization(
    p_name text,
    p_billing_email text,
    p_user_id text,
    p_team_name text,
    p_role_type text,
    p_goals text[],
    p_team_website text DEFAULT NULL,
    p_referral_source text DEFAULT NULL
)
RETURNS jsonb
LANGUAGE plpgsql
AS $$
DECLARE
    v_org organizations;
    v_team teams;
BEGIN
    INSERT INTO organizations (id, name, billing_email, onboarding_role, goals, referral_source)
    VALUES (gen_random_uuid(), p_name, p_billing_email, p_role_type,
            coalesce(p_goals, '{}'), p_referral_source)
    RETURNING * INTO v_org;

    INSERT INTO teams (id, organization_id, name, website)
    VALUES (gen_random_uuid(), v_org.id, p_team_name, p_team_website)
    RETURNING * INTO v_team;

    INSERT INTO organization_members (id, organization_id, user_id, org_role_id, team_id, team_role_id)
    VALUES (gen_random_uuid(), v_org.id, p_user_id,
            ensure_role('organization', 'admin'), v_team.id, ensure_role('team', 'admin'));

    RETURN jsonb_build_object('organization', to_jsonb(v_org), 'team', to_jsonb(v_team));
END;
$$;
"""

INVITE_ORG_MEMBER = """
CREATE OR REPLACE FUNCTION invite_org_member(
    p_organization_id uuid,
    p_email text,
    p_org_role text,
    p_team_role text,
    p_invited_by text,
    p_expires_at timestamptz,
    p_team_id uuid DEFAULT NULL
)
RETURNS text
LANGUAGE plpgsql
AS $$
DECLARE
    v_token text := encode(gen_random_bytes(32), 'hex');
BEGIN
    INSERT INTO invitations (id, token, organization_id, team_id, email,
                             org_role, team_role, invited_by, expires_at)
    VALUES (gen_random_uuid(), v_token, p_organization_id, p_team_id, p_email,
            p_org_role, p_team_role, p_invited_by, p_expires_at);
    RETURN v_token;
END;
$$;
"""

VALIDATE_INVITATION_TOKEN = """
CREATE OR REPLACE FUNCTION validate_invitation_token(p_token text)
RETURNS TABLE (
    id uuid,
    organization_id uuid,
    team_id uuid,
    email text,
    org_role text,
    team_role text,
    invited_by text,
    expires_at timestamptz,
    created_at timestamptz,
    accepted_at timestamptz,
    accepted_by text,
    revoked_at timestamptz,
    organization_name text
)
LANGUAGE sql
STABLE
AS $$
    SELECT i.id, i.organization_id, i.team_id, i.email::text,
           i.org_role::text, i.team_role::text, i.invited_by::text,
           i.expires_at, i.created_at, i.accepted_at, i.accepted_by::text,
           i.revoked_at, o.name::text
    FROM invitations i
    JOIN organizations o ON o.id = i.organization_id
    WHERE i.token = p_token;
$$;
"""

PROCESS_INVITATION = """
CREATE OR REPLACE FUNCTION process_invitation(p_token text, p_user_id text)
RETURNS boolean
LANGUAGE plpgsql
AS $$
DECLARE
    v_inv invitations;
    v_team_role uuid;
BEGIN
    -- row lock: a concurrent redeem of the same token waits here
    SELECT * INTO v_inv FROM invitations WHERE token = p_token FOR UPDATE;

    IF NOT FOUND
       OR v_inv.accepted_at IS NOT NULL
       OR v_inv.revoked_at IS NOT NULL
       OR now() > v_inv.expires_at THEN
        RETURN false;
    END IF;

    IF v_inv.team_id IS NOT NULL THEN
        v_team_role := ensure_role('team', v_inv.team_role);
    END IF;

    INSERT INTO organization_members (id, organization_id, user_id, org_role_id, team_id, team_role_id)
    VALUES (gen_random_uuid(), v_inv.organization_id, p_user_id,
            ensure_role('organization', v_inv.org_role), v_inv.team_id, v_team_role);

    UPDATE invitations
    SET accepted_at = now(), accepted_by = p_user_id
    WHERE id = v_inv.id;

    RETURN true;
END;
$$;
"""

REVOKE_INVITATION = """
CREATE OR REPLACE FUNCTION revoke_invitation(p_token text)
RETURNS boolean
LANGUAGE plpgsql
AS $$
BEGIN
    UPDATE invitations
    SET revoked_at = now()
    WHERE token = p_token
      AND accepted_at IS NULL
      AND revoked_at IS NULL
      AND expires_at >= now();
    RETURN FOUND;
END;
$$;
"""


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    op.create_table(
        "subscription_plans",
        sa.Column("id", _UUID, primary_key=True, server_default=_GEN_UUID),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.Column("monthly_credits", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_clients", sa.Integer(), nullable=True),
        sa.Column("max_team_members", sa.Integer(), nullable=True),
        sa.Column(
            "features",
            postgresql.JSONB(),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("stripe_price_id", sa.String(length=255), nullable=True, unique=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "organizations",
        sa.Column("id", _UUID, primary_key=True, server_default=_GEN_UUID),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("billing_email", sa.String(length=320), nullable=False),
        sa.Column(
            "subscription_plan_id",
            _UUID,
            sa.ForeignKey("subscription_plans.id"),
            nullable=True,
        ),
        sa.Column("onboarding_role", sa.String(length=64), nullable=True),
        sa.Column(
            "goals",
            postgresql.ARRAY(sa.String()),
            nullable=False,
            server_default=sa.text("'{}'"),
        ),
        sa.Column("referral_source", sa.String(length=64), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=_NOW
        ),
    )

    op.create_table(
        "teams",
        sa.Column("id", _UUID, primary_key=True, server_default=_GEN_UUID),
        sa.Column(
            "organization_id",
            _UUID,
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("website", sa.Text(), nullable=True),
    )
    op.create_index("ix_teams_organization_id", "teams", ["organization_id"])

    op.create_table(
        "roles",
        sa.Column("id", _UUID, primary_key=True, server_default=_GEN_UUID),
        sa.Column("scope", sa.String(length=32), nullable=False),
        sa.Column("type", sa.String(length=32), nullable=False),
        sa.UniqueConstraint("scope", "type", name="uq_roles_scope_type"),
    )

    op.create_table(
        "organization_members",
        sa.Column("id", _UUID, primary_key=True, server_default=_GEN_UUID),
        sa.Column(
            "organization_id",
            _UUID,
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("org_role_id", _UUID, sa.ForeignKey("roles.id"), nullable=False),
        sa.Column(
            "team_id",
            _UUID,
            sa.ForeignKey("teams.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("team_role_id", _UUID, sa.ForeignKey("roles.id"), nullable=True),
    )
    op.create_index(
        "ix_organization_members_organization_id",
        "organization_members",
        ["organization_id"],
    )
    op.create_index(
        "ix_organization_members_user_id", "organization_members", ["user_id"]
    )
    op.create_index(
        "uq_organization_members_user_org_team",
        "organization_members",
        ["user_id", "organization_id", "team_id"],
        unique=True,
        postgresql_nulls_not_distinct=True,
    )

    op.create_table(
        "invitations",
        sa.Column("id", _UUID, primary_key=True, server_default=_GEN_UUID),
        sa.Column("token", sa.String(length=128), nullable=False, unique=True),
        sa.Column(
            "organization_id",
            _UUID,
            sa.ForeignKey("organizations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "team_id",
            _UUID,
            sa.ForeignKey("teams.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("org_role", sa.String(length=32), nullable=False),
        sa.Column("team_role", sa.String(length=32), nullable=False),
        sa.Column("invited_by", sa.String(length=64), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=_NOW
        ),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("accepted_by", sa.String(length=64), nullable=True),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index(
        "ix_invitations_organization_id", "invitations", ["organization_id"]
    )

    for ddl in (
        ENSURE_ROLE,
        CREATE_ORGANIZATION,
        INVITE_ORG_MEMBER,
        VALIDATE_INVITATION_TOKEN,
        PROCESS_INVITATION,
        REVOKE_INVITATION,
    ):
        op.execute(ddl)


def downgrade() -> None:
    for signature in (
        "revoke_invitation(text)",
        "process_invitation(text, text)",
        "validate_invitation_token(text)",
        "invite_org_member(uuid, text, text, text, text, timestamptz, uuid)",
        "create_organization(text, text, text, text, text, text[], text, text)",
        "ensure_role(text, text)",
    ):
        op.execute(f"DROP FUNCTION IF EXISTS {signature}")

    op.drop_table("invitations")
    op.drop_table("organization_members")
    op.drop_table("roles")
    op.drop_table("teams")
    op.drop_table("organizations")
    op.drop_table("subscription_plans")
