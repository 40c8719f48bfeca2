"""PostgreSQL implementation of OrgRepo."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import delete, select, text, update
from sqlalchemy.dialects.postgresql import JSONB, insert
from sqlalchemy.ext.asyncio import AsyncSession

from tenant_api.core.errors import (
    OrganizationOperationError,
    StoreErrorCode,
    translate_store_errors,
)
from tenant_api.db.tables import OrganizationMemberRow, OrganizationRow, RoleRow, TeamRow
from tenant_api.models.organization import (
    OnboardingProfile,
    Organization,
    Role,
    RoleScope,
    RoleType,
    Team,
)

_CREATE_ORGANIZATION = text(
    "SELECT create_organization("
    ":p_name, :p_billing_email, :p_user_id, :p_team_name, :p_role_type, "
    "CAST(:p_goals AS text[]), :p_team_website, :p_referral_source) AS result"
).columns(result=JSONB)


class PgOrgRepo:
    """Satisfies the OrgRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_organization(
        self,
        *,
        name: str,
        billing_email: str,
        user_id: str,
        team_name: str,
        profile: OnboardingProfile,
    ) -> tuple[Organization, Team]:
        """Create org, default team and admin membership in one procedure call."""
        with translate_store_errors(
            "Create organization",
            StoreErrorCode.CREATE_FAILED,
            "Unable to create organization. Please try again.",
            error_cls=OrganizationOperationError,
        ):
            result = await self._session.execute(
                _CREATE_ORGANIZATION,
                {
                    "p_name": name,
                    "p_billing_email": billing_email,
                    "p_user_id": user_id,
                    "p_team_name": team_name,
                    "p_role_type": profile.role_type.value,
                    "p_goals": [g.value for g in profile.goals],
                    "p_team_website": profile.team_website,
                    "p_referral_source": (
                        profile.referral_source.value
                        if profile.referral_source
                        else None
                    ),
                },
            )
            payload = result.scalar_one()

        if not payload or "organization" not in payload or "team" not in payload:
            raise OrganizationOperationError(
                "Create organization",
                "procedure returned no organization",
                "Unable to create organization. Please try again.",
                StoreErrorCode.CREATE_FAILED,
            )
        return _json_to_org(payload["organization"]), _json_to_team(payload["team"])

    async def get_by_id(self, org_id: UUID) -> Organization | None:
        with translate_store_errors(
            "Get organization",
            StoreErrorCode.READ_FAILED,
            "Unable to load organization details. Please refresh the page.",
            error_cls=OrganizationOperationError,
        ):
            stmt = select(OrganizationRow).where(OrganizationRow.id == org_id)
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_org(row) if row is not None else None

    async def list_for_user(self, user_id: str) -> list[Organization]:
        with translate_store_errors(
            "Get organizations",
            StoreErrorCode.READ_FAILED,
            "Unable to load organizations. Please refresh the page.",
            error_cls=OrganizationOperationError,
        ):
            stmt = (
                select(OrganizationRow)
                .join(
                    OrganizationMemberRow,
                    OrganizationMemberRow.organization_id == OrganizationRow.id,
                )
                .where(OrganizationMemberRow.user_id == user_id)
                .distinct()
                .order_by(OrganizationRow.created_at)
            )
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_org(r) for r in rows]

    async def update(
        self,
        org_id: UUID,
        *,
        name: str | None = None,
        billing_email: str | None = None,
    ) -> Organization | None:
        values: dict[str, str] = {}
        if name is not None:
            values["name"] = name
        if billing_email is not None:
            values["billing_email"] = billing_email
        if not values:
            return await self.get_by_id(org_id)

        with translate_store_errors(
            "Update organization",
            StoreErrorCode.UPDATE_FAILED,
            "Unable to update organization details. Please try again.",
            error_cls=OrganizationOperationError,
        ):
            stmt = (
                update(OrganizationRow)
                .where(OrganizationRow.id == org_id)
                .values(**values)
                .returning(OrganizationRow)
            )
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_org(row) if row is not None else None

    async def delete(self, org_id: UUID) -> bool:
        with translate_store_errors(
            "Delete organization",
            StoreErrorCode.DELETE_FAILED,
            "Unable to delete organization. Please try again.",
            error_cls=OrganizationOperationError,
        ):
            stmt = delete(OrganizationRow).where(OrganizationRow.id == org_id)
            result = await self._session.execute(stmt)
        return result.rowcount > 0

    async def get_team(self, team_id: UUID) -> Team | None:
        with translate_store_errors(
            "Get team",
            StoreErrorCode.READ_FAILED,
            "Unable to load team. Please refresh the page.",
            error_cls=OrganizationOperationError,
        ):
            stmt = select(TeamRow).where(TeamRow.id == team_id)
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_team(row) if row is not None else None

    async def list_teams(self, org_id: UUID) -> list[Team]:
        with translate_store_errors(
            "Get teams",
            StoreErrorCode.READ_FAILED,
            "Unable to load teams. Please refresh the page.",
            error_cls=OrganizationOperationError,
        ):
            stmt = (
                select(TeamRow)
                .where(TeamRow.organization_id == org_id)
                .order_by(TeamRow.name)
            )
            rows = (await self._session.execute(stmt)).scalars().all()
        return [_row_to_team(r) for r in rows]

    async def create_team(self, team: Team) -> None:
        with translate_store_errors(
            "Create team",
            StoreErrorCode.CREATE_FAILED,
            "Unable to create team. Please try again.",
            error_cls=OrganizationOperationError,
        ):
            self._session.add(
                TeamRow(
                    id=team.id,
                    organization_id=team.organization_id,
                    name=team.name,
                    website=team.website,
                )
            )
            await self._session.flush()

    async def update_team(
        self,
        team_id: UUID,
        *,
        name: str | None = None,
        website: str | None = None,
    ) -> Team | None:
        values: dict[str, str | None] = {}
        if name is not None:
            values["name"] = name
        if website is not None:
            values["website"] = website or None
        if not values:
            return await self.get_team(team_id)

        with translate_store_errors(
            "Update team",
            StoreErrorCode.UPDATE_FAILED,
            "Unable to update team. Please try again.",
            error_cls=OrganizationOperationError,
        ):
            stmt = (
                update(TeamRow)
                .where(TeamRow.id == team_id)
                .values(**values)
                .returning(TeamRow)
            )
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_team(row) if row is not None else None

    async def delete_team(self, team_id: UUID) -> bool:
        with translate_store_errors(
            "Delete team",
            StoreErrorCode.DELETE_FAILED,
            "Unable to delete team. Please try again.",
            error_cls=OrganizationOperationError,
        ):
            result = await self._session.execute(
                delete(TeamRow).where(TeamRow.id == team_id)
            )
        return result.rowcount > 0

    async def set_subscription_plan(
        self, org_id: UUID, plan_id: UUID | None
    ) -> Organization | None:
        with translate_store_errors(
            "Update organization plan",
            StoreErrorCode.UPDATE_FAILED,
            "Unable to change plan. Please try again.",
            error_cls=OrganizationOperationError,
        ):
            stmt = (
                update(OrganizationRow)
                .where(OrganizationRow.id == org_id)
                .values(subscription_plan_id=plan_id)
                .returning(OrganizationRow)
            )
            row = (await self._session.execute(stmt)).scalar_one_or_none()
        return _row_to_org(row) if row is not None else None

    async def get_or_create_role(self, scope: RoleScope, role_type: RoleType) -> Role:
        with translate_store_errors(
            "Get or create role", StoreErrorCode.CREATE_FAILED
        ):
            return await ensure_role(self._session, scope, role_type)


async def ensure_role(session: AsyncSession, scope: RoleScope, role_type: RoleType) -> Role:
    """Look up a role, inserting it on first use.  Never duplicates."""
    await session.execute(
        insert(RoleRow)
        .values(scope=scope.value, type=role_type.value)
        .on_conflict_do_nothing(constraint="uq_roles_scope_type")
    )
    stmt = select(RoleRow).where(
        RoleRow.scope == scope.value, RoleRow.type == role_type.value
    )
    row = (await session.execute(stmt)).scalar_one()
    return Role(id=row.id, scope=RoleScope(row.scope), type=RoleType(row.type))


def _row_to_org(row: OrganizationRow) -> Organization:
    return Organization(
        id=row.id,
        name=row.name,
        billing_email=row.billing_email,
        subscription_plan_id=row.subscription_plan_id,
        created_at=row.created_at,
    )


def _row_to_team(row: TeamRow) -> Team:
    return Team(
        id=row.id,
        organization_id=row.organization_id,
        name=row.name,
        website=row.website,
    )


def _json_to_org(data: dict) -> Organization:
    plan_id = data.get("subscription_plan_id")
    return Organization(
        id=UUID(data["id"]),
        name=data["name"],
        billing_email=data["billing_email"],
        subscription_plan_id=UUID(plan_id) if plan_id else None,
        created_at=datetime.fromisoformat(data["created_at"]),
    )


def _json_to_team(data: dict) -> Team:
    return Team(
        id=UUID(data["id"]),
        organization_id=UUID(data["organization_id"]),
        name=data["name"],
        website=data.get("website"),
    )
