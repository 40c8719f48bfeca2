"""PostgreSQL implementation of OrgMembershipRepo."""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import Select, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from tenant_api.core.errors import StoreErrorCode, translate_store_errors
from tenant_api.db.tables import OrganizationMemberRow, RoleRow
from tenant_api.models.organization import Membership, RoleScope, RoleType
from tenant_api.repos.pg_org_repo import ensure_role

_OrgRole = aliased(RoleRow)
_TeamRole = aliased(RoleRow)


def _membership_select() -> Select:
    return (
        select(OrganizationMemberRow, _OrgRole.type, _TeamRole.type)
        .join(_OrgRole, _OrgRole.id == OrganizationMemberRow.org_role_id)
        .outerjoin(_TeamRole, _TeamRole.id == OrganizationMemberRow.team_role_id)
    )


class PgOrgMembershipRepo:
    """Satisfies the OrgMembershipRepo Protocol using PostgreSQL."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def add(self, membership: Membership) -> None:
        with translate_store_errors(
            "Add organization member",
            StoreErrorCode.CREATE_FAILED,
            "Unable to add member. Please try again.",
        ):
            org_role = await ensure_role(
                self._session, RoleScope.ORGANIZATION, membership.org_role
            )
            team_role_id = None
            if membership.team_id is not None and membership.team_role is not None:
                team_role = await ensure_role(
                    self._session, RoleScope.TEAM, membership.team_role
                )
                team_role_id = team_role.id
            self._session.add(
                OrganizationMemberRow(
                    id=membership.id,
                    organization_id=membership.organization_id,
                    user_id=membership.user_id,
                    org_role_id=org_role.id,
                    team_id=membership.team_id,
                    team_role_id=team_role_id,
                )
            )
            await self._session.flush()

    async def list_for_user_in_org(self, org_id: UUID, user_id: str) -> list[Membership]:
        stmt = _membership_select().where(
            OrganizationMemberRow.organization_id == org_id,
            OrganizationMemberRow.user_id == user_id,
        )
        return await self._fetch("Get membership", stmt)

    async def list_by_org(self, org_id: UUID) -> list[Membership]:
        stmt = _membership_select().where(
            OrganizationMemberRow.organization_id == org_id
        )
        return await self._fetch("List organization members", stmt)

    async def list_by_user(self, user_id: str) -> list[Membership]:
        stmt = _membership_select().where(OrganizationMemberRow.user_id == user_id)
        return await self._fetch("List user memberships", stmt)

    async def update_org_role(
        self, org_id: UUID, user_id: str, new_role: RoleType
    ) -> list[Membership]:
        with translate_store_errors(
            "Update member role",
            StoreErrorCode.UPDATE_FAILED,
            "Unable to update member role. Please try again.",
        ):
            role = await ensure_role(self._session, RoleScope.ORGANIZATION, new_role)
            await self._session.execute(
                update(OrganizationMemberRow)
                .where(
                    OrganizationMemberRow.organization_id == org_id,
                    OrganizationMemberRow.user_id == user_id,
                )
                .values(org_role_id=role.id)
            )
        return await self.list_for_user_in_org(org_id, user_id)

    async def remove(self, org_id: UUID, user_id: str) -> bool:
        with translate_store_errors(
            "Remove organization member",
            StoreErrorCode.DELETE_FAILED,
            "Unable to remove member. Please try again.",
        ):
            result = await self._session.execute(
                delete(OrganizationMemberRow).where(
                    OrganizationMemberRow.organization_id == org_id,
                    OrganizationMemberRow.user_id == user_id,
                )
            )
        return result.rowcount > 0

    async def count_members(self, org_id: UUID) -> int:
        with translate_store_errors("Count organization members", StoreErrorCode.READ_FAILED):
            stmt = select(
                func.count(func.distinct(OrganizationMemberRow.user_id))
            ).where(OrganizationMemberRow.organization_id == org_id)
            return (await self._session.execute(stmt)).scalar_one()

    async def _fetch(self, operation: str, stmt: Select) -> list[Membership]:
        with translate_store_errors(
            operation,
            StoreErrorCode.READ_FAILED,
            "Unable to load members. Please refresh the page.",
        ):
            rows = (await self._session.execute(stmt)).all()
        return [_row_to_membership(row, org_role, team_role) for row, org_role, team_role in rows]


def _row_to_membership(
    row: OrganizationMemberRow, org_role: str, team_role: str | None
) -> Membership:
    return Membership(
        id=row.id,
        organization_id=row.organization_id,
        user_id=row.user_id,
        org_role=RoleType(org_role),
        team_id=row.team_id,
        team_role=RoleType(team_role) if team_role else None,
    )
