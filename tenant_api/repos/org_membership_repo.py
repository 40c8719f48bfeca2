from __future__ import annotations

from dataclasses import replace
from typing import Protocol
from uuid import UUID

from tenant_api.core.errors import StoreErrorCode, StoreOperationError
from tenant_api.models.organization import Membership, RoleType
from tenant_api.repos.memory import InMemoryStore


class OrgMembershipRepo(Protocol):
    async def add(self, membership: Membership) -> None: ...
    async def list_for_user_in_org(
        self, org_id: UUID, user_id: str
    ) -> list[Membership]: ...
    async def list_by_org(self, org_id: UUID) -> list[Membership]: ...
    async def list_by_user(self, user_id: str) -> list[Membership]: ...
    async def update_org_role(
        self, org_id: UUID, user_id: str, new_role: RoleType
    ) -> list[Membership]: ...
    async def remove(self, org_id: UUID, user_id: str) -> bool: ...
    async def count_members(self, org_id: UUID) -> int: ...


def insert_membership(store: InMemoryStore, membership: Membership, operation: str) -> None:
    """Insert honoring the (user, org, team) uniqueness constraint."""
    if membership.key in store.memberships:
        raise StoreOperationError(
            operation,
            f"membership already exists for user={membership.user_id}",
            "This user is already a member.",
            StoreErrorCode.CREATE_FAILED,
            conflict=True,
        )
    store.memberships[membership.key] = membership


class InMemoryOrgMembershipRepo:
    def __init__(self, store: InMemoryStore) -> None:
        self._store = store

    async def add(self, membership: Membership) -> None:
        if membership.organization_id not in self._store.organizations:
            raise StoreOperationError(
                "Add organization member",
                f"organization {membership.organization_id} does not exist",
                "Unable to add member. Please try again.",
                StoreErrorCode.CREATE_FAILED,
                conflict=True,
            )
        insert_membership(self._store, membership, "Add organization member")

    async def list_for_user_in_org(self, org_id: UUID, user_id: str) -> list[Membership]:
        return [
            m
            for m in self._store.memberships.values()
            if m.organization_id == org_id and m.user_id == user_id
        ]

    async def list_by_org(self, org_id: UUID) -> list[Membership]:
        return [
            m for m in self._store.memberships.values() if m.organization_id == org_id
        ]

    async def list_by_user(self, user_id: str) -> list[Membership]:
        return [m for m in self._store.memberships.values() if m.user_id == user_id]

    async def update_org_role(
        self, org_id: UUID, user_id: str, new_role: RoleType
    ) -> list[Membership]:
        updated: list[Membership] = []
        for key, m in list(self._store.memberships.items()):
            if m.organization_id == org_id and m.user_id == user_id:
                m = replace(m, org_role=new_role)
                self._store.memberships[key] = m
                updated.append(m)
        return updated

    async def remove(self, org_id: UUID, user_id: str) -> bool:
        keys = [
            key
            for key, m in self._store.memberships.items()
            if m.organization_id == org_id and m.user_id == user_id
        ]
        for key in keys:
            del self._store.memberships[key]
        return bool(keys)

    async def count_members(self, org_id: UUID) -> int:
        return len(
            {
                m.user_id
                for m in self._store.memberships.values()
                if m.organization_id == org_id
            }
        )
