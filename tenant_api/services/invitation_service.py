"""Invitation workflow: issue, validate, redeem, revoke.

An invitation is pending until it is consumed or revoked; once
``now > expires_at`` it is unusable even though nothing is written (expiry
is evaluated lazily on every read).  Redemption is a single store call so
two concurrent redeems of one token produce exactly one membership.

Raw tokens never reach the log; lines carry token_fingerprint() instead.
"""

from __future__ import annotations

import logging
import re
from datetime import UTC, datetime, timedelta
from uuid import UUID

from tenant_api.core.config import SETTINGS
from tenant_api.core.errors import (
    InvitationOperationError,
    StoreErrorCode,
    StoreOperationError,
)
from tenant_api.core.logging import token_fingerprint
from tenant_api.core.metrics import INVITATION_EVENTS
from tenant_api.models.invitation import Invitation, InvitationDetails
from tenant_api.models.organization import RoleType
from tenant_api.repos.registry import Repos

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def default_expiry(now: datetime | None = None) -> datetime:
    return (now or _utcnow()) + timedelta(days=SETTINGS.invitation_ttl_days)


def normalize_email(
    email: str,
    *,
    operation: str = "Invite organization member",
    error_cls: type[StoreOperationError] = InvitationOperationError,
) -> str:
    normalized = email.strip().lower()
    if not _EMAIL_RE.match(normalized):
        raise error_cls(
            operation,
            f"invalid email {email!r}",
            "Please enter a valid email address.",
            StoreErrorCode.VALIDATION_FAILED,
        )
    return normalized


async def is_org_admin(repos: Repos, org_id: UUID, user_id: str) -> bool:
    memberships = await repos.memberships.list_for_user_in_org(org_id, user_id)
    return any(m.org_role is RoleType.ADMIN for m in memberships)


async def issue_invitation(
    repos: Repos,
    *,
    organization_id: UUID,
    email: str,
    org_role: RoleType | str,
    team_role: RoleType | str,
    invited_by: str,
    expires_at: datetime | None = None,
    team_id: UUID | None = None,
    now: datetime | None = None,
) -> tuple[str, datetime]:
    """Create a pending invitation and return ``(token, expires_at)``."""
    operation = "Invite organization member"
    now = now or _utcnow()

    try:
        email = normalize_email(email)
        try:
            org_role = RoleType(org_role)
            team_role = RoleType(team_role)
        except ValueError:
            raise InvitationOperationError(
                operation,
                f"unknown role org_role={org_role!r} team_role={team_role!r}",
                "Please choose a valid role.",
                StoreErrorCode.VALIDATION_FAILED,
            ) from None

        expires_at = expires_at or default_expiry(now)
        if expires_at.tzinfo is None:
            # naive timestamps are taken as UTC
            expires_at = expires_at.replace(tzinfo=UTC)
        if expires_at <= now:
            raise InvitationOperationError(
                operation,
                "expiry must be in the future",
                "Invitation expiry must be in the future.",
                StoreErrorCode.VALIDATION_FAILED,
            )

        org = await repos.orgs.get_by_id(organization_id)
        if org is None:
            raise InvitationOperationError(
                operation,
                f"organization {organization_id} not found",
                "Organization not found.",
                StoreErrorCode.NOT_FOUND,
            )

        if team_id is not None:
            team = await repos.orgs.get_team(team_id)
            if team is None or team.organization_id != organization_id:
                raise InvitationOperationError(
                    operation,
                    f"team {team_id} is not part of organization {organization_id}",
                    "Please choose a team in this organization.",
                    StoreErrorCode.VALIDATION_FAILED,
                )

        if not await is_org_admin(repos, organization_id, invited_by):
            raise InvitationOperationError(
                operation,
                f"user={invited_by} is not an admin of org={organization_id}",
                "Only organization admins can invite members.",
                StoreErrorCode.UNAUTHORIZED,
            )

        token = await repos.invitations.invite_org_member(
            organization_id=organization_id,
            email=email,
            org_role=org_role,
            team_role=team_role,
            invited_by=invited_by,
            expires_at=expires_at,
            team_id=team_id,
        )
    except StoreOperationError as exc:
        INVITATION_EVENTS.labels(event="issued", outcome=exc.code.value).inc()
        raise

    INVITATION_EVENTS.labels(event="issued", outcome="ok").inc()
    logger.info(
        "Invitation issued org=%s role=%s by=%s token=%s",
        organization_id,
        org_role.value,
        invited_by,
        token_fingerprint(token),
    )
    return token, expires_at


async def validate_token(
    repos: Repos, token: str, *, now: datetime | None = None
) -> InvitationDetails:
    """Describe a usable invitation; pure read.

    Expiry is checked before consumed/revoked, so an expired token always
    answers EXPIRED whatever else happened to it.
    """
    operation = "Validate invitation token"
    now = now or _utcnow()

    record = await repos.invitations.validate_invitation_token(token)
    if record is None:
        INVITATION_EVENTS.labels(event="validated", outcome="NOT_FOUND").inc()
        raise InvitationOperationError(
            operation,
            f"no invitation for token={token_fingerprint(token)}",
            "This invitation link is invalid.",
            StoreErrorCode.NOT_FOUND,
        )

    invitation = record.invitation
    if invitation.is_expired(now):
        INVITATION_EVENTS.labels(event="validated", outcome="EXPIRED").inc()
        raise InvitationOperationError(
            operation,
            f"invitation {invitation.id} expired at {invitation.expires_at.isoformat()}",
            "This invitation has expired.",
            StoreErrorCode.EXPIRED,
        )
    if invitation.consumed_at is not None or invitation.revoked_at is not None:
        INVITATION_EVENTS.labels(event="validated", outcome="NOT_FOUND").inc()
        raise InvitationOperationError(
            operation,
            f"invitation {invitation.id} is {invitation.status(now).value}",
            "This invitation link is invalid.",
            StoreErrorCode.NOT_FOUND,
        )

    INVITATION_EVENTS.labels(event="validated", outcome="ok").inc()
    return InvitationDetails(
        invitation_id=invitation.id,
        organization_id=invitation.organization_id,
        organization_name=record.organization_name,
        email=invitation.email,
        org_role=invitation.org_role,
        team_role=invitation.team_role,
        expires_at=invitation.expires_at,
        team_id=invitation.team_id,
    )


async def redeem(repos: Repos, token: str, user_id: str) -> bool:
    """Consume the invitation for *user_id*.  True exactly once per token."""
    try:
        redeemed = await repos.invitations.process_invitation(token, user_id)
    except StoreOperationError as exc:
        INVITATION_EVENTS.labels(event="redeemed", outcome=exc.code.value).inc()
        logger.warning(
            "Redeem failed token=%s user=%s: %s", token_fingerprint(token), user_id, exc
        )
        raise

    INVITATION_EVENTS.labels(
        event="redeemed", outcome="ok" if redeemed else "rejected"
    ).inc()
    if redeemed:
        logger.info("Invitation redeemed token=%s user=%s", token_fingerprint(token), user_id)
    else:
        logger.info("Invitation not redeemable token=%s", token_fingerprint(token))
    return redeemed


async def revoke(repos: Repos, token: str) -> bool:
    """Move a pending invitation to revoked.  False if it was not pending."""
    revoked = await repos.invitations.revoke_invitation(token)
    INVITATION_EVENTS.labels(
        event="revoked", outcome="ok" if revoked else "rejected"
    ).inc()
    logger.info("Invitation revoke token=%s revoked=%s", token_fingerprint(token), revoked)
    return revoked


async def get_invitation(repos: Repos, token: str) -> Invitation | None:
    """Raw lookup for authorization checks; ignores status."""
    record = await repos.invitations.validate_invitation_token(token)
    return record.invitation if record is not None else None


async def list_pending(repos: Repos, org_id: UUID) -> list[Invitation]:
    return await repos.invitations.list_pending(org_id)
