"""Secrets must never reach the log stream.

Runs the whole invitation flow with DEBUG logging captured and checks
that neither the session tokens nor the invitation token appear in any
record.
"""

from __future__ import annotations

import logging

import httpx
import pytest
from fastapi.testclient import TestClient

from tests.conftest import (
    ALICE,
    BOB,
    FakeIdentityService,
    auth,
    create_test_org,
    session_token,
)


def test_invitation_flow_logs_no_secrets(
    client: TestClient, caplog: pytest.LogCaptureFixture
) -> None:
    org, _ = create_test_org()

    with caplog.at_level(logging.DEBUG):
        token = client.post(
            "/invitations",
            json={"organization_id": str(org.id), "email": "bob@example.com"},
            headers=auth(ALICE),
        ).json()["token"]
        client.get(f"/invitations/{token}", headers=auth(BOB))
        client.post(f"/invitations/{token}/redeem", headers=auth(BOB))
        client.post(f"/invitations/{token}/redeem", headers=auth(BOB))
        client.delete(f"/invitations/{token}", headers=auth(ALICE))

    assert caplog.records
    for secret in (token, session_token(ALICE), session_token(BOB)):
        assert secret not in caplog.text


def test_rejected_and_failed_lookups_log_no_token(
    client: TestClient,
    identity: FakeIdentityService,
    caplog: pytest.LogCaptureFixture,
) -> None:
    bogus = "totally-made-up-session-token-123456"
    with caplog.at_level(logging.DEBUG):
        assert client.get("/me", headers={"Authorization": f"Bearer {bogus}"}).status_code == 401
        identity.fail = httpx.ConnectError("connection refused")
        assert client.get("/me", headers=auth(ALICE)).status_code == 401

    assert "Identity lookup failed" in caplog.text
    assert bogus not in caplog.text
    assert session_token(ALICE) not in caplog.text
