"""
Household creation, invitations and membership.
"""
from datetime import timedelta

from sqlmodel import select

from luno.db.models import HouseholdInvitation, utc_now
from luno.services import households


def _household(client, headers, name="The Does"):
    response = client.post("/api/households", headers=headers, json={"name": name})
    assert response.status_code == 201, response.text
    return response.json()


def _invite(client, headers, household_id, email="sam@example.com", role="member"):
    return client.post(
        "/api/households/invite",
        headers=headers,
        json={"householdId": household_id, "email": email, "role": role},
    )


def _token(session, email="sam@example.com"):
    return session.exec(
        select(HouseholdInvitation).where(HouseholdInvitation.email == email)
    ).one().token


def test_households_require_family_plan(client, user):
    response = client.post("/api/households", headers=user["headers"], json={"name": "Home"})
    assert response.status_code == 403


def test_invite_and_accept(client, session, register_user, set_plan, sent_emails):
    owner = register_user()
    set_plan(owner["id"], "family")
    household = _household(client, owner["headers"])
    assert household["role"] == "owner"

    response = _invite(client, owner["headers"], household["id"])
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["invitation"]["status"] == "pending"
    assert data["emailSent"] is True

    assert len(sent_emails) == 1
    assert sent_emails[0]["to"] == "sam@example.com"
    assert "Alex Doe invited you to join The Does" in sent_emails[0]["subject"]
    token = _token(session)
    assert f"/households/accept?token={token}" in sent_emails[0]["html"]

    # Same address can't be invited twice while pending
    assert _invite(client, owner["headers"], household["id"]).status_code == 400

    sam = register_user(email="sam@example.com", full_name="Sam Roe")
    response = client.post("/api/households/accept", headers=sam["headers"], json={"token": token})
    assert response.status_code == 200
    assert response.json()["householdId"] == household["id"]

    members = client.get(f"/api/households/{household['id']}/members", headers=sam["headers"]).json()
    assert {(m["email"], m["role"]) for m in members} == {
        ("alex@example.com", "owner"),
        ("sam@example.com", "member"),
    }

    listing = client.get("/api/households", headers=sam["headers"]).json()
    assert listing[0]["role"] == "member"


def test_accept_wrong_email(client, session, register_user, set_plan):
    owner = register_user()
    set_plan(owner["id"], "family")
    household = _household(client, owner["headers"])
    _invite(client, owner["headers"], household["id"])

    intruder = register_user(email="eve@example.com")
    response = client.post("/api/households/accept", headers=intruder["headers"], json={"token": _token(session)})
    assert response.status_code == 403


def test_accept_expired_invitation(client, session, register_user, set_plan):
    owner = register_user()
    set_plan(owner["id"], "family")
    household = _household(client, owner["headers"])
    _invite(client, owner["headers"], household["id"])

    invitation = session.exec(select(HouseholdInvitation)).one()
    invitation.expires_at = utc_now() - timedelta(hours=1)
    session.add(invitation)
    session.commit()

    sam = register_user(email="sam@example.com")
    response = client.post("/api/households/accept", headers=sam["headers"], json={"token": invitation.token})
    assert response.status_code == 400
    assert response.json() == {"error": "Invitation has expired"}


def test_member_cannot_invite(client, session, register_user, set_plan):
    owner = register_user()
    set_plan(owner["id"], "family")
    household = _household(client, owner["headers"])
    _invite(client, owner["headers"], household["id"])

    sam = register_user(email="sam@example.com")
    client.post("/api/households/accept", headers=sam["headers"], json={"token": _token(session)})

    response = _invite(client, sam["headers"], household["id"], email="kim@example.com")
    assert response.status_code == 403


def test_family_seat_limit(client, session, register_user, set_plan):
    owner = register_user()
    set_plan(owner["id"], "family")
    household = _household(client, owner["headers"])

    for i in range(4):
        email = f"member{i}@example.com"
        _invite(client, owner["headers"], household["id"], email=email)
        member = register_user(email=email)
        client.post("/api/households/accept", headers=member["headers"], json={"token": _token(session, email)})

    response = _invite(client, owner["headers"], household["id"], email="sixth@example.com")
    assert response.status_code == 403
    assert "family members" in response.json()["error"]


def test_remove_member(client, session, register_user, set_plan):
    owner = register_user()
    set_plan(owner["id"], "family")
    household = _household(client, owner["headers"])
    _invite(client, owner["headers"], household["id"])
    sam = register_user(email="sam@example.com")
    client.post("/api/households/accept", headers=sam["headers"], json={"token": _token(session)})

    response = client.delete(f"/api/households/{household['id']}/members/{owner['id']}", headers=owner["headers"])
    assert response.status_code == 400

    response = client.delete(f"/api/households/{household['id']}/members/{sam['id']}", headers=owner["headers"])
    assert response.status_code == 204
    assert client.get("/api/households", headers=sam["headers"]).json() == []


def test_expire_invitations(client, session, register_user, set_plan):
    owner = register_user()
    set_plan(owner["id"], "family")
    household = _household(client, owner["headers"])
    _invite(client, owner["headers"], household["id"])

    invitation = session.exec(select(HouseholdInvitation)).one()
    invitation.expires_at = utc_now() - timedelta(days=1)
    session.add(invitation)
    session.commit()

    assert households.expire_invitations(session) == 1
    assert households.expire_invitations(session) == 0
