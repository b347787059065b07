from datetime import timedelta

import pytest
from bson import ObjectId

from database import utcnow


def _stored(db, account):
    return db["user"].find_one({"_id": ObjectId(account.id)})


def _join(client, club, account, message=None):
    return client.post("/clubs/%s/join-request" % club.id, json={"message": message}, headers=account.headers)


def _process(client, club, request_id, status):
    return client.patch(
        "/clubs/%s/join-requests/%s" % (club.id, request_id),
        json={"status": status},
        headers=club.headers,
    )


@pytest.fixture
def member(client, club, player):
    request_id = _join(client, club, player).json()["data"]["id"]
    assert _process(client, club, request_id, "approved").status_code == 200
    return player


def test_create_and_list_clubs(client, club, register, player):
    resp = client.post(
        "/clubs",
        json={
            "name": "Alpha Football Club",
            "location": "Lisbon",
            "founded_year": 1921,
            "description": "Community club",
            "tier": "Semi-Professional",
        },
        headers=club.headers,
    )
    assert resp.status_code == 201
    assert resp.json()["data"]["profile"]["name"] == "Alpha Football Club"

    register("Beta United", "club")
    resp = client.get("/clubs", params={"location": "lis"}, headers=player.headers)
    assert [c["id"] for c in resp.json()["data"]] == [club.id]
    resp = client.get("/clubs", params={"tier": "Semi-Professional"}, headers=player.headers)
    assert resp.json()["pagination"]["total"] == 1

    resp = client.post("/clubs", json={"name": "X"}, headers=player.headers)
    assert resp.status_code == 403


def test_update_club(client, club, register):
    resp = client.patch("/clubs/%s" % club.id, json={"league": "Liga 3", "facilities": ["Stadium"]}, headers=club.headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["profile"]["league"] == "Liga 3"

    assert client.patch("/clubs/%s" % club.id, json={"verified": True}, headers=club.headers).status_code == 400

    other = register("Beta United", "club")
    resp = client.patch("/clubs/%s" % club.id, json={"league": "None"}, headers=other.headers)
    assert resp.status_code == 403
    assert resp.json()["message"] == "You can only update your own club"


def test_join_request_lifecycle(client, db, club, player):
    resp = _join(client, club, player, "I play left wing")
    assert resp.status_code == 201
    request = resp.json()["data"]
    assert request["status"] == "pending"
    assert request["user"]["id"] == player.id

    resp = _join(client, club, player)
    assert resp.status_code == 400
    assert db["joinrequest"].count_documents({"club_id": club.id, "user_id": player.id}) == 1

    pending = client.get("/clubs/%s/join-requests" % club.id, params={"status": "pending"}, headers=club.headers)
    assert [r["id"] for r in pending.json()["data"]] == [request["id"]]

    resp = _process(client, club, request["id"], "approved")
    assert resp.status_code == 200
    processed = resp.json()["data"]
    assert processed["status"] == "approved"
    assert processed["processed_by"] == club.id
    assert processed["processed_date"]

    profile = _stored(db, player)["profile"]
    assert (profile["status"], profile["club_id"], profile["club_name"]) == ("Signed", club.id, "Alpha FC")
    assert _stored(db, club)["profile"]["players"] == [player.id]
    assert db["notification"].count_documents({"user_id": player.id, "type": "club_invitation"}) == 1

    resp = _process(client, club, request["id"], "rejected")
    assert resp.status_code == 409
    assert resp.json()["message"] == "This request has already been processed"

    resp = _join(client, club, player)
    assert resp.status_code == 400
    assert resp.json()["message"] == "You are already a member of this club"


def test_rejected_request_can_be_reopened(client, db, club, scout):
    request_id = _join(client, club, scout).json()["data"]["id"]
    assert _process(client, club, request_id, "rejected").status_code == 200
    assert _stored(db, club)["profile"]["scouts"] == []

    resp = _join(client, club, scout, "Second try")
    assert resp.status_code == 201
    assert resp.json()["data"]["id"] == request_id
    assert resp.json()["data"]["status"] == "pending"
    assert "processed_by" not in resp.json()["data"]


def test_join_request_rules(client, register, club, player):
    other_club = register("Beta United", "club")
    resp = _join(client, club, other_club)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Only players, coaches, and scouts can join clubs"

    assert client.post("/clubs/%s/join-request" % player.id, json={}, headers=player.headers).status_code == 404

    request_id = _join(client, club, player).json()["data"]["id"]
    assert _process(client, other_club, request_id, "approved").status_code == 403
    assert client.get("/clubs/%s/join-requests" % club.id, headers=player.headers).status_code == 403
    assert _process(client, club, request_id, "maybe").status_code == 400


def test_members(client, db, club, member, coach):
    request_id = _join(client, club, coach).json()["data"]["id"]
    _process(client, club, request_id, "approved")

    members = client.get("/clubs/%s/members" % club.id, headers=member.headers).json()["data"]
    assert {m["id"] for m in members} == {member.id, coach.id}
    coaches = client.get("/clubs/%s/members" % club.id, params={"role": "coach"}, headers=member.headers).json()["data"]
    assert [m["id"] for m in coaches] == [coach.id]

    view = client.get("/clubs/%s" % club.id, headers=member.headers).json()["data"]
    assert [p["name"] for p in view["profile"]["players"]] == ["Ana Silva"]

    resp = client.delete("/clubs/%s/members/%s" % (club.id, member.id), headers=club.headers)
    assert resp.status_code == 200
    profile = _stored(db, member)["profile"]
    assert profile["status"] == "Free Agent"
    assert "club_id" not in profile

    resp = client.delete("/clubs/%s/members/%s" % (club.id, member.id), headers=club.headers)
    assert resp.status_code == 404


def test_delete_club_releases_members(client, db, club, member):
    assert client.delete("/clubs/%s" % club.id, headers=member.headers).status_code == 403
    assert client.delete("/clubs/%s" % club.id, headers=club.headers).status_code == 200
    assert _stored(db, club) is None
    profile = _stored(db, member)["profile"]
    assert profile["status"] == "Free Agent"
    assert "club_name" not in profile


def test_joining_another_club_leaves_the_first(client, db, register, club, member):
    beta = register("Beta United", "club")
    request_id = _join(client, beta, member).json()["data"]["id"]
    assert _process(client, beta, request_id, "approved").status_code == 200

    assert member.id not in _stored(db, club)["profile"]["players"]
    assert _stored(db, beta)["profile"]["players"] == [member.id]
    profile = _stored(db, member)["profile"]
    assert (profile["club_id"], profile["club_name"]) == (beta.id, "Beta United")
    members = client.get("/clubs/%s/members" % club.id, headers=member.headers).json()["data"]
    assert members == []


def test_leaving_signed_status_leaves_the_roster(client, db, club, member):
    resp = client.patch("/players/%s/status" % member.id, json={"status": "Free Agent"}, headers=member.headers)
    assert resp.status_code == 200

    assert _stored(db, club)["profile"]["players"] == []
    members = client.get("/clubs/%s/members" % club.id, headers=member.headers).json()["data"]
    assert members == []
    assert _join(client, club, member).status_code == 201


def test_signing_elsewhere_leaves_the_roster(client, db, club, member):
    resp = client.patch(
        "/players/%s/status" % member.id,
        json={"status": "Signed", "club_id": "elsewhere", "club_name": "Gamma SC"},
        headers=member.headers,
    )
    assert resp.status_code == 200
    assert _stored(db, club)["profile"]["players"] == []

    resp = client.patch(
        "/players/%s/status" % member.id,
        json={"status": "Signed", "club_id": "elsewhere", "club_name": "Gamma City"},
        headers=member.headers,
    )
    assert resp.json()["data"]["profile"]["club_name"] == "Gamma City"


def test_events(client, club, player):
    base = "/clubs/%s/events" % club.id
    soon = (utcnow() + timedelta(days=3)).isoformat()
    past = (utcnow() - timedelta(days=3)).isoformat()
    resp = client.post(base, json={"title": "Derby", "date": soon, "type": "match", "description": "Home game"}, headers=club.headers)
    assert resp.status_code == 201
    event = resp.json()["data"]
    assert event["status"] == "scheduled"
    assert event["created_by"] == club.id
    client.post(base, json={"title": "Recovery", "date": past, "type": "training", "description": "Light"}, headers=club.headers)

    assert client.post(base, json={"title": "X", "date": soon, "type": "party", "description": "?"}, headers=club.headers).status_code == 400
    assert client.post(base, json={"title": "X", "date": soon, "type": "match", "description": "?"}, headers=player.headers).status_code == 403

    listed = client.get(base, headers=player.headers).json()["data"]
    assert [e["title"] for e in listed] == ["Recovery", "Derby"]
    upcoming = client.get(base, params={"upcoming": "true"}, headers=player.headers).json()["data"]
    assert [e["title"] for e in upcoming] == ["Derby"]

    url = "%s/%s" % (base, event["id"])
    resp = client.patch(url, json={"status": "completed", "location": "Home"}, headers=club.headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["status"] == "completed"
    assert client.patch(url, json={"club_id": "elsewhere"}, headers=club.headers).status_code == 400

    assert client.delete(url, headers=club.headers).status_code == 200
    assert client.delete(url, headers=club.headers).status_code == 404


def test_stats_and_achievements(client, club, member):
    base = "/clubs/%s" % club.id
    client.post(
        base + "/events",
        json={"title": "Cup", "date": (utcnow() + timedelta(days=1)).isoformat(), "type": "tournament", "description": "Final"},
        headers=club.headers,
    )
    resp = client.post(base + "/achievements", json={"title": "League title", "year": 2023, "level": "National"}, headers=club.headers)
    assert resp.status_code == 201
    achievement = resp.json()["data"]

    stats = client.get(base + "/stats", headers=member.headers).json()["data"]
    assert stats["total_members"] == 1
    assert stats["total_players"] == 1
    assert stats["upcoming_events"] == 1
    assert stats["matches_played"] == 0
    assert stats["trophies_won"] == 1
    assert stats["membership_requests"] == 0

    resp = client.delete("%s/achievements/%s" % (base, achievement["id"]), headers=club.headers)
    assert resp.status_code == 200
    assert resp.json()["data"] == []
    assert client.delete("%s/achievements/%s" % (base, achievement["id"]), headers=club.headers).status_code == 404
