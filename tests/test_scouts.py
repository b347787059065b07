from bson import ObjectId


def test_shortlist_add_and_remove(client, scout, player):
    url = "/scouts/%s/shortlist" % scout.id
    resp = client.post(url, json={"player_id": player.id}, headers=scout.headers)
    assert resp.status_code == 200
    assert [p["id"] for p in resp.json()["data"]] == [player.id]

    resp = client.get(url, headers=scout.headers)
    assert [p["name"] for p in resp.json()["data"]] == ["Ana Silva"]

    resp = client.delete("%s/%s" % (url, player.id), headers=scout.headers)
    assert resp.status_code == 200
    assert resp.json()["data"] == []

    resp = client.delete("%s/%s" % (url, player.id), headers=scout.headers)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Player not found in shortlist"


def test_shortlist_duplicate_keeps_size(client, db, scout, player):
    url = "/scouts/%s/shortlist" % scout.id
    client.post(url, json={"player_id": player.id}, headers=scout.headers)
    resp = client.post(url, json={"player_id": player.id}, headers=scout.headers)
    assert resp.status_code == 400
    assert resp.json()["message"] == "Player is already in shortlist"

    stored = db["user"].find_one({"_id": ObjectId(scout.id)})
    assert stored["profile"]["shortlisted_players"] == [player.id]


def test_shortlist_only_takes_players(client, scout, coach):
    url = "/scouts/%s/shortlist" % scout.id
    resp = client.post(url, json={"player_id": coach.id}, headers=scout.headers)
    assert resp.status_code == 404
    assert resp.json()["message"] == "Player not found"
    assert client.post(url, json={"player_id": "missing"}, headers=scout.headers).status_code == 404


def test_shortlist_belongs_to_its_scout(client, register, scout, player):
    other = register("Olga Berg", "scout")
    resp = client.get("/scouts/%s/shortlist" % scout.id, headers=other.headers)
    assert resp.status_code == 403
    assert resp.json()["message"] == "You can only access your own shortlist"

    resp = client.post("/scouts/%s/shortlist" % scout.id, json={"player_id": player.id}, headers=other.headers)
    assert resp.status_code == 403

    # a player has no shortlist of their own
    resp = client.get("/scouts/%s/shortlist" % player.id, headers=player.headers)
    assert resp.status_code == 403


def test_report_scenario(client, db, scout, player):
    resp = client.post(
        "/scouts/reports",
        json={
            "player_id": player.id,
            "rating": 8,
            "notes": "Quick feet and good vision.",
            "recommendation": "Recommend",
            "strengths": ["pace", "vision"],
        },
        headers=scout.headers,
    )
    assert resp.status_code == 201
    report = resp.json()["data"]
    assert report["scout_id"] == scout.id
    assert report["player"]["name"] == "Ana Silva"
    assert report["scout"]["name"] == "Sam Reed"

    filtered = client.get("/scouts/reports", params={"player_id": player.id}, headers=scout.headers).json()
    assert [r["id"] for r in filtered["data"]] == [report["id"]]

    mine = client.get("/scouts/reports", headers=scout.headers).json()
    assert [r["id"] for r in mine["data"]] == [report["id"]]

    about_me = client.get("/scouts/reports", headers=player.headers).json()
    assert [r["id"] for r in about_me["data"]] == [report["id"]]

    stored = db["user"].find_one({"_id": ObjectId(scout.id)})
    assert stored["profile"]["reports"] == [report["id"]]
    assert db["notification"].count_documents({"user_id": player.id, "type": "scout_report"}) == 1


def test_report_rules(client, scout, player, coach):
    body = {"player_id": player.id, "rating": 8, "notes": "Solid in the air.", "recommendation": "Consider"}
    assert client.post("/scouts/reports", json=body, headers=player.headers).status_code == 403

    resp = client.post("/scouts/reports", json={**body, "player_id": coach.id}, headers=scout.headers)
    assert resp.status_code == 404

    for bad in ({"rating": 11}, {"notes": "short"}, {"recommendation": "Maybe"}, {"potential_fee": -1}):
        assert client.post("/scouts/reports", json={**body, **bad}, headers=scout.headers).status_code == 400
