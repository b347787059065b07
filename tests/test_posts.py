import pytest
from mongomock.collection import Collection


@pytest.fixture
def post(client, player):
    resp = client.post(
        "/posts",
        json={"content": "Two goals tonight!", "tags": ["matchday"]},
        headers=player.headers,
    )
    assert resp.status_code == 201
    return resp.json()["data"]


def test_create_post(post, player):
    assert post["author_id"] == player.id
    assert post["author_name"] == "Ana Silva"
    assert post["author_role"] == "player"
    assert post["likes_count"] == 0
    assert post["is_liked"] is False
    assert post["share_count"] == 0
    assert post["comments"] == []


def test_post_content_limits(client, player):
    assert client.post("/posts", json={"content": ""}, headers=player.headers).status_code == 400
    assert client.post("/posts", json={"content": "x" * 2001}, headers=player.headers).status_code == 400


def test_feed_filters(client, player, scout, post):
    client.post("/posts", json={"content": "Scouting in Porto"}, headers=scout.headers)

    feed = client.get("/posts", headers=player.headers).json()
    assert [p["content"] for p in feed["data"]] == ["Scouting in Porto", "Two goals tonight!"]
    assert feed["pagination"]["total"] == 2

    by_author = client.get("/posts", params={"author_id": player.id}, headers=player.headers).json()["data"]
    assert [p["id"] for p in by_author] == [post["id"]]

    by_role = client.get("/posts", params={"role": "scout"}, headers=player.headers).json()["data"]
    assert [p["author_id"] for p in by_role] == [scout.id]


def test_like_toggle_restores_state(client, db, player, scout, post):
    url = "/posts/%s/like" % post["id"]
    resp = client.post(url, headers=scout.headers)
    assert resp.json()["data"] == {"liked": True, "likes_count": 1}
    assert client.get("/posts/%s" % post["id"], headers=scout.headers).json()["data"]["is_liked"] is True

    resp = client.post(url, headers=scout.headers)
    assert resp.json()["data"] == {"liked": False, "likes_count": 0}

    view = client.get("/posts/%s" % post["id"], headers=scout.headers).json()["data"]
    assert view["likes"] == []
    assert view["likes_count"] == 0

    notes = list(db["notification"].find({"user_id": player.id, "type": "like"}))
    assert len(notes) == 1


def test_liking_own_post_does_not_notify(client, db, player, post):
    client.post("/posts/%s/like" % post["id"], headers=player.headers)
    assert db["notification"].count_documents({}) == 0


def test_like_missing_post(client, player):
    assert client.post("/posts/64b000000000000000000001/like", headers=player.headers).status_code == 404


def test_share_counts_every_call(client, scout, post):
    url = "/posts/%s/share" % post["id"]
    client.post(url, headers=scout.headers)
    resp = client.post(url, headers=scout.headers)
    assert resp.json()["data"]["share_count"] == 2


def test_comments(client, db, player, scout, post):
    resp = client.post("/posts/%s/comments" % post["id"], json={"content": "Great game"}, headers=scout.headers)
    assert resp.status_code == 201
    comment = resp.json()["data"]
    assert comment["author_name"] == "Sam Reed"

    view = client.get("/posts/%s" % post["id"], headers=player.headers).json()["data"]
    assert [c["content"] for c in view["comments"]] == ["Great game"]
    assert view["comments"][0]["author_name"] == "Sam Reed"
    assert db["notification"].count_documents({"user_id": player.id, "type": "comment"}) == 1

    resp = client.post("/posts/%s/comments" % post["id"], json={"content": "x" * 501}, headers=scout.headers)
    assert resp.status_code == 400


def test_feed_shows_three_newest_comments(client, player, scout, post):
    for i in range(4):
        client.post("/posts/%s/comments" % post["id"], json={"content": "c%d" % i}, headers=scout.headers)

    feed = client.get("/posts", headers=player.headers).json()["data"]
    assert [c["content"] for c in feed[0]["comments"]] == ["c1", "c2", "c3"]

    full = client.get("/posts/%s" % post["id"], headers=player.headers).json()["data"]
    assert [c["content"] for c in full["comments"]] == ["c0", "c1", "c2", "c3"]


def test_delete_post_removes_comments(client, db, player, scout, post):
    client.post("/posts/%s/comments" % post["id"], json={"content": "Nice"}, headers=scout.headers)
    assert db["comment"].count_documents({"post_id": post["id"]}) == 1

    resp = client.delete("/posts/%s" % post["id"], headers=scout.headers)
    assert resp.status_code == 403
    assert resp.json()["message"] == "You can only delete your own posts"

    assert client.delete("/posts/%s" % post["id"], headers=player.headers).status_code == 200
    assert db["comment"].count_documents({"post_id": post["id"]}) == 0
    assert client.get("/posts/%s" % post["id"], headers=player.headers).status_code == 404


def test_feed_loads_comments_in_one_query(client, monkeypatch, player, scout):
    for i in range(5):
        post_id = client.post("/posts", json={"content": "Post %d" % i}, headers=player.headers).json()["data"]["id"]
        client.post("/posts/%s/comments" % post_id, json={"content": "on %d" % i}, headers=scout.headers)

    calls = []
    original = Collection.find

    def counting_find(self, *args, **kwargs):
        if self.name == "comment":
            calls.append(args)
        return original(self, *args, **kwargs)

    monkeypatch.setattr(Collection, "find", counting_find)
    feed = client.get("/posts", params={"limit": 5}, headers=player.headers).json()["data"]
    assert [p["comments"][0]["content"] for p in feed] == ["on 4", "on 3", "on 2", "on 1", "on 0"]
    assert len(calls) == 1
