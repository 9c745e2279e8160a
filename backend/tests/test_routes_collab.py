from conftest import OTHER_USER_ID, USER_ID


# ===== Learned traits ===== #

def test_learned_trait_is_created_then_counted(client):
    body = {"trait_name": "Bold Colors", "definition": "High-saturation palette", "business_type": "Beauty"}

    first = client.post("/ai/learned-traits", json=body).json()
    assert first["message"] == "Trait added successfully"
    assert first["trait"]["trait_category"] == "Custom"
    assert first["trait"]["added_by"] == USER_ID

    second = client.post("/ai/learned-traits", json={**body, "trait_name": " bold colors "}).json()
    assert second["message"] == "Trait already exists, incremented usage count"
    assert second["trait"]["usage_count"] == 2

    listed = client.get("/ai/learned-traits").json()
    assert listed["total"] == 1


def test_learned_traits_business_type_matches_loosely(client, fake_db):
    fake_db.seed("learned_traits", [
        {"trait_name": "Before/After", "business_type": "Beauty & Skincare", "usage_count": 3},
        {"trait_name": "Demo", "business_type": "SaaS", "usage_count": 9},
        {"trait_name": "Urgency", "business_type": None, "usage_count": 1},
    ])
    names = [t["trait_name"] for t in client.get("/ai/learned-traits", params={"business_type": "skincare"}).json()["traits"]]
    assert names == ["Before/After", "Urgency"]


def test_learned_trait_validation_and_delete(client):
    assert client.post("/ai/learned-traits", json={"trait_name": " ", "definition": "x"}).status_code == 400

    trait = client.post("/ai/learned-traits", json={"trait_name": "Hook", "definition": "Opens strong"}).json()["trait"]
    assert client.delete("/ai/learned-traits", params={"id": trait["id"]}).json()["success"] is True

    missing = client.delete("/ai/learned-traits", params={"id": trait["id"]})
    assert missing.status_code == 404
    assert missing.json()["detail"]["message"] == "Trait not found"


# ===== Public traits ===== #

def test_public_trait_suggestion_starts_pending(client):
    trait = client.post("/traits", json={"name": "Bold Colors", "group": "Visual"}).json()["trait"]
    assert trait["status"] == "pending"
    assert trait["group_name"] == "Visual"
    assert trait["description"] == "Custom trait: Bold Colors"

    assert client.get("/traits").json()["traits"] == []
    assert len(client.get("/traits", params={"include_all": True}).json()["traits"]) == 1

    duplicate = client.post("/traits", json={"name": "bold colors"})
    assert duplicate.status_code == 409
    assert duplicate.json()["detail"] == {
        "code": "CONFLICT",
        "message": "Trait already exists",
        "details": {"existing_id": trait["id"]},
    }


def test_marketer_cannot_review_public_traits(client, fake_db):
    fake_db.seed("public_traits", [{"id": "t-1", "name": "Bold", "status": "pending"}])

    resp = client.patch("/traits", json={"id": "t-1", "status": "approved"})
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Insufficient permissions"
    assert client.delete("/traits", params={"id": "t-1"}).status_code == 403


def test_admin_reviews_public_trait(make_client, fake_db):
    client = make_client("admin")
    fake_db.seed("public_traits", [{"id": "t-1", "name": "Bold", "status": "pending", "group_name": "Custom"}])

    resp = client.patch("/traits", json={"id": "t-1", "status": "approved", "group": "Visual"})
    trait = resp.json()["trait"]
    assert resp.status_code == 200
    assert trait["status"] == "approved"
    assert trait["group_name"] == "Visual"
    assert trait["reviewed_by"] == USER_ID
    assert trait["reviewed_at"]

    assert [t["id"] for t in client.get("/traits").json()["traits"]] == ["t-1"]

    assert client.patch("/traits", json={"id": "t-1", "status": "archived"}).status_code == 400
    assert client.patch("/traits", json={"id": "missing", "status": "rejected"}).status_code == 404

    assert client.delete("/traits", params={"id": "t-1"}).json() == {"success": True}
    assert fake_db.tables["public_traits"] == []


# ===== Organizer messages ===== #

def _seed_inbox(fake_db, n=2):
    return fake_db.seed("direct_messages", [
        {"from_user_id": OTHER_USER_ID, "to_user_id": USER_ID, "content": f"Hello {i}", "is_read": False}
        for i in range(n)
    ])


def test_inbox_and_sent(client, fake_db):
    _seed_inbox(fake_db)
    sent = client.post("/organizer/messages", json={"to_user_id": OTHER_USER_ID, "content": "Hi back"}).json()
    assert sent["message"]["from_user_id"] == USER_ID
    assert sent["message"]["is_read"] is False

    inbox = client.get("/organizer/messages").json()
    assert [m["content"] for m in inbox["messages"]] == ["Hello 1", "Hello 0"]
    assert inbox["unread_count"] == 2

    outbox = client.get("/organizer/messages", params={"type": "sent"}).json()
    assert [m["content"] for m in outbox["messages"]] == ["Hi back"]
    assert outbox["unread_count"] == 0

    assert client.get("/organizer/messages", params={"type": "archive"}).status_code == 400


def test_send_requires_content(client):
    resp = client.post("/organizer/messages", json={"to_user_id": OTHER_USER_ID, "content": "   "})
    assert resp.status_code == 400
    assert resp.json()["detail"]["message"] == "Message content is required"


def test_mark_read(client, fake_db):
    first, _ = _seed_inbox(fake_db)

    resp = client.patch("/organizer/messages", json={"message_id": first["id"]})
    assert resp.json()["message"]["is_read"] is True
    assert resp.json()["message"]["read_at"]
    assert client.get("/organizer/messages").json()["unread_count"] == 1

    all_read = client.patch("/organizer/messages", json={"mark_all_read": True}).json()
    assert all_read["updated"] == 1
    assert client.get("/organizer/messages").json()["unread_count"] == 0

    assert client.patch("/organizer/messages", json={}).status_code == 400


def test_only_recipient_can_mark_read(client, fake_db):
    outgoing = fake_db.seed("direct_messages", [
        {"from_user_id": USER_ID, "to_user_id": OTHER_USER_ID, "content": "Hey", "is_read": False}
    ])[0]
    resp = client.patch("/organizer/messages", json={"message_id": outgoing["id"]})
    assert resp.status_code == 404
    assert fake_db.tables["direct_messages"][0]["is_read"] is False


def test_delete_message(client, fake_db):
    message = _seed_inbox(fake_db, 1)[0]
    assert client.delete("/organizer/messages", params={"id": message["id"]}).json()["message"] == "Message deleted"
    assert fake_db.tables["direct_messages"] == []


# ===== Data pools ===== #

def _seed_pools(fake_db):
    fake_db.seed("data_pools", [
        {"id": "pool-1", "name": "Beauty DTC", "slug": "beauty", "is_public": True,
         "requires_approval": True, "data_points": 100, "industry": "beauty"},
        {"id": "pool-2", "name": "SaaS Leads", "slug": "saas", "is_public": True,
         "requires_approval": False, "data_points": 50, "industry": "saas"},
        {"id": "pool-3", "name": "Internal", "slug": "internal", "is_public": False,
         "requires_approval": True, "data_points": 900, "industry": "saas"},
    ])


def test_list_public_pools(client, fake_db):
    _seed_pools(fake_db)
    body = client.get("/data-pools").json()
    assert [p["id"] for p in body["data"]] == ["pool-1", "pool-2"]
    assert {p["access_status"] for p in body["data"]} == {"none"}
    assert body["total"] == 2

    saas = client.get("/data-pools", params={"industry": "saas"}).json()["data"]
    assert [p["id"] for p in saas] == ["pool-2"]


def test_request_access_needs_approval(client, fake_db):
    _seed_pools(fake_db)

    resp = client.post("/data-pools/request", json={"pool_id": "pool-1", "reason": "Benchmarking"})
    body = resp.json()
    assert body["message"] == "Access request submitted. Awaiting admin approval."
    assert body["data"]["status"] == "pending"
    assert body["data"]["user_email"] == "user@example.com"
    assert body["data"]["approved_at"] is None

    statuses = {p["id"]: p["access_status"] for p in client.get("/data-pools").json()["data"]}
    assert statuses == {"pool-1": "pending", "pool-2": "none"}

    again = client.post("/data-pools/request", json={"pool_id": "pool-1"})
    assert again.status_code == 409
    assert again.json()["detail"]["message"] == "You already have a pending request for this pool"

    assert len(client.get("/data-pools/request").json()["data"]) == 1


def test_request_access_auto_granted(client, fake_db):
    _seed_pools(fake_db)
    body = client.post("/data-pools/request", json={"pool_id": "pool-2"}).json()
    assert body["message"] == "Access granted automatically."
    assert body["data"]["status"] == "approved"
    assert body["data"]["approved_at"]


def test_denied_request_can_be_resubmitted(client, fake_db):
    _seed_pools(fake_db)
    fake_db.seed("data_access_requests", [
        {"id": "req-1", "user_id": USER_ID, "pool_id": "pool-1", "status": "denied", "denial_reason": "Incomplete"}
    ])

    body = client.post("/data-pools/request", json={"pool_id": "pool-1", "reason": "More detail"}).json()
    assert body["message"] == "Access request resubmitted"
    assert body["data"]["status"] == "pending"
    assert body["data"]["denial_reason"] is None
    assert body["data"]["reason"] == "More detail"


def test_request_unknown_pool(client, fake_db):
    resp = client.post("/data-pools/request", json={"pool_id": "nope"})
    assert resp.status_code == 404
    assert resp.json()["detail"]["message"] == "Data pool not found"


def test_create_pool_requires_admin(client):
    body = {"name": "Fitness", "slug": "fitness", "industry": "fitness"}
    assert client.post("/data-pools", json=body).status_code == 403


def test_admin_creates_pool(make_client, fake_db):
    client = make_client("admin")
    created = client.post("/data-pools", json={"name": "Fitness", "slug": "fitness"}).json()["data"]
    assert created["slug"] == "fitness"
    assert created["requires_approval"] is True
    assert created["access_tier"] == "standard"

    assert client.post("/data-pools", json={"name": " ", "slug": "x"}).status_code == 400


def test_cannot_delete_someone_elses_message(client, fake_db):
    fake_db.seed("direct_messages", [
        {"from_user_id": OTHER_USER_ID, "to_user_id": "cccccccc-cccc-cccc-cccc-cccccccccccc", "content": "Private"}
    ])
    message_id = fake_db.tables["direct_messages"][0]["id"]

    resp = client.delete("/organizer/messages", params={"id": message_id})
    assert resp.status_code == 404
    assert len(fake_db.tables["direct_messages"]) == 1
