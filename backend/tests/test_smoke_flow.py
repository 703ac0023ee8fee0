from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskflow.core.deps import get_db
from taskflow.db.models import Base
from taskflow.db.seed import seed_roles
from taskflow.main import app


def make_client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    def override_get_db():
        db = TestingSessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    client = TestClient(app)

    db = TestingSessionLocal()
    seed_roles(db)
    db.close()

    return client


def signup(client, username: str) -> dict:
    res = client.post(
        "/api/auth/signup",
        json={
            "username": username,
            "email": f"{username}@example.com",
            "password": "topsecret",
            "full_name": username.title(),
        },
    )
    assert res.status_code == 201
    return res.json()


def test_smoke_end_to_end_task_flow():
    client = make_client()

    alice = signup(client, "alice")
    bob = signup(client, "bob")
    assert alice["user"]["roles"] == ["USER"]

    login_res = client.post("/api/auth/login", json={"username": "alice", "password": "topsecret"})
    assert login_res.status_code == 200
    alice_headers = {"Authorization": f"Bearer {login_res.json()['access_token']}"}
    bob_headers = {"Authorization": f"Bearer {bob['access_token']}"}

    me_res = client.get("/api/auth/me", headers=alice_headers)
    assert me_res.status_code == 200
    assert me_res.json()["username"] == "alice"

    project_res = client.post(
        "/api/projects",
        headers=alice_headers,
        json={"name": "Smoke Project", "start_date": "2026-01-01", "end_date": "2026-03-01"},
    )
    assert project_res.status_code == 201
    project = project_res.json()
    assert project["status"] == "ACTIVE"
    assert project["team_member_ids"] == [alice["user"]["id"]]

    member_res = client.post(f"/api/projects/{project['id']}/members/{bob['user']['id']}", headers=alice_headers)
    assert member_res.status_code == 200

    task_res = client.post(
        "/api/tasks",
        headers=alice_headers,
        json={"project_id": project["id"], "title": "Smoke Task", "priority": "HIGH"},
    )
    assert task_res.status_code == 201
    task_id = task_res.json()["id"]

    assign_res = client.put(f"/api/tasks/{task_id}/assign/{bob['user']['id']}", headers=alice_headers)
    assert assign_res.status_code == 200
    assert assign_res.json()["status"] == "IN_PROGRESS"
    assert assign_res.json()["assigned_to_id"] == bob["user"]["id"]

    # PROJECT_UPDATED for joining the team plus TASK_ASSIGNED
    count_res = client.get("/api/notifications/unread/count", headers=bob_headers)
    assert count_res.json() == {"count": 2}

    my_tasks = client.get("/api/tasks/my", headers=bob_headers).json()
    assert [item["id"] for item in my_tasks["items"]] == [task_id]

    status_res = client.put(f"/api/tasks/{task_id}/status", headers=bob_headers, json={"status": "COMPLETED"})
    assert status_res.status_code == 200
    assert status_res.json()["status"] == "COMPLETED"

    alice_unread = client.get("/api/notifications/unread", headers=alice_headers).json()
    assert [item["type"] for item in alice_unread] == ["TASK_UPDATED"]
    assert "IN_PROGRESS to COMPLETED" in alice_unread[0]["message"]

    bob_unread = client.get("/api/notifications/unread", headers=bob_headers).json()
    assert all(item["type"] != "TASK_UPDATED" for item in bob_unread)

    mark_res = client.patch("/api/notifications/mark-all-read", headers=bob_headers)
    assert mark_res.status_code == 200
    assert client.get("/api/notifications/unread/count", headers=bob_headers).json() == {"count": 0}

    cleared = client.delete("/api/notifications/read", headers=bob_headers)
    assert cleared.json() == {"message": "2 read notifications deleted"}
    assert client.get("/api/notifications", headers=bob_headers).json()["total"] == 0

    delete_res = client.delete(f"/api/projects/{project['id']}", headers=alice_headers)
    assert delete_res.status_code == 200
    assert client.get(f"/api/tasks/{task_id}", headers=alice_headers).status_code == 404


def test_validate_token_endpoint():
    client = make_client()
    carol = signup(client, "carol")

    ok = client.get("/api/auth/validate", params={"token": carol["access_token"]})
    assert ok.status_code == 200
    assert ok.json() == {"valid": True, "username": "carol"}

    bad = client.get("/api/auth/validate", params={"token": "not-a-jwt"})
    assert bad.status_code == 401
    assert bad.json() == {"detail": "Invalid or expired token"}


def test_duplicate_signup_and_bad_login_are_structured_errors():
    client = make_client()
    signup(client, "dave")

    dup = client.post(
        "/api/auth/signup",
        json={"username": "dave", "email": "other@example.com", "password": "topsecret"},
    )
    assert dup.status_code == 400
    assert dup.json() == {"detail": "Username is already taken"}

    login = client.post("/api/auth/login", json={"username": "dave", "password": "wrong-password"})
    assert login.status_code == 401
    assert login.json() == {"detail": "Invalid username or password"}


def test_profile_update_and_password_change():
    client = make_client()
    erin = signup(client, "erin")
    headers = {"Authorization": f"Bearer {erin['access_token']}"}

    update = client.put("/api/users/me", headers=headers, json={"full_name": "Erin Example"})
    assert update.status_code == 200
    assert update.json()["full_name"] == "Erin Example"

    wrong = client.put("/api/users/me/password", headers=headers, json={"old_password": "nope", "new_password": "newsecret"})
    assert wrong.status_code == 400

    changed = client.put(
        "/api/users/me/password", headers=headers, json={"old_password": "topsecret", "new_password": "newsecret"}
    )
    assert changed.status_code == 200
    assert client.post("/api/auth/login", json={"username": "erin", "password": "newsecret"}).status_code == 200
