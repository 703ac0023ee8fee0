import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskflow.core.errors import InvalidRequestError, NotFoundError
from taskflow.core.security import hash_password, verify_password
from taskflow.db.models import Base, Notification, NotificationType, Project, Task, User
from taskflow.services.users import UserService


def make_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()
    owner = User(username="owner", email="owner@test.local", password_hash=hash_password("secret1"))
    dev = User(username="dev", email="dev@test.local", password_hash=hash_password("secret1"))
    db.add_all([owner, dev])
    db.commit()
    return db, owner, dev


def test_update_rejects_taken_email():
    db, owner, dev = make_session()
    users = UserService(db)

    with pytest.raises(InvalidRequestError):
        users.update_user(dev.id, email="owner@test.local")

    updated = users.update_user(dev.id, full_name="Dev Person", email="dev2@test.local")
    assert updated.full_name == "Dev Person"
    assert updated.email == "dev2@test.local"


def test_change_password_verifies_old_password():
    db, owner, _ = make_session()
    users = UserService(db)

    with pytest.raises(InvalidRequestError):
        users.change_password(owner.id, "wrong", "secret2")

    users.change_password(owner.id, "secret1", "secret2")
    assert verify_password("secret2", users.get_user(owner.id).password_hash)


def test_delete_refuses_owners_of_work():
    db, owner, _ = make_session()
    db.add(Project(name="P", owner_id=owner.id, team_members=[owner]))
    db.commit()

    with pytest.raises(InvalidRequestError):
        UserService(db).delete_user(owner.id)


def test_delete_unassigns_tasks_and_drops_memberships():
    db, owner, dev = make_session()
    project = Project(name="P", owner_id=owner.id, team_members=[owner, dev])
    db.add(project)
    db.commit()
    task = Task(title="T", project_id=project.id, created_by_id=owner.id, assigned_to_id=dev.id)
    db.add(task)
    db.add(Notification(title="x", message="y", type=NotificationType.GENERAL.value, user_id=dev.id))
    db.commit()

    UserService(db).delete_user(dev.id)

    db.expire_all()
    assert db.get(User, dev.id) is None
    assert db.get(Task, task.id).assigned_to_id is None
    assert db.get(Project, project.id).team_member_ids == [owner.id]
    assert db.query(Notification).count() == 0
    with pytest.raises(NotFoundError):
        UserService(db).get_user(dev.id)


def test_list_users_sorted_by_username():
    db, _, _ = make_session()

    page = UserService(db).list_users()

    assert [u.username for u in page["items"]] == ["dev", "owner"]
    assert page["total"] == 2


def test_list_users_rejects_columns_outside_the_allow_list():
    db, _, _ = make_session()
    users = UserService(db)

    with pytest.raises(InvalidRequestError):
        users.list_users(sort="password_hash")
    with pytest.raises(InvalidRequestError):
        users.list_users(sort="-updated_at")

    assert [u.username for u in users.list_users(sort="-username")["items"]] == ["owner", "dev"]
