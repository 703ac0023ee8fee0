import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from taskflow.core.errors import NotFoundError, PermissionDeniedError
from taskflow.db.models import Base, Notification, NotificationType, Project, Task, TaskStatus, User
from taskflow.services.notifications import NotificationService
from taskflow.services.tasks import TaskService


class RecordingPublisher:
    def __init__(self) -> None:
        self.user_messages: list[tuple[int, dict]] = []
        self.task_events: list[tuple[int, dict]] = []

    def send_to_user(self, user_id: int, payload: dict) -> int:
        self.user_messages.append((user_id, payload))
        return 1

    def broadcast(self, payload: dict) -> int:
        return 0

    def send_project_update(self, project_id: int, payload: dict) -> int:
        return 0

    def send_task_update(self, project_id: int, payload: dict) -> int:
        self.task_events.append((project_id, payload))
        return 1


class FailingPublisher(RecordingPublisher):
    def send_to_user(self, user_id: int, payload: dict) -> int:
        raise ConnectionError("broker unavailable")

    def send_task_update(self, project_id: int, payload: dict) -> int:
        raise ConnectionError("broker unavailable")


class BrokenNotifications:
    def create_notification(self, *args, **kwargs):
        raise RuntimeError("notification store down")


class RecordingEmail:
    def __init__(self) -> None:
        self.assignments: list[tuple[int, str]] = []
        self.updates: list[tuple[int, str, str]] = []

    def send_task_assignment_email(self, task, assignee) -> bool:
        self.assignments.append((task.id, assignee.email))
        return True

    def send_task_update_email(self, task, recipient, update_message) -> bool:
        self.updates.append((task.id, recipient.email, update_message))
        return True


def make_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)
    return TestingSessionLocal()


def seed(db):
    u1 = User(username="u1", email="u1@test.local", password_hash="pw")
    u2 = User(username="u2", email="u2@test.local", password_hash="pw")
    outsider = User(username="outsider", email="outsider@test.local", password_hash="pw")
    db.add_all([u1, u2, outsider])
    db.commit()

    project = Project(name="P", owner_id=u1.id, team_members=[u1, u2])
    db.add(project)
    db.commit()

    task = Task(title="T", project_id=project.id, created_by_id=u1.id, status="TODO", priority="MEDIUM")
    db.add(task)
    db.commit()
    return u1, u2, outsider, project, task


def make_service(db, publisher=None, email=None):
    publisher = publisher or RecordingPublisher()
    notifications = NotificationService(db, publisher=publisher)
    return TaskService(db, notifications=notifications, email=email, publisher=publisher)


def notifications_for(db, user, type):
    return db.query(Notification).filter(Notification.user_id == user.id, Notification.type == type.value).all()


def test_modify_predicate_allows_creator_and_project_owner_only():
    db = make_session()
    u1, u2, outsider, project, task = seed(db)
    service = make_service(db)

    by_u2 = Task(title="By u2", project_id=project.id, created_by_id=u2.id)
    db.add(by_u2)
    db.commit()

    assert service.can_user_modify_task(task.id, u1.id)
    assert service.can_user_modify_task(by_u2.id, u2.id)
    assert service.can_user_modify_task(by_u2.id, u1.id)
    assert not service.can_user_modify_task(task.id, u2.id)
    assert not service.can_user_modify_task(task.id, outsider.id)
    assert not service.can_user_modify_task(9999, u1.id)


def test_assigning_todo_task_starts_it_and_notifies_assignee_once():
    db = make_session()
    u1, u2, _, project, task = seed(db)
    publisher = RecordingPublisher()
    email = RecordingEmail()
    service = make_service(db, publisher=publisher, email=email)

    assigned = service.assign_task(task.id, u2.id, u1)

    assert assigned.assigned_to_id == u2.id
    assert assigned.status == TaskStatus.IN_PROGRESS
    assert len(notifications_for(db, u2, NotificationType.TASK_ASSIGNED)) == 1
    assert [user_id for user_id, _ in publisher.user_messages] == [u2.id]
    assert publisher.task_events[-1][0] == project.id
    assert publisher.task_events[-1][1]["type"] == "task.updated"
    assert email.assignments == [(task.id, "u2@test.local")]


def test_assigning_non_todo_task_keeps_status():
    db = make_session()
    u1, u2, _, _, task = seed(db)
    task.status = TaskStatus.IN_REVIEW.value
    db.commit()

    assigned = make_service(db).assign_task(task.id, u2.id, u1)

    assert assigned.status == TaskStatus.IN_REVIEW


def test_assign_requires_permission_and_existing_user():
    db = make_session()
    u1, u2, outsider, _, task = seed(db)
    service = make_service(db)

    with pytest.raises(PermissionDeniedError):
        service.assign_task(task.id, u2.id, outsider)
    with pytest.raises(NotFoundError):
        service.assign_task(task.id, 9999, u1)
    with pytest.raises(NotFoundError):
        service.assign_task(9999, u2.id, u1)


def test_assignee_can_complete_task_without_notifying_themselves():
    db = make_session()
    u1, u2, _, _, task = seed(db)
    email = RecordingEmail()
    service = make_service(db, email=email)
    service.assign_task(task.id, u2.id, u1)

    updated = service.update_task_status(task.id, TaskStatus.COMPLETED, u2)

    assert updated.status == TaskStatus.COMPLETED
    assert notifications_for(db, u2, NotificationType.TASK_UPDATED) == []
    creator_updates = notifications_for(db, u1, NotificationType.TASK_UPDATED)
    assert len(creator_updates) == 1
    assert "IN_PROGRESS to COMPLETED" in creator_updates[0].message
    assert email.updates == [(task.id, "u1@test.local", "Status changed from IN_PROGRESS to COMPLETED")]


def test_outsider_cannot_change_status():
    db = make_session()
    _, _, outsider, _, task = seed(db)

    with pytest.raises(PermissionDeniedError):
        make_service(db).update_task_status(task.id, TaskStatus.CANCELLED, outsider)

    db.refresh(task)
    assert task.status == TaskStatus.TODO


def test_status_is_not_constrained_to_a_workflow():
    db = make_session()
    u1, _, _, _, task = seed(db)
    service = make_service(db)

    service.update_task_status(task.id, TaskStatus.CANCELLED, u1)
    reopened = service.update_task_status(task.id, TaskStatus.TODO, u1)

    assert reopened.status == TaskStatus.TODO


def test_push_failure_keeps_notification_and_assignment():
    db = make_session()
    u1, u2, _, _, task = seed(db)

    assigned = make_service(db, publisher=FailingPublisher()).assign_task(task.id, u2.id, u1)

    assert assigned.assigned_to_id == u2.id
    assert len(notifications_for(db, u2, NotificationType.TASK_ASSIGNED)) == 1


def test_notification_failure_does_not_fail_status_update():
    db = make_session()
    u1, u2, _, _, task = seed(db)
    task.assigned_to_id = u2.id
    db.commit()
    service = TaskService(db, notifications=BrokenNotifications())

    updated = service.update_task_status(task.id, TaskStatus.IN_REVIEW, u1)

    assert updated.status == TaskStatus.IN_REVIEW
    assert db.get(Task, task.id).status == TaskStatus.IN_REVIEW


def test_create_task_requires_membership_and_notifies_initial_assignee():
    db = make_session()
    u1, u2, outsider, project, _ = seed(db)
    publisher = RecordingPublisher()
    service = make_service(db, publisher=publisher)

    with pytest.raises(PermissionDeniedError):
        service.create_task(project.id, "Sneaky", outsider)

    task = service.create_task(project.id, "Planned", u1, assignee_id=u2.id)

    assert task.status == TaskStatus.TODO
    assert task.created_by_id == u1.id
    assert len(notifications_for(db, u2, NotificationType.TASK_ASSIGNED)) == 1
    assert publisher.task_events[-1][1]["type"] == "task.created"


def test_update_and_delete_are_limited_to_creator_or_owner():
    db = make_session()
    u1, u2, _, project, task = seed(db)
    publisher = RecordingPublisher()
    service = make_service(db, publisher=publisher)

    with pytest.raises(PermissionDeniedError):
        service.update_task(task.id, u2, title="Renamed")
    with pytest.raises(PermissionDeniedError):
        service.delete_task(task.id, u2)

    renamed = service.update_task(task.id, u1, title="Renamed", description="More detail")
    assert renamed.title == "Renamed"
    assert renamed.description == "More detail"

    service.delete_task(task.id, u1)
    assert db.get(Task, task.id) is None
    assert publisher.task_events[-1] == (project.id, {"type": "task.deleted", "task_id": task.id})


def test_task_lists_are_paginated():
    db = make_session()
    u1, u2, _, project, _ = seed(db)
    service = make_service(db)
    for i in range(3):
        service.create_task(project.id, f"Extra {i}", u2, assignee_id=u2.id)

    by_project = service.list_by_project(project.id, page=0, size=2, sort="title")
    assert by_project["total"] == 4
    assert [t.title for t in by_project["items"]] == ["Extra 0", "Extra 1"]

    assert service.list_by_assignee(u2)["total"] == 3
    assert service.list_by_creator(u1)["total"] == 1
    assert service.list_by_status(TaskStatus.TODO)["total"] == 4

    with pytest.raises(NotFoundError):
        service.list_by_project(9999)
