from sqlalchemy.orm import Session

from taskflow.db.models import Project, RoleName, Task, User


ELEVATED_ROLES = {RoleName.ADMIN.value, RoleName.MANAGER.value}


def can_user_modify_task(db: Session, task_id: int, user_id: int) -> bool:
    """Creator or project owner; fails closed for a missing task."""
    task = db.get(Task, task_id)
    if task is None:
        return False
    return task.created_by_id == user_id or task.project.owner_id == user_id


def can_update_task_status(db: Session, task: Task, user: User) -> bool:
    if task.assigned_to_id is not None and task.assigned_to_id == user.id:
        return True
    return can_user_modify_task(db, task.id, user.id)


def is_project_owner(db: Session, project_id: int, user_id: int) -> bool:
    project = db.get(Project, project_id)
    if project is None:
        return False
    return project.owner_id == user_id


def is_team_member(project: Project, user: User) -> bool:
    return project.owner_id == user.id or any(member.id == user.id for member in project.team_members)


def can_access_project(db: Session, user: User, project_id: int) -> bool:
    project = db.get(Project, project_id)
    if project is None:
        return False
    if user.has_role(*ELEVATED_ROLES):
        return True
    return is_team_member(project, user)
