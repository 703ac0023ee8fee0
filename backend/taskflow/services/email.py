import logging

from taskflow.db.models import Task, User
from taskflow.services.email_worker import EmailDispatcher, EmailMessage


logger = logging.getLogger(__name__)

SIGNATURE = "Best regards,\nTaskflow Team"


def _greeting(user: User) -> str:
    return f"Hi {user.full_name or user.username},"


class EmailService:
    """Composes lifecycle emails and hands them to the dispatcher."""

    def __init__(self, dispatcher: EmailDispatcher) -> None:
        self.dispatcher = dispatcher

    def send_email(self, to: str, subject: str, body: str) -> bool:
        logger.info("Queueing email to %s: %s", to, subject)
        return self.dispatcher.submit(EmailMessage(to=to, subject=subject, body=body))

    def send_welcome_email(self, user: User) -> bool:
        body = (
            f"{_greeting(user)}\n\n"
            "Welcome to Taskflow!\n\n"
            f"Your account has been created with username: {user.username}\n\n"
            "You can now:\n"
            "- Create and manage projects\n"
            "- Create and assign tasks\n"
            "- Collaborate with team members\n"
            "- Track project progress\n\n"
            f"{SIGNATURE}"
        )
        return self.send_email(user.email, "Welcome to Taskflow", body)

    def send_task_assignment_email(self, task: Task, assignee: User) -> bool:
        due = task.due_date.isoformat() if task.due_date else "Not set"
        body = (
            f"{_greeting(assignee)}\n\n"
            "You have been assigned a new task:\n\n"
            f"Task: {task.title}\n"
            f"Description: {task.description or ''}\n"
            f"Priority: {task.priority}\n"
            f"Status: {task.status}\n"
            f"Project: {task.project.name}\n"
            f"Due Date: {due}\n\n"
            f"{SIGNATURE}"
        )
        return self.send_email(assignee.email, f"New Task Assigned: {task.title}", body)

    def send_task_update_email(self, task: Task, recipient: User, update_message: str) -> bool:
        body = (
            f"{_greeting(recipient)}\n\n"
            "A task has been updated:\n\n"
            f"Task: {task.title}\n"
            f"Update: {update_message}\n"
            f"Current Status: {task.status}\n"
            f"Priority: {task.priority}\n"
            f"Project: {task.project.name}\n\n"
            f"{SIGNATURE}"
        )
        return self.send_email(recipient.email, f"Task Updated: {task.title}", body)
