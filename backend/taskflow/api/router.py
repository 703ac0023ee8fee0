from fastapi import APIRouter

from taskflow.api.routes import auth, notifications, projects, tasks, users


api_router = APIRouter(prefix="/api")
api_router.include_router(auth.router)
api_router.include_router(users.router)
api_router.include_router(projects.router)
api_router.include_router(tasks.router)
api_router.include_router(notifications.router)
