from app.api.routes.auth import router as auth_router
from app.api.routes.departments import router as departments_router
from app.api.routes.security import router as security_router

__all__ = ["auth_router", "departments_router", "security_router"]
