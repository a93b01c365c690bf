from .auth import auth_router
from .users import users_router
from .inquiries import inquiries_router
from .options import options_router
from .students import students_router
from .websocket import websocket_router

__all__ = [
    "auth_router",
    "users_router",
    "inquiries_router",
    "options_router",
    "students_router",
    "websocket_router",
]
