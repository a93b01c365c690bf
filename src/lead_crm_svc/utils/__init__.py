from .scheduler import init_scheduler, shutdown_scheduler, schedule_interval_job
from .websocket_manager import ConnectionManager, manager
from .security import (
    verify_password,
    get_password_hash,
    create_access_token,
    decode_access_token,
    user_id_from_token,
)

__all__ = [
    "init_scheduler",
    "shutdown_scheduler",
    "schedule_interval_job",
    "ConnectionManager",
    "manager",
    "verify_password",
    "get_password_hash",
    "create_access_token",
    "decode_access_token",
    "user_id_from_token",
]
