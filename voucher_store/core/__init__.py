from .config import settings
from .database import engine, get_db, init_db
from .security import Caller, Role

__all__ = ["settings", "engine", "get_db", "init_db", "Caller", "Role"]
