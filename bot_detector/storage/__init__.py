from .database import check_connection, create_db_engine, init_schema
from .store import Store

__all__ = ["Store", "check_connection", "create_db_engine", "init_schema"]
