from app.core.config import settings
from app.core.database import Base, get_db, engine, SessionLocal
from app.core.clock import Clock, FrozenClock, get_clock, system_clock
from app.core.results import ErrorKind, OperationResult, Result
from app.core.policy import fail_open
from app.core.hashing import canonical_json, content_hash
