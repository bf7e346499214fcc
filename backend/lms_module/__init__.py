from sqlalchemy.orm import Session

from .database import Base, engine
from .routes import router
from .services import seed_default_admin, seed_roles


def init_lms_module(bind=None) -> None:
    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    db = Session(bind=bind)
    try:
        seed_roles(db)
        seed_default_admin(db)
    finally:
        db.close()


__all__ = ["router", "init_lms_module"]
