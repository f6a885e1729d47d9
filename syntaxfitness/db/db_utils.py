from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlmodel import Session, SQLModel

from syntaxfitness.db.db_models import RunRecord

if TYPE_CHECKING:
    from sqlalchemy.engine.base import Engine

_LOGGER = logging.getLogger(__name__)


def db_startup(engine: Engine) -> None:
    table_classes: list[type[SQLModel]] = [RunRecord]
    _LOGGER.info("Creating metadata for DB tables ...")
    for tbl_cls in table_classes:
        tbl_cls.metadata.create_all(engine)
    _LOGGER.info("DB tables metadata creation complete.")


def add_record(session: Session, model_inst: SQLModel) -> None:
    """Helper for running a `session.add()`, `session.commit()` and `session.refresh()`."""
    session.add(model_inst)
    session.commit()
    session.refresh(model_inst)
