import time

from sqlalchemy import Column, Integer, String, Text

from .db import Base


def _timestamp() -> int:
    return int(time.time())


class Preference(Base):
    __tablename__ = "preferences"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=True)
    updated_at = Column(Integer, default=_timestamp, onupdate=_timestamp)
