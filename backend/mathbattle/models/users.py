from sqlalchemy import Column, Text, TIMESTAMP, CheckConstraint, SmallInteger, Uuid
from sqlalchemy.sql import func
import uuid
from ..db import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    username = Column(Text, nullable=False, unique=True)
    password = Column(Text, nullable=False)  # argon2 hash
    full_name = Column(Text)
    avatar = Column(Text)
    current_level = Column(SmallInteger, nullable=False, default=1)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())

    __table_args__ = (
        CheckConstraint("current_level >= 1", name="current_level_check"),
    )
