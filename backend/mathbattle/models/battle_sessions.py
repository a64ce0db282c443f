import enum
import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    Integer,
    SmallInteger,
    String,
    Text,
    TIMESTAMP,
    Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..db import Base
from .battle_round_details import BattleRoundDetail
from .users import User


class BattleStatus(str, enum.Enum):
    open = "open"
    active = "active"
    finished = "finished"


class BattleSession(Base):
    __tablename__ = "battle_sessions"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    battle_code = Column(String(8), unique=True, nullable=False, index=True)

    creator_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    opponent_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    winner_id = Column(Uuid(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    status = Column(Text, nullable=False, default=BattleStatus.open.value)
    number_of_rounds = Column(SmallInteger, nullable=False, default=10)
    time_limit = Column(Integer, nullable=False, default=600)  # seconds, advisory
    is_public = Column(Boolean, nullable=False, default=True)

    creator_score = Column(Integer, nullable=False, default=0)
    opponent_score = Column(Integer, nullable=False, default=0)
    creator_correct_answers = Column(Integer, nullable=False, default=0)
    opponent_correct_answers = Column(Integer, nullable=False, default=0)
    creator_total_time = Column(Float, nullable=False, default=0.0)
    opponent_total_time = Column(Float, nullable=False, default=0.0)
    creator_completed = Column(Boolean, nullable=False, default=False)
    opponent_completed = Column(Boolean, nullable=False, default=False)

    completed = Column(Boolean, nullable=False, default=False, index=True)
    created_at = Column(TIMESTAMP(timezone=True), server_default=func.now())
    started_at = Column(TIMESTAMP(timezone=True))
    completed_at = Column(TIMESTAMP(timezone=True))

    creator = relationship(User, foreign_keys=[creator_id], lazy="joined")
    opponent = relationship(User, foreign_keys=[opponent_id], lazy="joined")
    winner = relationship(User, foreign_keys=[winner_id], lazy="joined")
    rounds = relationship(
        BattleRoundDetail,
        back_populates="battle_session",
        order_by=BattleRoundDetail.round_number,
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint("status IN ('open','active','finished')", name="battle_status_check"),
        CheckConstraint("number_of_rounds BETWEEN 1 AND 20", name="battle_rounds_check"),
        CheckConstraint("opponent_id IS NULL OR opponent_id <> creator_id", name="battle_opponent_check"),
    )

    @property
    def state(self) -> BattleStatus:
        return BattleStatus(self.status)

    def side_of(self, user_id):
        """'creator', 'opponent' or None for a user id."""
        if self.creator_id == user_id:
            return "creator"
        if self.opponent_id is not None and self.opponent_id == user_id:
            return "opponent"
        return None
