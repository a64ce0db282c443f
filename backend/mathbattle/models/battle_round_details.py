import uuid

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Float,
    ForeignKey,
    SmallInteger,
    String,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship

from ..db import Base

SYMBOLS = (">", "<", "=")


class BattleRoundDetail(Base):
    __tablename__ = "battle_round_details"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    battle_session_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("battle_sessions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    round_number = Column(SmallInteger, nullable=False)

    first_number = Column(SmallInteger, nullable=False)
    second_number = Column(SmallInteger, nullable=False)
    correct_symbol = Column(String(1), nullable=False)

    creator_symbol = Column(String(1))
    creator_response_time = Column(Float)
    creator_is_correct = Column(Boolean, nullable=False, default=False)
    creator_answered_at = Column(TIMESTAMP(timezone=True))

    opponent_symbol = Column(String(1))
    opponent_response_time = Column(Float)
    opponent_is_correct = Column(Boolean, nullable=False, default=False)
    opponent_answered_at = Column(TIMESTAMP(timezone=True))

    round_winner = Column(Text)

    battle_session = relationship("BattleSession", back_populates="rounds")

    __table_args__ = (
        UniqueConstraint("battle_session_id", "round_number", name="uq_battle_round_number"),
        CheckConstraint("round_number >= 1", name="round_number_check"),
        CheckConstraint("first_number BETWEEN 1 AND 50 AND second_number BETWEEN 1 AND 50", name="round_numbers_check"),
        CheckConstraint("correct_symbol IN ('>','<','=')", name="correct_symbol_check"),
        CheckConstraint("creator_symbol IS NULL OR creator_symbol IN ('>','<','=')", name="creator_symbol_check"),
        CheckConstraint("opponent_symbol IS NULL OR opponent_symbol IN ('>','<','=')", name="opponent_symbol_check"),
        CheckConstraint("round_winner IS NULL OR round_winner IN ('creator','opponent','tie')", name="round_winner_check"),
    )

    @property
    def both_answered(self) -> bool:
        return self.creator_symbol is not None and self.opponent_symbol is not None
