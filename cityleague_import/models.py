from sqlalchemy import Column, Date, DateTime, Integer, String, PrimaryKeyConstraint
from sqlalchemy.sql import func

from .db import Base


class CityleagueSchedule(Base):
    __tablename__ = "cityleague_schedules"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False, default="")
    from_date = Column(Date, nullable=False, index=True)
    to_date = Column(Date, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class CityleagueResult(Base):
    __tablename__ = "cityleague_results"
    __table_args__ = (
        PrimaryKeyConstraint(
            "cityleague_schedule_id",
            "official_event_id",
            "player_id",
            name="pk_cityleague_results",
        ),
    )

    cityleague_schedule_id = Column(String, nullable=False)
    official_event_id = Column(Integer, nullable=False)
    player_id = Column(String, nullable=False)
    league_type = Column(Integer, nullable=False, default=0)  # 0 unknown, 1 open .. 4 master
    event_date = Column(DateTime(timezone=True), nullable=False)
    player_name = Column(String, nullable=False, default="")
    rank = Column(Integer, nullable=False, default=0)
    point = Column(Integer, nullable=False, default=0)
    deck_code = Column(String, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self) -> str:
        return (
            f"CityleagueResult(schedule={self.cityleague_schedule_id!r}, "
            f"event={self.official_event_id}, player={self.player_id!r}, "
            f"rank={self.rank}, point={self.point}, deck={self.deck_code!r})"
        )
