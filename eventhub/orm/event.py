"""
eventhub/orm/event.py
Event model

An event owns its rounds and bounds their schedule.
"""
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship

from eventhub.orm.base import BaseModel, isoformat


class Event(BaseModel):
    __tablename__ = "events"

    organizer_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    title = Column(String(200), nullable=False)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    location = Column(String(200), nullable=True)
    category = Column(String(100), nullable=True, index=True)

    organizer = relationship("User")
    rounds = relationship(
        "EventRound",
        back_populates="event",
        order_by="EventRound.start_time",
        passive_deletes=True
    )

    def contains(self, start, end) -> bool:
        """True if [start, end] lies within the event's own window."""
        return self.start_date <= start and end <= self.end_date

    def to_dict(self):
        return {
            "id": self.id,
            "organizer_id": self.organizer_id,
            "title": self.title,
            "start_date": isoformat(self.start_date),
            "end_date": isoformat(self.end_date),
            "location": self.location,
            "category": self.category,
        }
