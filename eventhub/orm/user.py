"""
eventhub/orm/user.py
User model

Only the fields the judging workflow reads are mapped here; accounts are
created and authenticated by the identity service.
"""
from enum import Enum

from sqlalchemy import Column, String, Enum as SQLEnum

from eventhub.orm.base import BaseModel


class UserRole(str, Enum):
    """Platform roles carried in the bearer token."""
    admin = "admin"
    organizer = "organizer"
    judge = "judge"
    participant = "participant"
    sponsor = "sponsor"


class User(BaseModel):
    __tablename__ = "users"

    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, unique=True, index=True)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.participant, index=True)

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role.value if self.role else None,
        }
