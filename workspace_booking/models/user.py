from sqlalchemy import Column, String

from workspace_booking.db import Base


class User(Base):
    """Read-only copy of the identity directory, used for display names."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True)
    tenant_id = Column(String(36), nullable=False, index=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False, unique=True)

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}"
