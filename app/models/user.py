# app/models/user.py

from sqlalchemy import Column, Integer, String, Boolean, DateTime, func
from sqlalchemy.orm import relationship

from app.db.session import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String, nullable=True)

    # 'USER' или 'ADMIN'
    role = Column(String, default="USER", nullable=False, server_default="USER")
    is_active = Column(Boolean, default=True, nullable=False, server_default="true")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    orders = relationship("Order", back_populates="user")

    @property
    def is_admin(self) -> bool:
        return self.role == "ADMIN"
