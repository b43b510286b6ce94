from sqlalchemy import Column, Integer, String, DateTime, Boolean, func, true
from sqlalchemy.orm import relationship
from app.database import Base

# Mutually exclusive account roles
ROLE_ADMIN = "admin"
ROLE_WORKER = "worker"
ROLE_USER = "user"
ROLES = (ROLE_ADMIN, ROLE_WORKER, ROLE_USER)


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=True)
    email = Column(String, unique=True, index=True, nullable=False)
    image = Column(String, nullable=True)
    hashed_password = Column(String, nullable=False)
    role = Column(String, nullable=False, default=ROLE_USER, server_default=ROLE_USER, index=True)
    is_active = Column(Boolean, nullable=False, default=True, server_default=true())
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Tasks currently assigned to this user (the worker's load)
    tasks = relationship("Task", back_populates="assigned_to", lazy="selectin")
