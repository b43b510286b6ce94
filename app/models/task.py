from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Numeric, func
from sqlalchemy.orm import relationship
from app.database import Base

STATUS_PENDING = "Pending"
STATUS_IN_PROGRESS = "In Progress"
STATUS_COMPLETED = "Completed"

# Linear progression, index = position in the workflow
TASK_STATUSES = (STATUS_PENDING, STATUS_IN_PROGRESS, STATUS_COMPLETED)


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Integer, primary_key=True, index=True)
    description = Column(Text, nullable=False)
    customer_name = Column(String(100), nullable=False)
    customer_phone = Column(String(32), nullable=False)   # E.164
    laptop_brand = Column(String(100), nullable=False)
    laptop_model = Column(String(100), nullable=False)
    total_cost = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String, nullable=False, default=STATUS_PENDING, index=True)
    assigned_to_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)  # NULL = unassigned
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    completed_at = Column(DateTime(timezone=True), nullable=True)

    assigned_to = relationship("User", back_populates="tasks")
