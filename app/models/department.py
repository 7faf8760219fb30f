# app/models/department.py
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base

class Department(Base):
    __tablename__ = "departments"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    head_id = Column(Integer, ForeignKey("users.id", use_alter=True, name="fk_departments_head_id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    head = relationship("User", foreign_keys=[head_id])
    users = relationship("User", foreign_keys="User.department_id", back_populates="department")
    projects = relationship("Project", secondary="project_departments", back_populates="departments")
    tasks = relationship("Task", back_populates="department")
