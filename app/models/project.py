# app/models/project.py
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Table, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from app.database import Base

# Association table for many-to-many relationship between projects and departments
project_departments = Table(
    'project_departments',
    Base.metadata,
    Column('project_id', Integer, ForeignKey('projects.id'), primary_key=True),
    Column('department_id', Integer, ForeignKey('departments.id'), primary_key=True)
)

PROJECT_STATUSES = ("PLANNING", "ACTIVE", "ON_HOLD", "COMPLETED", "CANCELLED")
PARTICIPATION_ROLES = ("MANAGER", "PARTICIPANT")

class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=True)
    status = Column(String, nullable=False, default="ACTIVE")  # PLANNING, ACTIVE, ON_HOLD, COMPLETED, CANCELLED
    estimated_start_date = Column(DateTime, nullable=True)
    estimated_end_date = Column(DateTime, nullable=True)
    end_date = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    creator = relationship("User", foreign_keys=[created_by])
    departments = relationship("Department", secondary=project_departments, back_populates="projects")
    tasks = relationship("Task", back_populates="project")
    participants = relationship("ProjectParticipation", back_populates="project", cascade="all, delete-orphan")

class ProjectParticipation(Base):
    __tablename__ = "project_participations"
    __table_args__ = (UniqueConstraint("project_id", "user_id", name="uq_project_participant"),)

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    role = Column(String, nullable=False, default="PARTICIPANT")  # MANAGER or PARTICIPANT
    joined_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="participants")
    user = relationship("User", back_populates="project_participations")
