from sqlalchemy import (
    Column, Integer, String, Text, ForeignKey, DateTime, Date, JSON, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sitelog.db.base_class import Base

class DailyLog(Base):
    __tablename__ = "daily_logs"
    __table_args__ = (
        UniqueConstraint("project_id", "date", name="uq_daily_logs_project_date"),
    )

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)

    engineer = Column(String(100), default="")
    responsible = Column(String(100), default="")
    weather = Column(String(50), default="")
    work_hours = Column(String(100))
    temp_min = Column(String(20))
    temp_max = Column(String(20))
    observations = Column(Text)

    # Derived at save time, never edited
    elapsed_days = Column(Integer, nullable=True)
    snapshot = Column(JSON, nullable=True) # platform name, constructor at save time

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    project = relationship("Project", backref="logs")
    tasks = relationship(
        "LogTask", back_populates="log", cascade="all, delete-orphan",
        order_by="LogTask.position"
    )
    crew = relationship(
        "CrewEntry", back_populates="log", cascade="all, delete-orphan",
        order_by="CrewEntry.position"
    )
    photos = relationship(
        "Photo", back_populates="log", cascade="all, delete-orphan",
        order_by="Photo.position"
    )

class LogTask(Base):
    __tablename__ = "log_tasks"

    id = Column(Integer, primary_key=True, index=True)
    log_id = Column(Integer, ForeignKey("daily_logs.id"), nullable=False, index=True)
    entry_id = Column(String(64), nullable=False)
    kind = Column(String(20), nullable=False, default="completed") # completed, blocked
    position = Column(Integer, nullable=False, default=0)
    text = Column(String(500), nullable=False)
    location = Column(String(255))
    reason = Column(String(500))

    log = relationship("DailyLog", back_populates="tasks")

class CrewEntry(Base):
    __tablename__ = "log_crew"

    id = Column(Integer, primary_key=True, index=True)
    log_id = Column(Integer, ForeignKey("daily_logs.id"), nullable=False, index=True)
    entry_id = Column(String(64), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    role = Column(String(100), nullable=False)
    count = Column(Integer, nullable=False, default=0)

    log = relationship("DailyLog", back_populates="crew")

class Photo(Base):
    __tablename__ = "photos"

    id = Column(Integer, primary_key=True, index=True)
    log_id = Column(Integer, ForeignKey("daily_logs.id"), nullable=False, index=True)
    entry_id = Column(String(64), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    file_path = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    log = relationship("DailyLog", back_populates="photos")
