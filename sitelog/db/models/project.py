from sqlalchemy import Column, Integer, String, Text, Boolean, Date, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from sitelog.db.base_class import Base
from sitelog.db.models.associations import project_users

class Constructor(Base):
    __tablename__ = "constructors"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    cnpj = Column(String(20))
    logo = Column(String(255)) # path or URL

class Project(Base):
    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    address = Column(Text)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    technical_manager = Column(String(100))
    constructor_id = Column(Integer, ForeignKey("constructors.id"), nullable=True)
    status = Column(String(20), default="active") # active, completed, on-hold
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    constructor = relationship("Constructor")
    users = relationship("User", secondary=project_users, back_populates="projects")
