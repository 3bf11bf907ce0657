from sqlalchemy import Column, Integer, String, Boolean
from sqlalchemy.orm import relationship
from sitelog.db.base_class import Base
from sitelog.db.models.associations import project_users

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(100))
    role = Column(String(20), default="campo") # admin, gestor, campo
    is_active = Column(Boolean, default=True)

    projects = relationship("Project", secondary=project_users, back_populates="users")

    @property
    def display_name(self) -> str:
        return self.full_name or self.username
