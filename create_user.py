from datetime import date

from sitelog.db.session import SessionLocal, engine
from sitelog.db.base import Base
from sitelog.db.models.user import User
from sitelog.db.models.project import Project, Constructor
from sitelog.core.security import get_password_hash, create_access_token

SEED_USERS = [
    # username, password, full name, role
    ("admin", "admin123", "Administrador", "admin"),
    ("gestor", "gestor123", "Gestor de Obra", "gestor"),
    ("campo", "campo123", "Encarregado de Campo", "campo"),
]

def create_initial_data():
    # Create Tables
    print("Creating tables...")
    Base.metadata.create_all(bind=engine)

    db = SessionLocal()

    users = []
    for username, password, full_name, role in SEED_USERS:
        user = db.query(User).filter(User.username == username).first()
        if not user:
            print(f"Creating {role} user '{username}'...")
            user = User(
                username=username,
                hashed_password=get_password_hash(password),
                full_name=full_name,
                role=role
            )
            db.add(user)
            db.commit()
        else:
            print(f"User '{username}' already exists.")
        users.append(user)

    project = db.query(Project).filter(Project.name == "Obra Exemplo").first()
    if not project:
        print("Creating sample project...")
        constructor = Constructor(name="Construtora Exemplo")
        project = Project(
            name="Obra Exemplo",
            address="Rua das Obras, 100",
            start_date=date.today().replace(day=1),
            technical_manager="Eng. Responsável Técnico",
            constructor=constructor,
        )
        project.users = [u for u in users if u.role != "admin"]
        db.add(project)
        db.commit()
    print(f"Sample project id: {project.id}")

    print("\nAccess tokens (send as 'Authorization: Bearer <token>'):")
    for user in users:
        print(f"  {user.username}: {create_access_token(data={'sub': user.username, 'role': user.role})}")

    db.close()

if __name__ == "__main__":
    create_initial_data()
