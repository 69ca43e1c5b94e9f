"""
Modèle SQLAlchemy pour le miroir du profil de l'utilisateur connecté.
Une seule ligne ("soi-même"), réécrite entièrement à chaque pull réussi.
"""

from sqlalchemy import Column, JSON, String

from app.database import Base


class UserProfile(Base):
    __tablename__ = "users"

    id = Column(String(64), primary_key=True)
    email = Column(String(255), nullable=False, default="")
    first_name = Column(String(100), nullable=False, default="")
    last_name = Column(String(100), nullable=False, default="")
    display_name = Column(String(200), nullable=False, default="")
    role = Column(String(50), nullable=False, default="")  # student, staff, driver, admin
    photo_url = Column(String(500), nullable=True)
    permissions = Column(JSON, nullable=False, default=list)
    class_section_id = Column(String(64), nullable=True)  # Renseigné pour les élèves
