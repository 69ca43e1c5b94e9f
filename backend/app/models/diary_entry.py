"""
Modèle SQLAlchemy pour les entrées du journal de classe (cache offline).

Architecture offline-first :
- id          : attribué par le serveur (ou UUID local pour une création hors-ligne)
- entry_date  : date calendaire "YYYY-MM-DD", clé du flux affiché par l'écran
- created_at / updated_at : timestamps epoch en millisecondes (heure locale du cache)
- sync_status : suivi des modifications locales à pousser au prochain cycle
"""

from sqlalchemy import BigInteger, Column, JSON, String, Text

from app.database import Base

SYNCED = "synced"
CREATED = "created"
UPDATED = "updated"
DELETED = "deleted"


class DiaryEntry(Base):
    """Entrée de journal / devoir, miroir local de la source distante."""
    __tablename__ = "diary_entries"

    id = Column(String(64), primary_key=True)
    class_section_id = Column(String(64), nullable=False, index=True)
    entry_date = Column(String(10), nullable=False, index=True)
    subject_id = Column(String(64), nullable=True)
    title = Column(String(255), nullable=True)
    content = Column(Text, nullable=False, default="")
    homework_due_date = Column(String(10), nullable=True)
    attachments = Column(JSON, nullable=False, default=list)  # Références opaques, ordonnées
    subject_name = Column(String(255), nullable=True)         # Dénormalisé pour l'affichage
    created_by = Column(String(64), nullable=False, default="")
    created_at = Column(BigInteger, nullable=False)
    updated_at = Column(BigInteger, nullable=False)

    sync_status = Column(String(10), nullable=False, default=SYNCED)  # synced, created, updated, deleted
