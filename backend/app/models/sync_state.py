"""
Modèle SQLAlchemy pour le watermark de synchronisation (une ligne par processus).
"""

from sqlalchemy import BigInteger, Column, Integer

from app.database import Base

SYNC_STATE_ID = 1


class SyncState(Base):
    __tablename__ = "sync_state"

    id = Column(Integer, primary_key=True, default=SYNC_STATE_ID)
    last_pulled_at = Column(BigInteger, nullable=False, default=0)  # epoch ms, jamais reculé
    schema_version = Column(Integer, nullable=False)
