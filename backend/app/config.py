"""
Configuration centrale du service local via variables d'environnement.
Charger depuis un fichier .env en développement.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Base locale embarquée (cache offline du journal de classe)
    LOCAL_DATABASE_URL: str = "sqlite:///./school_device.db"
    LOCAL_SCHEMA_VERSION: int = 1

    # API distante (source de vérité)
    REMOTE_API_URL: str = "http://10.0.2.2:3000/api/v1"
    REMOTE_API_TIMEOUT: float = 15.0
    REMOTE_ACCESS_TOKEN: str = ""

    # Suivi GPS du chauffeur
    LOCATION_TIME_INTERVAL_SECONDS: float = 10.0
    LOCATION_DISTANCE_INTERVAL_METERS: float = 15.0
    HEARTBEAT_INTERVAL_SECONDS: int = 30

    # Synchronisation automatique du journal (0 = désactivée)
    AUTO_SYNC_INTERVAL_MINUTES: int = 15

    # Environnement
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
