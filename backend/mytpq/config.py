"""
Configuration centrale de l'application via variables d'environnement.
Charger depuis un fichier .env en développement.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Base de données locale (un seul fichier SQLite par installation)
    DATABASE_URL: str = "sqlite:///tpq_database.db"

    # Dossier de destination des rapports PDF (rôle du dossier "Download")
    EXPORT_DIR: str = "exports"

    # Rapport de perkembangan : fenêtre glissante en jours, aujourd'hui inclus
    REPORT_WINDOW_DAYS: int = 30
    SCHOOL_NAME: str = "TPQ MyTPQ"

    # Logs
    LOG_LEVEL: str = "INFO"

    # Environnement
    ENV: str = "development"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
