"""
Point d'entrée de l'application MyTPQ : logs, Store unique, migrations.

Usage :
    from mytpq.main import create_store
    store = create_store()
"""

import logging
from typing import Optional

import mytpq.models  # noqa: F401 (enregistre tous les modèles dans Base.metadata)
from mytpq.config import Settings, settings as default_settings
from mytpq.database import Store
from mytpq.exceptions import MigrationError

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s : %(message)s"


def configure_logging(level: Optional[str] = None) -> None:
    """Niveau racine depuis LOG_LEVEL ; sans effet sur des handlers déjà installés."""
    logging.basicConfig(format=LOG_FORMAT)
    logging.getLogger().setLevel((level or default_settings.LOG_LEVEL).upper())


def create_store(settings: Optional[Settings] = None) -> Store:
    """
    Construit le Store de l'application et applique les migrations en attente.
    Une migration échouée est fatale : elle est journalisée puis relancée.
    """
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    store = Store(settings.DATABASE_URL)
    try:
        report = store.migrate()
    except MigrationError:
        logger.critical("Migration du schéma impossible, démarrage interrompu (%s)", settings.DATABASE_URL)
        raise

    logger.info(
        "Store prêt (%s) : schéma v%d → v%d, %d étape(s) appliquée(s)",
        settings.ENV, report.from_version, report.to_version, len(report.applied),
    )
    return store
