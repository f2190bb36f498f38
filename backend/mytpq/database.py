"""
Connexion à la base de données locale et Store de l'application.

Le Store est construit une seule fois au démarrage (voir `mytpq.main`) puis
passé explicitement aux couches supérieures : pas d'instance globale.
Il fournit les sessions SQLAlchemy, les accès génériques par clé,
le marqueur de version du schéma et les abonnements aux snapshots.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Dict, List, Optional

from sqlalchemy import create_engine, delete, event, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from mytpq.config import settings
from mytpq.exceptions import MigrationError, StoreIOError

logger = logging.getLogger(__name__)

Base = declarative_base()

# Tables observables via Store.subscribe()
OBSERVABLE_TABLES = ("students", "attendance")


def build_engine(url: str, echo: bool = False) -> Engine:
    """
    Crée le moteur SQLAlchemy.
    Pour SQLite : clés étrangères actives et BEGIN explicite, sinon pysqlite
    exécute le DDL hors transaction et les migrations ne seraient pas atomiques.
    """
    if not url.startswith("sqlite"):
        return create_engine(url, echo=echo)

    kwargs = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # Une seule connexion partagée, sinon chaque session verrait une base vide
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, echo=echo, **kwargs)

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    return engine


def _track_writes(factory: sessionmaker) -> None:
    """Mémorise les tables modifiées par une session, publiées seulement après commit."""

    def _pending(session: Session) -> set:
        return session.info.setdefault("pending_tables", set())

    @event.listens_for(factory, "after_flush")
    def _after_flush(session, flush_context):
        for obj in list(session.new) + list(session.dirty) + list(session.deleted):
            table = getattr(obj, "__tablename__", None)
            if table:
                _pending(session).add(table)

    @event.listens_for(factory, "do_orm_execute")
    def _on_execute(orm_execute_state):
        # delete()/update() en masse : pas d'objet dans session.deleted
        if orm_execute_state.is_select or orm_execute_state.bind_mapper is None:
            return
        _pending(orm_execute_state.session).add(orm_execute_state.bind_mapper.local_table.name)

    @event.listens_for(factory, "after_commit")
    def _after_commit(session):
        committed = session.info.setdefault("committed_tables", set())
        committed.update(session.info.pop("pending_tables", set()))

    @event.listens_for(factory, "after_rollback")
    def _after_rollback(session):
        session.info.pop("pending_tables", None)


class Store:
    """
    Stockage durable des élèves et des présences.

    Usage :
        store = Store("sqlite:///tpq_database.db")
        store.migrate()
        with store.session() as db:
            ...
    """

    def __init__(self, url: Optional[str] = None, echo: bool = False):
        self.url = url or settings.DATABASE_URL
        self.engine = build_engine(self.url, echo=echo)
        self._session_factory = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        _track_writes(self._session_factory)
        self._listeners: Dict[str, List[Callable[[list], None]]] = {}
        self._failure: Optional[MigrationError] = None

    # --- Sessions ---

    @contextmanager
    def session(self):
        """
        Fournit une session et la ferme après usage.
        Toute erreur SQLAlchemy est annulée puis remontée en StoreIOError.
        """
        if self._failure is not None:
            raise MigrationError(f"Store inutilisable, migration inachevée : {self._failure}")

        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Erreur de persistance, opération annulée : %s", exc)
            raise StoreIOError(str(exc)) from exc
        finally:
            db.close()
            # Les commits déjà faits sont publiés même si le bloc échoue ensuite
            self._notify(db.info.pop("committed_tables", set()))

    # --- Accès génériques par clé ---

    def get(self, model, key):
        """Retourne l'enregistrement à cette clé, ou None."""
        with self.session() as db:
            return db.get(model, key)

    def put(self, record):
        """Upsert complet : remplace l'enregistrement existant à la même clé."""
        with self.session() as db:
            merged = db.merge(record)
            db.commit()
            return merged

    def delete(self, model, key) -> bool:
        """
        Supprime l'enregistrement. Pour un élève, ses présences sont supprimées
        dans la même transaction. Retourne False si la clé est inconnue.
        """
        from mytpq.models.attendance import Attendance
        from mytpq.models.student import Student

        with self.session() as db:
            record = db.get(model, key)
            if record is None:
                return False
            if model is Student:
                db.execute(delete(Attendance).where(Attendance.student_code == record.student_code))
            db.delete(record)
            db.commit()
            return True

    def scan(self, model, *criteria, order_by=None) -> list:
        """Retourne les enregistrements satisfaisant les critères, dans l'ordre demandé."""
        query = select(model).where(*criteria)
        if order_by is not None:
            query = query.order_by(order_by)
        with self.session() as db:
            return list(db.execute(query).scalars().all())

    # --- Schéma ---

    def current_schema_version(self) -> Optional[int]:
        from mytpq import migrations

        with self.engine.connect() as conn:
            return migrations.read_version(conn)

    def run_migration(self, step, report=None):
        """Applique une seule étape ; une étape déjà appliquée est ignorée."""
        from mytpq import migrations

        if report is None:
            version = self.current_schema_version() or 0
            report = migrations.MigrationReport(from_version=version, to_version=version)
        try:
            migrations.apply_step(self.engine, step, report)
        except MigrationError as exc:
            self._failure = exc
            raise
        return report

    def migrate(self):
        """Amène la base à la dernière version. Toute MigrationError rend le Store inutilisable."""
        from mytpq import migrations

        try:
            return migrations.upgrade(self.engine)
        except MigrationError as exc:
            self._failure = exc
            raise

    # --- Snapshots observables ---

    def subscribe(self, table: str, callback: Callable[[list], None]) -> Callable[[], None]:
        """
        Enregistre un observateur sur une table.
        Il reçoit le snapshot courant immédiatement, puis après chaque commit
        touchant cette table. Retourne la fonction de désabonnement.
        """
        if table not in OBSERVABLE_TABLES:
            raise ValueError(f"Table non observable : {table}")

        self._listeners.setdefault(table, []).append(callback)
        callback(self._snapshot(table))

        def unsubscribe() -> None:
            listeners = self._listeners.get(table, [])
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe

    def _snapshot(self, table: str) -> list:
        from mytpq.models.attendance import Attendance
        from mytpq.models.student import Student

        if table == "students":
            return self.scan(Student, order_by=Student.name)
        return self.scan(Attendance, order_by=Attendance.date.desc())

    def _notify(self, tables: set) -> None:
        for table in sorted(tables):
            listeners = list(self._listeners.get(table, []))
            if not listeners:
                continue
            snapshot = self._snapshot(table)
            for callback in listeners:
                callback(snapshot)

    def dispose(self) -> None:
        self.engine.dispose()
