"""
Exceptions métier de MyTPQ.

Les erreurs de validation des saisies sont des `pydantic.ValidationError`
levées par les schémas d'entrée ; les upserts ne lèvent jamais d'erreur de
conflit (voir `UpsertOutcome`).
"""


class TPQError(Exception):
    """Base de toutes les erreurs levées par MyTPQ."""


class NotFoundError(TPQError, LookupError):
    """Code élève ou présence (code, date) introuvable."""


class StoreIOError(TPQError):
    """Échec de la couche de persistance ; l'opération a été annulée."""


class MigrationError(TPQError):
    """
    Une étape de migration n'a pas pu aboutir.
    Fatal : le Store refuse ensuite toute session.
    """
