# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre la clé étrangère attendance → students.

from mytpq.models.student import Student  # noqa: F401 (doit précéder attendance)
from mytpq.models.attendance import Attendance  # noqa: F401
