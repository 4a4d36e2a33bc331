# Importe les modèles du catalogue fixe pour enregistrer leurs tables dans
# Base.metadata avant init_catalog().
# Les tables d'élèves et de personnel ne sont pas des modèles : elles sont
# créées et reflétées à la demande par app.services.schema_provisioner.

from app.models.field_type import FieldType  # noqa: F401
from app.models.id_counter import GlobalIdCounter  # noqa: F401
from app.models.staff_account import StaffAccount  # noqa: F401
