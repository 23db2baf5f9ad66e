from eduportal.crud.base import CRUDBase
from eduportal.models.assessment import Assessment

class CRUDAssessment(CRUDBase[Assessment]):
    pass


assessment = CRUDAssessment(Assessment, "assessments")
