from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar, Union
from pydantic import BaseModel

from eduportal.crud.database import InMemoryDatabase
from eduportal.models.base import Record, utcnow

ModelType = TypeVar("ModelType", bound=Record)

class CRUDBase(Generic[ModelType]):
    def __init__(self, model: Type[ModelType], table_name: str):
        self.model = model
        self.table_name = table_name

    def _rows(self, db: InMemoryDatabase) -> Dict[str, ModelType]:
        return db.table(self.table_name)

    def get(self, db: InMemoryDatabase, id: Any) -> Optional[ModelType]:
        return self._rows(db).get(id)

    def filter(self, db: InMemoryDatabase, predicate: Callable[[ModelType], bool]) -> List[ModelType]:
        return [row for row in self._rows(db).values() if predicate(row)]

    def create(self, db: InMemoryDatabase, *, obj_in: Union[BaseModel, Dict[str, Any]]) -> ModelType:
        obj_in_data = obj_in if isinstance(obj_in, dict) else obj_in.model_dump()
        db_obj = self.model(**obj_in_data)
        self._rows(db)[db_obj.id] = db_obj
        return db_obj

    def update(
        self, db: InMemoryDatabase, *, db_obj: ModelType, obj_in: Union[BaseModel, Dict[str, Any]]
    ) -> ModelType:
        if isinstance(obj_in, dict):
            update_data = obj_in
        else:
            update_data = obj_in.model_dump(exclude_unset=True)
        for field, value in update_data.items():
            if field in self.model.model_fields:
                setattr(db_obj, field, value)
        db_obj.updated_at = utcnow()
        self._rows(db)[db_obj.id] = db_obj
        return db_obj

    def delete(self, db: InMemoryDatabase, *, id: Any) -> Optional[ModelType]:
        return self._rows(db).pop(id, None)
