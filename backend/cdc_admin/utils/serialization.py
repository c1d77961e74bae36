"""
Response serialization

Services hand plain dicts to the endpoints; this turns an ORM row into one
through its response schema.
"""
from typing import Any, Dict, Type

from pydantic import BaseModel


def to_dict(schema: Type[BaseModel], obj: Any, **extra: Any) -> Dict[str, Any]:
    data = schema.model_validate(obj).model_dump()
    data.update(extra)
    return data
