from typing import Any

from pydantic import BaseModel, BeforeValidator, ConfigDict


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


def _lowercase(value: Any) -> Any:
    return value.lower() if isinstance(value, str) else value


# enum inputs accept "BASE" as well as "base"
CaseInsensitive = BeforeValidator(_lowercase)
