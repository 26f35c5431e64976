# File: /app/schemas/_base.py | Version: 2.0 | Title: Pydantic Base Schemas (V2, camelCase wire format)
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BaseSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class CamelSchema(BaseModel):
    # Wire format is camelCase; snake_case is still accepted on input.
    model_config = ConfigDict(
        from_attributes=True, alias_generator=to_camel, populate_by_name=True
    )
