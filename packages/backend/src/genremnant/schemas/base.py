"""Shared schema base.

Learn: the browser client speaks camelCase JSON (displayName, postId).
alias_generator=to_camel maps snake_case attributes to camelCase
aliases; populate_by_name lets Python code still construct models with
snake_case names. FastAPI serializes responses by alias by default.
"""

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "from_attributes": True,
    }


class MessageResponse(CamelModel):
    message: str
