"""
Shared model base for editor state and API payloads.
"""

from typing import TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

ModelT = TypeVar("ModelT", bound=BaseModel)


class StudioModel(BaseModel):
    """
    Immutable model serialized with camelCase keys.

    Attributes stay snake_case in Python; both spellings are accepted on input.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


def revise(model: ModelT, **changes) -> ModelT:
    """
    Return a validated copy of ``model`` with ``changes`` applied.

    Unlike ``model_copy(update=...)`` the result is re-validated, so
    constraints and normalizers run on the new values.
    """
    data = {name: getattr(model, name) for name in type(model).model_fields}
    data.update(changes)
    return type(model).model_validate(data)
