from typing import Any, Dict, Union

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

EntityId = Union[int, str]


class DomainModel(BaseModel):
    """Base for entities exchanged with the Scrum API.

    Fields are snake_case in Python and camelCase on the wire; both
    spellings are accepted on input.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )

    def to_dict(self) -> Dict[str, Any]:
        """Convert model instance to a wire dictionary"""
        return self.model_dump(mode="json", by_alias=True)
