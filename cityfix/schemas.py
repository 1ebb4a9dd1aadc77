from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator

DEFAULT_STATUS = "submitted"


def fold_field_names(model: type[BaseModel], data: Any) -> Any:
    """Map incoming keys onto field names ignoring case ("PhotoURL" -> photo_url).

    Unknown keys (including any client-supplied "id"/"_id") are left alone
    and dropped by pydantic afterwards.
    """
    if not isinstance(data, dict):
        return data

    lookup: dict[str, str] = {}
    for name, info in model.model_fields.items():
        lookup[name.lower()] = name
        if info.alias:
            lookup[info.alias.lower()] = name
        if isinstance(info.validation_alias, AliasChoices):
            for choice in info.validation_alias.choices:
                if isinstance(choice, str):
                    lookup[choice.lower()] = name

    return {lookup.get(str(key).lower(), key): value for key, value in data.items()}


class IssueCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str
    description: str
    category: str
    photo_url: Optional[str] = Field(None, alias="photoUrl")
    status: str = DEFAULT_STATUS
    created_at: Optional[datetime] = Field(None, alias="createdAt")

    @model_validator(mode="before")
    @classmethod
    def _case_insensitive_keys(cls, data: Any) -> Any:
        return fold_field_names(cls, data)

    def to_fields(self) -> dict[str, Any]:
        """Column values for a new record; never carries an id."""
        return self.model_dump(by_alias=False, exclude_none=True)


class Issue(BaseModel):
    """An issue as stored and as returned on the wire."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: str = Field(validation_alias=AliasChoices("_id", "id"), serialization_alias="_id")
    title: str
    description: str
    category: str
    photo_url: Optional[str] = Field(
        None, validation_alias=AliasChoices("photoUrl", "photo_url"), serialization_alias="photoUrl"
    )
    status: str
    created_at: Optional[datetime] = Field(
        None, validation_alias=AliasChoices("createdAt", "created_at"), serialization_alias="createdAt"
    )
    generated_summary: Optional[str] = None
    solution_description: Optional[str] = None


class SolutionAccepted(BaseModel):
    message: str
    issue_id: str


class GenerateRequest(BaseModel):
    prompt: str = Field(min_length=1)


class GenerateResponse(BaseModel):
    generated_text: str
