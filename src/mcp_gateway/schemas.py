"""
Input Schemas
Pydantic models for the cross-cutting tool inputs

Wire names are camelCase (pageSize, returnOnlyIds, dryRun, ...); Python code
uses the snake_case attributes. Unknown arguments are rejected.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from .shaping import ShapingRequest


class ToolInput(BaseModel):
    """Base for every operation input model"""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class ShapingInput(ToolInput):
    return_only_ids: bool = Field(default=False, description="Return identifiers only")
    compact: bool = Field(default=False, description="Return minimal fields with long text truncated")
    fields: Optional[List[str]] = Field(default=None, description="Return only these fields (unknown names are ignored)")

    def shaping(self) -> ShapingRequest:
        return ShapingRequest(
            return_only_ids=self.return_only_ids,
            compact=self.compact,
            fields=tuple(self.fields) if self.fields else None,
        )


class ListInput(ShapingInput):
    filter: Dict[str, Any] = Field(default_factory=dict, description="Field equality filter")
    page_size: Optional[int] = Field(default=None, description="Items per page, clamped to [1, 100], default 25")
    page_token: Optional[str] = Field(default=None, description="Opaque token from a previous page")


class GetInput(ShapingInput):
    id: str = Field(min_length=1)


class MutationInput(ToolInput):
    dry_run: bool = Field(default=False, description="Preview the affected scope without changing anything")
    confirm_token: Optional[str] = Field(default=None, description="Token from a dry run, required above the auto-safe threshold")


class BatchInput(MutationInput):
    ids: List[str] = Field(min_length=1, description="Identifiers to act on; duplicates are processed once")

    @field_validator("ids")
    @classmethod
    def ids_not_blank(cls, value: List[str]) -> List[str]:
        if any(not item.strip() for item in value):
            raise ValueError("ids cannot contain blank identifiers")
        return value


class CreateInput(MutationInput):
    data: Dict[str, Any] = Field(description="Fields of the new resource")


class UpdateInput(BatchInput):
    changes: Dict[str, Any] = Field(min_length=1, description="Fields to set on every listed resource")


class DeleteInput(BatchInput):
    pass


class DeleteMatchingInput(MutationInput):
    filter: Dict[str, Any] = Field(min_length=1, description="Field equality filter selecting what to delete")
