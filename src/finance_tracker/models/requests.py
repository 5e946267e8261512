"""
Mutation Requests

A mutation request names one entity, one operation and a payload shaped
like the entity's partial record. The orchestrator dispatches requests
through LedgerOrchestrator.apply().
"""

from enum import Enum
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from finance_tracker.models.entities import EntityKind
from finance_tracker.models.results import MalformedPayloadError


class Operation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class MutationRequest(BaseModel):
    """
    One create/update/delete against one entity.
    
    Update and delete must name the entity id. For account deletes the
    payload may carry {"hard": true}.
    """
    
    model_config = ConfigDict(frozen=True)
    
    entity: EntityKind
    operation: Operation
    entity_id: Optional[str] = None
    payload: dict[str, Any] = Field(default_factory=dict)
    
    @model_validator(mode='after')
    def require_entity_id(self) -> 'MutationRequest':
        if self.operation != Operation.CREATE and not self.entity_id:
            raise ValueError(f"{self.operation.value} requires an entity_id")
        return self
    
    @classmethod
    def coerce(cls, data: Union['MutationRequest', Mapping[str, Any]]) -> 'MutationRequest':
        """
        Accept a request or a plain mapping.
        
        A request of the wrong shape is a programmer error and raises
        MalformedPayloadError.
        """
        if isinstance(data, cls):
            return data
        if not isinstance(data, Mapping):
            raise MalformedPayloadError(
                f"Expected a MutationRequest or mapping, got {type(data).__name__}"
            )
        try:
            return cls.model_validate(dict(data))
        except ValidationError as e:
            raise MalformedPayloadError(f"Malformed mutation request: {e}") from e
