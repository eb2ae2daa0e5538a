"""Request models for the governance boundary.

Every boundary operation validates its input through one of these Pydantic
models before touching storage, so out-of-range values never cause a
partial write.
"""

from __future__ import annotations

import json
import logging
from typing import Any, List, Optional, Type, TypeVar

from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from oversight.errors import ValidationError

from .models import CapabilityKind, Decision

logger = logging.getLogger(__name__)

RequestT = TypeVar("RequestT", bound=BaseModel)


def ensure_json(v: Any) -> Any:
    """Reject payloads the store cannot persist as JSON."""
    try:
        json.dumps(v)
    except (TypeError, ValueError) as e:
        raise ValueError(f"must be JSON-serializable: {e}") from e
    return v


class SubmitProposalRequest(BaseModel):
    """An agent's proposed change against one capability kind."""

    agent_name: str = Field(..., min_length=1, description="Proposing agent")
    capability_kind: CapabilityKind = Field(..., description="Kind of change")
    title: str = Field(..., min_length=1)
    proposed_change: Any = Field(..., description="Opaque structured payload")
    rationale: str = Field(..., min_length=1)
    predicted_impact: Optional[str] = None
    supporting_evidence: Optional[Any] = None
    affected_extraction_ids: Optional[List[str]] = None

    @field_validator("agent_name", "title", "rationale")
    @classmethod
    def strip_text(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("proposed_change")
    @classmethod
    def require_payload(cls, v: Any) -> Any:
        if v is None:
            raise ValueError("proposed change payload is required")
        return v

    @field_validator("proposed_change", "supporting_evidence")
    @classmethod
    def require_json(cls, v: Any) -> Any:
        return ensure_json(v)


class HumanDecisionRequest(BaseModel):
    proposal_id: str = Field(..., min_length=1)
    decision: Decision
    reviewer_id: str = Field(..., min_length=1)
    notes: Optional[str] = None


class MarkImplementedRequest(BaseModel):
    proposal_id: str = Field(..., min_length=1)
    details: Optional[Any] = None

    @field_validator("details")
    @classmethod
    def require_json(cls, v: Any) -> Any:
        return ensure_json(v)


class RecordImpactRequest(BaseModel):
    proposal_id: str = Field(..., min_length=1)
    success_score: float = Field(..., ge=0.0, le=1.0)
    actual_impact: str = Field(..., description="Observed effect of the change")
    details: Optional[Any] = None
    measured_by: Optional[str] = None

    @field_validator("details")
    @classmethod
    def require_json(cls, v: Any) -> Any:
        return ensure_json(v)


class RevertRequest(BaseModel):
    proposal_id: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)
    reverted_by: Optional[str] = None


class PolicyUpdateRequest(BaseModel):
    """Human-only change to a capability's review policy."""

    capability_id: str = Field(..., min_length=1)
    auto_approve_threshold: Optional[float] = Field(None, ge=0.0, le=1.0)
    requires_review: Optional[bool] = None
    description: Optional[str] = None
    updated_by: Optional[str] = None

    @model_validator(mode="after")
    def require_change(self) -> "PolicyUpdateRequest":
        if (
            self.auto_approve_threshold is None
            and self.requires_review is None
            and self.description is None
        ):
            raise ValueError(
                "at least one of auto_approve_threshold, requires_review, "
                "description must be set"
            )
        return self


def parse_request(model: Type[RequestT], **data: Any) -> RequestT:
    """Validate data against model, raising the engine's ValidationError.

    Raises:
        ValidationError: If any field is missing or out of range
    """
    try:
        return model(**data)
    except PydanticValidationError as e:
        logger.debug(f"Rejected {model.__name__}: {e}")
        raise ValidationError.from_pydantic(e) from e
