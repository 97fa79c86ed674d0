"""
Request and response models for the Validation Service API.
"""

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class ValidationPhase(str, Enum):
    """Phases callable through ``POST /validation/{entity_type}/{phase}``."""
    MANDATORY = "mandatory"
    CONTENT = "content"
    IMMUTABLE = "immutable"
    UPDATE = "update"
    CREATE = "create"
    ALL = "all"


class PropertyQueryRequest(BaseModel):
    """Request model for a single property predicate."""
    snapshot: Dict[str, Any] = Field(default_factory=dict, description="Entity state to evaluate against")
    permissions: List[str] = Field(default_factory=list, description="Permissions of the acting user")


class PropertyPredicateResponse(BaseModel):
    """Response model for mandatory and immutable queries."""
    entity_type: str
    property: str
    value: bool


class AllowedValuesResponse(BaseModel):
    """Response model for the allowed-values query; ``None`` means unconstrained."""
    entity_type: str
    property: str
    allowed_values: Optional[List[Any]] = None


class FormStateRequest(BaseModel):
    """Request model for the per-property state of an edit form."""
    edited: Dict[str, Any] = Field(default_factory=dict, description="Draft entity state")
    saved: Optional[Dict[str, Any]] = Field(None, description="Persisted entity state, if any")
    permissions: List[str] = Field(default_factory=list, description="Permissions of the acting user")
    properties: Optional[List[str]] = Field(None, description="Restrict the answer to these properties")


class PropertyStateResponse(BaseModel):
    mandatory: bool
    immutable: bool
    allowed_values: Optional[List[Any]] = None


class FormStateResponse(BaseModel):
    """Response model for the form-state query."""
    entity_type: str
    properties: Dict[str, PropertyStateResponse]


class PhaseRequest(BaseModel):
    """Request model for running validation phases.

    Mandatory, content and create read ``new`` only; immutable, update and
    all compare ``old`` to ``new``.
    """
    new: Dict[str, Any] = Field(default_factory=dict, description="Edited entity state")
    old: Optional[Dict[str, Any]] = Field(None, description="Saved entity state")
    permissions: List[str] = Field(default_factory=list, description="Permissions of the acting user")
    today: Optional[date] = Field(None, description="Evaluation day for date constraints")


class CheckRequest(BaseModel):
    """Request model for the pass/fail check used before persisting an entity."""
    entity: Dict[str, Any] = Field(..., description="Entity state to persist")
    saved: Optional[Dict[str, Any]] = Field(None, description="Currently persisted state for updates")
    permissions: List[str] = Field(default_factory=list, description="Permissions of the acting user")
    today: Optional[date] = Field(None, description="Evaluation day for date constraints")


class ValidationResponse(BaseModel):
    """Response model for validation runs."""
    entity_type: str
    phase: str
    valid: bool
    errors: List[str] = Field(default_factory=list, description="Error codes in rule order")


class RuleSetLoadResponse(BaseModel):
    """Response model for a rule document upload."""
    schema_version: str
    entity_types: List[str]
