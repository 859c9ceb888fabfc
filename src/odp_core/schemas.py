"""Pydantic schemas for request/response validation."""
from datetime import date as DateType, datetime
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict

from .models import (
    DraftingGroup,
    EditionType,
    MilestoneEventType,
    RequirementType,
    TaxonomyKind,
    Visibility,
)


# Shared Schemas

class Reference(BaseModel):
    """Display-ready pointer to a related entity."""

    model_config = ConfigDict(use_enum_values=True)

    id: int
    title: str
    type: Optional[str] = None
    code: Optional[str] = None
    note: Optional[str] = None


class WaveReference(BaseModel):
    """Wave metadata embedded in other responses."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    year: int
    quarter: Optional[int] = None
    date: DateType


class DocumentReferenceInput(BaseModel):
    """Annotated reference to a document."""

    document_id: int
    note: Optional[str] = None


class VersionSummary(BaseModel):
    """One entry of an item's version history."""

    model_config = ConfigDict(from_attributes=True)

    version_id: int
    version: int
    created_at: datetime
    created_by: str


class VersionedItemResponse(BaseModel):
    """Fields every hydrated item carries."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    item_id: int
    title: str
    code: Optional[str] = None
    created_at: datetime
    created_by: str
    version_id: int
    version: int
    version_created_at: datetime
    version_created_by: str
    drg: Optional[DraftingGroup] = None
    path: List[str] = Field(default_factory=list)
    private_notes: Optional[str] = None
    references_documents: List[Reference] = Field(default_factory=list)


# Requirement Schemas

class RequirementCreate(BaseModel):
    """Schema for creating an operational requirement (ON or OR).

    Relationship fields are lists of item, taxonomy entity or document ids.
    """

    title: str = Field(..., min_length=1, max_length=500)
    type: RequirementType
    statement: Optional[str] = None
    rationale: Optional[str] = None
    flows: Optional[str] = None
    private_notes: Optional[str] = None
    path: List[str] = Field(default_factory=list)
    drg: Optional[DraftingGroup] = None

    refines_parents: List[int] = Field(default_factory=list, description="Requirement ids this requirement refines")
    implemented_ons: List[int] = Field(default_factory=list, description="ON ids an OR implements")
    impacts_stakeholder_categories: List[int] = Field(default_factory=list)
    impacts_data: List[int] = Field(default_factory=list)
    impacts_services: List[int] = Field(default_factory=list)
    impacts_regulatory_aspects: List[int] = Field(default_factory=list)
    depends_on_requirements: List[int] = Field(default_factory=list)
    references_documents: List[DocumentReferenceInput] = Field(default_factory=list)


class RequirementUpdate(RequirementCreate):
    """Full replacement of a requirement's content.

    Leaving out every relationship field keeps the relationships of the
    expected version; supplying any of them replaces all of them.
    """

    expected_version_id: int


class RequirementPatch(BaseModel):
    """Partial update: only supplied fields change."""

    expected_version_id: int
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    type: Optional[RequirementType] = None
    statement: Optional[str] = None
    rationale: Optional[str] = None
    flows: Optional[str] = None
    private_notes: Optional[str] = None
    path: Optional[List[str]] = None
    drg: Optional[DraftingGroup] = None

    refines_parents: Optional[List[int]] = None
    implemented_ons: Optional[List[int]] = None
    impacts_stakeholder_categories: Optional[List[int]] = None
    impacts_data: Optional[List[int]] = None
    impacts_services: Optional[List[int]] = None
    impacts_regulatory_aspects: Optional[List[int]] = None
    depends_on_requirements: Optional[List[int]] = None
    references_documents: Optional[List[DocumentReferenceInput]] = None


class RequirementResponse(VersionedItemResponse):
    """Hydrated requirement version."""

    type: RequirementType
    statement: Optional[str] = None
    rationale: Optional[str] = None
    flows: Optional[str] = None
    refines_parents: List[Reference] = Field(default_factory=list)
    implemented_ons: List[Reference] = Field(default_factory=list)
    impacts_stakeholder_categories: List[Reference] = Field(default_factory=list)
    impacts_data: List[Reference] = Field(default_factory=list)
    impacts_services: List[Reference] = Field(default_factory=list)
    impacts_regulatory_aspects: List[Reference] = Field(default_factory=list)
    depends_on_requirements: List[Reference] = Field(default_factory=list)


class RequirementFilter(BaseModel):
    """Content filters for listing requirements. All supplied filters must match."""

    type: Optional[RequirementType] = None
    drg: Optional[DraftingGroup] = None
    title: Optional[str] = Field(None, description="Substring of the title")
    text: Optional[str] = Field(None, description="Substring of statement, rationale or flows")
    stakeholder_categories: List[int] = Field(default_factory=list)
    data_categories: List[int] = Field(default_factory=list)
    services: List[int] = Field(default_factory=list)
    regulatory_aspects: List[int] = Field(default_factory=list)


# Milestone Schemas

class MilestoneInput(BaseModel):
    """Milestone as supplied with a change.

    ``milestone_key`` is generated when absent and kept when a milestone is
    carried forward into a new change version.
    """

    milestone_key: Optional[str] = Field(None, max_length=64)
    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = None
    event_types: List[MilestoneEventType] = Field(default_factory=list)
    wave_id: Optional[int] = None


class MilestoneCreate(MilestoneInput):
    """Add one milestone, producing a new change version."""

    expected_version_id: int


class MilestoneUpdate(BaseModel):
    """Change one milestone, producing a new change version."""

    expected_version_id: int
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    event_types: Optional[List[MilestoneEventType]] = None
    wave_id: Optional[int] = None


class MilestoneResponse(BaseModel):
    """Milestone with its wave resolved."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: int
    milestone_key: str
    title: str
    description: Optional[str] = None
    event_types: List[MilestoneEventType] = Field(default_factory=list)
    wave: Optional[WaveReference] = None


class WaveMilestoneResponse(MilestoneResponse):
    """Milestone listed by wave, with the change that owns it."""

    change: Reference
    change_version_id: int


# Change Schemas

class ChangeCreate(BaseModel):
    """Schema for creating an operational change."""

    title: str = Field(..., min_length=1, max_length=500)
    purpose: Optional[str] = None
    initial_state: Optional[str] = None
    final_state: Optional[str] = None
    details: Optional[str] = None
    private_notes: Optional[str] = None
    path: List[str] = Field(default_factory=list)
    visibility: Visibility = Visibility.NETWORK
    drg: Optional[DraftingGroup] = None

    satisfies_requirements: List[int] = Field(default_factory=list)
    supersedes_requirements: List[int] = Field(default_factory=list)
    depends_on_changes: List[int] = Field(default_factory=list)
    references_documents: List[DocumentReferenceInput] = Field(default_factory=list)
    milestones: List[MilestoneInput] = Field(default_factory=list)


class ChangeUpdate(ChangeCreate):
    """Full replacement of a change's content.

    Leaving out every relationship field (milestones included) keeps the
    relationships of the expected version; supplying any replaces all.
    """

    expected_version_id: int


class ChangePatch(BaseModel):
    """Partial update: only supplied fields change."""

    expected_version_id: int
    title: Optional[str] = Field(None, min_length=1, max_length=500)
    purpose: Optional[str] = None
    initial_state: Optional[str] = None
    final_state: Optional[str] = None
    details: Optional[str] = None
    private_notes: Optional[str] = None
    path: Optional[List[str]] = None
    visibility: Optional[Visibility] = None
    drg: Optional[DraftingGroup] = None

    satisfies_requirements: Optional[List[int]] = None
    supersedes_requirements: Optional[List[int]] = None
    depends_on_changes: Optional[List[int]] = None
    references_documents: Optional[List[DocumentReferenceInput]] = None
    milestones: Optional[List[MilestoneInput]] = None


class ChangeResponse(VersionedItemResponse):
    """Hydrated change version."""

    purpose: Optional[str] = None
    initial_state: Optional[str] = None
    final_state: Optional[str] = None
    details: Optional[str] = None
    visibility: Optional[Visibility] = None
    satisfies_requirements: List[Reference] = Field(default_factory=list)
    supersedes_requirements: List[Reference] = Field(default_factory=list)
    depends_on_changes: List[Reference] = Field(default_factory=list)
    milestones: List[MilestoneResponse] = Field(default_factory=list)


class ChangeFilter(BaseModel):
    """Content filters for listing changes. All supplied filters must match."""

    drg: Optional[DraftingGroup] = None
    visibility: Optional[Visibility] = None
    title: Optional[str] = Field(None, description="Substring of the title")
    text: Optional[str] = Field(None, description="Substring of purpose, states or details")
    satisfies_requirements: List[int] = Field(default_factory=list)
    supersedes_requirements: List[int] = Field(default_factory=list)


# Baseline Schemas

class BaselineCreate(BaseModel):
    """Schema for creating a baseline."""

    title: str = Field(..., min_length=1, max_length=500)
    starts_from_wave_id: Optional[int] = None


class BaselineResponse(BaseModel):
    """Baseline with its wave and capture count."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    created_at: datetime
    created_by: str
    starts_from_wave: Optional[WaveReference] = None
    captured_item_count: int


class BaselineItem(BaseModel):
    """One version captured by a baseline."""

    model_config = ConfigDict(use_enum_values=True)

    item_id: int
    kind: str
    title: str
    code: Optional[str] = None
    version_id: int
    version: int


# Edition Schemas

class EditionCreate(BaseModel):
    """Schema for creating an edition."""

    title: str = Field(..., min_length=1, max_length=500)
    type: EditionType
    baseline_id: int
    starts_from_wave_id: int


class EditionResponse(BaseModel):
    """Edition with its baseline and wave resolved."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: int
    title: str
    type: EditionType
    created_at: datetime
    created_by: str
    baseline: Reference
    starts_from_wave: WaveReference


class EditionContext(BaseModel):
    """The (baseline, wave cutoff) pair an edition stands for."""

    baseline_id: int
    from_wave_id: int


# Taxonomy Schemas

class TaxonomyEntityCreate(BaseModel):
    """Schema for creating or replacing a taxonomy entity."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    parent_id: Optional[int] = None


class TaxonomyParentUpdate(BaseModel):
    """New parent of a taxonomy entity; null makes it a root."""

    parent_id: Optional[int] = None


class TaxonomyEntityResponse(BaseModel):
    """Taxonomy entity."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: int
    kind: TaxonomyKind
    name: str
    description: Optional[str] = None
    parent_id: Optional[int] = None
    created_at: datetime
    created_by: str


class WaveCreate(BaseModel):
    """Schema for creating or replacing a wave."""

    year: int = Field(..., ge=2025, lt=2124)
    quarter: Optional[int] = Field(None, ge=1, le=4)
    date: DateType
    name: Optional[str] = Field(None, min_length=1, max_length=64)


class WaveResponse(WaveReference):
    """Wave."""

    created_at: datetime
    created_by: str


class DocumentCreate(BaseModel):
    """Schema for creating or replacing a document."""

    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    version: Optional[str] = Field(None, max_length=64)
    url: Optional[str] = Field(None, max_length=1000)


class DocumentResponse(BaseModel):
    """Document."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    version: Optional[str] = None
    url: Optional[str] = None
    created_at: datetime
    created_by: str
