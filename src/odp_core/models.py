"""SQLAlchemy database models.

Items own an ordered chain of immutable versions. Every relationship a record
has is stored against one version row, so a new version gets fresh edge rows
and fresh milestones and older versions keep theirs untouched.
"""
from datetime import datetime
import enum

from sqlalchemy import (
    Column,
    String,
    Text,
    Integer,
    Date,
    DateTime,
    ForeignKey,
    Enum,
    CheckConstraint,
    JSON,
    UniqueConstraint,
    Table,
)
from sqlalchemy.orm import relationship

from .database import Base


# Enums

class ItemKind(str, enum.Enum):
    """Kinds of versioned item."""

    REQUIREMENT = "requirement"
    CHANGE = "change"


class RequirementType(str, enum.Enum):
    """Operational Need or Operational Requirement."""

    ON = "ON"
    OR = "OR"


class Visibility(str, enum.Enum):
    """Audience of an operational change."""

    NM = "NM"
    NETWORK = "NETWORK"


class DraftingGroup(str, enum.Enum):
    """Drafting groups used for code allocation and filtering."""

    FOUR_DT = "4DT"
    AIRPORT = "AIRPORT"
    ASM_ATFCM = "ASM_ATFCM"
    CRISIS_FAAS = "CRISIS_FAAS"
    FLOW = "FLOW"
    IDL = "IDL"
    NM_B2B = "NM_B2B"
    NMUI = "NMUI"
    PERF = "PERF"
    RRT = "RRT"
    TCF = "TCF"


class MilestoneEventType(str, enum.Enum):
    """Event types a milestone can announce."""

    API_PUBLICATION = "API_PUBLICATION"
    API_TEST_DEPLOYMENT = "API_TEST_DEPLOYMENT"
    UI_TEST_DEPLOYMENT = "UI_TEST_DEPLOYMENT"
    SERVICE_ACTIVATION = "SERVICE_ACTIVATION"
    API_DECOMMISSIONING = "API_DECOMMISSIONING"
    OTHER = "OTHER"


class EditionType(str, enum.Enum):
    """Publication status of an edition."""

    DRAFT = "DRAFT"
    OFFICIAL = "OFFICIAL"


class TaxonomyKind(str, enum.Enum):
    """Kinds of taxonomy entity a requirement can impact."""

    STAKEHOLDER_CATEGORY = "stakeholder_category"
    DATA_CATEGORY = "data_category"
    SERVICE = "service"
    REGULATORY_ASPECT = "regulatory_aspect"


def _enum_column(enum_cls, **kwargs) -> Column:
    return Column(
        Enum(enum_cls, values_callable=lambda x: [e.value for e in x], native_enum=False),
        **kwargs
    )


# Version-scoped edge tables. version_id owns the row; the target is an item,
# a taxonomy entity or a document.

def _item_edge_table(name: str) -> Table:
    return Table(
        name,
        Base.metadata,
        Column('version_id', Integer, ForeignKey('item_versions.id', ondelete='CASCADE'), primary_key=True),
        Column('target_item_id', Integer, ForeignKey('items.id'), primary_key=True, index=True),
    )


version_refines = _item_edge_table('version_refines')
version_implements = _item_edge_table('version_implements')
version_satisfies = _item_edge_table('version_satisfies')
version_supersedes = _item_edge_table('version_supersedes')
version_depends_on = _item_edge_table('version_depends_on')

version_impacts = Table(
    'version_impacts',
    Base.metadata,
    Column('version_id', Integer, ForeignKey('item_versions.id', ondelete='CASCADE'), primary_key=True),
    Column('taxonomy_entity_id', Integer, ForeignKey('taxonomy_entities.id'), primary_key=True, index=True),
)

version_references = Table(
    'version_references',
    Base.metadata,
    Column('version_id', Integer, ForeignKey('item_versions.id', ondelete='CASCADE'), primary_key=True),
    Column('document_id', Integer, ForeignKey('documents.id'), primary_key=True, index=True),
    Column('note', Text, nullable=True),
)

ITEM_EDGE_TABLES = (
    version_refines,
    version_implements,
    version_satisfies,
    version_supersedes,
    version_depends_on,
)

# Captured versions of a baseline. Written once when the baseline is created.
baseline_captures = Table(
    'baseline_captures',
    Base.metadata,
    Column('baseline_id', Integer, ForeignKey('baselines.id', ondelete='CASCADE'), primary_key=True),
    Column('version_id', Integer, ForeignKey('item_versions.id'), primary_key=True, index=True),
)


class Item(Base):
    """
    Stable identity of one operational requirement or change.

    Content lives on ItemVersion rows. ``latest_version_id`` is the single
    latest-version pointer; ``revision`` is bumped on every write and guards
    the pointer against concurrent writers.
    """

    __tablename__ = "items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = _enum_column(ItemKind, nullable=False, index=True)
    title = Column(String(500), nullable=False, index=True)
    code = Column(String(64), nullable=True, unique=True)

    latest_version_id = Column(
        Integer,
        ForeignKey("item_versions.id", use_alter=True, name="fk_items_latest_version_id"),
        nullable=True
    )
    revision = Column(Integer, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_by = Column(String(255), nullable=False)

    versions = relationship(
        "ItemVersion",
        back_populates="item",
        foreign_keys="ItemVersion.item_id",
        order_by="ItemVersion.version",
        passive_deletes="all",
    )

    __mapper_args__ = {"version_id_col": revision}

    def __repr__(self) -> str:
        return f"<Item(id={self.id}, kind='{self.kind}', title='{self.title}')>"


class ItemVersion(Base):
    """
    Immutable content snapshot of an item.

    Requirement versions fill type/statement/rationale/flows, change versions
    fill purpose/initial_state/final_state/details/visibility. Both carry the
    drafting group, path and private notes.
    """

    __tablename__ = "item_versions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    item_id = Column(
        Integer,
        ForeignKey("items.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    version = Column(Integer, nullable=False)

    # Requirement content
    type = _enum_column(RequirementType, nullable=True, index=True)
    statement = Column(Text, nullable=True)
    rationale = Column(Text, nullable=True)
    flows = Column(Text, nullable=True)

    # Change content
    purpose = Column(Text, nullable=True)
    initial_state = Column(Text, nullable=True)
    final_state = Column(Text, nullable=True)
    details = Column(Text, nullable=True)
    visibility = _enum_column(Visibility, nullable=True)

    # Shared content
    drg = _enum_column(DraftingGroup, nullable=True, index=True)
    path = Column(JSON, nullable=False, default=list)
    private_notes = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    created_by = Column(String(255), nullable=False)

    item = relationship("Item", back_populates="versions", foreign_keys=[item_id])
    milestones = relationship("Milestone", back_populates="version", passive_deletes="all")

    __table_args__ = (
        UniqueConstraint("item_id", "version", name="uq_item_version_number"),
        CheckConstraint("version >= 1", name="ck_item_version_positive"),
    )

    def __repr__(self) -> str:
        return f"<ItemVersion(id={self.id}, item_id={self.item_id}, version={self.version})>"


class Milestone(Base):
    """
    Version-scoped milestone of an operational change.

    ``milestone_key`` is stable across change versions; the row id is not.
    """

    __tablename__ = "milestones"

    id = Column(Integer, primary_key=True, autoincrement=True)
    milestone_key = Column(String(64), nullable=False, index=True)
    version_id = Column(
        Integer,
        ForeignKey("item_versions.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    event_types = Column(JSON, nullable=False, default=list)
    wave_id = Column(Integer, ForeignKey("waves.id"), nullable=True, index=True)

    version = relationship("ItemVersion", back_populates="milestones")
    wave = relationship("Wave")

    __table_args__ = (
        UniqueConstraint("version_id", "milestone_key", name="uq_milestone_key_per_version"),
    )

    def __repr__(self) -> str:
        return f"<Milestone(id={self.id}, key='{self.milestone_key}', version_id={self.version_id})>"


class Wave(Base):
    """Quarterly delivery wave. Ordered by (year, quarter)."""

    __tablename__ = "waves"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(64), nullable=False)
    year = Column(Integer, nullable=False)
    quarter = Column(Integer, nullable=True)
    date = Column(Date, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_by = Column(String(255), nullable=False)

    __table_args__ = (
        CheckConstraint("year >= 2025 AND year < 2124", name="ck_wave_year_range"),
        CheckConstraint("quarter IS NULL OR (quarter >= 1 AND quarter <= 4)", name="ck_wave_quarter_range"),
    )

    def __repr__(self) -> str:
        return f"<Wave(id={self.id}, name='{self.name}')>"


class TaxonomyEntity(Base):
    """Stakeholder category, data category, service or regulatory aspect."""

    __tablename__ = "taxonomy_entities"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = _enum_column(TaxonomyKind, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    parent_id = Column(Integer, ForeignKey("taxonomy_entities.id"), nullable=True, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_by = Column(String(255), nullable=False)

    parent = relationship("TaxonomyEntity", remote_side=[id])

    __table_args__ = (
        CheckConstraint("parent_id IS NULL OR parent_id != id", name="ck_taxonomy_no_self_parent"),
    )

    def __repr__(self) -> str:
        return f"<TaxonomyEntity(id={self.id}, kind='{self.kind}', name='{self.name}')>"


class Document(Base):
    """External reference document."""

    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    version = Column(String(64), nullable=True)
    url = Column(String(1000), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    created_by = Column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Document(id={self.id}, name='{self.name}')>"


class Baseline(Base):
    """Frozen set of latest versions captured at creation time."""

    __tablename__ = "baselines"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(500), nullable=False)
    starts_from_wave_id = Column(Integer, ForeignKey("waves.id"), nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    created_by = Column(String(255), nullable=False)

    starts_from_wave = relationship("Wave")

    def __repr__(self) -> str:
        return f"<Baseline(id={self.id}, title='{self.title}')>"


class Edition(Base):
    """Named publication point binding a baseline to a wave cutoff."""

    __tablename__ = "editions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(500), nullable=False)
    type = _enum_column(EditionType, nullable=False)
    baseline_id = Column(Integer, ForeignKey("baselines.id"), nullable=False, index=True)
    starts_from_wave_id = Column(Integer, ForeignKey("waves.id"), nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    created_by = Column(String(255), nullable=False)

    baseline = relationship("Baseline")
    starts_from_wave = relationship("Wave")

    def __repr__(self) -> str:
        return f"<Edition(id={self.id}, title='{self.title}', type='{self.type}')>"
