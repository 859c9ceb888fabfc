"""Store context: every store the application uses, built once at startup."""
from dataclasses import dataclass, field

from . import models
from .baselines import BaselineStore
from .changes import ChangeStore
from .editions import EditionStore
from .milestones import MilestoneStore
from .requirements import RequirementStore
from .taxonomy import DocumentStore, TaxonomyStore, WaveStore


@dataclass(frozen=True)
class StoreContext:
    """Stores shared by all requests. Stores hold no per-request state."""

    requirements: RequirementStore
    changes: ChangeStore
    milestones: MilestoneStore
    baselines: BaselineStore
    editions: EditionStore
    waves: WaveStore
    documents: DocumentStore
    taxonomies: dict = field(default_factory=dict)

    def taxonomy(self, kind: models.TaxonomyKind) -> TaxonomyStore:
        return self.taxonomies[models.TaxonomyKind(kind)]


def build_store_context() -> StoreContext:
    """Construct the store context."""
    milestones = MilestoneStore()
    return StoreContext(
        requirements=RequirementStore(),
        changes=ChangeStore(milestones),
        milestones=milestones,
        baselines=BaselineStore(),
        editions=EditionStore(),
        waves=WaveStore(),
        documents=DocumentStore(),
        taxonomies={kind: TaxonomyStore(kind) for kind in models.TaxonomyKind},
    )
