"""Initial schema: versioned items, edges, milestones, baselines and editions.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

DRAFTING_GROUPS = ('4DT', 'AIRPORT', 'ASM_ATFCM', 'CRISIS_FAAS', 'FLOW', 'IDL', 'NM_B2B', 'NMUI', 'PERF', 'RRT', 'TCF')
TAXONOMY_KINDS = ('stakeholder_category', 'data_category', 'service', 'regulatory_aspect')
ITEM_EDGE_TABLES = ('version_refines', 'version_implements', 'version_satisfies', 'version_supersedes', 'version_depends_on')


def _enum(*values, name):
    return sa.Enum(*values, name=name, native_enum=False)


def upgrade() -> None:
    # Setup data
    op.create_table(
        'waves',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(64), nullable=False),
        sa.Column('year', sa.Integer, nullable=False),
        sa.Column('quarter', sa.Integer),
        sa.Column('date', sa.Date, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('created_by', sa.String(255), nullable=False),
        sa.CheckConstraint('year >= 2025 AND year < 2124', name='ck_wave_year_range'),
        sa.CheckConstraint('quarter IS NULL OR (quarter >= 1 AND quarter <= 4)', name='ck_wave_quarter_range'),
    )

    op.create_table(
        'taxonomy_entities',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('kind', _enum(*TAXONOMY_KINDS, name='taxonomykind'), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('parent_id', sa.Integer, sa.ForeignKey('taxonomy_entities.id')),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('created_by', sa.String(255), nullable=False),
        sa.CheckConstraint('parent_id IS NULL OR parent_id != id', name='ck_taxonomy_no_self_parent'),
    )
    op.create_index('ix_taxonomy_entities_kind', 'taxonomy_entities', ['kind'])
    op.create_index('ix_taxonomy_entities_parent_id', 'taxonomy_entities', ['parent_id'])

    op.create_table(
        'documents',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('version', sa.String(64)),
        sa.Column('url', sa.String(1000)),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('created_by', sa.String(255), nullable=False),
    )

    # Items and versions. The latest-version pointer is added once both exist.
    op.create_table(
        'items',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('kind', _enum('requirement', 'change', name='itemkind'), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('code', sa.String(64), unique=True),
        sa.Column('latest_version_id', sa.Integer),
        sa.Column('revision', sa.Integer, nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('created_by', sa.String(255), nullable=False),
    )
    op.create_index('ix_items_kind', 'items', ['kind'])
    op.create_index('ix_items_title', 'items', ['title'])

    op.create_table(
        'item_versions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('item_id', sa.Integer, sa.ForeignKey('items.id', ondelete='CASCADE'), nullable=False),
        sa.Column('version', sa.Integer, nullable=False),
        sa.Column('type', _enum('ON', 'OR', name='requirementtype')),
        sa.Column('statement', sa.Text),
        sa.Column('rationale', sa.Text),
        sa.Column('flows', sa.Text),
        sa.Column('purpose', sa.Text),
        sa.Column('initial_state', sa.Text),
        sa.Column('final_state', sa.Text),
        sa.Column('details', sa.Text),
        sa.Column('visibility', _enum('NM', 'NETWORK', name='visibility')),
        sa.Column('drg', _enum(*DRAFTING_GROUPS, name='draftinggroup')),
        sa.Column('path', sa.JSON, nullable=False),
        sa.Column('private_notes', sa.Text),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('created_by', sa.String(255), nullable=False),
        sa.UniqueConstraint('item_id', 'version', name='uq_item_version_number'),
        sa.CheckConstraint('version >= 1', name='ck_item_version_positive'),
    )
    op.create_index('ix_item_versions_item_id', 'item_versions', ['item_id'])
    op.create_index('ix_item_versions_type', 'item_versions', ['type'])
    op.create_index('ix_item_versions_drg', 'item_versions', ['drg'])
    op.create_index('ix_item_versions_created_at', 'item_versions', ['created_at'])

    with op.batch_alter_table('items') as batch_op:
        batch_op.create_foreign_key(
            'fk_items_latest_version_id', 'item_versions', ['latest_version_id'], ['id']
        )

    # Version-scoped edges
    for name in ITEM_EDGE_TABLES:
        op.create_table(
            name,
            sa.Column('version_id', sa.Integer, sa.ForeignKey('item_versions.id', ondelete='CASCADE'), primary_key=True),
            sa.Column('target_item_id', sa.Integer, sa.ForeignKey('items.id'), primary_key=True),
        )
        op.create_index(f'ix_{name}_target_item_id', name, ['target_item_id'])

    op.create_table(
        'version_impacts',
        sa.Column('version_id', sa.Integer, sa.ForeignKey('item_versions.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('taxonomy_entity_id', sa.Integer, sa.ForeignKey('taxonomy_entities.id'), primary_key=True),
    )
    op.create_index('ix_version_impacts_taxonomy_entity_id', 'version_impacts', ['taxonomy_entity_id'])

    op.create_table(
        'version_references',
        sa.Column('version_id', sa.Integer, sa.ForeignKey('item_versions.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('document_id', sa.Integer, sa.ForeignKey('documents.id'), primary_key=True),
        sa.Column('note', sa.Text),
    )
    op.create_index('ix_version_references_document_id', 'version_references', ['document_id'])

    op.create_table(
        'milestones',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('milestone_key', sa.String(64), nullable=False),
        sa.Column('version_id', sa.Integer, sa.ForeignKey('item_versions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text),
        sa.Column('event_types', sa.JSON, nullable=False),
        sa.Column('wave_id', sa.Integer, sa.ForeignKey('waves.id')),
        sa.UniqueConstraint('version_id', 'milestone_key', name='uq_milestone_key_per_version'),
    )
    op.create_index('ix_milestones_milestone_key', 'milestones', ['milestone_key'])
    op.create_index('ix_milestones_version_id', 'milestones', ['version_id'])
    op.create_index('ix_milestones_wave_id', 'milestones', ['wave_id'])

    # Baselines and editions
    op.create_table(
        'baselines',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('starts_from_wave_id', sa.Integer, sa.ForeignKey('waves.id')),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('created_by', sa.String(255), nullable=False),
    )
    op.create_index('ix_baselines_created_at', 'baselines', ['created_at'])

    op.create_table(
        'baseline_captures',
        sa.Column('baseline_id', sa.Integer, sa.ForeignKey('baselines.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('version_id', sa.Integer, sa.ForeignKey('item_versions.id'), primary_key=True),
    )
    op.create_index('ix_baseline_captures_version_id', 'baseline_captures', ['version_id'])

    op.create_table(
        'editions',
        sa.Column('id', sa.Integer, primary_key=True, autoincrement=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('type', _enum('DRAFT', 'OFFICIAL', name='editiontype'), nullable=False),
        sa.Column('baseline_id', sa.Integer, sa.ForeignKey('baselines.id'), nullable=False),
        sa.Column('starts_from_wave_id', sa.Integer, sa.ForeignKey('waves.id'), nullable=False),
        sa.Column('created_at', sa.DateTime, nullable=False),
        sa.Column('created_by', sa.String(255), nullable=False),
    )
    op.create_index('ix_editions_baseline_id', 'editions', ['baseline_id'])
    op.create_index('ix_editions_created_at', 'editions', ['created_at'])


def downgrade() -> None:
    op.drop_table('editions')
    op.drop_table('baseline_captures')
    op.drop_table('baselines')
    op.drop_table('milestones')
    op.drop_table('version_references')
    op.drop_table('version_impacts')
    for name in reversed(ITEM_EDGE_TABLES):
        op.drop_table(name)
    with op.batch_alter_table('items') as batch_op:
        batch_op.drop_constraint('fk_items_latest_version_id', type_='foreignkey')
    op.drop_table('item_versions')
    op.drop_table('items')
    op.drop_table('documents')
    op.drop_table('taxonomy_entities')
    op.drop_table('waves')
