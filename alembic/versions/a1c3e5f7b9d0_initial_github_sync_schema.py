"""initial_github_sync_schema

Revision ID: a1c3e5f7b9d0
Revises:
Create Date: 2026-10-19 09:12:44.310552

Users, projects and agreements, plus the GitHub sync tables:
github_branches, github_logs and the github_branch_logs join table.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'a1c3e5f7b9d0'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table('users',
    sa.Column('id', sa.Uuid(), nullable=False),
    sa.Column('email', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
    sa.Column('display_name', sqlmodel.sql.sqltypes.AutoString(length=100), nullable=True),
    sa.Column('github_username', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
    sa.Column('github_token', sqlmodel.sql.sqltypes.AutoString(length=1000), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=False)
    op.create_index(op.f('ix_users_github_username'), 'users', ['github_username'], unique=False)

    op.create_table('projects',
    sa.Column('name', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
    sa.Column('repository_url', sqlmodel.sql.sqltypes.AutoString(length=500), nullable=True),
    sa.Column('id', sa.Uuid(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('github_last_polled_at', sa.DateTime(timezone=True), nullable=True),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_projects_id'), 'projects', ['id'], unique=False)
    op.create_index(op.f('ix_projects_user_id'), 'projects', ['user_id'], unique=False)

    op.create_table('agreements',
    sa.Column('id', sa.Uuid(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('project_id', sa.Uuid(), nullable=False),
    sa.Column('status', sqlmodel.sql.sqltypes.AutoString(length=20), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_agreements_project_id'), 'agreements', ['project_id'], unique=False)

    op.create_table('agreement_participants',
    sa.Column('id', sa.Uuid(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('agreement_id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.ForeignKeyConstraint(['agreement_id'], ['agreements.id'], ),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_agreement_participants_agreement_user', 'agreement_participants', ['agreement_id', 'user_id'], unique=True)
    op.create_index(op.f('ix_agreement_participants_user_id'), 'agreement_participants', ['user_id'], unique=False)

    op.create_table('github_branches',
    sa.Column('id', sa.Uuid(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('project_id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=False),
    sa.Column('branch_name', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=False),
    sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_github_branches_id'), 'github_branches', ['id'], unique=False)
    op.create_index(op.f('ix_github_branches_project_id'), 'github_branches', ['project_id'], unique=False)
    op.create_index(op.f('ix_github_branches_user_id'), 'github_branches', ['user_id'], unique=False)
    op.create_index('ix_github_branches_project_branch_user', 'github_branches', ['project_id', 'branch_name', 'user_id'], unique=True)

    op.create_table('github_logs',
    sa.Column('id', sa.Uuid(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('project_id', sa.Uuid(), nullable=False),
    sa.Column('user_id', sa.Uuid(), nullable=True),
    sa.Column('agreement_id', sa.Uuid(), nullable=True),
    sa.Column('commit_sha', sqlmodel.sql.sqltypes.AutoString(length=40), nullable=False),
    sa.Column('commit_url', sqlmodel.sql.sqltypes.AutoString(length=500), nullable=True),
    sa.Column('commit_message', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
    sa.Column('raw_author_identifier', sqlmodel.sql.sqltypes.AutoString(length=255), nullable=True),
    sa.Column('commit_date', sa.DateTime(timezone=True), nullable=True),
    sa.Column('lines_added', sa.Integer(), nullable=False),
    sa.Column('lines_removed', sa.Integer(), nullable=False),
    sa.Column('changed_files', postgresql.JSONB(astext_type=sa.Text()), server_default=sa.text("'[]'::jsonb"), nullable=True, comment='Array of changed files: [{filename, status, additions, deletions, patch}]'),
    sa.ForeignKeyConstraint(['agreement_id'], ['agreements.id'], ),
    sa.ForeignKeyConstraint(['project_id'], ['projects.id'], ),
    sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_github_logs_id'), 'github_logs', ['id'], unique=False)
    op.create_index(op.f('ix_github_logs_project_id'), 'github_logs', ['project_id'], unique=False)
    op.create_index(op.f('ix_github_logs_user_id'), 'github_logs', ['user_id'], unique=False)
    op.create_index(op.f('ix_github_logs_agreement_id'), 'github_logs', ['agreement_id'], unique=False)
    op.create_index('ix_github_logs_commit_sha', 'github_logs', ['commit_sha'], unique=True)
    op.create_index('ix_github_logs_project_commit_date', 'github_logs', ['project_id', 'commit_date'], unique=False)

    op.create_table('github_branch_logs',
    sa.Column('id', sa.Uuid(), server_default=sa.text('gen_random_uuid()'), nullable=False),
    sa.Column('github_branch_id', sa.Uuid(), nullable=False),
    sa.Column('github_log_id', sa.Uuid(), nullable=False),
    sa.ForeignKeyConstraint(['github_branch_id'], ['github_branches.id'], ),
    sa.ForeignKeyConstraint(['github_log_id'], ['github_logs.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_github_branch_logs_github_branch_id'), 'github_branch_logs', ['github_branch_id'], unique=False)
    op.create_index(op.f('ix_github_branch_logs_github_log_id'), 'github_branch_logs', ['github_log_id'], unique=False)
    op.create_index('ix_github_branch_logs_branch_log', 'github_branch_logs', ['github_branch_id', 'github_log_id'], unique=True)


def downgrade() -> None:
    op.drop_index('ix_github_branch_logs_branch_log', table_name='github_branch_logs')
    op.drop_index(op.f('ix_github_branch_logs_github_log_id'), table_name='github_branch_logs')
    op.drop_index(op.f('ix_github_branch_logs_github_branch_id'), table_name='github_branch_logs')
    op.drop_table('github_branch_logs')
    op.drop_index('ix_github_logs_project_commit_date', table_name='github_logs')
    op.drop_index('ix_github_logs_commit_sha', table_name='github_logs')
    op.drop_index(op.f('ix_github_logs_agreement_id'), table_name='github_logs')
    op.drop_index(op.f('ix_github_logs_user_id'), table_name='github_logs')
    op.drop_index(op.f('ix_github_logs_project_id'), table_name='github_logs')
    op.drop_index(op.f('ix_github_logs_id'), table_name='github_logs')
    op.drop_table('github_logs')
    op.drop_index('ix_github_branches_project_branch_user', table_name='github_branches')
    op.drop_index(op.f('ix_github_branches_user_id'), table_name='github_branches')
    op.drop_index(op.f('ix_github_branches_project_id'), table_name='github_branches')
    op.drop_index(op.f('ix_github_branches_id'), table_name='github_branches')
    op.drop_table('github_branches')
    op.drop_index(op.f('ix_agreement_participants_user_id'), table_name='agreement_participants')
    op.drop_index('ix_agreement_participants_agreement_user', table_name='agreement_participants')
    op.drop_table('agreement_participants')
    op.drop_index(op.f('ix_agreements_project_id'), table_name='agreements')
    op.drop_table('agreements')
    op.drop_index(op.f('ix_projects_user_id'), table_name='projects')
    op.drop_index(op.f('ix_projects_id'), table_name='projects')
    op.drop_table('projects')
    op.drop_index(op.f('ix_users_github_username'), table_name='users')
    op.drop_index(op.f('ix_users_email'), table_name='users')
    op.drop_index(op.f('ix_users_id'), table_name='users')
    op.drop_table('users')
