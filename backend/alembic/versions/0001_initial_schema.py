"""initial sharegate schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def _soft_delete() -> list[sa.Column]:
    return [
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('email', sa.String(255), nullable=False, unique=True),
        sa.Column('full_name', sa.String(255), nullable=True),
        sa.Column('role', sa.String(32), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'group_memberships',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('group_name', sa.String(128), nullable=False),
        sa.UniqueConstraint('user_id', 'group_name', name='uq_group_membership_user_group'),
    )
    op.create_table(
        'storage_providers',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('provider_type', sa.String(32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'storage_buckets',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('path', sa.String(255), nullable=False),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('storage_providers.id'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'credentials',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('key', sa.String(64), nullable=False, unique=True),
        sa.Column('secret_hash', sa.String(255), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('max_permission', sa.Integer(), nullable=True),
        sa.Column('allowed_provider_ids', sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'bucket_permissions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('bucket_id', sa.Integer(), sa.ForeignKey('storage_buckets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('subject_type', sa.String(16), nullable=False),
        sa.Column('subject_id', sa.String(128), nullable=False),
        sa.Column('permission', sa.Integer(), nullable=False),
        sa.Column('granted_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('bucket_id', 'subject_type', 'subject_id', name='uq_bucket_permission_subject'),
    )
    op.create_table(
        'credential_bucket_permissions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('credential_id', sa.Integer(), sa.ForeignKey('credentials.id', ondelete='CASCADE'), nullable=False),
        sa.Column('bucket_id', sa.Integer(), sa.ForeignKey('storage_buckets.id', ondelete='CASCADE'), nullable=False),
        sa.Column('permission', sa.Integer(), nullable=False),
        sa.Column('granted_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint('credential_id', 'bucket_id', name='uq_credential_bucket_permission'),
    )
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.String(1000), nullable=True),
        sa.Column('parent_id', sa.Integer(), sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'documents',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('file_name', sa.String(255), nullable=False),
        sa.Column('file_size_bytes', sa.BigInteger(), nullable=True),
        sa.Column('category_id', sa.Integer(), sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('bucket_id', sa.Integer(), sa.ForeignKey('storage_buckets.id'), nullable=False),
        sa.Column('storage_provider_id', sa.Integer(), sa.ForeignKey('storage_providers.id'), nullable=False),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        'document_shares',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('document_id', sa.String(36), sa.ForeignKey('documents.id', ondelete='CASCADE'), nullable=False),
        sa.Column('share_code', sa.String(64), nullable=False, unique=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_via_credential_id', sa.Integer(), sa.ForeignKey('credentials.id'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('requires_approval', sa.Boolean(), nullable=True),
        sa.Column('approval_status', sa.String(16), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'approval_policies',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('description', sa.String(1000), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('is_system', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('priority', sa.Integer(), nullable=True),
        sa.Column('require_approval', sa.Boolean(), nullable=True),
        sa.Column('approval_timeout_hours', sa.Integer(), nullable=True),
        sa.Column('required_approval_count', sa.Integer(), nullable=True),
        sa.Column('category_ids', sa.JSON(), nullable=True),
        sa.Column('provider_ids', sa.JSON(), nullable=True),
        sa.Column('user_ids', sa.JSON(), nullable=True),
        sa.Column('credential_ids', sa.JSON(), nullable=True),
        sa.Column('max_file_size_bytes', sa.BigInteger(), nullable=True),
        sa.Column('file_types', sa.JSON(), nullable=True),
        sa.Column('approver_ids', sa.JSON(), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        *_soft_delete(),
    )
    op.create_index(
        'uq_approval_policies_single_system',
        'approval_policies',
        ['is_system'],
        unique=True,
        postgresql_where=sa.text('is_system'),
    )
    op.create_table(
        'approval_settings',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('version', sa.Integer(), nullable=False, unique=True),
        sa.Column('is_current', sa.Boolean(), nullable=False),
        sa.Column('force_approval_for_all', sa.Boolean(), nullable=True),
        sa.Column('force_all_enabled_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('force_all_enabled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('force_all_reason', sa.String(500), nullable=True),
        sa.Column('force_approval_for_large_files', sa.Boolean(), nullable=True),
        sa.Column('large_file_threshold_bytes', sa.BigInteger(), nullable=True),
        sa.Column('default_expiration_days', sa.Integer(), nullable=True),
        sa.Column('default_required_approvals', sa.Integer(), nullable=True),
        sa.Column('notifications_enabled', sa.Boolean(), nullable=True),
        sa.Column('created_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column('retired_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_table(
        'share_approval_requests',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('share_id', sa.String(36), sa.ForeignKey('document_shares.id', ondelete='CASCADE'), nullable=False),
        sa.Column('policy_id', sa.Integer(), sa.ForeignKey('approval_policies.id'), nullable=False),
        sa.Column('status', sa.String(16), nullable=False),
        sa.Column('request_reason', sa.Text(), nullable=True),
        sa.Column('final_comment', sa.Text(), nullable=True),
        sa.Column('requested_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('requested_via_credential_id', sa.Integer(), sa.ForeignKey('credentials.id'), nullable=True),
        sa.Column('required_approval_count', sa.Integer(), nullable=False),
        sa.Column('current_approval_count', sa.Integer(), nullable=False),
        sa.Column('assigned_approver_ids', sa.JSON(), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=True),
        sa.Column('deadline', sa.DateTime(timezone=True), nullable=False),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        *_soft_delete(),
    )
    op.create_index(
        'ix_share_approval_requests_status_deadline',
        'share_approval_requests',
        ['status', 'deadline'],
    )
    op.create_table(
        'approval_decisions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'request_id', sa.String(36),
            sa.ForeignKey('share_approval_requests.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('approver_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('decision', sa.String(16), nullable=False),
        sa.Column('comment', sa.Text(), nullable=True),
        sa.Column('decided_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('request_id', 'approver_id', name='uq_approval_decision_request_approver'),
    )
    op.create_table(
        'approval_history',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            'request_id', sa.String(36),
            sa.ForeignKey('share_approval_requests.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('action', sa.String(16), nullable=False),
        sa.Column('actor_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('timestamp', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_approval_history_request_id', 'approval_history', ['request_id'])


def downgrade() -> None:
    op.drop_index('ix_approval_history_request_id', table_name='approval_history')
    op.drop_table('approval_history')
    op.drop_table('approval_decisions')
    op.drop_index('ix_share_approval_requests_status_deadline', table_name='share_approval_requests')
    op.drop_table('share_approval_requests')
    op.drop_table('approval_settings')
    op.drop_index('uq_approval_policies_single_system', table_name='approval_policies')
    op.drop_table('approval_policies')
    op.drop_table('document_shares')
    op.drop_table('documents')
    op.drop_table('categories')
    op.drop_table('credential_bucket_permissions')
    op.drop_table('bucket_permissions')
    op.drop_table('credentials')
    op.drop_table('storage_buckets')
    op.drop_table('storage_providers')
    op.drop_table('group_memberships')
    op.drop_table('users')
