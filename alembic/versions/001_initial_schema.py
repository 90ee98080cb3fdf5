"""Initial schema for SSS Workforce

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LOG_ID = sa.BigInteger().with_variant(sa.Integer(), 'sqlite')


def upgrade() -> None:
    # Identity
    op.create_table(
        'users',
        sa.Column('id', sa.String(36), primary_key=True),
        sa.Column('email', sa.String(256), nullable=False, unique=True),
        sa.Column('user_name', sa.String(256), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(200), nullable=True),
        sa.Column('employee_code', sa.String(50), nullable=True, unique=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table(
        'user_roles',
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('role', sa.String(50), primary_key=True),
    )

    op.create_table(
        'user_tokens',
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('login_provider', sa.String(128), primary_key=True),
        sa.Column('name', sa.String(128), primary_key=True),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint('user_id', 'login_provider', 'name', name='uq_user_token_slot'),
    )

    # Token revocation (database backend)
    op.create_table(
        'revoked_tokens',
        sa.Column('jti', sa.String(64), primary_key=True),
        sa.Column('user_id', sa.String(36), nullable=True),
        sa.Column('revoked_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_revoked_tokens_user_id', 'revoked_tokens', ['user_id'])
    op.create_index('ix_revoked_tokens_expires_at', 'revoked_tokens', ['expires_at'])

    op.create_table(
        'issued_tokens',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('jti', sa.String(64), nullable=False, unique=True),
        sa.Column('issued_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_issued_tokens_user_id', 'issued_tokens', ['user_id'])
    op.create_index('ix_issued_tokens_expires_at', 'issued_tokens', ['expires_at'])

    # Request ledger
    op.create_table(
        'request_logs',
        sa.Column('id', LOG_ID, primary_key=True, autoincrement=True),
        sa.Column('ip_address', sa.String(45), nullable=False),
        sa.Column('user_id', sa.String(450), nullable=True),
        sa.Column('endpoint', sa.String(200), nullable=False),
        sa.Column('http_method', sa.String(10), nullable=False),
        sa.Column('request_hash', sa.String(64), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('response_status_code', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('response_time_ms', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('is_spam_detected', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('spam_reason', sa.String(100), nullable=True),
        sa.Column('requests_in_last_minute', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('requests_in_last_hour', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('duplicate_request_count', sa.Integer(), nullable=False, server_default='0'),
    )
    op.create_index('ix_request_logs_ip_timestamp', 'request_logs', ['ip_address', 'timestamp'])
    op.create_index('ix_request_logs_user_timestamp', 'request_logs', ['user_id', 'timestamp'])
    op.create_index('ix_request_logs_hash_timestamp', 'request_logs', ['request_hash', 'timestamp'])
    op.create_index('ix_request_logs_timestamp', 'request_logs', ['timestamp'])

    # Duplicate detection
    op.create_table(
        'duplicate_detection_logs',
        sa.Column('id', LOG_ID, primary_key=True, autoincrement=True),
        sa.Column('entity_type', sa.String(100), nullable=False),
        sa.Column('entity_id', sa.String(50), nullable=False),
        sa.Column('data_hash', sa.String(64), nullable=False),
        sa.Column('detected_at', sa.DateTime(), nullable=False),
        sa.Column('user_id', sa.String(450), nullable=True),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('original_data', sa.Text(), nullable=True),
        sa.Column('duplicate_data', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('detection_method', sa.String(50), nullable=True),
        sa.Column('was_blocked', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_duplicate_logs_hash_type', 'duplicate_detection_logs', ['data_hash', 'entity_type', 'detected_at'])
    op.create_index('ix_duplicate_logs_user', 'duplicate_detection_logs', ['user_id', 'detected_at'])
    op.create_index('ix_duplicate_logs_ip', 'duplicate_detection_logs', ['ip_address', 'detected_at'])

    # Audit trail
    op.create_table(
        'audit_logs',
        sa.Column('id', LOG_ID, primary_key=True, autoincrement=True),
        sa.Column('table_name', sa.String(100), nullable=False),
        sa.Column('record_id', sa.String(50), nullable=False),
        sa.Column('action', sa.String(50), nullable=False),
        sa.Column('timestamp', sa.DateTime(), nullable=False),
        sa.Column('user_id', sa.String(450), nullable=True),
        sa.Column('user_name', sa.String(256), nullable=True),
        sa.Column('ip_address', sa.String(45), nullable=True),
        sa.Column('old_values', sa.Text(), nullable=True),
        sa.Column('new_values', sa.Text(), nullable=True),
        sa.Column('changed_fields', sa.Text(), nullable=True),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('application_name', sa.String(100), nullable=True),
        sa.Column('user_agent', sa.String(500), nullable=True),
        sa.Column('risk_level', sa.String(20), nullable=True),
        sa.Column('is_suspicious_activity', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('security_notes', sa.Text(), nullable=True),
    )
    op.create_index('ix_audit_logs_user_timestamp', 'audit_logs', ['user_id', 'timestamp'])
    op.create_index('ix_audit_logs_ip_timestamp', 'audit_logs', ['ip_address', 'timestamp'])
    op.create_index('ix_audit_logs_table_record', 'audit_logs', ['table_name', 'record_id'])

    # Departments
    op.create_table(
        'departments',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('department_code', sa.String(20), nullable=True, unique=True),
        sa.Column('description', sa.String(500), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table('departments')
    op.drop_table('audit_logs')
    op.drop_table('duplicate_detection_logs')
    op.drop_table('request_logs')
    op.drop_table('issued_tokens')
    op.drop_table('revoked_tokens')
    op.drop_table('user_tokens')
    op.drop_table('user_roles')
    op.drop_table('users')
