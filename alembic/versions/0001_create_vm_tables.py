"""create vm lifecycle tables

Revision ID: 0001
Revises:
Create Date: 2026-10-17 00:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001'
down_revision = None
branch_labels = None
depends_on = None


VM_STATUS = sa.Enum(
    'PENDING', 'PROVISIONING', 'READY', 'ERROR', 'DEPROVISIONED',
    name='vm_status',
)


def upgrade() -> None:
    op.create_table(
        'user_vms',
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=320), nullable=True),
        sa.Column('has_access', sa.Boolean(), nullable=False),
        sa.Column('vm_status', VM_STATUS, nullable=False),
        sa.Column('vm_subdomain', sa.String(length=63), nullable=True),
        sa.Column('vm_ip', sa.String(length=45), nullable=True),
        sa.Column('vm_server_id', sa.String(length=64), nullable=True),
        sa.Column('vm_auth_secret_hash', sa.String(length=128), nullable=True),
        sa.Column('vm_public_key', sa.Text(), nullable=True),
        sa.Column('vm_provisioned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('user_id'),
        sa.UniqueConstraint('vm_subdomain'),
    )
    op.create_index('ix_user_vms_email', 'user_vms', ['email'])
    op.create_index('ix_user_vms_vm_status', 'user_vms', ['vm_status'])

    op.create_table(
        'subdomain_assignments',
        sa.Column('subdomain', sa.String(length=63), nullable=False),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('subdomain'),
    )
    op.create_index('ix_subdomain_assignments_user_id', 'subdomain_assignments', ['user_id'])

    op.create_table(
        'vm_health_failures',
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('consecutive_failures', sa.Integer(), nullable=False),
        sa.Column('last_check', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('user_id'),
    )


def downgrade() -> None:
    op.drop_table('vm_health_failures')
    op.drop_index('ix_subdomain_assignments_user_id', table_name='subdomain_assignments')
    op.drop_table('subdomain_assignments')
    op.drop_index('ix_user_vms_vm_status', table_name='user_vms')
    op.drop_index('ix_user_vms_email', table_name='user_vms')
    op.drop_table('user_vms')
    VM_STATUS.drop(op.get_bind(), checkfirst=True)
