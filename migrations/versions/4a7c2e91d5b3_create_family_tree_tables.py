"""create family tree tables

Revision ID: 4a7c2e91d5b3
Revises:
Create Date: 2026-10-19 10:12:44.118302

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4a7c2e91d5b3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('members',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('fname', sa.String(length=100), nullable=False),
        sa.Column('lname', sa.String(length=100), nullable=False),
        sa.Column('full_name', sa.String(length=201), nullable=False),
        sa.Column('gender', sa.String(length=10), nullable=False),
        sa.Column('family_branch', sa.String(length=30), nullable=False),
        sa.Column('family_relationship', sa.String(length=30), nullable=False),
        sa.Column('birthday', sa.Date(), nullable=True),
        sa.Column('death_date', sa.Date(), nullable=True),
        sa.Column('summary', sa.Text(), nullable=True),
        sa.Column('image', sa.String(length=500), nullable=True),
        sa.Column('is_user', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('husband_id', sa.Integer(), nullable=True),
        sa.Column('father_id', sa.Integer(), nullable=True),
        sa.Column('mother_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['husband_id'], ['members.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['father_id'], ['members.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['mother_id'], ['members.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('members', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_members_full_name'), ['full_name'], unique=True)
        batch_op.create_index(batch_op.f('ix_members_family_branch'), ['family_branch'], unique=False)
        batch_op.create_index(batch_op.f('ix_members_family_relationship'), ['family_relationship'], unique=False)
        batch_op.create_index(batch_op.f('ix_members_husband_id'), ['husband_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_members_father_id'), ['father_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_members_mother_id'), ['mother_id'], unique=False)

    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=True),
        sa.Column('member_id', sa.Integer(), nullable=True),
        sa.Column('email', sa.String(length=120), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('address', sa.String(length=255), nullable=True),
        sa.Column('family_branch', sa.String(length=30), nullable=True),
        sa.Column('family_relationship', sa.String(length=30), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('roles', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_site_admin', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('failed_login_attempts', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('locked_until', sa.DateTime(), nullable=True),
        sa.Column('reset_password_token', sa.String(length=64), nullable=True),
        sa.Column('reset_password_expires', sa.DateTime(), nullable=True),
        sa.ForeignKeyConstraint(['member_id'], ['members.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_email'), ['email'], unique=True)
        batch_op.create_index(batch_op.f('ix_users_member_id'), ['member_id'], unique=True)
        batch_op.create_index(batch_op.f('ix_users_tenant_id'), ['tenant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_users_reset_password_token'), ['reset_password_token'], unique=True)

    op.create_table('user_permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('entity', sa.String(length=50), nullable=False),
        sa.Column('can_view', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('can_create', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('can_update', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('can_delete', sa.Boolean(), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'entity', name='uq_user_permission_entity')
    )
    with op.batch_alter_table('user_permissions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_user_permissions_user_id'), ['user_id'], unique=False)

    op.create_table('notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('sender_id', sa.Integer(), nullable=True),
        sa.Column('message', sa.String(length=255), nullable=False),
        sa.Column('action', sa.String(length=20), nullable=False),
        sa.Column('entity_type', sa.String(length=50), nullable=False),
        sa.Column('entity_id', sa.Integer(), nullable=True),
        sa.Column('priority', sa.String(length=10), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('read', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    with op.batch_alter_table('notifications', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_notifications_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_notifications_read'), ['read'], unique=False)
        batch_op.create_index(batch_op.f('ix_notifications_created_at'), ['created_at'], unique=False)


def downgrade():
    with op.batch_alter_table('notifications', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_notifications_created_at'))
        batch_op.drop_index(batch_op.f('ix_notifications_read'))
        batch_op.drop_index(batch_op.f('ix_notifications_user_id'))
    op.drop_table('notifications')

    with op.batch_alter_table('user_permissions', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_user_permissions_user_id'))
    op.drop_table('user_permissions')

    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_users_reset_password_token'))
        batch_op.drop_index(batch_op.f('ix_users_tenant_id'))
        batch_op.drop_index(batch_op.f('ix_users_member_id'))
        batch_op.drop_index(batch_op.f('ix_users_email'))
    op.drop_table('users')

    with op.batch_alter_table('members', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_members_mother_id'))
        batch_op.drop_index(batch_op.f('ix_members_father_id'))
        batch_op.drop_index(batch_op.f('ix_members_husband_id'))
        batch_op.drop_index(batch_op.f('ix_members_family_relationship'))
        batch_op.drop_index(batch_op.f('ix_members_family_branch'))
        batch_op.drop_index(batch_op.f('ix_members_full_name'))
    op.drop_table('members')
