"""create profile, room, room_member and ledger_transaction tables

Revision ID: 5b7c1e9d2a40
Revises:
Create Date: 2025-09-14 10:20:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5b7c1e9d2a40'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'profile' not in existing_tables:
        op.create_table(
            'profile',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('display_name', sa.String(length=32), nullable=True),
            sa.Column('avatar_token', sa.String(length=16), nullable=True),
            sa.Column('auth_token', sa.String(length=64), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_profile_auth_token', 'profile', ['auth_token'], unique=True)

    if 'room' not in existing_tables:
        # undoable_transaction_id gets its foreign key once ledger_transaction exists
        op.create_table(
            'room',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('code', sa.String(length=6), nullable=False),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.Column('initial_balance', sa.BigInteger(), nullable=False),
            sa.Column('max_players', sa.Integer(), nullable=False),
            sa.Column('host_profile_id', sa.String(length=36), nullable=False),
            sa.Column('status', sa.String(length=16), nullable=False, server_default='lobby'),
            sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('undoable_transaction_id', sa.String(length=36), nullable=True),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['host_profile_id'], ['profile.id']),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_room_code', 'room', ['code'], unique=True)

    if 'room_member' not in existing_tables:
        op.create_table(
            'room_member',
            sa.Column('id', sa.Integer(), nullable=False),
            sa.Column('room_id', sa.String(length=36), nullable=False),
            sa.Column('profile_id', sa.String(length=36), nullable=False),
            sa.Column('balance', sa.BigInteger(), nullable=False),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column('joined_at', sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(['room_id'], ['room.id']),
            sa.ForeignKeyConstraint(['profile_id'], ['profile.id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('room_id', 'profile_id', name='uq_room_member_room_profile'),
        )
        op.create_index('ix_room_member_room_id', 'room_member', ['room_id'])

    if 'ledger_transaction' not in existing_tables:
        op.create_table(
            'ledger_transaction',
            sa.Column('id', sa.String(length=36), nullable=False),
            sa.Column('room_id', sa.String(length=36), nullable=False),
            sa.Column('seq', sa.Integer(), nullable=False),
            sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
            sa.Column('type', sa.String(length=16), nullable=False),
            sa.Column('from_profile_id', sa.String(length=36), nullable=True),
            sa.Column('to_profile_id', sa.String(length=36), nullable=True),
            sa.Column('amount', sa.BigInteger(), nullable=False),
            sa.Column('note', sa.String(length=140), nullable=True),
            sa.Column('original_transaction_id', sa.String(length=36), nullable=True),
            sa.CheckConstraint('amount > 0', name='ck_ledger_transaction_amount_positive'),
            sa.ForeignKeyConstraint(['room_id'], ['room.id']),
            sa.ForeignKeyConstraint(['from_profile_id'], ['profile.id']),
            sa.ForeignKeyConstraint(['to_profile_id'], ['profile.id']),
            sa.ForeignKeyConstraint(['original_transaction_id'], ['ledger_transaction.id']),
            sa.PrimaryKeyConstraint('id'),
            sa.UniqueConstraint('room_id', 'seq', name='uq_ledger_transaction_room_seq'),
        )
        op.create_index('ix_ledger_transaction_room_id', 'ledger_transaction', ['room_id'])
        with op.batch_alter_table('room') as batch_op:
            batch_op.create_foreign_key(
                'fk_room_undoable_transaction_id', 'ledger_transaction',
                ['undoable_transaction_id'], ['id'],
            )


def downgrade():
    with op.batch_alter_table('room') as batch_op:
        batch_op.drop_constraint('fk_room_undoable_transaction_id', type_='foreignkey')
    op.drop_index('ix_ledger_transaction_room_id', table_name='ledger_transaction')
    op.drop_table('ledger_transaction')
    op.drop_index('ix_room_member_room_id', table_name='room_member')
    op.drop_table('room_member')
    op.drop_index('ix_room_code', table_name='room')
    op.drop_table('room')
    op.drop_index('ix_profile_auth_token', table_name='profile')
    op.drop_table('profile')
