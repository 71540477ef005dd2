"""create kv_entry and kv_list_entry tables

Revision ID: 4c7a1e9b2d10
Revises:
Create Date: 2026-10-19 00:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c7a1e9b2d10'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa.inspect(bind).get_table_names())

    if 'kv_entry' not in existing_tables:
        op.create_table(
            'kv_entry',
            sa.Column('key', sa.String(length=128), nullable=False),
            sa.Column('value', sa.Text(), nullable=False),
            sa.PrimaryKeyConstraint('key'),
        )

    if 'kv_list_entry' not in existing_tables:
        op.create_table(
            'kv_list_entry',
            sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
            sa.Column('key', sa.String(length=128), nullable=False),
            sa.Column('value', sa.Text(), nullable=False),
            sa.PrimaryKeyConstraint('id'),
        )
        op.create_index('ix_kv_list_entry_key', 'kv_list_entry', ['key'], unique=False)


def downgrade():
    op.drop_index('ix_kv_list_entry_key', table_name='kv_list_entry')
    op.drop_table('kv_list_entry')
    op.drop_table('kv_entry')
