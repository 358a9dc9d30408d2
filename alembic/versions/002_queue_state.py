"""Queue-wide state shared by worker processes

Revision ID: 002
Revises: 001
Create Date: 2026-02-02 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    if "orchestration_queue_state" in inspector.get_table_names():
        return

    queue_state = op.create_table(
        "orchestration_queue_state",
        sa.Column("name", sa.Text, primary_key=True),
        sa.Column("is_paused", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.bulk_insert(queue_state, [{"name": "orchestration", "is_paused": False}])
    op.create_index("idx_queue_started_at", "orchestration_queue", ["started_at"])


def downgrade() -> None:
    op.drop_index("idx_queue_started_at", table_name="orchestration_queue")
    op.drop_table("orchestration_queue_state")
