"""Initial schema with job table

Revision ID: 001
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "job",
        sa.Column("id", sa.BigInteger, sa.Identity(), nullable=False),
        sa.Column("submitter_id", sa.BigInteger, nullable=False),
        sa.Column("processor_id", sa.BigInteger, nullable=True),
        sa.Column("command", sa.String(255), nullable=False),
        sa.Column("priority", sa.Integer, nullable=False, server_default="1"),
        sa.Column(
            "creation_timestamp",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("completion_timestamp", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )

    # Queue polling: waiting jobs by priority desc, then FIFO
    op.execute("""
        CREATE INDEX ix_job_queue_poll
        ON job (priority, id)
        WHERE processor_id IS NULL
    """)

    # One active job per processor
    op.execute("""
        CREATE INDEX ix_job_processor_active
        ON job (processor_id)
        WHERE completion_timestamp IS NULL
    """)


def downgrade() -> None:
    op.execute("DROP INDEX IF EXISTS ix_job_processor_active")
    op.execute("DROP INDEX IF EXISTS ix_job_queue_poll")

    op.drop_table("job")
