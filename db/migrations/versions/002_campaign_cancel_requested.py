"""Persist cancel requests for running campaigns.

A cancel may arrive at a process that is not running the campaign; the
running process polls this flag.
"""

from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = "002_campaign_cancel_requested"
down_revision = "001_omnichannel_core"
branch_labels = None
depends_on = None


def upgrade():
    op.add_column(
        "campaigns",
        sa.Column("cancel_requested", sa.Boolean(), nullable=False, server_default=sa.false()),
    )


def downgrade():
    op.drop_column("campaigns", "cancel_requested")
