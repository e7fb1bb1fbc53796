"""upload_records

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18

- Create upload_records (slug-addressed text/blob uploads)
- Unique index on slug, plain index on expires_at for sweeping
"""

from alembic import op
import sqlalchemy as sa


revision = "20261018_0001"
down_revision = None
branch_labels = None
depends_on = None


def _has_table(bind, table: str) -> bool:
    insp = sa.inspect(bind)
    return insp.has_table(table)


def upgrade() -> None:
    bind = op.get_bind()
    if _has_table(bind, "upload_records"):
        return

    op.create_table(
        "upload_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("slug", sa.String(32), nullable=False),
        sa.Column("kind", sa.Enum("text", "blob", name="upload_kind"), nullable=False),
        sa.Column("text_content", sa.Text(), nullable=True),
        sa.Column("blob_path", sa.String(512), nullable=True),
        sa.Column("blob_name", sa.String(255), nullable=True),
        sa.Column("blob_mime_type", sa.String(255), nullable=True),
        sa.Column("blob_size", sa.BigInteger(), nullable=True),
        sa.Column("owner_id", sa.Integer(), nullable=True),
        sa.Column("credential_digest", sa.String(255), nullable=True),
        sa.Column("burn_after_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("view_limit", sa.Integer(), nullable=True),
        sa.Column("view_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.CheckConstraint("(text_content IS NULL) <> (blob_path IS NULL)", name="ck_upload_records_one_payload"),
        sa.CheckConstraint("view_limit IS NULL OR view_limit >= 1", name="ck_upload_records_view_limit_positive"),
        sa.CheckConstraint("view_limit IS NULL OR view_count <= view_limit", name="ck_upload_records_view_budget"),
    )
    op.create_index("ix_upload_records_id", "upload_records", ["id"])
    op.create_index("ix_upload_records_slug", "upload_records", ["slug"], unique=True)
    op.create_index("ix_upload_records_owner_id", "upload_records", ["owner_id"])
    op.create_index("ix_upload_records_expires_at", "upload_records", ["expires_at"])


def downgrade() -> None:
    bind = op.get_bind()
    if not _has_table(bind, "upload_records"):
        return
    op.drop_index("ix_upload_records_expires_at", table_name="upload_records")
    op.drop_index("ix_upload_records_owner_id", table_name="upload_records")
    op.drop_index("ix_upload_records_slug", table_name="upload_records")
    op.drop_index("ix_upload_records_id", table_name="upload_records")
    op.drop_table("upload_records")
    sa.Enum(name="upload_kind").drop(bind, checkfirst=True)
