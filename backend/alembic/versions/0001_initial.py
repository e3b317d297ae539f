"""Initial database schema."""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def _json_type():
    from sqlalchemy.dialects import postgresql

    return sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _timestamps(with_updated: bool = True):
    cols = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=False),
    ]
    if with_updated:
        cols.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), server_onupdate=sa.text("CURRENT_TIMESTAMP"), nullable=False),
        )
    return cols


def _item_columns(required_name: bool):
    return [
        sa.Column("name", sa.String(length=255), nullable=not required_name),
        sa.Column("display_name_ko", sa.String(length=255)),
        sa.Column("category", sa.String(length=64)),
        sa.Column("exam_type", sa.String(length=64)),
        sa.Column("default_unit", sa.String(length=64)),
        sa.Column("organ_tags", _json_type()),
        sa.Column("description_common", sa.Text),
        sa.Column("description_high", sa.Text),
        sa.Column("description_low", sa.Text),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, index=True),
        sa.Column("name", sa.String(length=120)),
        sa.Column("is_admin", sa.Boolean, server_default=sa.false(), nullable=False),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "standard_items_master",
        sa.Column("id", sa.String(length=36), primary_key=True),
        *_item_columns(required_name=True),
        sa.Column("sort_order", sa.Integer),
        *_timestamps(),
        sa.UniqueConstraint("name", name="uq_standard_items_master_name"),
    )
    op.create_index("ix_standard_items_master_name", "standard_items_master", ["name"])
    op.create_index("ix_standard_items_master_category", "standard_items_master", ["category"])

    op.create_table(
        "user_standard_items",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("master_item_id", sa.String(length=36), sa.ForeignKey("standard_items_master.id", ondelete="CASCADE"), index=True),
        *_item_columns(required_name=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "master_item_id", name="uq_user_standard_items_override"),
    )

    op.create_table(
        "item_aliases_master",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("alias", sa.String(length=255), nullable=False, index=True),
        sa.Column("canonical_name", sa.String(length=255), nullable=False),
        sa.Column("source_hint", sa.String(length=255)),
        sa.Column("standard_item_id", sa.String(length=36), sa.ForeignKey("standard_items_master.id"), nullable=False, index=True),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint("alias", name="uq_item_aliases_master_alias"),
    )

    op.create_table(
        "user_item_aliases",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("alias", sa.String(length=255), nullable=False, index=True),
        sa.Column("canonical_name", sa.String(length=255), nullable=False),
        sa.Column("source_hint", sa.String(length=255)),
        sa.Column("standard_item_id", sa.String(length=36), nullable=False, index=True),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint("user_id", "alias", name="uq_user_item_aliases_user_alias"),
    )

    op.create_table(
        "item_mappings_master",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("raw_name", sa.String(length=255), nullable=False),
        sa.Column("standard_item_id", sa.String(length=36), nullable=False, index=True),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint("raw_name", name="uq_item_mappings_master_raw_name"),
    )

    op.create_table(
        "user_item_mappings",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("raw_name", sa.String(length=255), nullable=False),
        sa.Column("standard_item_id", sa.String(length=36), nullable=False, index=True),
        *_timestamps(with_updated=False),
        sa.UniqueConstraint("user_id", "raw_name", name="uq_user_item_mappings_user_raw_name"),
    )

    op.create_table(
        "test_records",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=36), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("test_date", sa.Date, nullable=False),
        sa.Column("hospital_name", sa.String(length=255)),
        sa.Column("machine_type", sa.String(length=255)),
        *_timestamps(with_updated=False),
    )

    op.create_table(
        "test_results",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("record_id", sa.String(length=36), sa.ForeignKey("test_records.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("standard_item_id", sa.String(length=36), nullable=False, index=True),
        sa.Column("value", sa.Float),
        sa.Column("raw_value", sa.Text()),
        sa.Column("value_type", sa.String(length=16)),
        sa.Column("unit", sa.String(length=64)),
        sa.Column("ref_min", sa.Float),
        sa.Column("ref_max", sa.Float),
        sa.Column("ref_text", sa.String(length=255)),
        sa.Column("status", sa.String(length=16), nullable=False, server_default="Unknown"),
        sa.Column("ocr_raw_name", sa.Text),
        *_timestamps(),
    )


def downgrade():
    op.drop_table("test_results")
    op.drop_table("test_records")
    op.drop_table("user_item_mappings")
    op.drop_table("item_mappings_master")
    op.drop_table("user_item_aliases")
    op.drop_table("item_aliases_master")
    op.drop_table("user_standard_items")
    op.drop_index("ix_standard_items_master_category", table_name="standard_items_master")
    op.drop_index("ix_standard_items_master_name", table_name="standard_items_master")
    op.drop_table("standard_items_master")
    op.drop_table("users")
