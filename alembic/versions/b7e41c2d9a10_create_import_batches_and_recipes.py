"""create import batches and recipes

Revision ID: b7e41c2d9a10
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "b7e41c2d9a10"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "import_batches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("repository_url", sa.Text(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("total_recipes", sa.Integer(), nullable=True),
        sa.Column("successful_imports", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_imports", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_log", sa.JSON(), nullable=False),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_by", sa.String(255), nullable=True),
    )
    op.create_index("ix_import_batches_status", "import_batches", ["status"])

    op.create_table(
        "recipes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("prep_time_minutes", sa.Integer(), nullable=True),
        sa.Column("cook_time_minutes", sa.Integer(), nullable=True),
        sa.Column("total_time_minutes", sa.Integer(), nullable=True),
        sa.Column("servings", sa.Integer(), nullable=True),
        sa.Column("source_repository", sa.Text(), nullable=True),
        sa.Column("original_filename", sa.Text(), nullable=True),
        # No foreign key: deleting a batch must not cascade to its recipes
        sa.Column("import_batch_id", sa.String(36), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("rating", sa.Float(), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_recipes_name", "recipes", ["name"])
    op.create_index("ix_recipes_source_repository", "recipes", ["source_repository"])
    op.create_index("ix_recipes_import_batch_id", "recipes", ["import_batch_id"])
    op.create_index("ix_recipes_created_at", "recipes", ["created_at"])

    op.create_table(
        "recipe_ingredients",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column(
            "recipe_id",
            sa.String(36),
            sa.ForeignKey("recipes.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
    )

    op.create_table(
        "recipe_steps",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column(
            "recipe_id",
            sa.String(36),
            sa.ForeignKey("recipes.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("step_number", sa.Integer(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
    )

    op.create_table(
        "recipe_tags",
        sa.Column("id", sa.Integer(), primary_key=True, index=True),
        sa.Column(
            "recipe_id",
            sa.String(36),
            sa.ForeignKey("recipes.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False, index=True),
        sa.UniqueConstraint("recipe_id", "name", name="uq_recipe_tag"),
    )

    # Full-text index matching the search columns (PostgreSQL only)
    if op.get_bind().dialect.name == "postgresql":
        op.execute(
            "CREATE INDEX IF NOT EXISTS ix_recipes_fulltext ON recipes USING GIN "
            "(to_tsvector('simple', name || ' ' || COALESCE(description, '')))"
        )


def downgrade() -> None:
    op.drop_table("recipe_tags")
    op.drop_table("recipe_steps")
    op.drop_table("recipe_ingredients")
    op.drop_index("ix_recipes_created_at", table_name="recipes")
    op.drop_index("ix_recipes_import_batch_id", table_name="recipes")
    op.drop_index("ix_recipes_source_repository", table_name="recipes")
    op.drop_index("ix_recipes_name", table_name="recipes")
    op.drop_table("recipes")
    op.drop_index("ix_import_batches_status", table_name="import_batches")
    op.drop_table("import_batches")
