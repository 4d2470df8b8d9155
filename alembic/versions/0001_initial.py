"""initial

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-16 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

MENU_TYPES = ("closed_conventional", "closed_group", "a_la_carte", "a_la_carte_group", "special")


def upgrade() -> None:
    # The enum type is created with the group_menus table on PostgreSQL
    op.create_table(
        "dish_catalog",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("title_key", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("allergens", sa.JSON(), nullable=True),
        sa.Column("default_supplement_enabled", sa.Boolean(), nullable=True),
        sa.Column("default_supplement_price", sa.Float(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_dish_catalog_id", "dish_catalog", ["id"])
    op.create_index("ix_dish_catalog_title_key", "dish_catalog", ["title_key"], unique=True)

    op.create_table(
        "group_menus",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("menu_title", sa.String(), nullable=False),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=True),
        sa.Column("is_draft", sa.Boolean(), nullable=True),
        sa.Column("menu_type", sa.Enum(*MENU_TYPES, name="menutype"), nullable=True),
        sa.Column("menu_subtitle", sa.JSON(), nullable=True),
        sa.Column("show_dish_images", sa.Boolean(), nullable=True),
        sa.Column("included_coffee", sa.Boolean(), nullable=True),
        sa.Column("beverage", sa.JSON(), nullable=True),
        sa.Column("comments", sa.JSON(), nullable=True),
        sa.Column("min_party_size", sa.Integer(), nullable=True),
        sa.Column("main_dishes_limit", sa.Boolean(), nullable=True),
        sa.Column("main_dishes_limit_number", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("modified_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_group_menus_id", "group_menus", ["id"])

    op.create_table(
        "group_menu_sections",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "menu_id", sa.Integer(), sa.ForeignKey("group_menus.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("kind", sa.String(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=True),
    )
    op.create_index("ix_group_menu_sections_id", "group_menu_sections", ["id"])
    op.create_index("ix_group_menu_sections_menu_id", "group_menu_sections", ["menu_id"])

    op.create_table(
        "group_menu_dishes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "section_id",
            sa.Integer(),
            sa.ForeignKey("group_menu_sections.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "catalog_dish_id",
            sa.Integer(),
            sa.ForeignKey("dish_catalog.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("allergens", sa.JSON(), nullable=True),
        sa.Column("supplement_enabled", sa.Boolean(), nullable=True),
        sa.Column("supplement_price", sa.Float(), nullable=True),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=True),
        sa.Column("position", sa.Integer(), nullable=True),
    )
    op.create_index("ix_group_menu_dishes_id", "group_menu_dishes", ["id"])
    op.create_index("ix_group_menu_dishes_section_id", "group_menu_dishes", ["section_id"])


def downgrade() -> None:
    op.drop_index("ix_group_menu_dishes_section_id", table_name="group_menu_dishes")
    op.drop_index("ix_group_menu_dishes_id", table_name="group_menu_dishes")
    op.drop_table("group_menu_dishes")
    op.drop_index("ix_group_menu_sections_menu_id", table_name="group_menu_sections")
    op.drop_index("ix_group_menu_sections_id", table_name="group_menu_sections")
    op.drop_table("group_menu_sections")
    op.drop_index("ix_group_menus_id", table_name="group_menus")
    op.drop_table("group_menus")
    op.drop_index("ix_dish_catalog_title_key", table_name="dish_catalog")
    op.drop_index("ix_dish_catalog_id", table_name="dish_catalog")
    op.drop_table("dish_catalog")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        postgresql.ENUM(name="menutype").drop(bind, checkfirst=True)
