"""Recipe model and its ordered child rows."""

from sqlalchemy import (
    Boolean,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    true,
)
from sqlalchemy.orm import relationship

from src.database import Base
from src.models.mixins import SoftDeleteMixin, TimestampMixin, UUIDPrimaryKeyMixin


class Recipe(Base, UUIDPrimaryKeyMixin, TimestampMixin, SoftDeleteMixin):
    """Canonical recipe record produced by the import pipeline."""

    __tablename__ = "recipes"

    name = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    prep_time_minutes = Column(Integer, nullable=True)
    cook_time_minutes = Column(Integer, nullable=True)
    total_time_minutes = Column(Integer, nullable=True)
    servings = Column(Integer, nullable=True)
    source_repository = Column(Text, nullable=True, index=True)
    original_filename = Column(Text, nullable=True)
    # Weak back-reference: no foreign key so removing a batch never touches recipes
    import_batch_id = Column(String(36), nullable=True, index=True)

    # Owned by external collaborators
    is_public = Column(Boolean, nullable=False, default=True, server_default=true())
    rating = Column(Float, nullable=True)

    # Relationships
    ingredient_rows = relationship(
        "RecipeIngredient",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.position",
        lazy="selectin",
    )
    step_rows = relationship(
        "RecipeStep",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeStep.step_number",
        lazy="selectin",
    )
    tag_rows = relationship(
        "RecipeTag",
        back_populates="recipe",
        cascade="all, delete-orphan",
        order_by="RecipeTag.position",
        lazy="selectin",
    )

    __table_args__ = (Index("ix_recipes_created_at", "created_at"),)

    @property
    def ingredients(self) -> list[str]:
        return [row.text for row in self.ingredient_rows]

    @property
    def directions(self) -> list[str]:
        return [row.text for row in self.step_rows]

    @property
    def tags(self) -> list[str]:
        return [row.name for row in self.tag_rows]


class RecipeIngredient(Base):
    """Free-form ingredient line within a recipe."""

    __tablename__ = "recipe_ingredients"

    id = Column(Integer, primary_key=True, index=True)
    recipe_id = Column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)

    recipe = relationship("Recipe", back_populates="ingredient_rows")


class RecipeStep(Base):
    """One direction step; step_number starts at 1."""

    __tablename__ = "recipe_steps"

    id = Column(Integer, primary_key=True, index=True)
    recipe_id = Column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_number = Column(Integer, nullable=False)
    text = Column(Text, nullable=False)

    recipe = relationship("Recipe", back_populates="step_rows")


class RecipeTag(Base):
    """Case-preserved tag attached to a recipe."""

    __tablename__ = "recipe_tags"

    id = Column(Integer, primary_key=True, index=True)
    recipe_id = Column(
        String(36), ForeignKey("recipes.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position = Column(Integer, nullable=False)
    name = Column(String(100), nullable=False, index=True)

    recipe = relationship("Recipe", back_populates="tag_rows")

    __table_args__ = (UniqueConstraint("recipe_id", "name", name="uq_recipe_tag"),)
