"""Tests for ranked recipe search."""

import threading
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from src.services.errors import QueryValidationError
from src.services.importer import RecipeImporter
from src.services.search import (
    RecipeSearchService,
    build_search_query,
    build_tsquery,
    score_recipe,
    tokenize,
)


def run_search(db, settings, term=None, tags=None, limit=None, offset=0):
    query = build_search_query(term, tags, limit, offset, settings=settings)
    return RecipeSearchService(db).search(query)


def names(results):
    return [ranked.recipe.name for ranked in results]


class TestScoring:
    """Tests for tokenizing and scoring."""

    def test_tokenize(self):
        assert tokenize("Chicken, chicken & Rice!") == ["chicken", "rice"]
        assert tokenize(None) == []
        assert tokenize("  --  ") == []

    def test_tokenize_keeps_words_in_any_script(self):
        assert tokenize("Crème Brûlée") == ["crème", "brûlée"]
        assert tokenize("寿司 Platter") == ["寿司", "platter"]
        assert tokenize("snake_case") == ["snake", "case"]

    def test_accented_whole_word_match(self):
        # Whole name word plus the phrase bonus
        assert score_recipe(["crème"], "Crème Brûlée", None) == 1.5
        assert score_recipe(["crème"], "Creme Brulee", None) == 0.0

    def test_build_tsquery(self):
        assert build_tsquery(["a", "chick"]) == "a | chick:*"
        assert build_tsquery(["寿司"]) == "寿司"

    def test_name_outranks_description(self):
        in_name = score_recipe(["chicken"], "Chicken Soup", None)
        in_description = score_recipe(["chicken"], "Soup", "Made with chicken stock")
        assert in_name > in_description > 0

    def test_whole_word_outranks_prefix(self):
        whole = score_recipe(["chick"], "Chick Pea Curry", None)
        prefix = score_recipe(["chick"], "Chicken Curry", None)
        assert whole > prefix > 0

    def test_short_prefixes_do_not_match(self):
        assert score_recipe(["ch"], "Chicken Curry", None) == 0.0

    def test_no_match(self):
        assert score_recipe(["beef"], "Chicken Curry", "Spicy") == 0.0

    def test_phrase_bonus(self):
        phrase = score_recipe(["green", "curry"], "Thai Green Curry", None)
        scattered = score_recipe(["green", "curry"], "Curry with Green Beans", None)
        assert phrase > scattered


class TestBuildSearchQuery:
    """Tests for search input validation."""

    def test_defaults(self, settings):
        query = build_search_query(None, None, None, settings=settings)
        assert query.term is None
        assert query.tags is None
        assert query.limit == settings.search_default_limit
        assert query.offset == 0

    def test_blank_inputs_mean_no_filter(self, settings):
        query = build_search_query("   ", ["", " "], 10, settings=settings)
        assert query.term is None
        assert query.tags is None

    def test_non_ascii_term_is_accepted(self, settings):
        assert build_search_query("寿司", None, 10, settings=settings).term == "寿司"

    def test_tags_are_deduplicated_in_order(self, settings):
        query = build_search_query(None, ["Quick", " Vegan", "Quick"], 10, settings=settings)
        assert query.tags == ["Quick", "Vegan"]

    @pytest.mark.parametrize(
        "term,tags,limit,offset,message",
        [
            (None, None, 0, 0, "limit must be a positive integer"),
            (None, None, 101, 0, "limit cannot exceed 100"),
            (None, None, 10, -10, "page must not be negative"),
            (None, None, 10, 10_010, "page is too large"),
            ("x" * 201, None, 10, 0, "cannot exceed 200 characters"),
            ("?!", None, 10, 0, "must contain letters or digits"),
            (None, [f"t{i}" for i in range(21)], 10, 0, "at most 20 tags"),
        ],
    )
    def test_rejected_inputs(self, settings, term, tags, limit, offset, message):
        with pytest.raises(QueryValidationError, match=message):
            build_search_query(term, tags, limit, offset, settings=settings)


class TestRecipeSearchService:
    """Tests for evaluating searches against stored recipes."""

    def test_term_and_tag_filter(self, db, settings, make_recipe):
        """Test that only recipes matching the term and carrying a tag are returned."""
        for name in ("Chicken Tikka", "Lemon Chicken", "Chicken Wraps"):
            make_recipe(name, tags=["Quick", "Dinner"])
        for name in ("Chicken Stew", "Chicken Casserole"):
            make_recipe(name, tags=["Slow"])
        make_recipe("Quick Pancakes", tags=["Quick"])

        results = run_search(db, settings, term="chicken", tags=["Quick"])

        assert sorted(names(results)) == ["Chicken Tikka", "Chicken Wraps", "Lemon Chicken"]
        scores = [ranked.similarity_score for ranked in results]
        assert scores == sorted(scores, reverse=True)
        assert all(score > 0 for score in scores)

    def test_tags_match_any(self, db, settings, make_recipe):
        make_recipe("Salad", tags=["Vegan"])
        make_recipe("Toast", tags=["Breakfast"])
        make_recipe("Steak", tags=["Dinner"])

        results = run_search(db, settings, tags=["Vegan", "Breakfast"])

        assert sorted(names(results)) == ["Salad", "Toast"]

    def test_tags_are_case_sensitive(self, db, settings, make_recipe):
        make_recipe("Salad", tags=["Vegan"])
        assert run_search(db, settings, tags=["vegan"]) == []

    def test_relevance_order(self, db, settings, make_recipe):
        make_recipe("Vegetable Soup", description="Can use chicken stock")
        make_recipe("Chicken Soup")

        results = run_search(db, settings, term="chicken")

        assert names(results) == ["Chicken Soup", "Vegetable Soup"]
        assert results[0].similarity_score > results[1].similarity_score

    def test_equal_scores_order_by_rating(self, db, settings, make_recipe):
        make_recipe("Chicken Pie", rating=3.0)
        make_recipe("Chicken Rice")
        make_recipe("Chicken Wings", rating=5.0)

        results = run_search(db, settings, term="chicken")

        assert names(results) == ["Chicken Wings", "Chicken Pie", "Chicken Rice"]

    def test_no_term_orders_by_rating_then_newest(self, db, settings, make_recipe):
        make_recipe("Old Favourite", rating=4.0)
        make_recipe("Unrated")
        make_recipe("New Favourite", rating=4.0)
        make_recipe("Best", rating=5.0)

        results = run_search(db, settings)

        assert names(results) == ["Best", "New Favourite", "Old Favourite", "Unrated"]
        assert all(ranked.similarity_score == 0.0 for ranked in results)

    def test_results_are_stable(self, db, settings, make_recipe):
        for index in range(5):
            make_recipe(f"Chicken Dish {index}")

        first = [ranked.recipe.id for ranked in run_search(db, settings, term="chicken dish")]
        second = [ranked.recipe.id for ranked in run_search(db, settings, term="chicken dish")]

        assert first == second

    def test_pagination(self, db, settings, make_recipe):
        for index in range(5):
            make_recipe(f"Dish {index}", rating=float(index))

        page = run_search(db, settings, limit=2, offset=2)

        assert names(page) == ["Dish 2", "Dish 1"]

    def test_pagination_with_term(self, db, settings, make_recipe):
        for index in range(5):
            make_recipe(f"Soup {index}", rating=float(index))

        page = run_search(db, settings, term="soup", limit=2, offset=4)

        assert names(page) == ["Soup 0"]

    def test_private_and_deleted_recipes_are_hidden(self, db, settings, make_recipe):
        make_recipe("Chicken Visible")
        make_recipe("Chicken Private", is_public=False)
        deleted = make_recipe("Chicken Deleted")
        deleted.soft_delete()
        db.commit()

        assert names(run_search(db, settings, term="chicken")) == ["Chicken Visible"]
        assert names(run_search(db, settings)) == ["Chicken Visible"]

    def test_no_matches(self, db, settings, make_recipe):
        make_recipe("Chicken Soup")
        assert run_search(db, settings, term="beef") == []

    def test_non_ascii_terms(self, db, settings, make_recipe):
        make_recipe("寿司 Platter")
        make_recipe("Crème Brûlée", rating=4.5)
        make_recipe("Toast")

        assert names(run_search(db, settings, term="寿司")) == ["寿司 Platter"]
        results = run_search(db, settings, term="crème")
        assert names(results) == ["Crème Brûlée"]
        assert results[0].similarity_score == 1.5

    def test_postgresql_narrows_with_fulltext_index(self):
        """Test that PostgreSQL candidates come from the indexed tsvector expression."""
        session = MagicMock()
        session.get_bind.return_value.dialect.name = "postgresql"

        clause = RecipeSearchService(session)._match_clause(["chick", "pie"])
        sql = str(
            clause.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True})
        )

        assert (
            "to_tsvector('simple', recipes.name || ' ' || coalesce(recipes.description, ''))"
            in sql
        )
        assert "@@ to_tsquery('simple', 'chick:* | pie:*')" in sql

    def test_search_during_import_sees_only_complete_recipes(
        self, session_factory, settings, tracker, recipe_repository
    ):
        """Test that a recipe is either absent or complete while a batch is importing."""
        files = {
            f"roast{i:02d}.json": {
                "name": f"Slow Roast {i}",
                "ingredients": ["lamb", "garlic", "rosemary"],
                "directions": ["Season", "Roast low"],
                "tags": ["Slow"],
            }
            for i in range(30)
        }
        root = recipe_repository(files)
        importer = RecipeImporter(
            session_factory=session_factory,
            settings=settings,
            tracker=tracker,
            dispatch=lambda batch_id: None,
        )
        batch_id = importer.start_import(str(root))
        worker = threading.Thread(target=importer.run, args=(batch_id,))
        worker.start()

        counts = []
        while True:
            finished = not worker.is_alive()
            session = session_factory()
            try:
                results = run_search(session, settings, term="roast", tags=["Slow"], limit=100)
                for ranked in results:
                    assert ranked.recipe.ingredients == ["lamb", "garlic", "rosemary"]
                    assert ranked.recipe.directions == ["Season", "Roast low"]
                    assert ranked.recipe.tags == ["Slow"]
                counts.append(len(results))
            finally:
                session.close()
            if finished:
                break
        worker.join()

        assert counts[-1] == 30
        assert counts == sorted(counts)

    def test_result_schema(self, db, settings, make_recipe):
        make_recipe(
            "Chicken Soup",
            prep_time_minutes=10,
            cook_time_minutes=30,
            servings=4,
            tags=["Comfort"],
        )

        result = run_search(db, settings, term="chicken")[0].to_result()

        assert result.name == "Chicken Soup"
        assert result.total_time_minutes == 40
        assert result.tags == ["Comfort"]
        assert result.source_repository == "test-repo"
        assert result.similarity_score > 0
