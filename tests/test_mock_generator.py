"""Tests for the deterministic fallback generator and its helpers."""

from bouchenator.core.models import EFFORT_ORDER
from bouchenator.generation.mock_generator import (
    POOL,
    build_folder_name,
    build_terminal_setup,
    chunk,
    generate_mock_ideas,
    seeded_shuffle,
)
from bouchenator.utils.text import string_hash


class TestSeededShuffle:
    def test_same_seed_same_order(self):
        items = list(range(10))

        assert seeded_shuffle(items, 42) == seeded_shuffle(items, 42)
        assert sorted(seeded_shuffle(items, 42)) == items

    def test_input_is_not_mutated(self):
        items = [1, 2, 3]
        seeded_shuffle(items, 7)

        assert items == [1, 2, 3]

    def test_string_hash_is_stable(self):
        assert string_hash("") == 0
        assert string_hash("a") == 97
        assert string_hash("ab") == 31 * 97 + 98


class TestChunk:
    def test_even_split(self):
        assert chunk([1, 2, 3, 4], 2) == [[1, 2], [3, 4]]

    def test_trailing_chunks_may_be_empty(self):
        assert chunk([1, 2, 3], 5) == [[1], [2], [3], [], []]

    def test_non_positive_count_returns_everything(self):
        assert chunk([1, 2], 0) == [[1, 2]]


class TestMockIdeas:
    def test_three_per_effort_in_order(self):
        ideas = generate_mock_ideas("job", "Globex")

        assert len(ideas) == 15
        assert [i.effort for i in ideas] == [e for e in EFFORT_ORDER for _ in range(3)]
        assert [i.id for i in ideas] == [f"job-{n}" for n in range(15)]

    def test_titles_name_the_company_and_are_unique_per_effort(self):
        ideas = generate_mock_ideas("job", "Globex")

        assert all("Globex" in i.title for i in ideas)
        for effort in EFFORT_ORDER:
            titles = [i.title for i in ideas if i.effort == effort]
            assert len(set(titles)) == 3

    def test_company_name_case_does_not_change_selection(self):
        upper = [i.title.replace("GLOBEX", "x") for i in generate_mock_ideas("a", "GLOBEX")]
        lower = [i.title.replace("globex", "x") for i in generate_mock_ideas("b", "globex")]

        assert upper == lower

    def test_missing_name_defaults(self):
        assert generate_mock_ideas("job", None)[0].title.startswith("Acme")

    def test_pool_covers_every_effort(self):
        assert set(POOL) == set(EFFORT_ORDER)
        assert all(len(templates) >= 3 for templates in POOL.values())


def test_folder_and_terminal_setup():
    folder = build_folder_name("Acme Robotics, Inc.", "Fleet Tracker: Live Map")

    assert folder == "v01-acme-robotics-inc-fleet-tracker-live-map"
    setup = build_terminal_setup(folder).splitlines()
    assert setup[0] == "cd ~/Desktop"
    assert setup[2] == f"mkdir {folder} && cd {folder}"
    assert setup[-1] == "npm run dev"
