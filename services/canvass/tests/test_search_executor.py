"""
Tests for the search executor against a seeded SQLite directory.
"""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from services.canvass.models import Contact
from services.canvass.schemas.search import SearchRequest
from services.canvass.services.filter_compiler import FilterCompiler
from services.canvass.services.search_executor import SearchExecutor
from services.canvass.tests.conftest import TODAY, make_contact
from services.common.http_errors import StoreError, ValidationError


@pytest.fixture
def executor() -> SearchExecutor:
    return SearchExecutor(FilterCompiler(), page_size=20)


async def _search(executor, session, page=1, **criteria):
    compiled = executor.compiler.compile(SearchRequest(**criteria))
    return await executor.search(session, compiled, page=page, today=TODAY)


def _system_ids(result):
    return [row.system_id for row in result.contacts]


class TestSearchOrderingAndMatching:
    @pytest.mark.asyncio
    async def test_no_criteria_orders_by_recency(self, executor, session, directory):
        result = await _search(executor, session)
        assert result.total == 5
        assert result.page == 1
        assert result.limit == 20
        # margaret was seeded as the most recently updated contact
        assert _system_ids(result) == ["V0005", "V0004", "V0003", "V0002", "V0001"]
        assert all(row.match_tier is None for row in result.contacts)

    @pytest.mark.asyncio
    async def test_last_name_tiers(self, executor, session, directory):
        result = await _search(executor, session, last_name="Smith")
        assert _system_ids(result) == ["V0002", "V0001", "V0005"]
        assert [row.match_tier for row in result.contacts] == [1, 1, 4]
        assert result.contacts[2].match_highlights == ["last_name: Smithers (prefix)"]

    @pytest.mark.asyncio
    async def test_empty_first_name_is_wildcard(self, executor, session, directory):
        wildcard = await _search(executor, session, first_name="", last_name="smith")
        plain = await _search(executor, session, last_name="Smith")
        assert _system_ids(wildcard) == _system_ids(plain)

    @pytest.mark.asyncio
    async def test_nickname_ranks_above_prefix(self, executor, session, directory):
        result = await _search(executor, session, first_name="Bill")
        assert _system_ids(result) == ["V0003", "V0004"]
        assert [row.match_tier for row in result.contacts] == [3, 4]

    @pytest.mark.asyncio
    async def test_alias_match(self, executor, session, directory):
        result = await _search(executor, session, first_name="janie")
        assert _system_ids(result) == ["V0001"]
        row = result.contacts[0]
        assert row.match_tier == 2
        assert row.aliases == ["Janie"]
        assert row.match_highlights == ["first_name: Janie (alias)"]

    @pytest.mark.asyncio
    async def test_exact_alias_beats_nickname(self, executor, session, directory):
        result = await _search(executor, session, first_name="Peggy")
        assert _system_ids(result) == ["V0005"]
        assert result.contacts[0].match_tier == 2

    @pytest.mark.asyncio
    async def test_name_fields_are_and_combined(self, executor, session, directory):
        result = await _search(
            executor, session, first_name="Jane", middle_name="q", last_name="Smith"
        )
        assert _system_ids(result) == ["V0001"]
        assert result.contacts[0].match_tier == 1

        result = await _search(executor, session, first_name="Jane", last_name="Jones")
        assert result.total == 0
        assert result.contacts == []

    @pytest.mark.asyncio
    async def test_non_ascii_names_fold_case(
        self, executor, session_factory, session, directory
    ):
        async with session_factory() as setup:
            setup.add(make_contact("U0001", "Émile", "Ørsted"))
            await setup.commit()

        result = await _search(executor, session, first_name="émile", last_name="ØRSTED")
        assert _system_ids(result) == ["U0001"]
        assert result.contacts[0].match_tier == 1

        result = await _search(executor, session, first_name="ÉM")
        assert _system_ids(result) == ["U0001"]
        assert result.contacts[0].match_tier == 4

    @pytest.mark.asyncio
    async def test_like_wildcards_are_literal(self, executor, session, directory):
        result = await _search(executor, session, last_name="%")
        assert result.total == 0


class TestSearchFilters:
    @pytest.mark.asyncio
    async def test_city_substring(self, executor, session, directory):
        result = await _search(executor, session, city="SPRING")
        assert sorted(_system_ids(result)) == ["V0001", "V0002", "V0004"]

    @pytest.mark.asyncio
    async def test_zip_and_party(self, executor, session, directory):
        assert _system_ids(await _search(executor, session, zip_code="62701")) == [
            "V0001"
        ]
        result = await _search(executor, session, party="DEM")
        assert sorted(_system_ids(result)) == ["V0001", "V0003"]
        result = await _search(executor, session, party="all")
        assert result.total == 5

    @pytest.mark.asyncio
    async def test_supporters_quick_filter(self, executor, session, directory):
        result = await _search(executor, session, quick_filters=["supporters"])
        assert sorted(_system_ids(result)) == ["V0001", "V0003", "V0005"]

    @pytest.mark.asyncio
    async def test_phone_and_email_quick_filters(self, executor, session, directory):
        result = await _search(executor, session, quick_filters=["missing-phone"])
        assert "V0002" not in _system_ids(result)
        assert result.total == 4

        result = await _search(executor, session, quick_filters=["has-email"])
        assert sorted(_system_ids(result)) == ["V0002", "V0005"]

    @pytest.mark.asyncio
    async def test_age_quick_filter(self, executor, session, directory):
        result = await _search(executor, session, quick_filters=["age-18-25"])
        assert sorted(_system_ids(result)) == ["V0003", "V0005"]
        ages = {row.system_id: row.age for row in result.contacts}
        assert ages == {"V0003": 24, "V0005": 19}

    @pytest.mark.asyncio
    async def test_age_boundary(self, executor, session_factory, session, directory):
        async with session_factory() as setup:
            setup.add_all(
                [
                    make_contact(
                        "B0001", "Exactly", "Eighteen", date_of_birth=date(2006, 6, 15)
                    ),
                    make_contact(
                        "B0002", "Almost", "Eighteen", date_of_birth=date(2006, 6, 16)
                    ),
                ]
            )
            await setup.commit()

        result = await _search(executor, session, last_name="Eighteen", min_age="18")
        assert _system_ids(result) == ["B0001"]

        result = await _search(executor, session, last_name="Eighteen", max_age="17")
        assert _system_ids(result) == ["B0002"]

    @pytest.mark.asyncio
    async def test_unknown_birth_date_excluded_by_age_bounds(
        self, executor, session, directory
    ):
        result = await _search(executor, session, min_age="0")
        assert "V0004" not in _system_ids(result)
        assert result.total == 4

    @pytest.mark.asyncio
    async def test_provenance_counts(self, executor, session, directory):
        result = await _search(executor, session)
        rows = {row.system_id: row for row in result.contacts}
        assert rows["V0002"].baseline_phone_count == 1
        assert rows["V0002"].manual_phone_count == 0
        assert rows["V0002"].baseline_email_count == 1
        assert rows["V0005"].manual_email_count == 1
        assert rows["V0005"].baseline_email_count == 0
        assert rows["V0001"].manual_phone_count == 0


@pytest.fixture
async def large_directory(session_factory, directory):
    # Same timestamp for all, so ordering falls through to system_id
    stamp = datetime.now(timezone.utc) - timedelta(days=1)
    async with session_factory() as setup:
        setup.add_all(
            [
                make_contact(f"P{i:04d}", f"Page{i}", "Paginated", updated_at=stamp)
                for i in range(45)
            ]
        )
        await setup.commit()


class TestPagination:
    @pytest.mark.asyncio
    async def test_pages_have_no_gaps_or_repeats(
        self, executor, session, large_directory
    ):
        seen = []
        first = await _search(executor, session, last_name="Paginated")
        assert first.total == 45
        pages = -(-first.total // first.limit)
        for page in range(1, pages + 1):
            result = await _search(executor, session, page=page, last_name="Paginated")
            assert result.total == 45
            seen.extend(_system_ids(result))
        assert len(seen) == 45
        assert len(set(seen)) == 45
        assert seen == sorted(seen)

    @pytest.mark.asyncio
    async def test_page_sizes(self, executor, session, large_directory):
        sizes = []
        for page in (1, 2, 3):
            result = await _search(executor, session, page=page, last_name="Paginated")
            sizes.append(len(result.contacts))
        assert sizes == [20, 20, 5]

    @pytest.mark.asyncio
    async def test_page_past_the_end(self, executor, session, large_directory):
        result = await _search(executor, session, page=9, last_name="Paginated")
        assert result.contacts == []
        assert result.total == 45
        assert result.page == 9

    @pytest.mark.asyncio
    async def test_repeated_reads_are_identical(self, executor, session, large_directory):
        first = await _search(executor, session, page=2)
        second = await _search(executor, session, page=2)
        assert first == second

    @pytest.mark.asyncio
    async def test_page_must_be_positive(self, executor, session, directory):
        with pytest.raises(ValidationError) as exc_info:
            await _search(executor, session, page=0)
        assert exc_info.value.details["field"] == "page"


class TestSearchErrors:
    @pytest.mark.asyncio
    async def test_database_failure_becomes_store_error(self, executor):
        session = AsyncMock()
        session.execute.side_effect = OperationalError("SELECT", {}, Exception("gone"))
        compiled = executor.compiler.compile(SearchRequest(last_name="Smith"))
        with pytest.raises(StoreError) as exc_info:
            await executor.search(session, compiled, today=TODAY)
        assert exc_info.value.status_code == 500
        assert exc_info.value.details["operation"] == "search"


def test_contact_factory_builds_full_name():
    contact = make_contact("X1", "Jane", "Smith", middle_name="Q")
    assert isinstance(contact, Contact)
    assert contact.full_name == "Jane Q Smith"
