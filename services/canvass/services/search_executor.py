"""
Search executor for the Canvass Service.

Runs a compiled filter against the contact table and returns one page of
enriched rows. The page query and the count query are built from the same
conditions, and ordering always ends with system_id, so consecutive pages of
an unchanged dataset neither repeat nor skip contacts.
"""

from collections import defaultdict
from datetime import date
from typing import Dict, List, Optional, Sequence

from sqlalchemy import desc, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from services.canvass.models.contact import (
    Contact,
    ContactAlias,
    ContactEmail,
    ContactPhone,
)
from services.canvass.schemas.search import ContactSearchRow, SearchPage
from services.canvass.services.filter_compiler import (
    CompiledFilter,
    FilterCompiler,
    calculate_age,
    utc_today,
)
from services.common.http_errors import StoreError, ValidationError
from services.common.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 20


def _provenance_count(model, manual: bool) -> ColumnElement:
    """Correlated count of a contact's phone or email rows by provenance."""
    return (
        select(func.count(model.id))
        .where(
            model.contact_id == Contact.id,
            model.is_manually_added.is_(manual),
        )
        .correlate(Contact)
        .scalar_subquery()
    )


class SearchExecutor:
    """Executes compiled filters with fixed-size page-numbered pagination."""

    def __init__(
        self,
        compiler: Optional[FilterCompiler] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.compiler = compiler or FilterCompiler()
        self.page_size = page_size

    async def search(
        self,
        session: AsyncSession,
        compiled: CompiledFilter,
        page: int = 1,
        today: Optional[date] = None,
    ) -> SearchPage:
        """
        Return page ``page`` (1-based) of contacts matching ``compiled``.

        A page past the end has no rows but still reports the full total.

        Raises:
            ValidationError: page < 1
            StoreError: the database query failed
        """
        if page < 1:
            raise ValidationError("Page must be 1 or greater", field="page", value=page)
        today = today or utc_today()
        conditions = self.compiler.clauses(compiled, today)

        try:
            total = await self._count(session, conditions)
            rows = await self._fetch_page(session, compiled, conditions, page)
            aliases = await self._aliases_for(session, [row[0].id for row in rows])
        except SQLAlchemyError as e:
            logger.error("Contact search failed", error=str(e), page=page)
            raise StoreError("Contact search failed", operation="search")

        results = [
            self._enrich(compiled, row, aliases.get(row[0].id, []), today)
            for row in rows
        ]
        logger.info(
            "Contact search executed",
            total=total,
            page=page,
            returned=len(results),
            name_criteria=compiled.has_name_criteria,
        )
        return SearchPage(
            contacts=results, total=total, page=page, limit=self.page_size
        )

    async def _count(
        self, session: AsyncSession, conditions: Sequence[ColumnElement]
    ) -> int:
        result = await session.execute(
            select(func.count()).select_from(Contact).where(*conditions)
        )
        return result.scalar() or 0

    async def _fetch_page(
        self,
        session: AsyncSession,
        compiled: CompiledFilter,
        conditions: Sequence[ColumnElement],
        page: int,
    ) -> list:
        query = select(
            Contact,
            _provenance_count(ContactPhone, True).label("manual_phone_count"),
            _provenance_count(ContactPhone, False).label("baseline_phone_count"),
            _provenance_count(ContactEmail, True).label("manual_email_count"),
            _provenance_count(ContactEmail, False).label("baseline_email_count"),
        ).where(*conditions)

        ordering: List[ColumnElement] = []
        tiers = self.compiler.matcher.tier_expressions(compiled.name_fragments)
        if tiers is not None:
            ordering.extend(tiers)
        ordering.extend([desc(Contact.updated_at), Contact.system_id])  # type: ignore[list-item]

        query = (
            query.order_by(*ordering)
            .offset((page - 1) * self.page_size)
            .limit(self.page_size)
        )
        result = await session.execute(query)
        return list(result.all())

    @staticmethod
    async def _aliases_for(
        session: AsyncSession, contact_ids: List[str]
    ) -> Dict[str, List[str]]:
        if not contact_ids:
            return {}
        result = await session.execute(
            select(ContactAlias.contact_id, ContactAlias.alias)
            .where(ContactAlias.contact_id.in_(contact_ids))  # type: ignore[attr-defined]
            .order_by(ContactAlias.alias)
        )
        aliases: Dict[str, List[str]] = defaultdict(list)
        for contact_id, alias in result.all():
            aliases[contact_id].append(alias)
        return aliases

    def _enrich(
        self,
        compiled: CompiledFilter,
        row,
        aliases: List[str],
        today: date,
    ) -> ContactSearchRow:
        contact: Contact = row[0]
        match_tier = None
        highlights: List[str] = []
        if compiled.has_name_criteria:
            match = self.compiler.matcher.match(compiled.name_fragments, contact, aliases)
            if match is not None:
                match_tier = match.tier
                highlights = match.highlights

        return ContactSearchRow(
            id=contact.id,
            system_id=contact.system_id,
            full_name=contact.full_name,
            first_name=contact.first_name,
            middle_name=contact.middle_name,
            last_name=contact.last_name,
            date_of_birth=contact.date_of_birth,
            age=(
                calculate_age(contact.date_of_birth, today)
                if contact.date_of_birth
                else None
            ),
            street_address=contact.street_address,
            city=contact.city,
            state=contact.state,
            zip_code=contact.zip_code,
            district=contact.district,
            precinct=contact.precinct,
            party=contact.party,
            supporter_status=contact.supporter_status,
            volunteer_status=contact.volunteer_status,
            updated_at=contact.updated_at,
            aliases=aliases,
            manual_phone_count=row.manual_phone_count or 0,
            baseline_phone_count=row.baseline_phone_count or 0,
            manual_email_count=row.manual_email_count or 0,
            baseline_email_count=row.baseline_email_count or 0,
            match_tier=match_tier,
            match_highlights=highlights,
        )
