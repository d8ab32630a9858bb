"""
Compile search requests into reusable filters.

Compilation validates and normalizes the raw request once. The resulting
CompiledFilter is a plain value: it can be signed into a filter token and
evaluated again for any later page. Date-dependent criteria (ages) stay
symbolic until evaluation, which takes an explicit ``today``.
"""

from datetime import date, datetime, timezone
from typing import Dict, FrozenSet, List, Optional, Sequence, Tuple, Union

from itsdangerous import BadSignature
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import exists, func, select
from sqlalchemy.sql.elements import ColumnElement

from services.canvass.models.contact import (
    Contact,
    ContactEmail,
    ContactPhone,
    SupporterStatus,
)
from services.canvass.schemas.search import SearchRequest
from services.canvass.services.name_matcher import NameFragment, NameMatcher
from services.common.http_errors import ValidationError
from services.common.logging_config import get_logger
from services.common.pagination import TokenManager

logger = get_logger(__name__)

SUPPORTERS_GROUP: FrozenSet[str] = frozenset(
    {
        SupporterStatus.CONFIRMED_SUPPORTER.value,
        SupporterStatus.LIKELY_SUPPORTER.value,
    }
)

# Quick filter name -> criteria it adds
QUICK_FILTERS: Dict[str, Dict[str, object]] = {
    "supporters": {"supporter_statuses": SUPPORTERS_GROUP},
    "missing-phone": {"missing_phone": True},
    "has-email": {"has_email": True},
    "age-18-25": {"min_age": 18, "max_age": 25},
}

# Value older clients sent for "any kind of supporter"
LEGACY_SUPPORTER_VALUE = "supporter"

WILDCARD_PARTIES = {"", "all"}


class CompiledFilter(BaseModel):
    """Validated, normalized search criteria."""

    model_config = ConfigDict(frozen=True)

    name_fragments: Tuple[NameFragment, ...] = ()
    city: Optional[str] = None
    zip_code: Optional[str] = None
    party: Optional[str] = None
    # None means no constraint; an empty tuple matches nothing
    supporter_statuses: Optional[Tuple[str, ...]] = None
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    missing_phone: bool = False
    has_email: bool = False
    quick_filters: Tuple[str, ...] = ()

    @property
    def has_name_criteria(self) -> bool:
        return bool(self.name_fragments)


def calculate_age(date_of_birth: date, today: date) -> int:
    """Whole years between ``date_of_birth`` and ``today``."""
    before_birthday = (today.month, today.day) < (
        date_of_birth.month,
        date_of_birth.day,
    )
    return today.year - date_of_birth.year - int(before_birthday)


def years_before(today: date, years: int) -> date:
    """Same calendar day ``years`` earlier; Feb 29 falls back to Feb 28."""
    try:
        return today.replace(year=today.year - years)
    except ValueError:
        return today.replace(year=today.year - years, day=28)


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _parse_age(raw: Optional[Union[int, str]]) -> Optional[int]:
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return raw if raw >= 0 else None
    text = str(raw).strip()
    return int(text) if text.isdigit() else None


def _clean(raw: Optional[str]) -> Optional[str]:
    value = (raw or "").strip()
    return value or None


class FilterCompiler:
    """Turns SearchRequests into CompiledFilters and CompiledFilters into SQL."""

    def __init__(
        self,
        matcher: Optional[NameMatcher] = None,
        token_manager: Optional[TokenManager] = None,
    ) -> None:
        self.matcher = matcher or NameMatcher()
        self.token_manager = token_manager

    def compile(self, request: SearchRequest) -> CompiledFilter:
        """
        Validate and normalize a search request.

        Raises:
            ValidationError: Unknown supporter status or quick filter
        """
        quick_filters = self._quick_filters(request.quick_filters)

        supporter_statuses = self._supporter_statuses(request.supporter_status)
        min_age = _parse_age(request.min_age)
        max_age = _parse_age(request.max_age)
        missing_phone = False
        has_email = False

        # Categories combine with AND, so quick filters narrow explicit criteria
        for name in quick_filters:
            criteria = QUICK_FILTERS[name]
            if "supporter_statuses" in criteria:
                group = criteria["supporter_statuses"]
                if supporter_statuses is None:
                    supporter_statuses = set(group)  # type: ignore[arg-type]
                else:
                    supporter_statuses &= group  # type: ignore[operator]
            if "min_age" in criteria:
                bound = int(criteria["min_age"])  # type: ignore[call-overload]
                min_age = bound if min_age is None else max(min_age, bound)
            if "max_age" in criteria:
                bound = int(criteria["max_age"])  # type: ignore[call-overload]
                max_age = bound if max_age is None else min(max_age, bound)
            missing_phone = missing_phone or bool(criteria.get("missing_phone"))
            has_email = has_email or bool(criteria.get("has_email"))

        party = _clean(request.party)
        if party is not None and party.lower() in WILDCARD_PARTIES:
            party = None
        city = _clean(request.city)

        compiled = CompiledFilter(
            name_fragments=tuple(
                self.matcher.build_fragments(
                    request.first_name, request.middle_name, request.last_name
                )
            ),
            city=city.lower() if city else None,
            zip_code=_clean(request.zip_code),
            party=party,
            supporter_statuses=(
                tuple(sorted(supporter_statuses))
                if supporter_statuses is not None
                else None
            ),
            min_age=min_age,
            max_age=max_age,
            missing_phone=missing_phone,
            has_email=has_email,
            quick_filters=tuple(quick_filters),
        )
        logger.debug("Compiled search filter", compiled=compiled.model_dump())
        return compiled

    @staticmethod
    def _quick_filters(names: Sequence[str]) -> List[str]:
        selected: List[str] = []
        for raw in names:
            for name in (part.strip().lower() for part in raw.split(",")):
                if not name:
                    continue
                if name not in QUICK_FILTERS:
                    raise ValidationError(
                        f"Unknown quick filter '{name}'",
                        field="quick_filters",
                        value=name,
                        details={"allowed": sorted(QUICK_FILTERS)},
                    )
                if name not in selected:
                    selected.append(name)
        return selected

    @staticmethod
    def _supporter_statuses(raw: Optional[str]) -> Optional[set]:
        if raw is None:
            return None
        values = {part.strip().lower() for part in raw.split(",") if part.strip()}
        if not values:
            return None
        allowed = {status.value for status in SupporterStatus}
        for value in sorted(values):
            if value == LEGACY_SUPPORTER_VALUE:
                raise ValidationError(
                    "'supporter' is not a supporter status; use the 'supporters' "
                    "quick filter for confirmed and likely supporters",
                    field="supporter_status",
                    value=value,
                    details={"allowed": sorted(allowed)},
                )
            if value not in allowed:
                raise ValidationError(
                    f"Unknown supporter status '{value}'",
                    field="supporter_status",
                    value=value,
                    details={"allowed": sorted(allowed)},
                )
        return values

    def clauses(
        self, compiled: CompiledFilter, today: Optional[date] = None
    ) -> List[ColumnElement]:
        """SQL conditions for the filter, evaluated at ``today``."""
        today = today or utc_today()
        conditions: List[ColumnElement] = []

        name_clause = self.matcher.where_clause(compiled.name_fragments)
        if name_clause is not None:
            conditions.append(name_clause)

        if compiled.city:
            conditions.append(
                func.lower(Contact.city).contains(compiled.city, autoescape=True)
            )
        if compiled.zip_code:
            conditions.append(Contact.zip_code == compiled.zip_code)
        if compiled.party:
            conditions.append(Contact.party == compiled.party)
        if compiled.supporter_statuses is not None:
            conditions.append(
                Contact.supporter_status.in_(list(compiled.supporter_statuses))  # type: ignore[attr-defined]
            )

        # Age bounds become birth-date cut-offs; unknown birth dates never match
        if compiled.min_age is not None:
            conditions.append(
                Contact.date_of_birth <= years_before(today, compiled.min_age)  # type: ignore[operator]
            )
        if compiled.max_age is not None:
            conditions.append(
                Contact.date_of_birth > years_before(today, compiled.max_age + 1)  # type: ignore[operator]
            )

        if compiled.missing_phone:
            conditions.append(
                ~exists(
                    select(ContactPhone.id).where(ContactPhone.contact_id == Contact.id)
                )
            )
        if compiled.has_email:
            conditions.append(
                exists(
                    select(ContactEmail.id).where(ContactEmail.contact_id == Contact.id)
                )
            )
        return conditions

    # Filter tokens

    def encode(self, compiled: CompiledFilter) -> str:
        if self.token_manager is None:
            raise RuntimeError("FilterCompiler has no token manager")
        return self.token_manager.encode_token(compiled.model_dump(mode="json"))

    def decode(self, token: str) -> CompiledFilter:
        """
        Rebuild a CompiledFilter from a filter token.

        Raises:
            ValidationError: Token is forged, expired or malformed
        """
        if self.token_manager is None:
            raise RuntimeError("FilterCompiler has no token manager")
        try:
            return CompiledFilter.model_validate(self.token_manager.decode_token(token))
        except BadSignature as e:
            logger.warning("Rejected filter token", reason=type(e).__name__)
            raise ValidationError(
                "Filter token is invalid or expired", field="filterToken"
            )
        except (ValueError, PydanticValidationError) as e:
            logger.warning("Malformed filter token", error=str(e))
            raise ValidationError("Filter token is malformed", field="filterToken")
