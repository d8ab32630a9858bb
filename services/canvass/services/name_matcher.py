"""
Name matching for contact search.

Each non-empty name fragment must match its own field (first, middle or last
name). A field matches in one of four tiers, strongest first:

    1. exact match on the canonical field
    2. exact match on one of the contact's aliases
    3. nickname equivalence with the canonical field or an alias
    4. the canonical field starts with the fragment

A contact's tier is the weakest tier among its matched fields; the sum of
field tiers orders contacts within a tier. The same rules exist twice: in
Python (``NameMatcher.match``) for annotating rows, and as SQL expressions
(``NameMatcher.where_clause`` / ``tier_expressions``) for filtering and
ordering in the database. Keep them in step.
"""

from enum import IntEnum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict
from sqlalchemy import and_, case, exists, func, literal, or_, select
from sqlalchemy.sql.elements import ColumnElement

from services.canvass.models.contact import Contact, ContactAlias
from services.canvass.services.nicknames import (
    NicknameTable,
    get_default_nickname_table,
    normalize_name,
)

NAME_FIELDS: Tuple[str, ...] = ("first_name", "middle_name", "last_name")


class MatchTier(IntEnum):
    EXACT = 1
    ALIAS = 2
    NICKNAME = 3
    PREFIX = 4


_TIER_LABELS = {
    MatchTier.EXACT: "exact",
    MatchTier.ALIAS: "alias",
    MatchTier.NICKNAME: "nickname",
    MatchTier.PREFIX: "prefix",
}


class NameFragment(BaseModel):
    """A normalized search fragment bound to one name field."""

    model_config = ConfigDict(frozen=True)

    field: str
    value: str
    equivalents: Tuple[str, ...] = ()


class MatchResult(BaseModel):
    """How a contact matched the name fragments. Tier 0 means no name criteria."""

    tier: int
    tier_sum: int
    field_tiers: Dict[str, int] = {}
    highlights: List[str] = []


class NameMatcher:
    """Builds fragments and evaluates them in Python or SQL."""

    def __init__(self, nicknames: Optional[NicknameTable] = None) -> None:
        self.nicknames = nicknames or get_default_nickname_table()

    def build_fragments(
        self,
        first_name: Optional[str] = None,
        middle_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> List[NameFragment]:
        """Normalize raw input; empty fragments are wildcards and are dropped."""
        fragments = []
        for field, raw in zip(NAME_FIELDS, (first_name, middle_name, last_name)):
            value = normalize_name(raw)
            if not value:
                continue
            fragments.append(
                NameFragment(
                    field=field,
                    value=value,
                    equivalents=tuple(sorted(self.nicknames.equivalents(value))),
                )
            )
        return fragments

    # Python evaluation

    @staticmethod
    def field_tier(
        fragment: NameFragment,
        canonical: Optional[str],
        aliases: Sequence[str],
    ) -> Optional[Tuple[MatchTier, str]]:
        """Best tier for one field and the value that produced it, or None."""
        canonical_l = (canonical or "").lower()
        alias_pairs = [(alias.lower(), alias) for alias in aliases]

        if canonical_l and canonical_l == fragment.value:
            return MatchTier.EXACT, canonical or ""
        for alias_l, alias in alias_pairs:
            if alias_l == fragment.value:
                return MatchTier.ALIAS, alias
        equivalents = set(fragment.equivalents) | {fragment.value}
        if canonical_l and canonical_l in equivalents:
            return MatchTier.NICKNAME, canonical or ""
        for alias_l, alias in alias_pairs:
            if alias_l in equivalents:
                return MatchTier.NICKNAME, alias
        if canonical_l and canonical_l.startswith(fragment.value):
            return MatchTier.PREFIX, canonical or ""
        return None

    def match(
        self,
        fragments: Iterable[NameFragment],
        contact: Contact,
        aliases: Sequence[str] = (),
    ) -> Optional[MatchResult]:
        """Match a contact against the fragments; None means NO-MATCH."""
        field_tiers: Dict[str, int] = {}
        highlights: List[str] = []
        for fragment in fragments:
            found = self.field_tier(
                fragment, getattr(contact, fragment.field), aliases
            )
            if found is None:
                return None
            tier, matched = found
            field_tiers[fragment.field] = int(tier)
            highlights.append(f"{fragment.field}: {matched} ({_TIER_LABELS[tier]})")

        if not field_tiers:
            return MatchResult(tier=0, tier_sum=0)
        return MatchResult(
            tier=max(field_tiers.values()),
            tier_sum=sum(field_tiers.values()),
            field_tiers=field_tiers,
            highlights=highlights,
        )

    # SQL evaluation

    @staticmethod
    def _alias_in(values: Sequence[str]) -> ColumnElement:
        return exists(
            select(ContactAlias.id).where(
                ContactAlias.contact_id == Contact.id,
                func.lower(ContactAlias.alias).in_(list(values)),
            )
        )

    def field_clause(self, fragment: NameFragment) -> ColumnElement:
        """SQL condition true when the field matches in any tier."""
        column = func.lower(getattr(Contact, fragment.field))
        equivalents = sorted(set(fragment.equivalents) | {fragment.value})
        return or_(
            column.in_(equivalents),
            self._alias_in(equivalents),
            column.startswith(fragment.value, autoescape=True),
        )

    def field_tier_expression(self, fragment: NameFragment) -> ColumnElement:
        """SQL CASE yielding the field's tier; assumes field_clause holds."""
        column = func.lower(getattr(Contact, fragment.field))
        nicknames = sorted(set(fragment.equivalents) | {fragment.value})
        return case(
            (column == fragment.value, literal(int(MatchTier.EXACT))),
            (self._alias_in([fragment.value]), literal(int(MatchTier.ALIAS))),
            (
                or_(column.in_(nicknames), self._alias_in(nicknames)),
                literal(int(MatchTier.NICKNAME)),
            ),
            else_=literal(int(MatchTier.PREFIX)),
        )

    def where_clause(self, fragments: Sequence[NameFragment]) -> Optional[ColumnElement]:
        if not fragments:
            return None
        return and_(*(self.field_clause(fragment) for fragment in fragments))

    def tier_expressions(
        self, fragments: Sequence[NameFragment]
    ) -> Optional[Tuple[ColumnElement, ColumnElement]]:
        """(tier, tier_sum) SQL expressions for ordering, or None without fragments."""
        if not fragments:
            return None
        field_tiers = [self.field_tier_expression(fragment) for fragment in fragments]
        tier = field_tiers[0]
        tier_sum = field_tiers[0]
        for expression in field_tiers[1:]:
            # GREATEST is not portable to SQLite
            tier = case((expression > tier, expression), else_=tier)
            tier_sum = tier_sum + expression
        return tier, tier_sum
