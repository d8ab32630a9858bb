"""
Search schemas for API requests and responses.

JSON payloads use camelCase; Python code uses the snake_case field names.
"""

from datetime import date, datetime
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for API models serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchRequest(CamelModel):
    """Raw search criteria as entered in the search form."""

    first_name: Optional[str] = None
    middle_name: Optional[str] = None
    last_name: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = None
    party: Optional[str] = None
    supporter_status: Optional[str] = Field(
        default=None, description="Comma-separated supporter statuses"
    )
    # Free-form: non-numeric input is ignored rather than rejected
    min_age: Optional[Union[int, str]] = None
    max_age: Optional[Union[int, str]] = None
    quick_filters: List[str] = Field(default_factory=list)


class ContactSearchRow(CamelModel):
    """One enriched contact on a result page."""

    id: str
    system_id: str
    full_name: str
    first_name: str
    middle_name: Optional[str] = None
    last_name: str
    date_of_birth: Optional[date] = None
    age: Optional[int] = None
    street_address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    district: Optional[str] = None
    precinct: Optional[str] = None
    party: Optional[str] = None
    supporter_status: str
    volunteer_status: str
    updated_at: datetime
    aliases: List[str] = Field(default_factory=list)
    manual_phone_count: int = 0
    baseline_phone_count: int = 0
    manual_email_count: int = 0
    baseline_email_count: int = 0
    match_tier: Optional[int] = Field(
        default=None, description="1 exact .. 4 prefix; null without name criteria"
    )
    match_highlights: List[str] = Field(default_factory=list)


class SearchPage(CamelModel):
    """A page of search results."""

    contacts: List[ContactSearchRow]
    total: int
    page: int
    limit: int
    filter_token: Optional[str] = Field(
        default=None, description="Signed filter to request further pages"
    )
