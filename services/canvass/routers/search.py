"""
Contact search endpoint for the Canvass Service.

The first request carries the raw criteria; the response includes a signed
filter token that, together with a page number, fully determines any later
page.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from services.canvass.auth import get_acting_user, service_permission_required
from services.canvass.database import get_async_session
from services.canvass.models.user import User
from services.canvass.schemas.search import SearchPage, SearchRequest
from services.canvass.services.filter_compiler import FilterCompiler
from services.canvass.services.name_matcher import NameMatcher
from services.canvass.services.nicknames import get_default_nickname_table
from services.canvass.services.search_executor import SearchExecutor
from services.canvass.settings import get_settings
from services.common.http_errors import ValidationError
from services.common.logging_config import get_logger
from services.common.pagination import TokenManager

logger = get_logger(__name__)

router = APIRouter(prefix="/contacts", tags=["search"])


async def get_filter_compiler() -> FilterCompiler:
    """Get a filter compiler that signs tokens with the configured secret."""
    settings = get_settings()
    return FilterCompiler(
        matcher=NameMatcher(get_default_nickname_table()),
        token_manager=TokenManager(
            settings.FILTER_TOKEN_SECRET,
            token_expiry=settings.FILTER_TOKEN_EXPIRY,
            salt="canvass-search-filter",
        ),
    )


async def get_search_executor(
    compiler: FilterCompiler = Depends(get_filter_compiler),
) -> SearchExecutor:
    """Get search executor instance."""
    return SearchExecutor(compiler, page_size=get_settings().SEARCH_PAGE_SIZE)


@router.get("/search", response_model=SearchPage)
async def search_contacts(
    page: int = Query(1, ge=1, description="1-based page number"),
    limit: Optional[int] = Query(None, description="Page size; fixed at 20"),
    first_name: Optional[str] = Query(None, alias="firstName"),
    middle_name: Optional[str] = Query(None, alias="middleName"),
    last_name: Optional[str] = Query(None, alias="lastName"),
    city: Optional[str] = Query(None),
    zip_code: Optional[str] = Query(None, alias="zipCode"),
    party: Optional[str] = Query(None),
    supporter_status: Optional[str] = Query(
        None, alias="supporterStatus", description="Comma-separated statuses"
    ),
    min_age: Optional[str] = Query(None, alias="minAge"),
    max_age: Optional[str] = Query(None, alias="maxAge"),
    quick_filters: List[str] = Query(
        [], alias="quickFilters", description="Comma-separated quick filters"
    ),
    filter_token: Optional[str] = Query(
        None, alias="filterToken", description="Replaces all filter parameters"
    ),
    session: AsyncSession = Depends(get_async_session),
    executor: SearchExecutor = Depends(get_search_executor),
    authenticated_service: str = Depends(
        service_permission_required(["search_contacts"])
    ),
    acting_user: User = Depends(get_acting_user),
) -> SearchPage:
    """Search the directory with page-numbered pagination."""
    if limit is not None and limit != executor.page_size:
        raise ValidationError(
            f"Page size is fixed at {executor.page_size}",
            field="limit",
            value=limit,
        )

    compiler = executor.compiler
    if filter_token:
        compiled = compiler.decode(filter_token)
    else:
        compiled = compiler.compile(
            SearchRequest(
                first_name=first_name,
                middle_name=middle_name,
                last_name=last_name,
                city=city,
                zip_code=zip_code,
                party=party,
                supporter_status=supporter_status,
                min_age=min_age,
                max_age=max_age,
                quick_filters=quick_filters,
            )
        )

    result = await executor.search(session, compiled, page=page)
    result.filter_token = filter_token or compiler.encode(compiled)
    logger.debug(
        "Search served",
        user_id=acting_user.id,
        page=page,
        total=result.total,
        from_token=bool(filter_token),
    )
    return result
