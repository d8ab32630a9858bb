"""
Search and mutation services for the Canvass Service.
"""

from services.canvass.services.audit_recorder import AuditRecorder, audit_value
from services.canvass.services.filter_compiler import CompiledFilter, FilterCompiler
from services.canvass.services.mutation_gateway import MutationGateway
from services.canvass.services.name_matcher import MatchResult, MatchTier, NameMatcher
from services.canvass.services.nicknames import NicknameTable, get_default_nickname_table
from services.canvass.services.search_executor import SearchExecutor

__all__ = [
    "AuditRecorder",
    "CompiledFilter",
    "FilterCompiler",
    "MatchResult",
    "MatchTier",
    "MutationGateway",
    "NameMatcher",
    "NicknameTable",
    "SearchExecutor",
    "audit_value",
    "get_default_nickname_table",
]
