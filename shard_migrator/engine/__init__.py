"""Query parsing and result processing."""

from .parser import parse_query, quote_name, select_all_query
from .passthrough import PassthroughEngine
from .processor import QueryProcessor

__all__ = ["PassthroughEngine", "QueryProcessor", "parse_query", "quote_name", "select_all_query"]
