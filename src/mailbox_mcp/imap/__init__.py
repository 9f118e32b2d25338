from mailbox_mcp.imap.fetch import FetchAggregator, RawMessage
from mailbox_mcp.imap.planner import SearchOutcome, SearchPlanner, select_most_recent
from mailbox_mcp.imap.query import IMAPQuery, SearchCriteria, SearchFilter
from mailbox_mcp.imap.session import ConnectionSession

__all__ = [
    "ConnectionSession",
    "FetchAggregator",
    "IMAPQuery",
    "RawMessage",
    "SearchCriteria",
    "SearchFilter",
    "SearchOutcome",
    "SearchPlanner",
    "select_most_recent",
]
