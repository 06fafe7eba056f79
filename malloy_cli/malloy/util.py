"""Options for a single run/compile invocation."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from malloy_cli.errors import QuerySelectionError


class QueryOptionsType(Enum):
    INDEX = "index"
    NAME = "name"
    STRING = "string"


@dataclass(frozen=True)
class QueryOptions:
    type: QueryOptionsType
    index: Optional[int] = None
    name: Optional[str] = None
    query: Optional[str] = None


@dataclass(frozen=True)
class RunOrCompileOptions:
    query_options: Optional[QueryOptions] = None  # None -> final query
    compile_only: bool = False
    json: bool = False


def query_options_from_args(index=None, query_name=None, query=None) -> Optional[QueryOptions]:
    """At most one selector may be given; none means "final query"."""
    given = [v for v in (index, query_name, query) if v is not None]
    if len(given) > 1:
        raise QuerySelectionError("Only one of --index, --query-name, --query may be given")
    if index is not None:
        if index < 1:
            raise QuerySelectionError(f"--index is 1-based, got {index}")
        return QueryOptions(QueryOptionsType.INDEX, index=index)
    if query_name is not None:
        return QueryOptions(QueryOptionsType.NAME, name=query_name)
    if query is not None:
        return QueryOptions(QueryOptionsType.STRING, query=query)
    return None
