"""
=================================
Clause state for the query builder.
=================================

Holds everything a QueryBuilder has accumulated for one query: the query
type, the base clause inputs, and an ordered list of fragments per clause
kind. Bound values travel with the fragment that introduced their
placeholders, so the values of any rendered subset of fragments can be
collected in exactly the order their placeholders appear.

Classes:
    QueryType: SELECT/INSERT/UPDATE/DELETE
    ClauseKind: Index of the fragment lists
    Fragment: One rendered clause piece and its bound values
    BuilderState: Mutable per-query accumulator
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple


class QueryType(Enum):
    """Kind of statement the builder renders."""
    SELECT = "select"
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class ClauseKind(Enum):
    """Fragment lists held by BuilderState."""
    JOIN = "joins"
    WHERE = "wheres"
    GROUP_BY = "groups"
    HAVING = "havings"
    ORDER_BY = "orders"
    UNION = "unions"


# Leading keyword of the first fragment in a condition list
CLAUSE_KEYWORDS = {
    ClauseKind.WHERE: "WHERE",
    ClauseKind.HAVING: "HAVING",
}

OPEN_GROUP = "("
CLOSE_GROUP = ")"


@dataclass(frozen=True)
class Fragment:
    """A rendered clause piece.

    Attributes:
        text: SQL text with '?' placeholders
        bindings: Values for the placeholders in text, in order
    """

    text: str
    bindings: Tuple[Any, ...] = ()

    @property
    def is_group_open(self) -> bool:
        return self.text == OPEN_GROUP


@dataclass
class BuilderState:
    """Everything accumulated for a single query.

    Attributes:
        query_type: Statement kind, SELECT until a terminal says otherwise
        columns: Select list, None for '*'
        table: Target table
        assignments: UPDATE SET fragment
        insert_columns: INSERT column list
        insert_rows: INSERT value rows, one tuple per row
        limit: LIMIT value
        offset: OFFSET value
        joins/wheres/groups/havings/orders/unions: Ordered fragment lists
    """

    query_type: QueryType = QueryType.SELECT
    columns: Optional[str] = None
    table: Optional[str] = None
    assignments: Optional[Fragment] = None
    insert_columns: List[str] = field(default_factory=list)
    insert_rows: List[Tuple[Any, ...]] = field(default_factory=list)
    limit: Optional[int] = None
    offset: Optional[int] = None
    joins: List[Fragment] = field(default_factory=list)
    wheres: List[Fragment] = field(default_factory=list)
    groups: List[Fragment] = field(default_factory=list)
    havings: List[Fragment] = field(default_factory=list)
    orders: List[Fragment] = field(default_factory=list)
    unions: List[Fragment] = field(default_factory=list)

    def fragments(self, kind: ClauseKind) -> List[Fragment]:
        """Get the fragment list for a clause kind."""
        return getattr(self, kind.value)

    def append(self, kind: ClauseKind, text: str, bindings: Tuple[Any, ...] = ()) -> None:
        self.fragments(kind).append(Fragment(text, tuple(bindings)))

    def conjunction(self, kind: ClauseKind, joiner: str) -> Optional[str]:
        """
        Decide the leading word of the next condition in a WHERE/HAVING list.

        Returns:
            The clause keyword for an empty list, None directly after an
            opening parenthesis, otherwise the joiner (AND/OR)
        """
        fragments = self.fragments(kind)
        if not fragments:
            return CLAUSE_KEYWORDS[kind]
        if fragments[-1].is_group_open:
            return None
        return joiner

    def bindings(self) -> List[Any]:
        """All bound values in the order they were appended, clause by clause."""
        values: List[Any] = []
        if self.assignments is not None:
            values.extend(self.assignments.bindings)
        for row in self.insert_rows:
            values.extend(row)
        for kind in ClauseKind:
            for fragment in self.fragments(kind):
                values.extend(fragment.bindings)
        return values

    def reset(self) -> None:
        """Forget everything accumulated so far."""
        fresh = BuilderState()
        self.__dict__.update(fresh.__dict__)

