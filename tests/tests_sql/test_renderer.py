"""
##################################################################
#                                                                #
#  Test Suite: Query renderer                                    #
#                                                                #
##################################################################

Tests for sql.renderer.render() driven directly with BuilderState, covering
the base clause of every query type, clause applicability and the binding
order guarantee.

Test Categories:
- Unit tests: Base clauses and fixed clause order
- Edge cases: Clauses that do not apply to the query type
- Regression tests: Bindings always line up with placeholders
"""

import logging

import pytest

from core.exceptions import MissingTableError
from sql.clauses import BuilderState, ClauseKind, Fragment, QueryType
from sql.renderer import RenderedQuery, render


def make_state(query_type=QueryType.SELECT, table='users', **fields):
    state = BuilderState(query_type=query_type, table=table)
    for name, value in fields.items():
        setattr(state, name, value)
    return state


# =============================================================================
# BASE CLAUSES
# =============================================================================

@pytest.mark.unit
def test_select_defaults_to_star():
    """No select list renders SELECT *."""
    assert render(make_state()) == RenderedQuery('SELECT * FROM users')


@pytest.mark.unit
def test_select_with_columns():
    query = render(make_state(columns='id, name'))
    assert query.sql == 'SELECT id, name FROM users'


@pytest.mark.unit
def test_update_binds_assignments_before_where():
    """SET values come first, then WHERE values."""
    state = make_state(QueryType.UPDATE, assignments=Fragment('name = ?', ('Zed',)))
    state.append(ClauseKind.WHERE, 'WHERE id = ?', (5,))

    query = render(state)

    assert query.sql == 'UPDATE users SET name = ? WHERE id = ?'
    assert query.bindings == ('Zed', 5)


@pytest.mark.unit
def test_delete_with_order_and_limit():
    state = make_state(QueryType.DELETE, limit=1)
    state.append(ClauseKind.WHERE, 'WHERE age < ?', (18,))
    state.append(ClauseKind.ORDER_BY, ' ORDER BY id ASC')

    query = render(state)

    assert query.sql == 'DELETE FROM users WHERE age < ? ORDER BY id ASC LIMIT 1'
    assert query.bindings == (18,)


@pytest.mark.unit
def test_insert_flattens_rows_into_bindings():
    state = make_state(
        QueryType.INSERT,
        table='t',
        insert_columns=['a', 'b'],
        insert_rows=[(1, 2), (3, 4)],
    )

    query = render(state)

    assert query.sql == 'INSERT INTO t (a, b) VALUES (?, ?), (?, ?)'
    assert query.bindings == (1, 2, 3, 4)


@pytest.mark.edge_case
def test_missing_table_raises():
    with pytest.raises(MissingTableError, match="Table not found"):
        render(BuilderState())


# =============================================================================
# CLAUSE ORDER
# =============================================================================

@pytest.mark.unit
def test_full_select_clause_order():
    """Clauses render in fixed order regardless of how they were accumulated."""
    state = make_state(columns='country, COUNT(*) AS n', limit=5, offset=10)
    state.append(ClauseKind.ORDER_BY, ' ORDER BY n DESC')
    state.append(ClauseKind.HAVING, 'HAVING n > ?', (1,))
    state.append(ClauseKind.GROUP_BY, ' GROUP BY country')
    state.append(ClauseKind.WHERE, 'WHERE age > ?', (18,))
    state.append(ClauseKind.JOIN, 'INNER JOIN orders ON users.id = orders.user_id')

    query = render(state)

    assert query.sql == (
        'SELECT country, COUNT(*) AS n FROM users '
        'INNER JOIN orders ON users.id = orders.user_id '
        'WHERE age > ? GROUP BY country HAVING n > ? '
        'ORDER BY n DESC LIMIT 5 OFFSET 10'
    )
    assert query.bindings == (18, 1)


@pytest.mark.unit
def test_union_renders_last_with_its_bindings():
    state = make_state(limit=3)
    state.append(ClauseKind.WHERE, 'WHERE a = ?', (1,))
    state.append(ClauseKind.UNION, 'UNION SELECT * FROM archive WHERE b = ?', (2,))

    query = render(state)

    assert query.sql == 'SELECT * FROM users WHERE a = ? LIMIT 3 UNION SELECT * FROM archive WHERE b = ?'
    assert query.bindings == (1, 2)


@pytest.mark.edge_case
def test_offset_zero_is_omitted():
    query = render(make_state(limit=10, offset=0))
    assert query.sql == 'SELECT * FROM users LIMIT 10'


# =============================================================================
# CLAUSES THAT DO NOT APPLY
# =============================================================================

@pytest.mark.edge_case
def test_having_without_group_by_is_dropped(caplog):
    """HAVING without GROUP BY is skipped together with its bindings."""
    state = make_state()
    state.append(ClauseKind.WHERE, 'WHERE a = ?', (1,))
    state.append(ClauseKind.HAVING, 'HAVING total > ?', (100,))

    with caplog.at_level(logging.WARNING, logger='sql.renderer'):
        query = render(state)

    assert query.sql == 'SELECT * FROM users WHERE a = ?'
    assert query.bindings == (1,)
    assert "HAVING without GROUP BY" in caplog.text


@pytest.mark.edge_case
def test_offset_without_limit_is_dropped(caplog):
    with caplog.at_level(logging.WARNING, logger='sql.renderer'):
        query = render(make_state(offset=20))

    assert query.sql == 'SELECT * FROM users'
    assert "OFFSET without LIMIT" in caplog.text


@pytest.mark.edge_case
def test_insert_ignores_where_and_join(caplog):
    """WHERE and JOIN have no meaning for INSERT; neither SQL nor bindings leak."""
    state = make_state(QueryType.INSERT, insert_columns=['name'], insert_rows=[('Ada',)])
    state.append(ClauseKind.WHERE, 'WHERE id = ?', (1,))
    state.append(ClauseKind.JOIN, 'INNER JOIN orders ON users.id = orders.user_id')

    with caplog.at_level(logging.WARNING, logger='sql.renderer'):
        query = render(state)

    assert query.sql == 'INSERT INTO users (name) VALUES (?)'
    assert query.bindings == ('Ada',)
    assert "WHERE ignored for INSERT" in caplog.text
    assert "JOIN ignored for INSERT" in caplog.text


@pytest.mark.edge_case
def test_update_ignores_join_and_group_by():
    state = make_state(QueryType.UPDATE, assignments=Fragment('active = ?', (0,)))
    state.append(ClauseKind.JOIN, 'LEFT JOIN orders ON users.id = orders.user_id')
    state.append(ClauseKind.GROUP_BY, ' GROUP BY country')
    state.append(ClauseKind.HAVING, 'HAVING n > ?', (2,))

    query = render(state)

    assert query.sql == 'UPDATE users SET active = ?'
    assert query.bindings == (0,)


# =============================================================================
# STATE RESET AND BINDING COUNT
# =============================================================================

@pytest.mark.unit
def test_render_resets_state():
    """After rendering the state is empty again."""
    state = make_state(columns='id', limit=1)
    state.append(ClauseKind.WHERE, 'WHERE id = ?', (1,))

    render(state)

    assert state == BuilderState()


@pytest.mark.regression
def test_placeholder_count_matches_bindings_for_mixed_query():
    """Every rendered placeholder has exactly one binding."""
    state = make_state()
    state.append(ClauseKind.WHERE, 'WHERE id IN (?, ?, ?)', (1, 2, 3))
    state.append(ClauseKind.WHERE, 'AND age BETWEEN ? AND ?', (18, 65))
    state.append(ClauseKind.GROUP_BY, ' GROUP BY country')
    state.append(ClauseKind.HAVING, 'HAVING n > ?', (1,))

    query = render(state)

    assert query.placeholder_count == len(query.bindings) == 6
