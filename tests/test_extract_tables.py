# Tests for extract_table_names()
# Access control is only as good as this extraction, so misses matter more than extras.

import pytest

from sqlpeek.extraction import TableNameExtractor, extract_table_names


# ==========================================================================
# Simple SELECT queries
# ==========================================================================

class TestSimpleSelect:
    def test_basic_select(self):
        assert extract_table_names("SELECT * FROM users") == {'users'}

    def test_schema_prefix(self):
        assert extract_table_names("SELECT * FROM public.users") == {'users'}

    def test_catalog_and_schema_prefix(self):
        assert extract_table_names("SELECT * FROM main.public.users") == {'users'}

    def test_quoted_identifier(self):
        assert extract_table_names('SELECT * FROM "user_accounts"') == {'user_accounts'}

    def test_backticks(self):
        assert extract_table_names("SELECT * FROM `users`") == {'users'}

    def test_escaped_double_quotes(self):
        assert extract_table_names('SELECT * FROM \\"users\\"') == {'users'}

    def test_square_brackets(self):
        assert extract_table_names("SELECT * FROM [users]") == {'users'}

    def test_square_brackets_with_schema(self):
        assert extract_table_names("SELECT * FROM [main].[users] u JOIN [orders] o ON 1=1") == \
            {'users', 'orders'}

    def test_string_literal_as_table_name(self):
        assert extract_table_names("SELECT * FROM 'users'") == {'users'}

    def test_string_literal_in_table_list(self):
        sql = "SELECT * FROM users, 'secrets' s JOIN 'orders' ON 1=1"
        assert extract_table_names(sql) == {'users', 'secrets', 'orders'}

    def test_string_literal_elsewhere_is_not_a_table(self):
        assert extract_table_names("SELECT 'secrets' FROM users WHERE name = 'orders'") == {'users'}

    @pytest.mark.parametrize('hint', ['INDEXED BY ix_users', 'NOT INDEXED', 'AS u INDEXED BY ix'])
    def test_index_hints(self, hint):
        sql = f"SELECT * FROM users {hint}, secrets"
        assert extract_table_names(sql) == {'users', 'secrets'}

    def test_index_hint_before_join(self):
        sql = "SELECT * FROM users NOT INDEXED JOIN secrets ON 1=1"
        assert extract_table_names(sql) == {'users', 'secrets'}

    def test_case_is_preserved(self):
        assert extract_table_names("select * from Users") == {'Users'}

    def test_comma_separated_with_aliases(self):
        sql = "SELECT * FROM users u, orders AS o, products"
        assert extract_table_names(sql) == {'users', 'orders', 'products'}


# ==========================================================================
# JOINs
# ==========================================================================

class TestJoins:
    def test_join_with_aliases(self):
        sql = "SELECT u.name FROM users u JOIN orders o ON u.id=o.user_id"
        assert extract_table_names(sql) == {'users', 'orders'}

    def test_inner_join(self):
        sql = "SELECT * FROM users INNER JOIN orders ON users.id = orders.user_id"
        assert extract_table_names(sql) == {'users', 'orders'}

    def test_multiple_joins(self):
        sql = ("SELECT * FROM users LEFT JOIN orders ON users.id = orders.user_id "
               "RIGHT JOIN products ON orders.product_id = products.id")
        assert extract_table_names(sql) == {'users', 'orders', 'products'}

    def test_different_join_types(self):
        sql = ("SELECT * FROM users FULL OUTER JOIN orders ON users.id = orders.user_id "
               "CROSS JOIN categories")
        assert extract_table_names(sql) == {'users', 'orders', 'categories'}

    @pytest.mark.parametrize('join', [
        'JOIN', 'INNER JOIN', 'LEFT JOIN', 'LEFT OUTER JOIN', 'RIGHT JOIN',
        'RIGHT OUTER JOIN', 'FULL JOIN', 'FULL OUTER JOIN', 'CROSS JOIN',
        'NATURAL JOIN', 'STRAIGHT_JOIN',
    ])
    def test_every_join_variant(self, join):
        assert extract_table_names(f"SELECT * FROM a {join} b") == {'a', 'b'}

    def test_join_using(self):
        assert extract_table_names("SELECT * FROM a JOIN b USING (id)") == {'a', 'b'}

    def test_parenthesised_join(self):
        sql = "SELECT * FROM (a JOIN b ON a.id = b.id) JOIN c ON c.id = a.id"
        assert extract_table_names(sql) == {'a', 'b', 'c'}


# ==========================================================================
# Subqueries
# ==========================================================================

class TestSubqueries:
    def test_where_subquery(self):
        sql = "SELECT * FROM users WHERE id IN (SELECT user_id FROM orders)"
        assert extract_table_names(sql) == {'users', 'orders'}

    def test_derived_table(self):
        sql = "SELECT * FROM (SELECT * FROM users WHERE active = true) AS active_users"
        assert extract_table_names(sql) == {'users'}

    def test_derived_table_then_more_tables(self):
        sql = "SELECT * FROM (SELECT id FROM users) u, orders o WHERE o.user_id = u.id"
        assert extract_table_names(sql) == {'users', 'orders'}

    def test_nested_subqueries(self):
        sql = ("SELECT * FROM users WHERE id IN (SELECT user_id FROM orders WHERE product_id IN "
               "(SELECT id FROM products WHERE category = 'electronics'))")
        assert extract_table_names(sql) == {'users', 'orders', 'products'}

    def test_scalar_subquery_in_select_list(self):
        sql = "SELECT name, (SELECT COUNT(*) FROM orders o WHERE o.user_id = u.id) FROM users u"
        assert extract_table_names(sql) == {'users', 'orders'}

    def test_unterminated_subquery_stays_on_level(self):
        sql = "SELECT * FROM users WHERE id IN (SELECT id FROM orders"
        assert extract_table_names(sql) == {'users', 'orders'}

    def test_deep_nesting(self):
        depth = 1500
        sql = "SELECT * FROM t0"
        for i in range(1, depth):
            sql += f" WHERE a IN (SELECT a FROM t{i}"
        sql += ")" * (depth - 1)
        tables = extract_table_names(sql)
        assert len(tables) == depth
        assert f"t{depth - 1}" in tables


# ==========================================================================
# CTEs
# ==========================================================================

class TestCtes:
    def test_simple_cte(self):
        sql = "WITH active AS (SELECT * FROM users WHERE active=true) SELECT * FROM active"
        assert extract_table_names(sql) == {'users'}

    def test_multiple_ctes(self):
        sql = ("WITH active_users AS (SELECT * FROM users WHERE active = true), "
               "recent_orders AS (SELECT * FROM orders WHERE created_at > '2023-01-01') "
               "SELECT * FROM active_users JOIN recent_orders "
               "ON active_users.id = recent_orders.user_id")
        assert extract_table_names(sql) == {'users', 'orders'}

    def test_recursive_cte(self):
        sql = ("WITH RECURSIVE category_tree AS (SELECT * FROM categories WHERE parent_id IS NULL "
               "UNION ALL SELECT c.* FROM categories c JOIN category_tree ct ON c.parent_id = ct.id) "
               "SELECT * FROM category_tree")
        assert extract_table_names(sql) == {'categories'}

    def test_cte_with_column_list(self):
        sql = "WITH totals (user_id, total) AS (SELECT user_id, SUM(amount) FROM payments GROUP BY user_id) SELECT * FROM totals"
        assert extract_table_names(sql) == {'payments'}

    def test_materialized_cte(self):
        sql = "WITH t AS MATERIALIZED (SELECT * FROM events) SELECT * FROM t"
        assert extract_table_names(sql) == {'events'}

    @pytest.mark.parametrize('name', [
        '"active_users"', '`active_users`', 'schema.active_users', 'schema."active_users"',
    ])
    def test_quoted_and_qualified_cte_names(self, name):
        sql = f"WITH {name} AS (SELECT * FROM users WHERE active = true) SELECT * FROM {name}"
        assert extract_table_names(sql) == {'users'}

    def test_mixed_quoted_and_unquoted_ctes(self):
        sql = ('WITH active_users AS (SELECT * FROM users WHERE active = true), '
               '"recent_orders" AS (SELECT * FROM orders WHERE created_at > \'2023-01-01\') '
               'SELECT * FROM active_users JOIN "recent_orders" '
               'ON active_users.id = "recent_orders".user_id')
        assert extract_table_names(sql) == {'users', 'orders'}

    def test_cte_names_compared_case_insensitively(self):
        sql = "WITH Recent AS (SELECT * FROM orders) SELECT * FROM recent"
        assert extract_table_names(sql) == {'orders'}

    def test_cte_shadowing_its_own_table(self):
        # A non-recursive CTE body cannot see its own name
        sql = "WITH orders AS (SELECT * FROM orders WHERE total > 0) SELECT * FROM orders"
        assert extract_table_names(sql) == {'orders'}

    def test_later_cte_sees_earlier(self):
        sql = "WITH a AS (SELECT * FROM base), b AS (SELECT * FROM a) SELECT * FROM b"
        assert extract_table_names(sql) == {'base'}

    def test_nested_cte_does_not_leak(self):
        sql = "SELECT * FROM (WITH x AS (SELECT * FROM a) SELECT * FROM x) sub JOIN x ON 1=1"
        assert extract_table_names(sql) == {'a', 'x'}


# ==========================================================================
# DML
# ==========================================================================

class TestDml:
    def test_insert(self):
        sql = "INSERT INTO users (name, email) VALUES ('John', 'john@example.com')"
        assert extract_table_names(sql) == {'users'}

    def test_insert_select(self):
        assert extract_table_names("INSERT INTO archive SELECT * FROM users") == {'archive', 'users'}

    def test_replace_into(self):
        assert extract_table_names("REPLACE INTO users VALUES (1)") == {'users'}

    def test_update(self):
        sql = "UPDATE users SET email = 'new@example.com' WHERE id = 1"
        assert extract_table_names(sql) == {'users'}

    def test_update_with_from(self):
        sql = ("UPDATE users SET status = 'inactive' FROM orders "
               "WHERE users.id = orders.user_id AND orders.total < 10")
        assert extract_table_names(sql) == {'users', 'orders'}

    def test_delete(self):
        assert extract_table_names("DELETE FROM users WHERE id = 1") == {'users'}

    def test_on_duplicate_key_update(self):
        sql = "INSERT INTO counters (id, n) VALUES (1, 1) ON DUPLICATE KEY UPDATE n = n + 1"
        assert extract_table_names(sql) == {'counters'}

    def test_on_conflict_do_update(self):
        sql = "INSERT INTO counters (id) VALUES (1) ON CONFLICT (id) DO UPDATE SET n = 2"
        assert extract_table_names(sql) == {'counters'}

    def test_for_update(self):
        assert extract_table_names("SELECT * FROM jobs FOR UPDATE") == {'jobs'}


# ==========================================================================
# Set operations
# ==========================================================================

class TestSetOperations:
    @pytest.mark.parametrize('operation', ['UNION', 'UNION ALL', 'INTERSECT', 'EXCEPT'])
    def test_set_operation(self, operation):
        sql = f"SELECT email FROM users {operation} SELECT email FROM subscribers"
        assert extract_table_names(sql) == {'users', 'subscribers'}

    def test_complex_query(self):
        sql = """
            WITH active_users AS (
              SELECT * FROM users WHERE active = true
            ),
            recent_orders AS (
              SELECT * FROM orders WHERE created_at > '2023-01-01'
            )
            SELECT u.name, o.total
            FROM active_users u
            LEFT JOIN recent_orders o ON u.id = o.user_id
            LEFT JOIN products p ON o.product_id = p.id
            WHERE u.id IN (
              SELECT user_id FROM subscriptions WHERE status = 'active'
            )
            UNION ALL
            SELECT c.name, 0 as total
            FROM customers c
            WHERE c.created_at > '2023-01-01'
        """
        assert extract_table_names(sql) == {
            'users', 'orders', 'products', 'subscriptions', 'customers',
        }


# ==========================================================================
# Multiple statements, comments and literals
# ==========================================================================

class TestStatementsAndLiterals:
    def test_multiple_statements(self):
        sql = "SELECT * FROM users; INSERT INTO logs VALUES(1); UPDATE settings SET v=1"
        assert extract_table_names(sql) == {'users', 'logs', 'settings'}

    def test_line_comment(self):
        assert extract_table_names("SELECT * FROM users -- JOIN secrets") == {'users'}

    def test_block_comment(self):
        sql = "SELECT * FROM users /* FROM secrets\n */ WHERE active = true"
        assert extract_table_names(sql) == {'users'}

    @pytest.mark.parametrize('sql', [
        "SELECT 'user--name' FROM users -- real comment",
        "SELECT 'user/*not a comment*/' FROM users /* real comment */",
        "SELECT 'user''s--name' FROM users -- comment",
        'SELECT "user--name" FROM users -- comment',
        "SELECT 'string with -- fake comment' AS col, \"another -- fake\" FROM users "
        "/* real comment */ WHERE name = 'user--name'",
    ])
    def test_comment_markers_in_literals(self, sql):
        assert extract_table_names(sql) == {'users'}

    def test_keywords_in_string_literal(self):
        sql = "SELECT * FROM users WHERE note = 'copied FROM secrets; JOIN other'"
        assert extract_table_names(sql) == {'users'}

    def test_backslash_quote_cannot_hide_a_table(self):
        # MySQL reads \' as an escaped quote, so the UNION is live there
        sql = "SELECT * FROM t WHERE a = 'x\\' UNION SELECT * FROM secrets -- '"
        assert 'secrets' in extract_table_names(sql)


# ==========================================================================
# Non-table uses of FROM, and edge cases
# ==========================================================================

class TestEdgeCases:
    @pytest.mark.parametrize('sql', [None, "", "   \n\t  "])
    def test_empty(self, sql):
        assert extract_table_names(sql) == set()

    def test_doubled_quote_in_name_is_dropped(self):
        assert extract_table_names('SELECT * FROM "user""accounts"') == set()

    def test_function_call_is_not_a_table(self):
        assert extract_table_names("SELECT * FROM generate_series(1, 10)") == set()

    def test_extract_from(self):
        sql = "SELECT EXTRACT(YEAR FROM created_at) FROM events"
        assert extract_table_names(sql) == {'events'}

    def test_trim_from(self):
        sql = "SELECT TRIM(LEADING 'x' FROM name) FROM people"
        assert extract_table_names(sql) == {'people'}

    def test_substring_from(self):
        sql = "SELECT SUBSTRING(title FROM 2 FOR 3) FROM books"
        assert extract_table_names(sql) == {'books'}

    def test_is_distinct_from(self):
        sql = "SELECT * FROM a WHERE x IS NOT DISTINCT FROM y"
        assert extract_table_names(sql) == {'a'}

    def test_no_tables(self):
        assert extract_table_names("SELECT 1") == set()

    def test_malformed_input_does_not_raise(self):
        for sql in ["SELECT * FROM", "FROM (", ") FROM )", "WITH AS (", "'''", '"', "((((("]:
            assert isinstance(extract_table_names(sql), set)


class TestTableNameExtractor:
    def test_object_interface(self):
        assert TableNameExtractor().extract("SELECT * FROM users") == {'users'}
