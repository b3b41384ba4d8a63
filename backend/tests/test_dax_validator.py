"""DAX query validation and repair tests."""

import pytest

from pbi_chat.dax.validator import (
    DaxErrorKind,
    InvalidQuery,
    QuoteState,
    ValidQuery,
    scan_quotes,
    validate_dax_query,
)


class TestLeadKeyword:
    """EVALUATE presence and position."""

    @pytest.mark.parametrize("query", ["", "   \n\t", None, 42])
    def test_empty_or_non_string_input(self, query):
        result = validate_dax_query(query)
        assert isinstance(result, InvalidQuery)
        assert result.kind == DaxErrorKind.EMPTY_INPUT
        assert result.error == "Query is empty or not a string"
        assert result.fixed_query is None

    def test_missing_keyword_is_prefixed(self):
        result = validate_dax_query("SUM(sales[Amount])")
        assert isinstance(result, InvalidQuery)
        assert result.kind == DaxErrorKind.MISSING_LEAD_KEYWORD
        assert result.fixed_query == "EVALUATE SUM(sales[Amount])"
        assert result.is_fixable

    def test_missing_keyword_fix_uses_trimmed_text(self):
        result = validate_dax_query("  SUM(sales[Amount])  \n")
        assert result.fixed_query == "EVALUATE SUM(sales[Amount])"

    def test_leading_text_is_cut(self):
        result = validate_dax_query("foo EVALUATE SUM(x)")
        assert isinstance(result, InvalidQuery)
        assert result.kind == DaxErrorKind.MISPLACED_LEAD_KEYWORD
        assert result.fixed_query == "EVALUATE SUM(x)"

    def test_keyword_match_is_case_insensitive(self):
        result = validate_dax_query("Here is the query: evaluate ROW(\"a\", 1)")
        assert result.fixed_query == "evaluate ROW(\"a\", 1)"

    def test_keyword_check_runs_before_structure_checks(self):
        result = validate_dax_query("SUM(sales[Amount]")
        assert result.kind == DaxErrorKind.MISSING_LEAD_KEYWORD
        assert result.fixed_query == "EVALUATE SUM(sales[Amount]"

    def test_repeated_keyword_uses_first_occurrence(self):
        result = validate_dax_query("note: EVALUATE ROW(\"a\", 1) EVALUATE ROW(\"b\", 2)")
        assert result.fixed_query == "EVALUATE ROW(\"a\", 1) EVALUATE ROW(\"b\", 2)"

    def test_repeated_keyword_with_leading_keyword_is_accepted(self):
        query = "EVALUATE ROW(\"a\", 1) EVALUATE ROW(\"b\", 2)"
        assert validate_dax_query(query) == ValidQuery(query=query)


class TestParentheses:

    def test_missing_closing_parenthesis(self):
        result = validate_dax_query("EVALUATE SUM(sales[Amount]")
        assert isinstance(result, InvalidQuery)
        assert result.kind == DaxErrorKind.UNBALANCED_PARENTHESES
        assert "missing closing parentheses" in result.error
        assert result.fixed_query is None

    def test_too_many_closing_parentheses(self):
        result = validate_dax_query("EVALUATE ROW(\"a\", 1))")
        assert result.kind == DaxErrorKind.UNBALANCED_PARENTHESES
        assert "too many closing parentheses" in result.error
        assert result.fixed_query is None

    def test_closing_before_opening_fails_even_if_counts_match(self):
        result = validate_dax_query("EVALUATE )ROW(\"a\", 1(")
        assert "too many closing parentheses" in result.error


class TestQuotes:

    def test_unclosed_single_quote(self):
        result = validate_dax_query("EVALUATE 'Sales")
        assert result.kind == DaxErrorKind.UNBALANCED_QUOTES
        assert "single quote" in result.error
        assert result.fixed_query is None

    def test_unclosed_double_quote(self):
        result = validate_dax_query("EVALUATE ROW(\"Total, 1)")
        assert result.kind == DaxErrorKind.UNBALANCED_QUOTES
        assert "double quote" in result.error

    def test_double_quote_inside_single_quotes_is_inert(self):
        query = "EVALUATE FILTER('Sales \"EU', 'Sales \"EU'[Amount] > 0)"
        assert isinstance(validate_dax_query(query), ValidQuery)

    def test_single_quote_inside_double_quotes_is_inert(self):
        query = "EVALUATE ROW(\"Customer's total\", SUM(sales[Amount]))"
        assert isinstance(validate_dax_query(query), ValidQuery)

    def test_parentheses_checked_before_quotes(self):
        result = validate_dax_query("EVALUATE ROW(\"Total, 1")
        assert result.kind == DaxErrorKind.UNBALANCED_PARENTHESES


class TestQuoteAutomaton:

    @pytest.mark.parametrize(
        "text, state",
        [
            ("", QuoteState.OUTSIDE),
            ("'a'", QuoteState.OUTSIDE),
            ("'a", QuoteState.IN_SINGLE),
            ('"a', QuoteState.IN_DOUBLE),
            ("'a\"", QuoteState.IN_SINGLE),
            ("\"a'", QuoteState.IN_DOUBLE),
            ('"say ""hi"""', QuoteState.OUTSIDE),
        ],
    )
    def test_final_state(self, text, state):
        assert scan_quotes(text) is state


class TestBody:

    @pytest.mark.parametrize("query", ["EVALUATE", "  evaluate  "])
    def test_keyword_only(self, query):
        result = validate_dax_query(query)
        assert result.kind == DaxErrorKind.EMPTY_BODY
        assert "only EVALUATE keyword" in result.error
        assert result.fixed_query is None

    def test_valid_row_query(self):
        result = validate_dax_query('EVALUATE ROW("Total", 1)')
        assert result == ValidQuery(query='EVALUATE ROW("Total", 1)')
        assert result.valid

    def test_valid_query_is_trimmed(self):
        result = validate_dax_query("\n  EVALUATE sales  \n")
        assert result == ValidQuery(query="EVALUATE sales")


class TestIdempotence:

    @pytest.mark.parametrize(
        "query",
        [
            'EVALUATE ROW("Total", 1)',
            "  EVALUATE SUMMARIZECOLUMNS(sales[Item], \"Qty\", SUM(sales[Quantity]))  ",
            "EVALUATE TOPN(5, 'Sales', 'Sales'[Amount], DESC)",
        ],
    )
    def test_revalidating_a_valid_query_is_stable(self, query):
        first = validate_dax_query(query)
        assert first.valid
        assert validate_dax_query(first.query) == first

    @pytest.mark.parametrize(
        "query",
        ["SUM(sales[Amount])", "Sure! EVALUATE ROW(\"x\", 1)"],
    )
    def test_fixed_query_validates(self, query):
        fixed = validate_dax_query(query).fixed_query
        assert validate_dax_query(fixed) == ValidQuery(query=fixed)
