# =============================================================================
# Unit Tests — SQL Keyword Filter & Identifier Quoting
# =============================================================================
#
# Pure functions, no database.
#
# Test groups:
#   1. is_dangerous — denylisted verbs in any case, false positives kept
#   2. quote_identifiers — bare identifiers, keywords, literals, wildcards
# =============================================================================

from __future__ import annotations

import pytest

from finchat.services.sql_safety import DANGEROUS_KEYWORDS, is_dangerous, quote_identifiers


class TestIsDangerous:
    @pytest.mark.parametrize("keyword", DANGEROUS_KEYWORDS)
    def test_every_keyword_in_any_case(self, keyword):
        for variant in (keyword, keyword.lower(), keyword.capitalize()):
            assert is_dangerous(f"{variant} something") is True

    def test_mixed_case(self):
        assert is_dangerous("DrOp VIEW fundamentals_view") is True

    def test_plain_select_is_safe(self):
        sql = 'SELECT ticker, "peRatio" FROM fundamentals_view ORDER BY "peRatio" ASC NULLS LAST LIMIT 20'
        assert is_dangerous(sql) is False

    def test_delete_statement(self):
        assert is_dangerous("DELETE FROM fundamentals_view") is True

    def test_keyword_inside_literal_is_still_rejected(self):
        """Substring match: a literal mentioning a verb is a false positive."""
        assert is_dangerous("SELECT * FROM latestnews_view WHERE title ILIKE '%created%'") is True


class TestQuoteIdentifiers:
    def test_quotes_bare_identifiers(self):
        assert (
            quote_identifiers("SELECT ticker FROM fundamentals_view LIMIT 5")
            == 'SELECT "ticker" FROM "fundamentals_view" LIMIT 5'
        )

    def test_keywords_and_functions_untouched(self):
        sql = quote_identifiers("SELECT COUNT(ticker) FROM fundamentals_view WHERE exDivDate > NOW()")
        assert sql == 'SELECT COUNT("ticker") FROM "fundamentals_view" WHERE "exDivDate" > NOW()'

    def test_idempotent_on_quoted_input(self):
        sql = 'SELECT "ticker", "peRatio" FROM "fundamentals_view" ORDER BY "peRatio" DESC NULLS LAST'
        assert quote_identifiers(sql) == sql
        assert quote_identifiers(quote_identifiers(sql)) == quote_identifiers(sql)

    def test_literal_with_keyword_like_words_untouched(self):
        sql = quote_identifiers("SELECT name FROM fundamentals_view WHERE name = 'select this'")
        assert sql == 'SELECT "name" FROM "fundamentals_view" WHERE "name" = \'select this\''

    def test_single_word_literal(self):
        sql = quote_identifiers("SELECT ticker FROM fundamentals_view WHERE sector = 'Technology'")
        assert sql.endswith("\"sector\" = 'Technology'")

    def test_like_wildcards_unquoted(self):
        sql = quote_identifiers("SELECT ticker FROM fundamentals_view WHERE industry ILIKE '%semi%'")
        assert sql.endswith("\"industry\" ILIKE '%semi%'")

    def test_numbers_untouched(self):
        sql = quote_identifiers("SELECT ticker FROM fundamentals_view WHERE forwardAnnualDividendYield > 3")
        assert sql.endswith('"forwardAnnualDividendYield" > 3')
