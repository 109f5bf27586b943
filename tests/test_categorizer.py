"""
Unit Tests — Categorizer
========================
Classification passes, grouping completeness, priority formula and
deterministic scheduling.
"""
import pytest

from remediator.core.constants import (
    CATEGORY_NAMES,
    CONFIGURATION_ISSUES,
    IMPORT_ISSUES,
    MISSING_DECLARATIONS,
    OTHER,
    SYNTAX_ERRORS,
    TYPE_MISMATCHES,
    UNUSED_CODE,
)
from remediator.models.diagnostic import DiagnosticRecord
from remediator.parser import categorizer
from remediator.parser.categorizer import (
    CATALOGUE,
    calculate_priority,
    categorize,
    classify,
    most_common_codes,
    schedule,
    severity_for,
)


def _rec(code: str, message: str = "", file: str = "src/a.ts", line: int = 1) -> DiagnosticRecord:
    return DiagnosticRecord(file=file, line=line, column=1, code=code, message=message)


# ===========================================================================
# 1. Classification passes
# ===========================================================================
class TestClassify:

    @pytest.mark.parametrize("code,expected", [
        ("TS1005", SYNTAX_ERRORS),
        ("TS1128", SYNTAX_ERRORS),
        ("TS2307", IMPORT_ISSUES),
        ("TS2300", IMPORT_ISSUES),
        ("TS2322", TYPE_MISMATCHES),
        ("TS2339", TYPE_MISMATCHES),
        ("TS7008", MISSING_DECLARATIONS),
        ("TS2554", MISSING_DECLARATIONS),
        ("TS2686", CONFIGURATION_ISSUES),
        ("TS18046", CONFIGURATION_ISSUES),
        ("CS0246", IMPORT_ISSUES),
    ])
    def test_exact_code_table(self, code, expected):
        assert classify(code) == expected

    def test_code_match_is_case_insensitive(self):
        assert classify("ts1005") == SYNTAX_ERRORS

    def test_split_code_unused_local(self):
        assert classify("TS6133", "'x' is declared but its value is never read.") == UNUSED_CODE

    def test_split_code_unused_import(self):
        assert classify("TS6133", "Import 'x' is declared but its value is never read.") == IMPORT_ISSUES

    def test_message_fallback_for_unknown_code(self):
        assert classify("TS9999", "Cannot find module 'left-pad'.") == IMPORT_ISSUES
        assert classify("TS9999", "Unexpected token. A constructor was expected.") == SYNTAX_ERRORS
        assert classify("TS9999", "Type 'A' is not assignable to type 'B'.") == TYPE_MISMATCHES

    def test_default_other(self):
        assert classify("TS9999", "Something unusual happened.") == OTHER

    def test_catalogue_order_matches_constants(self):
        assert [c.name for c in CATALOGUE] == CATEGORY_NAMES

    def test_base_priorities(self):
        base = {c.name: c.base_priority for c in CATALOGUE}
        assert base == {
            SYNTAX_ERRORS: 10,
            IMPORT_ISSUES: 9,
            MISSING_DECLARATIONS: 8,
            TYPE_MISMATCHES: 7,
            CONFIGURATION_ISSUES: 6,
            UNUSED_CODE: 5,
            OTHER: 1,
        }


class TestSeverityFor:

    def test_error_in_syntax_category(self):
        assert severity_for("error", "TS1005") == "critical"

    def test_error_elsewhere(self):
        assert severity_for("Error", "TS2307") == "high"

    def test_warning(self):
        assert severity_for("warning", "TS1005") == "medium"

    def test_suggestion(self):
        assert severity_for("suggestion", "TS6133") == "low"


# ===========================================================================
# 2. Grouping
# ===========================================================================
class TestCategorize:

    def test_every_record_in_exactly_one_category(self):
        records = [
            _rec("TS2307", line=1),
            _rec("TS1005", line=2),
            _rec("TS9999", "odd", line=3),
            _rec("TS2322", line=4),
            _rec("TS6133", "'y' is declared but its value is never read.", line=5),
            _rec("TS2307", line=6),
        ]
        result = categorize(records)
        grouped = [r for group in result.by_category.values() for r in group]
        assert len(grouped) == len(records)
        assert sorted(grouped, key=lambda r: r.line) == records
        assert result.total == 6

    def test_by_category_in_catalogue_order_non_empty_only(self):
        result = categorize([_rec("TS9999", "odd"), _rec("TS2307"), _rec("TS1005")])
        assert list(result.by_category) == [SYNTAX_ERRORS, IMPORT_ISSUES, OTHER]
        assert all(result.by_category.values())

    def test_by_code_first_seen_order(self):
        result = categorize([_rec("TS2322"), _rec("TS1005"), _rec("TS2322")])
        assert list(result.by_code) == ["TS2322", "TS1005"]
        assert len(result.by_code["TS2322"]) == 2

    def test_input_order_preserved_within_group(self):
        records = [_rec("TS2307", line=n) for n in (5, 1, 3)]
        assert [r.line for r in categorize(records).get(IMPORT_ISSUES)] == [5, 1, 3]

    def test_empty(self):
        result = categorize([])
        assert result.by_category == {}
        assert result.by_code == {}
        assert result.counts() == {}

    def test_deterministic(self):
        records = [_rec("TS2307"), _rec("TS1005"), _rec("TS2322")]
        assert categorize(records) == categorize(list(records))


# ===========================================================================
# 3. Priority & scheduling
# ===========================================================================
class TestPriority:

    def test_formula(self):
        records = [_rec("TS1005", file="a.ts"), _rec("TS1005", file="b.ts"), _rec("TS1005", file="b.ts")]
        assert calculate_priority(SYNTAX_ERRORS, records) == pytest.approx(10 + 0.2 + 0.03)

    def test_volume_boost_saturates(self):
        records = [_rec("TS6133", file=f"f{i % 500}.ts", line=i + 1) for i in range(5000)]
        assert calculate_priority(UNUSED_CODE, records) == pytest.approx(5 + 2 + 1)

    def test_syntax_outranks_any_volume_of_unused(self):
        unused = [_rec("TS6133", "'x' is declared but its value is never read.", file=f"f{i}.ts")
                  for i in range(3000)]
        result = categorize([_rec("TS1005")] + unused)
        assert [c.name for c in schedule(result)] == [SYNTAX_ERRORS, UNUSED_CODE]

    def test_schedule_sorted_descending(self):
        result = categorize([_rec("TS9999", "odd"), _rec("TS2322"), _rec("TS2307"), _rec("TS1005")])
        names = [c.name for c in schedule(result)]
        assert names == [SYNTAX_ERRORS, IMPORT_ISSUES, TYPE_MISMATCHES, OTHER]
        priorities = [c.priority for c in schedule(result)]
        assert priorities == sorted(priorities, reverse=True)

    def test_ties_keep_catalogue_order(self, monkeypatch):
        monkeypatch.setattr(categorizer, "calculate_priority", lambda name, records: 5.0)
        result = categorize([_rec("TS9999", "odd"), _rec("TS6133", "'x' is declared but never used"),
                             _rec("TS2322"), _rec("TS1005")])
        assert [c.name for c in schedule(result)] == [SYNTAX_ERRORS, TYPE_MISMATCHES, UNUSED_CODE, OTHER]

    def test_disabled_categories_skipped(self):
        result = categorize([_rec("TS2307"), _rec("TS1005")])
        assert [c.name for c in schedule(result, disabled=[SYNTAX_ERRORS])] == [IMPORT_ISSUES]

    def test_scheduled_category_counts(self):
        result = categorize([_rec("TS2307", file="a.ts"), _rec("TS2307", file="b.ts", line=2)])
        category = schedule(result)[0]
        assert category.diagnostic_count == 2
        assert category.file_count == 2
        assert category.strategy_id == "imports"


def test_most_common_codes():
    result = categorize([_rec("TS2322"), _rec("TS1005"), _rec("TS1005"), _rec("TS2307"), _rec("TS2322")])
    assert most_common_codes(result) == [("TS2322", 2), ("TS1005", 2), ("TS2307", 1)]
    assert most_common_codes(result, limit=1) == [("TS2322", 2)]
