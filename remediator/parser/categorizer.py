"""
Categorizer
===========
Maps diagnostics to exactly one root-cause category of a fixed, ordered
catalogue and computes per-category scheduling priority.

Classification Strategy:
    1. EXACT CODE TABLE FIRST — code → category (fast path)
    2. SPLIT CODES SECOND — codes spanning several root causes are routed
       by message substrings (e.g. TS6133 on an import vs a local)
    3. MESSAGE PATTERNS THIRD — regex fallbacks for unknown codes
    4. DEFAULT — "other"

Priority:
    priority = base_priority + min(file_count * 0.1, 2) + min(error_count * 0.01, 1)

    Volume boosts saturate, so a category with thousands of trivial
    diagnostics cannot outrank the syntax category, whose base priority is
    the highest in the catalogue.

Deterministic: same diagnostics → same categories → same schedule.
"""
import re
from dataclasses import dataclass, field

from remediator.core.constants import (
    SYNTAX_ERRORS,
    IMPORT_ISSUES,
    TYPE_MISMATCHES,
    MISSING_DECLARATIONS,
    UNUSED_CODE,
    CONFIGURATION_ISSUES,
    OTHER,
)
from remediator.models.category import Category, CategoryDefinition
from remediator.models.diagnostic import DiagnosticRecord


# ---------------------------------------------------------------------------
# Catalogue (declaration order is the scheduling tie-break)
# ---------------------------------------------------------------------------
CATALOGUE: list[CategoryDefinition] = [
    CategoryDefinition(name=SYNTAX_ERRORS,        base_priority=10, root_cause="SYNTAX_ERROR",        strategy_id="syntax"),
    CategoryDefinition(name=IMPORT_ISSUES,        base_priority=9,  root_cause="MISSING_IMPORT",      strategy_id="imports"),
    CategoryDefinition(name=TYPE_MISMATCHES,      base_priority=7,  root_cause="TYPE_MISMATCH",       strategy_id="types"),
    CategoryDefinition(name=MISSING_DECLARATIONS, base_priority=8,  root_cause="MISSING_DECLARATION", strategy_id="declarations"),
    CategoryDefinition(name=UNUSED_CODE,          base_priority=5,  root_cause="UNUSED_CODE",         strategy_id="unused"),
    CategoryDefinition(name=CONFIGURATION_ISSUES, base_priority=6,  root_cause="CONFIGURATION",       strategy_id="configuration"),
    CategoryDefinition(name=OTHER,                base_priority=1,  root_cause="UNKNOWN",             strategy_id="other"),
]

_BY_NAME: dict[str, CategoryDefinition] = {c.name: c for c in CATALOGUE}
_ORDER: dict[str, int] = {c.name: i for i, c in enumerate(CATALOGUE)}


def get_definition(name: str) -> CategoryDefinition:
    """Return the catalogue entry for a category name ("other" if unknown)."""
    return _BY_NAME.get(name, _BY_NAME[OTHER])


# ---------------------------------------------------------------------------
# 1. Exact Code Table
# ---------------------------------------------------------------------------
_CODE_TABLE: dict[str, str] = {
    # TypeScript: syntax
    "TS1002": SYNTAX_ERRORS,   # Unterminated string literal
    "TS1003": SYNTAX_ERRORS,   # Identifier expected
    "TS1005": SYNTAX_ERRORS,   # 'x' expected
    "TS1109": SYNTAX_ERRORS,   # Expression expected
    "TS1128": SYNTAX_ERRORS,   # Declaration or statement expected
    "TS1136": SYNTAX_ERRORS,   # Property assignment expected
    "TS1161": SYNTAX_ERRORS,   # Unterminated regular expression literal
    "TS1381": SYNTAX_ERRORS,   # Unexpected token '}'
    "TS1382": SYNTAX_ERRORS,   # Unexpected token '>'
    "TS2451": SYNTAX_ERRORS,   # Cannot redeclare block-scoped variable
    "TS17002": SYNTAX_ERRORS,  # Expected corresponding JSX closing tag
    "TS17008": SYNTAX_ERRORS,  # JSX element has no corresponding closing tag
    # TypeScript: imports / modules
    "TS1192": IMPORT_ISSUES,   # Module has no default export
    "TS2300": IMPORT_ISSUES,   # Duplicate identifier
    "TS2304": IMPORT_ISSUES,   # Cannot find name
    "TS2305": IMPORT_ISSUES,   # Module has no exported member
    "TS2307": IMPORT_ISSUES,   # Cannot find module
    "TS2614": IMPORT_ISSUES,   # Module has no exported member (did you mean default)
    "TS2724": IMPORT_ISSUES,   # Module has no exported member named (did you mean)
    "TS6192": IMPORT_ISSUES,   # All imports in import declaration are unused
    # TypeScript: type compatibility
    "TS2322": TYPE_MISMATCHES,
    "TS2339": TYPE_MISMATCHES,
    "TS2345": TYPE_MISMATCHES,
    "TS2353": TYPE_MISMATCHES,
    "TS2741": TYPE_MISMATCHES,
    "TS2769": TYPE_MISMATCHES,
    "TS7019": TYPE_MISMATCHES,
    "TS7031": TYPE_MISMATCHES,
    # TypeScript: missing declarations
    "TS2552": MISSING_DECLARATIONS,
    "TS2554": MISSING_DECLARATIONS,
    "TS7006": MISSING_DECLARATIONS,
    "TS7008": MISSING_DECLARATIONS,
    "TS18004": MISSING_DECLARATIONS,
    # TypeScript: unused code
    "TS6196": UNUSED_CODE,     # 'x' is declared but never used (types)
    "TS6198": UNUSED_CODE,     # All destructured elements are unused
    "TS7027": UNUSED_CODE,     # Unreachable code detected
    # TypeScript: configuration
    "TS2686": CONFIGURATION_ISSUES,
    "TS2792": CONFIGURATION_ISSUES,
    "TS5023": CONFIGURATION_ISSUES,
    "TS5024": CONFIGURATION_ISSUES,
    "TS6053": CONFIGURATION_ISSUES,
    "TS17004": CONFIGURATION_ISSUES,
    "TS18046": CONFIGURATION_ISSUES,
    # C# (same positional format)
    "CS1002": SYNTAX_ERRORS,
    "CS1026": SYNTAX_ERRORS,
    "CS1513": SYNTAX_ERRORS,
    "CS1514": SYNTAX_ERRORS,
    "CS0234": IMPORT_ISSUES,
    "CS0246": IMPORT_ISSUES,
    "CS0029": TYPE_MISMATCHES,
    "CS1503": TYPE_MISMATCHES,
    "CS0103": MISSING_DECLARATIONS,
    "CS0168": UNUSED_CODE,
    "CS0219": UNUSED_CODE,
}


# ---------------------------------------------------------------------------
# 2. Split Codes (one code, several root causes)
# ---------------------------------------------------------------------------
# code → ordered (regex, category) rules, then the default for that code
_SPLIT_CODES: dict[str, tuple[list[tuple[re.Pattern, str]], str]] = {
    # "'x' is declared but its value is never read." covers imports and locals
    "TS6133": (
        [(re.compile(r"\bimport", re.I), IMPORT_ISSUES)],
        UNUSED_CODE,
    ),
    # "The using directive ... is unnecessary" vs unused local
    "CS8019": (
        [(re.compile(r"\busing directive", re.I), IMPORT_ISSUES)],
        UNUSED_CODE,
    ),
}


# ---------------------------------------------------------------------------
# 3. Message Patterns (unknown codes)
# ---------------------------------------------------------------------------
_MESSAGE_PATTERNS: list[tuple[re.Pattern, str]] = [
    (re.compile(r"'.+' expected",                   re.I), SYNTAX_ERRORS),
    (re.compile(r"unexpected token",                re.I), SYNTAX_ERRORS),
    (re.compile(r"unterminated",                    re.I), SYNTAX_ERRORS),
    (re.compile(r"cannot find module",              re.I), IMPORT_ISSUES),
    (re.compile(r"has no exported member",          re.I), IMPORT_ISSUES),
    (re.compile(r"duplicate identifier",            re.I), IMPORT_ISSUES),
    (re.compile(r"all imports in import declaration", re.I), IMPORT_ISSUES),
    (re.compile(r"is not assignable to",            re.I), TYPE_MISMATCHES),
    (re.compile(r"does not exist on type",          re.I), TYPE_MISMATCHES),
    (re.compile(r"cannot find name",                re.I), MISSING_DECLARATIONS),
    (re.compile(r"implicitly has an? '?any'? type", re.I), MISSING_DECLARATIONS),
    (re.compile(r"expected \d+ arguments?",         re.I), MISSING_DECLARATIONS),
    (re.compile(r"is declared but (its value is )?never (read|used)", re.I), UNUSED_CODE),
    (re.compile(r"unreachable code",                re.I), UNUSED_CODE),
    (re.compile(r"tsconfig|compiler option|--jsx",  re.I), CONFIGURATION_ISSUES),
]


def classify(code: str, message: str = "") -> str:
    """
    Return the category name for a diagnostic code and message.

    Parameters
    ----------
    code : str
        Toolchain diagnostic code, matched exactly (case-insensitive).
    message : str
        Message text for split-code rules and fallback patterns.
    """
    key = code.strip().upper()

    # --- Pass 1: exact code table ---
    if key in _CODE_TABLE:
        return _CODE_TABLE[key]

    # --- Pass 2: split codes ---
    if key in _SPLIT_CODES:
        rules, default = _SPLIT_CODES[key]
        for pattern, category in rules:
            if pattern.search(message):
                return category
        return default

    # --- Pass 3: message patterns ---
    for pattern, category in _MESSAGE_PATTERNS:
        if pattern.search(message):
            return category

    # --- Default ---
    return OTHER


def classify_record(record: DiagnosticRecord) -> str:
    return classify(record.code, record.message)


def severity_for(keyword: str, code: str, message: str = "") -> str:
    """
    Derive a record's severity from its severity keyword and category.

    error in the syntax category → critical, other error → high,
    warning → medium, anything else (info / message / suggestion) → low.
    """
    kw = keyword.strip().lower()
    if kw == "error":
        return "critical" if classify(code, message) == SYNTAX_ERRORS else "high"
    if kw == "warning":
        return "medium"
    return "low"


# ---------------------------------------------------------------------------
# Categorization Result
# ---------------------------------------------------------------------------
@dataclass
class CategorizationResult:
    """
    Diagnostics grouped two ways.

    by_category — catalogue order, non-empty categories only
    by_code     — first-seen order of codes
    """
    by_category: dict[str, list[DiagnosticRecord]] = field(default_factory=dict)
    by_code: dict[str, list[DiagnosticRecord]] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(len(v) for v in self.by_category.values())

    def counts(self) -> dict[str, int]:
        return {name: len(records) for name, records in self.by_category.items()}

    def get(self, category: str) -> list[DiagnosticRecord]:
        return self.by_category.get(category, [])


def categorize(records: list[DiagnosticRecord]) -> CategorizationResult:
    """
    Assign every record to exactly one category and group by code.

    The union of ``by_category`` values equals the input with no duplicates
    and no omissions; within each group, input order is preserved.
    """
    grouped: dict[str, list[DiagnosticRecord]] = {}
    by_code: dict[str, list[DiagnosticRecord]] = {}

    for record in records:
        grouped.setdefault(classify_record(record), []).append(record)
        by_code.setdefault(record.code, []).append(record)

    by_category = {
        c.name: grouped[c.name] for c in CATALOGUE if c.name in grouped
    }
    return CategorizationResult(by_category=by_category, by_code=by_code)


# ---------------------------------------------------------------------------
# Priority & Scheduling
# ---------------------------------------------------------------------------
def calculate_priority(category: str, records: list[DiagnosticRecord]) -> float:
    """Compute the saturating scheduling priority of a category."""
    base = get_definition(category).base_priority
    error_count = len(records)
    file_count = len({r.file for r in records})
    return base + min(file_count * 0.1, 2) + min(error_count * 0.01, 1)


def build_category(name: str, records: list[DiagnosticRecord]) -> Category:
    definition = get_definition(name)
    return Category(
        name=definition.name,
        priority=round(calculate_priority(name, records), 4),
        root_cause=definition.root_cause,
        strategy_id=definition.strategy_id,
        diagnostic_count=len(records),
        file_count=len({r.file for r in records}),
    )


def schedule(result: CategorizationResult, disabled: tuple[str, ...] | list[str] = ()) -> list[Category]:
    """
    Order non-empty categories for phase execution.

    Priority descending; ties keep catalogue declaration order.
    """
    categories = [
        build_category(name, records)
        for name, records in result.by_category.items()
        if records and name not in disabled
    ]
    return sorted(categories, key=lambda c: (-c.priority, _ORDER.get(c.name, len(_ORDER))))


def most_common_codes(result: CategorizationResult, limit: int = 10) -> list[tuple[str, int]]:
    """Return (code, count) pairs, most frequent first, first-seen order on ties."""
    counted = [(code, len(records)) for code, records in result.by_code.items()]
    return sorted(counted, key=lambda item: -item[1])[:limit]
