"""
Constants
Category names and snapshot labels shared across the engine.
"""
SYNTAX_ERRORS = "syntax-errors"
IMPORT_ISSUES = "import-issues"
TYPE_MISMATCHES = "type-mismatches"
MISSING_DECLARATIONS = "missing-declarations"
UNUSED_CODE = "unused-code"
CONFIGURATION_ISSUES = "configuration-issues"
OTHER = "other"

# Declaration order of the catalogue; also the tie-break order for scheduling
CATEGORY_NAMES = [
    SYNTAX_ERRORS,
    IMPORT_ISSUES,
    TYPE_MISMATCHES,
    MISSING_DECLARATIONS,
    UNUSED_CODE,
    CONFIGURATION_ISSUES,
    OTHER,
]

CHECKPOINT_PREFIX = "checkpoint:"
COMMIT_PREFIX = "fix:"
