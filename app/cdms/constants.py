"""
Central constants for the document lifecycle application.
"""
from __future__ import annotations

# Location facet of a reference code (fixed table; not admin-editable)
LOCATION_REF_CODES = {
    "England": "EN",
    "Wales": "WA",
    "Poland": "PL",
    "Group": "GR",
}

LOCATIONS = tuple(LOCATION_REF_CODES)

# change_summary written on the superseded row when Create replaces it
AUTO_ARCHIVE_SUMMARY = "Auto-archived due to new version added."

DEFAULT_REVIEW_PERIOD_MONTHS = 12

DEFAULT_SUGGESTION_LIMIT = 5

# Seeded by scripts/init_db.py (name, ref_code)
DEFAULT_DOCUMENT_TYPES = (
    ("Policy", "POL"),
    ("Procedure", "PRO"),
    ("Work Instruction", "WI"),
    ("Safe System of Work", "SSOW"),
)
