"""
Utility package exports
"""

from bulk_import.utils.helpers import flatten_list, normalize_url, parse_url_input, truncate
from bulk_import.utils.diff import compute_line_diff, collapse_unchanged

__all__ = ["flatten_list", "normalize_url", "parse_url_input", "truncate", "compute_line_diff", "collapse_unchanged"]
