"""
Readers turning delimited text and spreadsheets into raw rows.
"""

from geoingest.core.tabular.reader import RawRow, format_cell_value, read_delimited, read_spreadsheet

__all__ = ["RawRow", "format_cell_value", "read_delimited", "read_spreadsheet"]
