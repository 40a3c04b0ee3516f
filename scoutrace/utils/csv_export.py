"""CSV export utilities."""

import csv
import io
from decimal import Decimal
from typing import Any, Iterable, List, Tuple


class CSVBuilder:
    """Builder for spreadsheet-friendly CSV files (French Excel defaults)."""

    # Excel detects UTF-8 only with a BOM
    BOM = "\ufeff"
    DELIMITER = ";"

    # Leading characters a spreadsheet would evaluate as a formula
    FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")

    def __init__(self, columns: List[Tuple[str, str]]) -> None:
        """Initialize the CSV builder.

        Args:
            columns: (row key, header label) pairs, in output order
        """
        self.columns = columns
        self.rows: list[list[str]] = []

    @classmethod
    def format_value(cls, value: Any) -> str:
        """Format one cell.

        Args:
            value: Raw value from a listing row

        Returns:
            Cell text safe to open in a spreadsheet
        """
        if value is None:
            return ""
        if isinstance(value, Decimal):
            # Decimal comma, as French spreadsheets expect
            return f"{value:.2f}".replace(".", ",")
        if isinstance(value, bool):
            return "oui" if value else "non"
        text = str(value)
        if text.startswith(cls.FORMULA_PREFIXES) and not _is_number(text):
            text = "'" + text
        return text

    def add_rows(self, rows: Iterable[dict]) -> "CSVBuilder":
        for row in rows:
            self.rows.append([self.format_value(row.get(key)) for key, _ in self.columns])
        return self

    def build(self) -> str:
        """Render the CSV document."""
        buffer = io.StringIO()
        writer = csv.writer(buffer, delimiter=self.DELIMITER, lineterminator="\r\n")
        writer.writerow([label for _, label in self.columns])
        writer.writerows(self.rows)
        return self.BOM + buffer.getvalue()


def _is_number(text: str) -> bool:
    try:
        float(text.replace(",", "."))
        return True
    except ValueError:
        return False
