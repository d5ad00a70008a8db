"""
Tests for the parse module.

Tests cover:
- Extracting grade table rows
- Login page detection
- Missing table handling
"""

import pytest

from grade_watcher.fetch import SessionExpiredError, SourceFetchError
from grade_watcher.normalize import normalize_rows
from grade_watcher.parse import extract_grade_rows


GRADE_PAGE_HTML = """
<html>
<body>
  <div data-testid="table">
    <table>
      <thead>
        <tr><th></th><th>Course</th><th>Grade</th><th>Percent</th><th>Credits</th></tr>
      </thead>
      <tbody>
        <tr>
          <td>1</td>
          <td><div>CPSC_V 110-101 - Computation,
            Programs, and Programming</div></td>
          <td>A+</td><td> 92 </td><td>4</td>
        </tr>
        <tr><td>2</td><td>MATH_V 100-104 - Calculus</td><td></td><td></td><td>3</td></tr>
        <tr><td></td><td>2024-25 Winter Term 1</td></tr>
      </tbody>
    </table>
  </div>
</body>
</html>
"""


class TestExtractGradeRows:
    """Tests for grade table extraction."""

    def test_extracts_body_rows(self):
        """Test that every body row becomes a list of cell texts."""
        rows = extract_grade_rows(GRADE_PAGE_HTML)

        assert len(rows) == 3
        assert rows[1] == ["2", "MATH_V 100-104 - Calculus", "", "", "3"]
        assert rows[0][2:] == ["A+", "92", "4"]

    def test_rows_normalize(self):
        """Test that extracted rows feed the normalizer."""
        records = normalize_rows(extract_grade_rows(GRADE_PAGE_HTML))

        assert records.keys() == [
            "CPSC_V 110-101 - Computation, Programs, and Programming",
            "MATH_V 100-104 - Calculus",
        ]

    def test_empty_table(self):
        """Test a table with no body rows."""
        html = '<div data-testid="table"><table><tbody></tbody></table></div>'

        assert extract_grade_rows(html) == []

    def test_login_page_raises_session_expired(self):
        """Test that the login form raises SessionExpiredError."""
        html = '<form><input id="username"><input id="password" type="password"></form>'

        with pytest.raises(SessionExpiredError):
            extract_grade_rows(html)

    def test_missing_table_raises(self):
        """Test that a page without the table raises SourceFetchError."""
        with pytest.raises(SourceFetchError, match="Grade table not found"):
            extract_grade_rows("<html><body><p>Loading...</p></body></html>")
