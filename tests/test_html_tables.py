"""
HTML table decomposition tests (no network).
"""

from unittest.mock import MagicMock, patch

import pytest
import requests

from src.scrappers.registry.html_tables import fetch_page_html, read_html_file, tables_from_html

PAGE = """
<html><body>
<table id="layout"><tr><td>메뉴</td><td>
    <table id="results">
        <tr><th>사건번호</th><th>소재지</th><th>최저가</th></tr>
        <tr><td>2024타경10234</td><td>부산광역시 해운대구 우동 1394</td><td>416,000,000</td></tr>
        <tr><td>2024타경10877</td><td>부산광역시 수영구 광안동 192-5</td><td>160,000,000</td></tr>
    </table>
</td></tr></table>
<table id="empty"></table>
</body></html>
"""


def test_tables_from_html_keeps_nested_rows_separate():
    tables = tables_from_html(PAGE)
    assert len(tables) == 2  # the empty table has no rows

    layout, results = tables
    assert layout.header[0] == "메뉴"
    assert layout.rows == ()
    assert results.header == ("사건번호", "소재지", "최저가")
    assert results.rows[1] == ("2024타경10877", "부산광역시 수영구 광안동 192-5", "160,000,000")


def test_read_html_file_falls_back_to_euc_kr(tmp_path):
    path = tmp_path / "page.html"
    path.write_bytes("<table><tr><th>사건번호</th></tr></table>".encode("euc-kr"))
    assert "사건번호" in read_html_file(path)


def test_fetch_page_html_raises_on_http_error():
    response = MagicMock()
    response.raise_for_status.side_effect = requests.HTTPError("503 Server Error")
    with patch("src.scrappers.registry.html_tables.requests.get", return_value=response):
        with pytest.raises(requests.HTTPError):
            fetch_page_html("https://example.org/list")


def test_fetch_page_html_returns_text():
    response = MagicMock()
    response.encoding = "utf-8"
    response.text = PAGE
    with patch("src.scrappers.registry.html_tables.requests.get", return_value=response) as get:
        assert fetch_page_html("https://example.org/list") == PAGE
    assert get.call_args.kwargs["timeout"] == 30
