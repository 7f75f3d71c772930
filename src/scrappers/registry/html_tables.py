"""
HTML Table Decomposition

Turns a saved or fetched registry page into the header + row text matrices
that the table extractor consumes. No rendering or navigation happens here:
pages that need a browser are captured elsewhere and handed over as HTML.

Author: Auction Registry Intelligence Platform
"""

from pathlib import Path
from typing import List, Union

import requests
from bs4 import BeautifulSoup

from config.constants import (
	DEFAULT_USER_AGENT,
	PAGE_ENCODING_FALLBACKS,
	REQUEST_TIMEOUT_DEFAULT,
)
from src.scrappers.registry.table_extractor import RawTable
from src.utils.logger import get_logger

logger = get_logger(__name__)


def _own_rows(table) -> list:
	"""<tr> elements belonging to this table, not to tables nested inside it."""
	return [row for row in table.find_all("tr") if row.find_parent("table") is table]


def tables_from_html(html: Union[str, bytes]) -> List[RawTable]:
	"""
	Decompose every <table> on a page into a RawTable.

	The first row's th/td cells form the header; later rows contribute their
	td cells. Tables without any data row are still returned so the extractor
	can score (and reject) them.

	Example:
		>>> tables = tables_from_html(open("page.html", encoding="utf-8").read())
		>>> tables[0].header
		('사건번호', '법원', ...)
	"""
	soup = BeautifulSoup(html, "html.parser")
	tables: List[RawTable] = []

	for table in soup.find_all("table"):
		rows = _own_rows(table)
		if not rows:
			continue

		header = [cell.get_text(" ", strip=True) for cell in rows[0].find_all(["th", "td"], recursive=False)]
		data_rows = []
		for row in rows[1:]:
			cells = row.find_all("td", recursive=False)
			if not cells:
				continue
			data_rows.append([cell.get_text(" ", strip=True) for cell in cells])

		tables.append(RawTable.from_matrix(header, data_rows))

	logger.debug(f"Decomposed page into {len(tables)} tables")
	return tables


def read_html_file(path: Union[str, Path]) -> str:
	"""Read a saved page, trying the encodings registry sites are served in."""
	raw = Path(path).read_bytes()
	for encoding in PAGE_ENCODING_FALLBACKS:
		try:
			return raw.decode(encoding)
		except UnicodeDecodeError:
			continue
	logger.warning(f"Could not decode {path} cleanly, replacing invalid bytes")
	return raw.decode("utf-8", errors="replace")


def fetch_page_html(url: str, timeout: int = REQUEST_TIMEOUT_DEFAULT) -> str:
	"""
	Fetch a static results page.

	Raises:
		requests.HTTPError: If the server answers with an error status
		requests.Timeout: If the request times out
	"""
	logger.info(f"Fetching page: {url}")

	try:
		response = requests.get(url, headers={"User-Agent": DEFAULT_USER_AGENT}, timeout=timeout)
		response.raise_for_status()
	except requests.Timeout as e:
		logger.error(f"Request timed out while fetching {url}: {e}")
		raise
	except requests.RequestException as e:
		logger.error(f"Request error occurred while fetching {url}: {e}")
		raise

	if response.encoding is None or response.encoding.lower() == "iso-8859-1":
		response.encoding = response.apparent_encoding
	return response.text
