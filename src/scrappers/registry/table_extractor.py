"""
Heuristic Auction Table Extractor

Registry result pages have no stable schema: the listing table moves around,
headers are reworded between courts, and pages carry layout tables, search
forms and pagination tables alongside the data. This module takes a page that
has already been decomposed into header + row text matrices and:
    1. Scores every candidate table for auction-record likelihood
    2. Picks the best table with enough rows (or none at all)
    3. Infers each column's role from its header by keyword matching
    4. Falls back to fixed positions for roles no header claimed
    5. Emits one raw record (role -> cell text) per usable data row

Everything here is deterministic: the same matrices and keyword tables always
produce the same records. Timestamps are attached by the caller afterwards.

Author: Auction Registry Intelligence Platform
"""

import re
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from config.constants import (
	COLUMN_FALLBACK_POSITIONS,
	COLUMN_KEYWORDS,
	MIN_TABLE_ROWS,
	MIN_TABLE_SCORE,
	ROW_COUNT_BONUS_PER_ROW,
	TABLE_SCORE_RULES,
)
from src.utils.logger import get_logger

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class RawTable:
	"""One candidate table: header cells plus data rows, all plain text."""
	header: Tuple[str, ...]
	rows: Tuple[Tuple[str, ...], ...]

	@classmethod
	def from_matrix(cls, header: Sequence[str], rows: Sequence[Sequence[str]]) -> "RawTable":
		return cls(
			header=tuple(str(cell) for cell in header),
			rows=tuple(tuple(str(cell) for cell in row) for row in rows),
		)

	@property
	def row_count(self) -> int:
		"""Rows including the header row."""
		return len(self.rows) + (1 if self.header else 0)

	@property
	def full_text(self) -> str:
		parts = list(self.header)
		for row in self.rows:
			parts.extend(row)
		return " ".join(parts)


@dataclass(frozen=True)
class ExtractorConfig:
	"""Keyword tables and thresholds that drive extraction."""
	score_rules: Tuple = TABLE_SCORE_RULES
	column_keywords: Tuple = COLUMN_KEYWORDS
	fallback_positions: Mapping[str, int] = field(default_factory=lambda: dict(COLUMN_FALLBACK_POSITIONS))
	min_table_rows: int = MIN_TABLE_ROWS
	min_table_score: float = MIN_TABLE_SCORE
	row_bonus: float = ROW_COUNT_BONUS_PER_ROW
	min_case_number_length: int = 3
	min_address_length: int = 5


@dataclass
class ExtractionResult:
	records: List[Dict[str, str]]
	table_index: Optional[int]
	table_score: float
	column_map: Dict[str, int]
	discarded_rows: int = 0

	@property
	def found_table(self) -> bool:
		return self.table_index is not None


def _clean_cell(value: str) -> str:
	return _WHITESPACE.sub(" ", value or "").strip()


class TableExtractor:
	"""
	One extraction strategy, parameterized entirely by ExtractorConfig.

	Example:
		>>> extractor = TableExtractor()
		>>> table = RawTable.from_matrix(["사건번호", "법원", "용도", "소재지"], rows)
		>>> result = extractor.extract([table])
		>>> result.records[0]["case_number"]
		'2024타경1234'
	"""

	def __init__(self, config: Optional[ExtractorConfig] = None):
		self.config = config or ExtractorConfig()
		self._patterns = {
			name: re.compile(pattern) for name, _, _, pattern in self.config.score_rules if pattern
		}

	# ========================================================================
	# TABLE SELECTION
	# ========================================================================

	def score_table(self, table: RawTable) -> float:
		"""Weighted keyword presence plus a small bonus per row."""
		text = table.full_text
		score = 0.0

		for name, points, tokens, _ in self.config.score_rules:
			pattern = self._patterns.get(name)
			if any(token in text for token in tokens) or (pattern is not None and pattern.search(text)):
				score += points

		score += table.row_count * self.config.row_bonus
		return round(score, 4)

	def select_table(self, tables: Sequence[RawTable]) -> Tuple[Optional[int], float]:
		"""
		Index and score of the best table, or (None, best_score) when nothing qualifies.

		Earlier tables win ties.
		"""
		best_index: Optional[int] = None
		best_score = 0.0

		for index, table in enumerate(tables):
			score = self.score_table(table)
			logger.debug(f"Table {index}: score {score}, rows {table.row_count}")

			if table.row_count < self.config.min_table_rows:
				continue
			if score <= self.config.min_table_score:
				continue
			if best_index is None or score > best_score:
				best_index, best_score = index, score

		return best_index, best_score

	# ========================================================================
	# COLUMN ROLES
	# ========================================================================

	def infer_columns(self, header: Sequence[str]) -> Dict[str, int]:
		"""
		Map roles to column indexes from header text.

		Each header takes the first keyword group it matches; when two headers
		match the same role the leftmost keeps it.
		"""
		column_map: Dict[str, int] = {}

		for index, cell in enumerate(header):
			text = _clean_cell(cell).lower()
			if not text:
				continue
			for role, keywords in self.config.column_keywords:
				if any(keyword.lower() in text for keyword in keywords):
					if role not in column_map:
						column_map[role] = index
					break

		return column_map

	def _resolve_columns(self, column_map: Mapping[str, int], width: int) -> Dict[str, int]:
		"""Add positional fallbacks for unclaimed roles whose index exists and is free."""
		resolved = dict(column_map)
		claimed = set(column_map.values())

		for role, position in self.config.fallback_positions.items():
			if role in resolved:
				continue
			if position < width and position not in claimed:
				resolved[role] = position

		return resolved

	# ========================================================================
	# ROW EXTRACTION
	# ========================================================================

	def extract_rows(self, table: RawTable) -> Tuple[List[Dict[str, str]], Dict[str, int], int]:
		column_map = self.infer_columns(table.header)
		records: List[Dict[str, str]] = []
		discarded = 0

		for row in table.rows:
			if len(row) < 2:
				discarded += 1
				continue

			columns = self._resolve_columns(column_map, len(row))
			# ragged rows (totals, pagination, colspan) leave trailing roles empty
			record = {
				role: _clean_cell(row[index]) if index < len(row) else ""
				for role, index in columns.items()
			}

			case_number = record.get("case_number", "")
			address = record.get("address", "")
			if len(case_number) < self.config.min_case_number_length:
				discarded += 1
				continue
			if len(address) < self.config.min_address_length:
				discarded += 1
				continue

			records.append(record)

		return records, column_map, discarded

	def extract(self, tables: Sequence[RawTable]) -> ExtractionResult:
		"""
		Extract raw records from a page's candidate tables.

		A page with no qualifying table yields zero records; that is not an error.
		"""
		index, score = self.select_table(tables)

		if index is None:
			logger.debug(f"No auction table found among {len(tables)} candidate tables")
			return ExtractionResult(records=[], table_index=None, table_score=score, column_map={})

		records, column_map, discarded = self.extract_rows(tables[index])
		logger.debug(
			f"Selected table {index} (score {score}), columns {column_map}, "
			f"{len(records)} records, {discarded} rows discarded"
		)

		return ExtractionResult(
			records=records,
			table_index=index,
			table_score=score,
			column_map=column_map,
			discarded_rows=discarded,
		)
