"""
Raw export text to header/row mappings, with delimiter sniffing.
"""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field

DELIMITER_CANDIDATES: tuple[str, ...] = (",", ";", "\t", "|")


@dataclass(frozen=True)
class CsvTable:
    headers: list[str]
    rows: list[dict[str, str]] = field(default_factory=list)


def sniff_delimiter(header_line: str) -> str:
    """
    Pick the candidate delimiter that occurs most often in the header line.

    Ties go to the earlier candidate, so a header without any separator
    reads as a single comma-separated column.
    """

    best = DELIMITER_CANDIDATES[0]
    best_count = -1
    for candidate in DELIMITER_CANDIDATES:
        count = header_line.count(candidate)
        if count > best_count:
            best = candidate
            best_count = count
    return best


def read_csv_text(text: str) -> CsvTable:
    """
    Parse exported CSV text into trimmed string rows keyed by header.
    """

    normalized = text.lstrip("\ufeff").replace("\r\n", "\n").replace("\r", "\n")
    if not normalized.strip():
        return CsvTable(headers=[])

    header_line = normalized.split("\n", 1)[0]
    reader = csv.reader(io.StringIO(normalized), delimiter=sniff_delimiter(header_line))

    try:
        header_cells = next(reader)
    except StopIteration:
        return CsvTable(headers=[])

    headers = [
        cell.strip() if cell.strip() else f"col{index}"
        for index, cell in enumerate(header_cells)
    ]
    rows: list[dict[str, str]] = []
    for cells in reader:
        if not cells or all(not cell.strip() for cell in cells):
            continue
        rows.append(
            {
                header: cells[index].strip() if index < len(cells) else ""
                for index, header in enumerate(headers)
            }
        )
    return CsvTable(headers=headers, rows=rows)
