"""
Tab-delimited roster codec.

Parses pasted spreadsheet text into header names and Row records, and writes
resolved rows back out with an extra rating column.

Two column slicing policies are supported. They only differ on rows that carry
more tabs than the header:

    NAIVE     - each cell is taken at its header's tab position.
    ANCHORED  - all cells between one header's position and the next header's
                position are joined with a space, so a free-text cell that
                contains a stray tab stays in its column.
"""

from enum import Enum
from typing import Any, Iterable, List, Tuple

from .schema import RATING_KINDS, Row

RATING_COLUMN = "FRtg"
ALIGN_SEPARATOR = "  "


class SlicingPolicy(str, Enum):
    NAIVE = "naive"
    ANCHORED = "anchored"


def _split_lines(text: str) -> List[str]:
    lines = [line.rstrip("\r") for line in text.split("\n")]
    # Edges are trimmed like the whole text; inside, a line of bare tabs still carries empty cells
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    return [line for line in lines if line.strip() or "\t" in line]


def _header_config(header_line: str) -> List[Tuple[str, int]]:
    config = []
    for i, cell in enumerate(header_line.split("\t")):
        name = cell.strip()
        if name:
            config.append((name, i))
    return config


def _slice_anchored(cells: List[str], config: List[Tuple[str, int]]) -> dict:
    values = {}
    for pos, (name, start) in enumerate(config):
        end = config[pos + 1][1] if pos + 1 < len(config) else len(cells)
        values[name] = " ".join(cells[start:end]).strip()
    return values


def _slice_naive(cells: List[str], config: List[Tuple[str, int]]) -> dict:
    return {name: (cells[i].strip() if i < len(cells) else "") for name, i in config}


def parse(text: str, policy: SlicingPolicy = SlicingPolicy.ANCHORED) -> Tuple[List[str], List[Row]]:
    """
    Parse tab-delimited text into (headers, rows).

    The first non-blank line is the header. Ragged rows are tolerated: cells
    missing at the end of a line come back as empty strings.
    """
    lines = _split_lines(text or "")
    if not lines:
        return [], []

    config = _header_config(lines[0])
    headers = [name for name, _ in config]
    slicer = _slice_anchored if SlicingPolicy(policy) is SlicingPolicy.ANCHORED else _slice_naive

    rows = []
    for index, line in enumerate(lines[1:], start=1):
        rows.append(Row(index=index, cells=slicer(line.split("\t"), config)))
    return headers, rows


def _cell(value: Any) -> str:
    return value if isinstance(value, str) else ""


def _rating_for(row: Row, rating_kind: str) -> str:
    if row.resolution is None or row.resolution.best is None:
        return ""
    return row.resolution.best.rating(rating_kind)


def format_rows(
    rows: Iterable[Row],
    headers: List[str],
    rating_kind: str = "standard",
    align: bool = False,
) -> str:
    """Serialize rows back to text, adding the best candidate's rating column."""
    if rating_kind not in RATING_KINDS:
        raise ValueError(f"Unknown rating kind: {rating_kind}")

    out_headers = list(headers)
    if RATING_COLUMN not in out_headers:
        out_headers.append(RATING_COLUMN)

    table = [out_headers]
    for row in rows:
        rating = _rating_for(row, rating_kind)
        table.append([
            rating if h == RATING_COLUMN else _cell(row.cells.get(h))
            for h in out_headers
        ])

    if not align:
        return "\n".join("\t".join(line) for line in table)

    widths = [max(len(line[i]) for line in table) for i in range(len(out_headers))]
    return "\n".join(
        ALIGN_SEPARATOR.join(cell.ljust(widths[i]) for i, cell in enumerate(line))
        for line in table
    )
