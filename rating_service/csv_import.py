"""Quoted-field CSV parsing for bulk imports.

A double quote toggles quoting and is not kept; a comma inside quotes is a
literal. The first non-empty line is the header, and any row whose field count
differs from the header's is dropped.
"""
from typing import Dict, List
import logging

logger = logging.getLogger(__name__)


def split_row(line: str) -> List[str]:
    fields = []
    current = []
    in_quotes = False
    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == "," and not in_quotes:
            fields.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
    fields.append("".join(current).strip())
    return fields


def parse_csv(text: str) -> List[Dict[str, str]]:
    lines = [line for line in text.splitlines() if line.strip()]
    if not lines:
        return []

    header = split_row(lines[0])
    records = []
    for number, line in enumerate(lines[1:], start=2):
        values = split_row(line)
        if len(values) != len(header):
            logger.debug(f"Dropping CSV line {number}: {len(values)} fields, header has {len(header)}")
            continue
        records.append(dict(zip(header, values)))
    return records
