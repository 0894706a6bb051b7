"""Reading and appending to beancount ledger files.

A ledger is the top-level file plus every file reachable through `include`
directives. Each file keeps its directives in file order. New directives are
appended to the in-memory list of a file and `write_ledger` appends their
text to the end of that file; text already in the file is never rewritten.
"""

import glob
import os
from dataclasses import dataclass, field
from typing import Dict, Iterator, List

from beancount.parser import parser, printer

from .errors import ParseError


@dataclass
class LedgerFile:
    """Directives of one ledger file.

    Attributes:
        filename: Absolute path of the file.
        directives: Directives in file order, followed by any added ones.
        written_count: Number of leading directives already on disk.
    """
    filename: str
    directives: List = field(default_factory=list)
    written_count: int = 0

    @property
    def new_directives(self) -> List:
        return self.directives[self.written_count:]


class Ledger:
    """All files of a ledger, keyed by absolute filename."""

    def __init__(self, files: Dict[str, LedgerFile]) -> None:
        self.files = files

    @property
    def all_entries(self) -> Iterator:
        for ledger_file in self.files.values():
            yield from ledger_file.directives


def _resolve_includes(filename: str, includes: List[str]) -> List[str]:
    result = []
    for include in includes:
        pattern = include
        if not os.path.isabs(pattern):
            pattern = os.path.join(os.path.dirname(filename), pattern)
        matches = sorted(glob.glob(pattern))
        if not matches:
            raise ParseError(f'{filename}: include "{include}" does not match any file')
        result.extend(os.path.normpath(match) for match in matches)
    return result


def read_ledger(path: str) -> Ledger:
    """Parse the ledger rooted at `path`, following includes.

    Raises:
        ParseError: If a file is missing or has syntax errors.
    """
    files: Dict[str, LedgerFile] = {}
    pending = [os.path.abspath(path)]
    while pending:
        filename = pending.pop(0)
        if filename in files:
            continue
        if not os.path.isfile(filename):
            raise ParseError(f'File not found: {filename}')
        entries, errors, options_map = parser.parse_file(filename)
        if errors:
            raise ParseError(f'{filename}: {errors[0].message}')
        files[filename] = LedgerFile(
            filename=filename,
            directives=list(entries),
            written_count=len(entries),
        )
        pending.extend(_resolve_includes(filename, options_map.get('include') or []))
    return Ledger(files)


def format_directives(directives: List) -> str:
    return '\n'.join(printer.format_entry(entry) for entry in directives)


def write_ledger(ledger: Ledger) -> None:
    """Append the directives added since reading to their files."""
    for ledger_file in ledger.files.values():
        new_directives = ledger_file.new_directives
        if not new_directives:
            continue
        with open(ledger_file.filename, 'r', encoding='utf-8') as f:
            content = f.read()
        text = '\n' + format_directives(new_directives)
        if content and not content.endswith('\n'):
            text = '\n' + text
        with open(ledger_file.filename, 'a', encoding='utf-8') as f:
            f.write(text)
        ledger_file.written_count = len(ledger_file.directives)
