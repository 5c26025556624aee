"""
Ledger import/export as plain structural JSON.

The export is a JSON array of ledger objects with every field of the
snapshot model, so a dump followed by a load yields equal ledgers.
"""

import json
from typing import List, Union

from pydantic import TypeAdapter, ValidationError

from models import Ledger

_LEDGER_LIST = TypeAdapter(List[Ledger])


class LedgerImportError(ValueError):
    """Raised when an import payload cannot be turned into ledgers."""


def dump_ledgers(ledgers: List[Ledger]) -> str:
    # Decimals are written as strings so no precision is lost
    return _LEDGER_LIST.dump_json(ledgers, indent=2).decode("utf-8")


def load_ledgers(text: Union[str, bytes]) -> List[Ledger]:
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise LedgerImportError(f"Invalid JSON: {exc}") from exc
    if not isinstance(data, list) or not data:
        raise LedgerImportError("Invalid JSON: no ledgers found.")
    try:
        return _LEDGER_LIST.validate_python(data)
    except ValidationError as exc:
        raise LedgerImportError(f"Invalid ledger data: {exc.error_count()} error(s)") from exc
