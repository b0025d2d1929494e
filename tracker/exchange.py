import json
import logging
from typing import Iterable, List, Tuple, Union

from tracker.domain import Transaction
from tracker.errors import ImportFormatError
from tracker.formatting import CURRENCY, format_date
from tracker.functional import validate_transaction

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("description", "amount", "category", "type", "date")
CSV_HEADER = f"Date,Description,Catégorie,Type,Montant ({CURRENCY})"


def export_json(trans: Iterable[Transaction]) -> str:
    return json.dumps([t.to_dict() for t in trans], indent=2, ensure_ascii=False)


def _raw_number(amount: float) -> str:
    return str(int(amount)) if float(amount).is_integer() else repr(float(amount))


def _csv_row(t: Transaction) -> str:
    description = t.description.replace('"', '""')
    return ",".join([
        format_date(t.date),
        f'"{description}"',
        t.category,
        t.type,
        _raw_number(t.amount),
    ])


def export_csv(trans: Iterable[Transaction]) -> str:
    return "\n".join([CSV_HEADER, *(_csv_row(t) for t in trans)])


def parse_import(text: Union[str, bytes]) -> Tuple[Transaction, ...]:
    """Parse an exported JSON array; malformed records are dropped, a malformed file raises.

    Raw bytes, as uploaded, must be UTF-8.
    """
    if isinstance(text, bytes):
        try:
            text = text.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ImportFormatError("Le fichier doit être encodé en UTF-8") from exc
    try:
        data = json.loads(text)
    except (ValueError, TypeError, RecursionError) as exc:
        raise ImportFormatError(f"Fichier JSON invalide : {exc}") from exc
    if not isinstance(data, list):
        raise ImportFormatError("Le fichier doit contenir une liste de transactions")

    accepted: List[Transaction] = []
    dropped = 0
    for item in data:
        if not isinstance(item, dict) or not all(item.get(f) for f in REQUIRED_FIELDS):
            dropped += 1
            continue
        result = validate_transaction(item)
        if result.is_left():
            dropped += 1
            continue
        accepted.append(result.get_or_else(None))

    if dropped:
        logger.warning("Import dropped %d invalid record(s) out of %d", dropped, len(data))
    return tuple(accepted)
