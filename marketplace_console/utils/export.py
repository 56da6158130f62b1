"""CSV export of a whole filtered collection."""

import csv
import enum
import io
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, TextIO

from pydantic import BaseModel

from marketplace_console.services.collection_store import RemoteCollectionStore

logger = logging.getLogger(__name__)


@dataclass
class ColumnDef:
    """One CSV column: header text and the entity attribute it reads."""
    column: str
    attr: str
    format: Callable[[Any], str] | None = None


def format_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, enum.Enum):
        return str(value.value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str, sort_keys=True)
    return str(value)


def default_columns(model: type[BaseModel]) -> list[ColumnDef]:
    """Every model field plus ``status`` when the model derives it."""
    columns = [ColumnDef(column=name, attr=name) for name in model.model_fields]
    if "status" not in model.model_fields and hasattr(model, "status"):
        columns.append(ColumnDef(column="status", attr="status"))
    return columns


def write_rows(items: list[Any], out: TextIO, columns: list[ColumnDef]) -> int:
    writer = csv.writer(out)
    writer.writerow([c.column for c in columns])
    for item in items:
        writer.writerow([
            (c.format or format_value)(getattr(item, c.attr, None)) for c in columns
        ])
    return len(items)


async def export_csv(
    store: RemoteCollectionStore,
    path_or_file: "str | Path | TextIO",
    columns: list[str | ColumnDef] | None = None,
) -> int:
    """Write every item matching the store's filters as CSV.

    Returns the number of data rows written.  Fetch failures propagate;
    nothing is written in that case.
    """
    items = await store.fetch_all()
    if columns is None:
        defs = default_columns(store.resource.model)
    else:
        defs = [c if isinstance(c, ColumnDef) else ColumnDef(column=c, attr=c) for c in columns]

    if isinstance(path_or_file, (str, Path)):
        with open(path_or_file, "w", newline="", encoding="utf-8") as fh:
            count = write_rows(items, fh, defs)
    else:
        count = write_rows(items, path_or_file, defs)

    logger.info("Exported %d %s row(s)", count, store.resource.name)
    return count


def to_csv_string(items: list[Any], columns: list[ColumnDef]) -> str:
    output = io.StringIO()
    write_rows(items, output, columns)
    return output.getvalue()
