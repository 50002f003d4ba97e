"""CSV export of client submissions.

Nested form data is flattened into dotted keys and given readable column
headers (``address.city`` becomes ``Address - City``).
"""

from __future__ import annotations

import csv
import io
import json
import re
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

from formflow.submission_service import SubmissionListItem
from formflow.tokens import parse_timestamp


@dataclass
class CsvExport:
    content: str
    filename: str
    content_type: str = "text/csv; charset=utf-8"


def format_cell_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, list):
        return "; ".join(format_cell_value(v) for v in value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict):
        return json.dumps(value, ensure_ascii=False)
    if isinstance(value, str):
        return re.sub(r"\s+", " ", value).strip()
    return str(value)


def flatten_nested_data(data: dict, prefix: str = "") -> dict[str, str]:
    flattened: dict[str, str] = {}
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict) and value:
            flattened.update(flatten_nested_data(value, full_key))
        else:
            flattened[full_key] = format_cell_value(value)
    return flattened


def format_field_name(field_name: str) -> str:
    """``firstName`` -> ``First Name``; ``address.city`` -> ``Address - City``."""
    name = re.sub(r"([A-Z])", r" \1", field_name)
    name = name.replace(".", " - ").replace("_", " ")
    name = re.sub(r"\b\w", lambda m: m.group(0).upper(), name)
    return re.sub(r"\s+", " ", name).strip()


def format_date_for_csv(value: str, date_format: str = "localized") -> str:
    if not value:
        return ""
    if date_format == "iso":
        return value
    return parse_timestamp(value).strftime("%b %d, %Y %I:%M %p")


def _write_csv(rows: list[list[str]]) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerows(rows)
    return buf.getvalue()


def _metadata(item: SubmissionListItem, date_format: str) -> dict[str, str]:
    return {
        "Submission ID": item.id,
        "Client Name": item.client_name,
        "Client Email": item.client_email,
        "Form Title": item.form_title,
        "Template Category": item.template_category,
        "Submitted At": format_date_for_csv(item.submitted_at, date_format),
        "Form Instance ID": item.form_instance_id,
    }


def generate_submissions_csv(
    submissions: list[SubmissionListItem],
    include_metadata: bool = True,
    include_form_data: bool = True,
    date_format: str = "localized",
    flatten_data: bool = True,
) -> CsvExport:
    """One row per submission; columns are the union over all rows."""
    if not submissions:
        return CsvExport(content="No submissions found", filename="submissions-empty.csv")

    rows: list[dict[str, str]] = []
    for item in submissions:
        row: dict[str, str] = {}
        if include_metadata:
            row.update(_metadata(item, date_format))
        if include_form_data and item.data:
            if flatten_data:
                for key, value in flatten_nested_data(item.data).items():
                    row[format_field_name(key)] = value
            else:
                row["Form Data"] = json.dumps(item.data, ensure_ascii=False)
        rows.append(row)

    headers: list[str] = []
    for row in rows:
        for key in row:
            if key not in headers:
                headers.append(key)

    content = _write_csv([headers] + [[row.get(h, "") for h in headers] for row in rows])
    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    return CsvExport(content=content, filename=f"submissions-{stamp}.csv")


def generate_single_submission_csv(
    item: SubmissionListItem,
    include_metadata: bool = True,
    include_form_data: bool = True,
    date_format: str = "localized",
) -> CsvExport:
    """Two-column ``Field, Value`` export of a single submission."""
    rows: list[list[str]] = [["Field", "Value"]]
    if include_metadata:
        rows.extend([k, v] for k, v in _metadata(item, date_format).items())
    if include_form_data and item.data:
        if include_metadata:
            rows.append(["", ""])
        rows.extend(
            [format_field_name(k), v] for k, v in flatten_nested_data(item.data).items()
        )

    safe_id = re.sub(r"[^A-Za-z0-9_-]", "", item.id) or "submission"
    return CsvExport(content=_write_csv(rows), filename=f"submission-{safe_id}.csv")
