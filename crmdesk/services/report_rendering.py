"""File renderers for stored report payloads."""

from __future__ import annotations

import csv
import io
import json
import logging
from dataclasses import dataclass
from io import BytesIO

from jinja2 import DictLoader, Environment, select_autoescape

from crmdesk.core.errors import ExportUnavailable

logger = logging.getLogger(__name__)

Columns = tuple[tuple[str, str], ...]

PDF_TABLE_ROW_LIMIT = 10

_TEMPLATES = {
    "report.html": """<!DOCTYPE html>
<html>
<head>
<meta charset="utf-8">
<title>{{ title }}</title>
<style>
  body { font-family: Helvetica, Arial, sans-serif; font-size: 11px; color: #1f2937; }
  h1 { font-size: 20px; margin-bottom: 4px; }
  h2 { font-size: 14px; margin-top: 24px; }
  .meta { color: #6b7280; }
  table { border-collapse: collapse; width: 100%; }
  th, td { border: 1px solid #e5e7eb; padding: 4px 6px; text-align: left; }
  th { background: #f3f4f6; }
</style>
</head>
<body>
  <h1>{{ title }}</h1>
  <p class="meta">Date range: {{ start_date }} to {{ end_date }}</p>
  {% if generated_at %}<p class="meta">Generated: {{ generated_at }}</p>{% endif %}

  <h2>Summary</h2>
  <table>
    {% for label, value in summary %}
    <tr><th>{{ label }}</th><td>{{ value }}</td></tr>
    {% endfor %}
  </table>

  {% if rows %}
  <h2>{{ table_title }}</h2>
  <table>
    <tr>{% for header in headers %}<th>{{ header }}</th>{% endfor %}</tr>
    {% for row in rows %}
    <tr>{% for cell in row %}<td>{{ cell }}</td>{% endfor %}</tr>
    {% endfor %}
  </table>
  {% endif %}

  {% if warnings %}
  <h2>Data quality warnings</h2>
  <ul>
    {% for warning in warnings %}
    <li>{{ warning.record_id }} ({{ warning.field }}): {{ warning.message }}</li>
    {% endfor %}
  </ul>
  {% endif %}
</body>
</html>
""",
}

_environment = Environment(loader=DictLoader(_TEMPLATES), autoescape=select_autoescape(default=True))


@dataclass(slots=True)
class ExportFilePayload:
    media_type: str
    filename: str
    content: bytes


def _cell(value: object) -> str:
    return "" if value is None else str(value)


def _table(columns: Columns, rows: list[dict[str, object]]) -> tuple[list[str], list[list[str]]]:
    headers = [header for _, header in columns]
    values = [[_cell(row.get(key)) for key, _ in columns] for row in rows]
    return headers, values


def _summary_items(summary: dict[str, object]) -> list[tuple[str, str]]:
    return [(key, _cell(value)) for key, value in summary.items()]


def render_json(payload: dict[str, object], filename: str) -> ExportFilePayload:
    return ExportFilePayload(
        media_type="application/json",
        filename=f"{filename}.json",
        content=json.dumps(payload, indent=2, sort_keys=True).encode("utf-8"),
    )


def render_csv(columns: Columns, rows: list[dict[str, object]], filename: str) -> ExportFilePayload:
    headers, values = _table(columns, rows)
    sio = io.StringIO()
    writer = csv.writer(sio)
    writer.writerow(headers)
    writer.writerows(values)
    return ExportFilePayload(
        media_type="text/csv; charset=utf-8",
        filename=f"{filename}.csv",
        content=sio.getvalue().encode("utf-8"),
    )


def render_xlsx(
    title: str,
    summary: dict[str, object],
    columns: Columns,
    rows: list[dict[str, object]],
    filename: str,
) -> ExportFilePayload:
    from openpyxl import Workbook

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "report"
    headers, values = _table(columns, rows)
    sheet.append(headers)
    for row in values:
        sheet.append(row)

    summary_sheet = workbook.create_sheet("summary")
    summary_sheet.append([title])
    for label, value in _summary_items(summary):
        summary_sheet.append([label, value])

    output = BytesIO()
    workbook.save(output)
    return ExportFilePayload(
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        filename=f"{filename}.xlsx",
        content=output.getvalue(),
    )


def render_report_html(
    *,
    title: str,
    payload: dict[str, object],
    columns: Columns,
    generated_at: str | None = None,
) -> str:
    """HTML document for a report; tables are cut to the first rows, which are ranked."""

    rows = list(payload.get("rows") or [])
    headers, values = _table(columns, rows[:PDF_TABLE_ROW_LIMIT])
    date_range = payload.get("dateRange") or {}
    table_title = "Rows" if len(rows) <= PDF_TABLE_ROW_LIMIT else f"Top {PDF_TABLE_ROW_LIMIT} of {len(rows)}"
    return _environment.get_template("report.html").render(
        title=title,
        start_date=date_range.get("startDate", ""),
        end_date=date_range.get("endDate", ""),
        generated_at=generated_at,
        summary=_summary_items(payload.get("summary") or {}),
        table_title=table_title,
        headers=headers,
        rows=values,
        warnings=payload.get("warnings") or [],
    )


def render_pdf(html_string: str, filename: str) -> ExportFilePayload:
    try:
        from weasyprint import HTML
    except (ImportError, OSError) as exc:
        logger.error("PDF rendering unavailable: %s", exc)
        raise ExportUnavailable("PDF export is currently unavailable due to missing system dependencies") from exc

    pdf_bytes = HTML(string=html_string).write_pdf()
    return ExportFilePayload(
        media_type="application/pdf",
        filename=f"{filename}.pdf",
        content=pdf_bytes,
    )
