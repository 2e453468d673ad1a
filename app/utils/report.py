"""
Plain-text transaction reports served by the download endpoints.
"""
from decimal import Decimal
from typing import Sequence

HEADERS = {
    "income": ("INCOME TRACKER REPORT", "TOTAL INCOME"),
    "expense": ("EXPENSE TRACKER REPORT", "TOTAL EXPENSES"),
}


def format_amount(amount) -> str:
    return f"${Decimal(str(amount)):.2f}"


def format_date(value) -> str:
    return f"{value.month}/{value.day}/{value.year}"


def render_text_report(kind: str, records: Sequence) -> str:
    title, total_label = HEADERS[kind]
    lines = [title, "=" * len(title), ""]

    for index, record in enumerate(records, start=1):
        name = getattr(record, "title", None) or record.category
        lines.append(f"{index}. {name}")
        lines.append(f"   Amount: {format_amount(record.amount)}")
        lines.append(f"   Category: {record.category}")
        lines.append(f"   Date: {format_date(record.date)}")
        if record.description:
            lines.append(f"   Description: {record.description}")
        lines.append("")

    total = sum((Decimal(str(r.amount)) for r in records), Decimal("0"))
    lines.append(f"{total_label}: {format_amount(total)}")
    lines.append(f"TOTAL RECORDS: {len(records)}")
    return "\n".join(lines) + "\n"


def report_filename(kind: str) -> str:
    return f"{kind}s-report.txt"
