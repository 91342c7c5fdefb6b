import csv
import io
from typing import List

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

from .schemas import PromotionHistoryRow

EXPORT_HEADERS = [
    "id",
    "student_name",
    "admission_no",
    "from_placement",
    "to_placement",
    "to_session",
    "retain_subjects",
    "performed_by",
    "promoted_at",
]


def _values(row: PromotionHistoryRow) -> List[str]:
    return [
        str(row.id),
        row.student_name,
        row.admission_no or "",
        row.from_placement_label,
        row.to_placement_label,
        row.to_session_name or "",
        "yes" if row.retain_subjects else "no",
        row.performed_by_name or "",
        row.promoted_at.strftime("%Y-%m-%d %H:%M UTC"),
    ]


def history_to_csv(rows: List[PromotionHistoryRow]) -> bytes:
    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_HEADERS)
    for row in rows:
        writer.writerow(_values(row))
    return buffer.getvalue().encode("utf-8")


def history_to_pdf(rows: List[PromotionHistoryRow], title: str = "Promotion History") -> bytes:
    buffer = io.BytesIO()
    styles = getSampleStyleSheet()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(A4))
    elements = [Paragraph(title, styles["Title"]), Spacer(1, 12)]
    table_data = [["#", "Student", "Admission No", "From", "To", "Session", "Subjects kept", "By", "Date"]]
    for row in rows:
        table_data.append(_values(row))
    if not rows:
        elements.append(Paragraph("No promotions match the selected filters.", styles["Normal"]))
    else:
        table = Table(table_data, hAlign="LEFT", repeatRows=1)
        table.setStyle(TableStyle([
            ("BACKGROUND", (0, 0), (-1, 0), colors.lightgrey),
            ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
            ("FONTSIZE", (0, 0), (-1, -1), 8),
        ]))
        elements.append(table)
    doc.build(elements)
    pdf_value = buffer.getvalue()
    buffer.close()
    return pdf_value
