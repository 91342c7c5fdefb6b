import io
from datetime import datetime

import pytest
from openpyxl import Workbook

from academic_ops.api.v1.student_imports.parser import parse_upload
from academic_ops.core.exceptions import StructuralError

HEADER = "first_name,last_name,admission_no,session,class,class_arm"
MAX_BYTES = 5 * 1024 * 1024


def _parse(filename: str, content: bytes, max_rows: int = 500):
    return parse_upload(filename, content, max_rows=max_rows, max_bytes=MAX_BYTES)


def test_csv_rows_keep_file_row_numbers() -> None:
    content = (
        "\ufeffFirst Name,Last Name,Admission No,Session,Class,Class Arm,Parent Email\n"
        "Ada,Obi,ADM-1,2024/2025,JSS 1,A,grace.obi@example.com\n"
        ",,,,,,\n"
        "Bayo,Ade,ADM-2,2024/2025,JSS 1,B,\n"
    ).encode("utf-8")

    rows = _parse("students.CSV", content)

    assert [r.row_number for r in rows] == [2, 4]
    assert rows[0].values["first_name"] == "Ada"
    assert rows[0].values["parent_email"] == "grace.obi@example.com"
    assert rows[1].values["class_arm"] == "B"
    assert "class_section" not in rows[0].values


def test_xlsx_cells_are_normalized() -> None:
    wb = Workbook()
    ws = wb.active
    ws.append(["first_name", "last_name", "admission_no", "session", "class", "class_arm", "date_of_birth"])
    ws.append(["Ada", "Obi", 1001.0, "2024/2025", "JSS 1", "A", datetime(2012, 5, 14)])
    bio = io.BytesIO()
    wb.save(bio)

    rows = _parse("students.xlsx", bio.getvalue())

    assert rows[0].values["admission_no"] == "1001"
    assert rows[0].values["date_of_birth"] == "2012-05-14"


@pytest.mark.parametrize(
    "filename,content,message",
    [
        ("students.txt", b"x", "must be a .csv or .xlsx"),
        ("students.csv", b"", "File is empty"),
        ("students.csv", b"first_name,last_name\nAda,Obi\n", "Missing required column(s): admission_no"),
        ("students.csv", (HEADER + "\n").encode(), "no data rows"),
        ("students.csv", "first_name\n\xe9".encode("latin-1"), "UTF-8"),
        ("students.xlsx", b"not a zip file", "Invalid Excel file"),
    ],
)
def test_file_level_problems_raise(filename: str, content: bytes, message: str) -> None:
    with pytest.raises(StructuralError) as exc:
        _parse(filename, content)
    assert message in exc.value.message
    assert exc.value.status_code == 400


def test_row_limit() -> None:
    body = "".join(f"A,B,ADM-{i},2024/2025,JSS 1,A\n" for i in range(4))
    content = (HEADER + "\n" + body).encode()

    assert len(_parse("students.csv", content, max_rows=4)) == 4
    with pytest.raises(StructuralError, match="Maximum 3 data rows"):
        _parse("students.csv", content, max_rows=3)


def test_size_limit() -> None:
    with pytest.raises(StructuralError, match="upload limit"):
        parse_upload("students.csv", b"x" * 11, max_rows=10, max_bytes=10)
