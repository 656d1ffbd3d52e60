#!/usr/bin/env python3
"""
Generates sample-data/messy_sample.xlsx with deliberate data quality problems
for trying out cell-doctor.

Run from the repo root:
    python sample-data/generate_xlsx.py

Problems baked in (sheet "Customers", header row 1, data rows 2-13):
  - Duplicate: "C004" appears twice in customer_id (B5, B11)
  - Missing values: email is empty in C6 and C10
  - Mixed formats in signup_date: real dates next to "15/02/2023"-style text
  - Mixed formats in amount: numbers next to "1,200"-style numeric text
  - Inconsistent casing in country: "Germany", "germany", "GERMANY"
  - Outlier: score 950 among scores around 70-80
  - Formula: total in F2 is =E2*2 and must survive fixes
"""

from datetime import datetime
from pathlib import Path

import openpyxl

OUTPUT = Path(__file__).parent / "messy_sample.xlsx"

HEADERS = ["order_id", "customer_id", "email", "signup_date", "amount", "total", "country", "score"]

ROWS = [
    [1001, "C001", "ana@example.com",   datetime(2023, 1, 15), 250,     None, "Germany", 72],
    [1002, "C002", "ben@example.com",   "15/02/2023",          180.5,   None, "France",  75],
    [1003, "C003", "cai@example.com",   datetime(2023, 3, 20), 320,     None, "germany", 78],
    [1004, "C004", "dee@example.com",   datetime(2023, 4, 2),  "1,200", None, "Spain",   71],
    [1005, "C005", None,                datetime(2023, 4, 18), 415,     None, "France",  74],
    [1006, "C006", "eve@example.com",   "22/05/2023",          510,     None, "GERMANY", 77],
    [1007, "C007", "fay@example.com",   datetime(2023, 6, 22), 95,      None, "Spain",   73],
    [1008, "C008", "gus@example.com",   datetime(2023, 7, 1),  "88",    None, "France",  76],
    [1009, "C009", None,                datetime(2023, 8, 9),  130,     None, "Germany", 79],
    [1010, "C004", "dee@example.com",   datetime(2023, 9, 14), 275,     None, "Spain",   70],
    [1011, "C011", "hal@example.com",   datetime(2023, 10, 3), 340,     None, "France",  74],
    [1012, "C012", "ivy@example.com",   datetime(2023, 11, 27), 60,     None, "Spain",   950],
]


def build_workbook(path: Path = OUTPUT) -> Path:
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Customers"
    ws.append(HEADERS)
    for row in ROWS:
        ws.append(row)
    for row_number in range(2, len(ROWS) + 2):
        if isinstance(ws[f"E{row_number}"].value, (int, float)):
            ws[f"F{row_number}"] = f"=E{row_number}*2"
    notes = wb.create_sheet("Notes")
    notes.append(["note"])
    notes.append(["Generated sample; not real customers"])
    path.parent.mkdir(parents=True, exist_ok=True)
    wb.save(path)
    return path


if __name__ == "__main__":
    print(f"Created: {build_workbook()}")
