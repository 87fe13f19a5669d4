#!/usr/bin/env python3
"""
Generates sample-data/pump_tracker.xlsx, a pump-tracker workbook export
with the quirks the workbook importer has to cope with.

Run from the repo root:
    python sample-data/generate_xlsx.py

Quirks baked in:
  Sheet "Log"
    - Header text differs from the positional layout (columns are read by position)
    - Native date cells, a spreadsheet serial date (row 5) and a text date (row 6)
    - Native time cells, a day-fraction time (row 5) and "7:15 PM" text (row 6)
    - "feed" / "Pumping" type spellings
    - Feeding row with a volume in the left column (ignored for feedings)
    - Notes carrying the device's "Note: " prefix
    - Empty row 7
    - Bad rows: unknown type (row 8), non-numeric total (row 9)
  Sheet "Settings"
    - Second sheet that the importer ignores (reported as a warning)
"""

from datetime import datetime, time
from pathlib import Path
import openpyxl

OUTPUT = Path(__file__).parent / "pump_tracker.xlsx"

wb = openpyxl.Workbook()

# ── Sheet 1: Log ─────────────────────────────────────────────────────────────
ws = wb.active
ws.title = "Log"

ws.append(["Day", "Kind", "At", "L", "R", "Total", "Comment"])

data = [
    # date                    type       time         left   right  total   note
    [datetime(2026, 2, 6),    "Pumping", time(6, 45), 2.0,   2.5,   4.5,    "Note: Morning"],    # row 2
    [datetime(2026, 2, 6),    "feed",    time(8, 0),  3.0,   None,  3.0,    None],               # row 3
    [datetime(2026, 2, 6),    "feeding", time(11, 30), None, None,  4.0,    "Note: Fussy"],      # row 4
    [46059,                   "pump",    0.75,        1.5,   1.0,   2.5,    None],               # row 5
    ["2026-02-07",            "pumping", "7:15 PM",   None,  None,  3.0,    "Note: Evening"],    # row 6
    [None,                    None,      None,        None,  None,  None,   None],               # row 7, empty
    [datetime(2026, 2, 7),    "nap",     time(13, 0), None,  None,  1.0,    None],               # row 8
    [datetime(2026, 2, 7),    "feeding", time(15, 0), None,  None,  "lots", None],               # row 9
]

for row in data:
    ws.append(row)

# ── Sheet 2: Settings ─────────────────────────────────────────────────────────
ws_settings = wb.create_sheet("Settings")
ws_settings.append(["unit", "oz"])

wb.save(OUTPUT)
print(f"Created: {OUTPUT}")
