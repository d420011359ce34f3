#!/usr/bin/env python3
"""Script to print the scheduled roster of one day, grouped by site."""

import argparse
import os
import sys
from datetime import date

from rich.console import Console
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db.session import engine
from models.schedule_entry import ScheduleEntry
from services import reconciliation
from utils.datetime_helpers import format_12h, weekday_name

console = Console()


def format_optional(value):
    return str(value) if value is not None else "-"


def view_roster(day: date):
    console.print(f"[bold cyan]Fetching roster for {day.isoformat()}...[/bold cyan]")

    try:
        with Session(engine) as session:
            entries = session.exec(
                select(ScheduleEntry)
                .where(ScheduleEntry.shift_date == day)
                .order_by(ScheduleEntry.site_name_snapshot, ScheduleEntry.start_time)
            ).all()
    except SQLAlchemyError as e:
        console.print(f"[bold red]Database error:[/bold red] {e}")
        return

    if not entries:
        console.print("[yellow]Nobody is scheduled on this day.[/yellow]")
        return

    title = (
        f"[bold green]Roster {weekday_name(day)} "
        f"(week {reconciliation.week_number(day)})[/bold green]"
    )
    table = Table(title=title, show_lines=True)
    for col in ["Site", "Worker", "Start", "End", "Category", "Hours", "Status"]:
        table.add_column(col, overflow="fold")

    for entry in entries:
        table.add_row(
            format_optional(entry.site_name_snapshot),
            entry.worker_id,
            format_12h(entry.start_time),
            format_12h(entry.end_time),
            entry.category.value,
            f"{reconciliation.entry_hours(entry):.2f}",
            reconciliation.classify(entry, None).value,
        )

    console.print(table)
    console.print(f"Total scheduled hours: [bold]{reconciliation.total_hours(entries):.2f}[/bold]")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("day", nargs="?", default=date.today().isoformat(), help="YYYY-MM-DD")
    args = parser.parse_args()
    view_roster(date.fromisoformat(args.day))
