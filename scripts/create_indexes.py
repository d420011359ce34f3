"""Create the attendance/schedule indexes on a database that predates them."""

import os
import sys

from sqlalchemy import text

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from db.session import engine

# Create indexes
index_commands = [
    "CREATE INDEX IF NOT EXISTS ix_attendance_session_worker_id ON attendance_session (worker_id);",
    "CREATE INDEX IF NOT EXISTS ix_attendance_session_worker_id_check_in ON attendance_session (worker_id, check_in_time);",
    # At most one open session per worker
    "CREATE UNIQUE INDEX IF NOT EXISTS ux_attendance_session_open_worker ON attendance_session (worker_id) WHERE check_out_time IS NULL;",
    "CREATE INDEX IF NOT EXISTS ix_schedule_entry_worker_id ON schedule_entry (worker_id);",
    "CREATE INDEX IF NOT EXISTS ix_schedule_entry_worker_id_shift_date ON schedule_entry (worker_id, shift_date);",
    "CREATE INDEX IF NOT EXISTS ix_schedule_entry_site_id_shift_date ON schedule_entry (site_id, shift_date);",
]


def create_indexes():
    with engine.begin() as conn:
        for cmd in index_commands:
            print(f"Executing: {cmd}")
            conn.execute(text(cmd))

    print("Indexes created successfully!")


if __name__ == "__main__":
    create_indexes()
