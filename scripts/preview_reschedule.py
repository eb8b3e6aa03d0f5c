#!/usr/bin/env python3
"""
Reschedule Preview Script

Shows what a full reschedule would do without writing anything:
- proposed start/end and queue position for every pending stage
- which stages would move
- jobs that could not be placed

Usage:
    python scripts/preview_reschedule.py [--start 2025-03-03T08:00] [--summary]
"""

import argparse
import json
import os
import sys

# Add parent directory to path to import print_scheduler modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from print_scheduler import create_app
from print_scheduler.scheduling.config import SchedulerSettings
from print_scheduler.scheduling.preview import preview_reschedule, print_preview, summarize_preview
from print_scheduler.scheduling.service import default_service
from print_scheduler.datetime_utils import parse_datetime


def main():
    parser = argparse.ArgumentParser(description="Dry run of reschedule-all.")
    parser.add_argument("--start", help="Earliest start (ISO datetime, shop-local when no offset given)")
    parser.add_argument("--summary", action="store_true", help="Print per-job counts as JSON instead of the full table")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        service = default_service(SchedulerSettings.from_mapping(app.config))
        preview = preview_reschedule(service, start=parse_datetime(args.start, service.calendar.tz))

        if args.summary:
            print(json.dumps(summarize_preview(preview), indent=2))
        else:
            print_preview(preview)

    return 0 if not preview["violations"] else 1


if __name__ == "__main__":
    sys.exit(main())
