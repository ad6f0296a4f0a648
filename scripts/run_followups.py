#!/usr/bin/env python3
"""Run the follow-up sweep once, or send a manual follow-up to one lead.

Usage:
    python scripts/run_followups.py                 # one sweep (same as the cron endpoint)
    python scripts/run_followups.py --lead-id <id>  # manual follow-up
    python scripts/run_followups.py --no-inactivity-sweep
"""

import os
import sys
import json
import argparse

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), '..', 'autocrm'))

from core.utils.logging_config import setup_logging  # noqa: E402
from sales_bot.services import FollowUpService  # noqa: E402


def main():
    parser = argparse.ArgumentParser(description='Send WhatsApp follow-ups to silent leads')
    parser.add_argument('--lead-id', help='Send the next follow-up to this lead now')
    parser.add_argument('--no-inactivity-sweep', action='store_true',
                        help='Skip retiring stale exhausted leads')
    args = parser.parse_args()

    setup_logging(level=os.environ.get('LOG_LEVEL', 'INFO'))
    service = FollowUpService()

    if args.lead_id:
        result = service.send_manual_follow_up(args.lead_id)
        if not result.success:
            print(f"Error: {result.error}")
            sys.exit(1)
        print(json.dumps(result.data, indent=2))
        return

    result = service.process_follow_ups(include_inactivity_sweep=not args.no_inactivity_sweep)
    print(json.dumps(result.to_dict(), indent=2))
    if result.failed:
        sys.exit(1)


if __name__ == '__main__':
    main()
