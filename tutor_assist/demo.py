#!/usr/bin/env python3
"""
╔══════════════════════════════════════════════════════════╗
║          Tutor Assist: Scheduling & Alerts Demo          ║
╚══════════════════════════════════════════════════════════╝

Run: python -m tutor_assist.demo            (add --no-pause to run straight through)
"""

import sys
from datetime import date, datetime, timedelta

from tutor_assist.engine.conflicts import ConflictDetector
from tutor_assist.engine.models import CandidateSession, Session, Student, StudentPayments, MonthlyPayment
from tutor_assist.engine.prioritizer import SuggestionEngine
from tutor_assist.engine.queue import SuggestionQueue
from tutor_assist.engine.rules import previous_period
from tutor_assist.engine.slots import SlotSuggester
from tutor_assist.engine.store import InMemoryStore

CYAN  = "\033[96m"
GREEN = "\033[92m"
YELLOW= "\033[93m"
RED   = "\033[91m"
BOLD  = "\033[1m"
DIM   = "\033[2m"
RESET = "\033[0m"

SEVERITY_COLORS = {"error": RED, "warning": YELLOW, "none": GREEN}


def banner(text):
    print(f"\n{CYAN}{BOLD}{'─'*55}")
    print(f"  {text}")
    print(f"{'─'*55}{RESET}")


def build_roster(today: date):
    yesterday = today - timedelta(days=1)
    alice = Student(id="s1", name="Alice", session_time="10:00", phone="+201000000001", sessions=[
        Session(id="a-today", date=today, time="10:00"),
        Session(id="a-prev", date=yesterday, status="completed", topic="Fractions", homework="p. 12",
                homework_status="assigned"),
    ])
    omar = Student(id="s2", name="Omar", session_time="13:00", sessions=[
        Session(id="o-today", date=today, time="13:00"),
        Session(id="o-late", date=today, time="17:00"),
    ] + [Session(id=f"o-c{i}", date=today - timedelta(days=i + 2), status="cancelled") for i in range(3)])
    return [alice, omar]


def show_conflict(detector, roster, day, time):
    result = detector.check_conflict(CandidateSession(date=day, start_time=time, duration_minutes=60), roster)
    severity = result.severity if result else "none"
    color = SEVERITY_COLORS[severity]
    print(f"  {time} → {color}{severity.upper()}{RESET}")
    for c in (result.conflicts if result else []):
        print(f"     · {c.kind:<7} gap={c.gap:>4}  {c.describe()}")


def main(interactive: bool = True):
    def pause(msg="Press ENTER to continue..."):
        if interactive:
            input(f"\n{DIM}{msg}{RESET}")

    now = datetime.combine(date.today(), datetime.min.time()).replace(hour=16, minute=40)
    today = now.date()
    roster = build_roster(today)
    year, month, _ = previous_period(today)
    payments = [StudentPayments("s1", [MonthlyPayment(month=month, year=year, is_paid=True)])]

    detector = ConflictDetector()
    slots = SlotSuggester(detector)
    engine = SuggestionEngine()
    queue = SuggestionQueue(InMemoryStore(), clock=lambda: now)

    banner("SCENARIO 1: Conflict checks against Alice's 10:00 session")
    pause()
    for time in ("10:30", "11:05", "11:20"):
        show_conflict(detector, roster, today, time)

    banner("SCENARIO 2: Free slots this afternoon (60 min)")
    pause()
    for slot in slots.get_suggested_slots(roster, today, 60, range_start="12:00"):
        print(f"  {GREEN}{slot.time}{RESET} ({slot.day_part})")

    banner("SCENARIO 3: Suggestion engine run at 16:40")
    pause()
    batch = engine.generate_suggestions(roster, payments, now)
    for s in batch:
        print(f"  [{s.priority:<8}] {s.priority_score:>3} {s.type:<11} {s.message.splitlines()[0]}")
        print(f"  {DIM}     action → {s.action}{RESET}")

    banner("SCENARIO 4: The queue shows one item at a time")
    pause()
    interrupt = queue.sync_from_engine(batch)
    print(f"  New interrupt: {interrupt}")
    current = queue.get_current_suggestion()
    while current:
        print(f"  Showing: {current.id}")
        queue.mark_dismissed(current.id)
        current = queue.get_current_suggestion()

    banner("SCENARIO 5: Dismissed items stay gone on the next run")
    pause()
    queue.sync_from_engine(engine.generate_suggestions(roster, payments, now))
    print(f"  Pending after re-sync: {queue.pending_count()}")

    banner("DEMO COMPLETE: History Summary")
    stats = queue.history_stats()
    print(f"""
  Total dismissed        : {stats['total_dismissed']}
  Manual                 : {stats['by_reason']['manual']}
  Actioned               : {stats['by_reason']['actioned']}
  Condition resolved     : {stats['by_reason']['condition_resolved']}
""")

    print(f"""
{GREEN}{BOLD}To run as an API server:{RESET}
  uvicorn tutor_assist.api.server:app --reload --port 8000

  curl http://localhost:8000/v1/health
  curl http://localhost:8000/v1/suggestions/current
""")
    return stats


if __name__ == "__main__":
    main(interactive="--no-pause" not in sys.argv)
