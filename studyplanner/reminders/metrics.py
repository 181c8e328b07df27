from prometheus_client import Counter


scheduler_scans_total = Counter(
    "reminder_scheduler_scans_total",
    "Total scheduler scan cycles",
)

scheduler_candidates_total = Counter(
    "reminder_scheduler_candidates_total",
    "Dispatch candidates emitted by the scanner",
    ["reason"],
)

reminders_dispatch_success_total = Counter(
    "reminders_dispatch_success_total",
    "Total successful reminder dispatches",
)

reminders_dispatch_failed_total = Counter(
    "reminders_dispatch_failed_total",
    "Total failed reminder dispatches",
    ["kind"],
)

reminders_gate_skipped_total = Counter(
    "reminders_gate_skipped_total",
    "Dispatches skipped by the send-once gate",
    ["result"],
)

reminder_actions_total = Counter(
    "reminder_actions_total",
    "User actions processed from reminder links",
    ["action"],
)
