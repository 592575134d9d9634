from prometheus_client import Counter, Histogram


reminder_ticks_total = Counter(
    "reminder_ticks_total",
    "Total orchestrator ticks",
)

reminder_ticks_truncated_total = Counter(
    "reminder_ticks_truncated_total",
    "Ticks that hit the wall-clock deadline before finishing every pair",
)

reminder_tick_duration_seconds = Histogram(
    "reminder_tick_duration_seconds",
    "Wall-clock duration of an orchestrator tick",
)

reminders_sent_total = Counter(
    "reminders_sent_total",
    "Notifications delivered to at least one endpoint",
    ["notification_type"],
)

reminders_suppressed_total = Counter(
    "reminders_suppressed_total",
    "Pairs suppressed after the schedule matched",
    ["notification_type", "reason"],
)

reminders_pair_errors_total = Counter(
    "reminders_pair_errors_total",
    "Policy/user pairs that failed with an error",
    ["notification_type"],
)

reminders_dispatch_success_total = Counter(
    "reminders_dispatch_success_total",
    "Total successful push dispatches",
)

reminders_dispatch_failed_total = Counter(
    "reminders_dispatch_failed_total",
    "Total failed push dispatches",
)

endpoints_removed_total = Counter(
    "reminder_endpoints_removed_total",
    "Push endpoints deleted after the provider reported them invalid",
)
