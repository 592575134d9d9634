"""Reminder engine (evaluator, dedup guard, meal reconciler, dispatcher, orchestrator).

The orchestrator is driven either by the HTTP cron trigger or by the Celery
beat schedule; both call the same `ReminderOrchestrator.run_tick`.
"""
