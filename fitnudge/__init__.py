"""
FitNudge reminder engine.

Decides, per user and per local time window, whether a meal, hydration,
weigh-in or greeting notification is due, delivers it over push and makes
sure it never fires twice for the same user, type and local day.
"""
