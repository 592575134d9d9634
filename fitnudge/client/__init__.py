"""Client-side wake scheduler.

Runs beside the foreground application, sleeps until the next meal
checkpoint and raises local notifications from cached state when the server
cannot be reached. Talks to the foreground only over a MessageBus.
"""
