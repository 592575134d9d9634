from typing import Dict, List, Tuple


GOOD_MORNING = "good_morning"
GOOD_NIGHT = "good_night"
WATER_REMINDER = "water_reminder"
WEEKLY_WEIGHT_REMINDER = "weekly_weight_reminder"
WEEKLY_MEASUREMENT_REMINDER = "weekly_measurement_reminder"
MEAL_REMINDER_PREFIX = "meal_reminder_"

MEAL_SLOTS: Tuple[str, ...] = ("breakfast", "snack1", "lunch", "snack2", "dinner")

REPEAT_PATTERNS: Tuple[str, ...] = ("daily", "weekly", "monthly", "hourly", "once")

# (value, label, description)
NOTIFICATION_TYPES: List[Tuple[str, str, str]] = [
    (GOOD_MORNING, "🌅 Good Morning", "Daily morning greeting"),
    (GOOD_NIGHT, "🌙 Good Night", "Daily evening message"),
    (WATER_REMINDER, "💧 Water Reminder", "Hydration reminders"),
    ("meal_reminder_breakfast", "🍳 Breakfast Reminder", "Morning meal reminder"),
    ("meal_reminder_snack1", "🍎 Morning Snack", "Mid-morning snack reminder"),
    ("meal_reminder_lunch", "🍱 Lunch Reminder", "Afternoon meal reminder"),
    ("meal_reminder_snack2", "🥤 Afternoon Snack", "Afternoon snack reminder"),
    ("meal_reminder_dinner", "🍽️ Dinner Reminder", "Evening meal reminder"),
    (WEEKLY_WEIGHT_REMINDER, "⚖️ Weekly Weight Check", "Weekly weight tracking reminder"),
    (WEEKLY_MEASUREMENT_REMINDER, "📏 Weekly Measurements", "Weekly body measurements reminder"),
    ("membership_expiring", "⏰ Membership Expiring", "Membership expiration warning"),
    ("membership_expired", "❌ Membership Expired", "Membership expired notification"),
    ("feedback_request", "📝 Feedback Request", "Request user feedback"),
]

NOTIFICATION_ACTIONS: Dict[str, str] = {
    GOOD_MORNING: "open_app",
    GOOD_NIGHT: "open_meals",
    WATER_REMINDER: "open_water",
    "meal_reminder_breakfast": "open_meals",
    "meal_reminder_snack1": "open_meals",
    "meal_reminder_lunch": "open_meals",
    "meal_reminder_snack2": "open_meals",
    "meal_reminder_dinner": "open_meals",
    WEEKLY_MEASUREMENT_REMINDER: "open_measurements",
    WEEKLY_WEIGHT_REMINDER: "open_weight",
    "feedback_request": "open_feedback",
    "membership_expiring": "open_subscription",
    "membership_expired": "open_subscription",
}

# Local notification presentation for the client wake scheduler
MEAL_LABELS: Dict[str, Tuple[str, str]] = {
    "breakfast": ("Breakfast", "🌅"),
    "snack1": ("Morning Snack", "🍎"),
    "lunch": ("Lunch", "🍱"),
    "snack2": ("Afternoon Snack", "🍪"),
    "dinner": ("Dinner", "🌙"),
}

ACTION_MARK_COMPLETED = "mark-completed"
ACTION_VIEW_MEALS = "view-meals"


def notification_action(notification_type: str) -> str:
    return NOTIFICATION_ACTIONS.get(notification_type, "open_app")


def meal_slot_for(notification_type: str) -> str | None:
    """'meal_reminder_lunch' -> 'lunch'; None for non-meal or unknown slots."""
    if not notification_type.startswith(MEAL_REMINDER_PREFIX):
        return None
    slot = notification_type[len(MEAL_REMINDER_PREFIX):]
    return slot if slot in MEAL_SLOTS else None
