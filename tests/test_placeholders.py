from types import SimpleNamespace

from fitnudge.reminders.placeholders import build_context, meal_context, substitute
from tests.conftest import utc


def test_known_tokens_are_replaced_and_unknown_kept():
    text = substitute("Hi {name}, it is {currentTime}. {mystery}", {"name": "Asha", "currentTime": "09:00:00"})
    assert text == "Hi Asha, it is 09:00:00. {mystery}"


def test_substitution_is_idempotent():
    context = {"name": "Asha", "mealLabel": "Lunch"}
    once = substitute("{name}, {mealLabel} is overdue {unknown}", context)
    assert substitute(once, context) == once


def test_empty_template():
    assert substitute(None, {"name": "x"}) == ""
    assert substitute("", {"name": "x"}) == ""


def test_context_uses_first_name_and_local_time():
    prefs = SimpleNamespace(first_name="Asha", timezone="Asia/Kolkata")
    context = build_context(prefs, utc(2026, 3, 2, 3, 30))
    assert context == {"name": "Asha", "currentTime": "09:00:00"}


def test_context_name_fallback():
    prefs = SimpleNamespace(first_name=None, timezone="UTC")
    assert build_context(prefs, utc(2026, 3, 2, 3, 30))["name"] == "there"


def test_meal_context():
    assert meal_context("snack1") == {"mealType": "snack1", "mealLabel": "Morning Snack", "mealEmoji": "🍎"}
    context = build_context(SimpleNamespace(first_name="Asha", timezone="UTC"), utc(2026, 3, 2), meal_context("lunch"))
    assert substitute("{mealEmoji} {mealLabel}, {name}", context) == "🍱 Lunch, Asha"
