# zmanimbot - WhatsApp Zmanim Reminder Service
# Copyright (c) 2025-2026 Slash Daemon slashdaemon@protonmail.com
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, version 3 of the License.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.
#
# Commercial licensing: [slashdaemon@protonmail.com]

"""User-facing (Hebrew) strings for reminder management and delivery."""

from typing import Optional

from .models import ReminderType
from .offsets import describe_offset_minutes, minutes_to_hhmm

TYPE_NAMES = {
    ReminderType.TEFILLIN: "הנחת תפילין",
    ReminderType.CANDLE_LIGHTING: "הדלקת נרות",
    ReminderType.SHEMA: "זמן קריאת שמע",
    ReminderType.TAARA: "הפסק טהרה",
    ReminderType.CLEAN_7: "שבעה נקיים",
}

# Keywords (matched after strip + lower)
YES_WORDS = frozenset({"כן", "yes", "אישור"})
NO_WORDS = frozenset({"לא", "no", "ביטול"})
EDIT_WORDS = frozenset({"ערוך", "edit"})
DELETE_WORDS = frozenset({"מחק", "delete"})
CANCEL_WORDS = frozenset({"ביטול", "חזרה", "cancel", "back"})
LIST_WORDS = frozenset({"התזכורות שלי", "תזכורות", "my reminders", "reminders"})

REGISTER_FIRST = "אנא השלם/י רישום קודם. שלח/י כל הודעה כדי להתחיל."
NO_REMINDERS = "📭 אין לך תזכורות עדיין.\n\nהשתמש/י בתפריט כדי להוסיף תזכורת חדשה."
LIST_HEADER = "📋 התזכורות שלך:\n\n"
LIST_FIRST = "אנא בחר/י תזכורת מהרשימה תחילה."
SEND_NUMBER = "אנא שלח/י מספר תזכורת (1, 2, 3 וכו') או ❌ *ביטול* לחזרה לתפריט."
INVALID_NUMBER = "❌ מספר תזכורת לא תקין. אנא בחר/י מספר מהרשימה."
USER_NOT_FOUND = "שגיאה: משתמש לא נמצא."
REMINDER_NOT_FOUND = "❌ תזכורת לא נמצאה."
SELECT_FIRST = "אנא בחר/י תזכורת תחילה."
NOT_OWNER_DELETE = "❌ ניתן למחוק רק את התזכורות שלך."
NOT_OWNER_EDIT = "❌ ניתן לערוך רק את התזכורות שלך."
DELETE_FAILED = "❌ שגיאה: התזכורת לא נמחקה. נסה שוב."
DELETE_CANCELLED = "❌ המחיקה בוטלה."
CONFIRM_PROMPT = "אנא שלח/י 'כן' לאישור או 'לא' לביטול."
APOLOGY = "סליחה, אירעה שגיאה. נסה שוב."
ACTION_PROMPT = (
    "אנא בחר/י פעולה:\n"
    "✏️ *ערוך* - לעריכת התזכורת\n"
    "🗑️ *מחק* - למחיקת התזכורת\n"
    "🔙 *חזרה* - חזרה לרשימה"
)
TIME_PROMPT = (
    "⏰ כמה דקות לפני הזמן לשלוח את התזכורת?\n\n"
    "שלח/י אחת מהאפשרויות: 0, 10, 20, 30, 45, 60, 90, 120"
)
TAARA_TIME_PROMPT = "⏰ באיזו שעה לשלוח את התזכורת? (לדוגמה 18:30)"
INVALID_TIME_CHOICE = "❌ בחירה לא תקינה. אנא בחר/י זמן מהרשימה."


def type_name(reminder_type: ReminderType) -> str:
    return TYPE_NAMES.get(reminder_type, reminder_type.value)


def describe_offset(reminder_type: ReminderType, offset_minutes: int) -> str:
    """Human-readable timing for a reminder ("30 דקות לפני סוף זמן", ...)."""
    if reminder_type is ReminderType.TAARA:
        return f"בשעה {minutes_to_hhmm(offset_minutes)}"
    if reminder_type is ReminderType.CANDLE_LIGHTING and offset_minutes == 0:
        return "ביום שישי בבוקר"
    if reminder_type is ReminderType.CLEAN_7:
        return "כל בוקר במשך שבעה ימים"

    event = "הדלקת נרות" if reminder_type is ReminderType.CANDLE_LIGHTING else "סוף זמן"
    direction, minutes = describe_offset_minutes(offset_minutes)
    if direction == "at":
        return "בזמן"
    if direction == "before":
        return f"{minutes} דקות לפני {event}"
    return f"{minutes} דקות אחרי {event}"


def list_item(index: int, reminder_type: ReminderType, offset_minutes: int) -> str:
    return f"{index}️⃣ {type_name(reminder_type)} – {describe_offset(reminder_type, offset_minutes)}\n"


def list_footer(count: int) -> str:
    return (
        f"\nשלח/י מספר תזכורת (1-{count}) לעריכה או מחיקה.\n"
        "❌ *ביטול* - לחזרה לתפריט הראשי"
    )


def reminder_selected(reminder_type: ReminderType, offset_minutes: int) -> str:
    return (
        f"📌 תזכורת נבחרה:\n\n"
        f"{type_name(reminder_type)} – {describe_offset(reminder_type, offset_minutes)}\n\n"
        "מה תרצה לעשות?\n\n"
        "שלח/י:\n"
        "✏️ *ערוך* - לעריכת התזכורת\n"
        "🗑️ *מחק* - למחיקת התזכורת\n"
        "❌ *ביטול* - לחזרה לתפריט הראשי"
    )


def confirm_delete(reminder_type: ReminderType) -> str:
    return (
        f"⚠️ האם אתה בטוח שברצונך למחוק את התזכורת:\n\n"
        f"{type_name(reminder_type)}\n\n"
        "שלח/י *כן* לאישור או *לא* לביטול."
    )


def deleted(reminder_type: ReminderType) -> str:
    return f'✅ התזכורת "{type_name(reminder_type)}" נמחקה בהצלחה.'


def updated(reminder_type: ReminderType, offset_minutes: int) -> str:
    return (
        f'✅ התזכורת "{type_name(reminder_type)}" עודכנה בהצלחה.\n'
        f"⏰ זמן: {describe_offset(reminder_type, offset_minutes)}"
    )


def saved(reminder_type: ReminderType, offset_minutes: int) -> str:
    return (
        f'✅ התזכורת "{type_name(reminder_type)}" נשמרה בהצלחה.\n'
        f"⏰ זמן: {describe_offset(reminder_type, offset_minutes)}"
    )


# Plain-text delivery bodies, used when no template is configured or it fails

def tefillin_text(sunset: str, reminder_time: str, tzeit: Optional[str] = None) -> str:
    text = f"🔔 תזכורת: הנחת תפילין\n\n🌅 שקיעה היום: {sunset}\n"
    if tzeit:
        text += f"🌙 צאת הכוכבים: {tzeit}\n"
    return (
        text
        + f"⏰ זמן התזכורת: {reminder_time}\n\n"
        "אל תשכח/י להניח תפילין לפני השקיעה!"
    )


def shema_text(shema: str, reminder_time: str) -> str:
    return (
        f"🔔 תזכורת: קריאת שמע\n\n"
        f"📖 סוף זמן קריאת שמע: {shema}\n"
        f"⏰ זמן התזכורת: {reminder_time}"
    )


def candle_lighting_text(city: str, candle_time: str) -> str:
    return (
        f"🕯️ שבת שלום!\n\n"
        f"הדלקת נרות היום ב{city}: {candle_time}"
    )


def taara_text(sunset: str) -> str:
    return (
        f"🔔 תזכורת: הפסק טהרה\n\n"
        f"🌅 שקיעה היום: {sunset}"
    )


def clean_7_text(day_number: int) -> str:
    return f"🔔 תזכורת: שבעה נקיים\n\nהיום יום {day_number} מתוך 7"
