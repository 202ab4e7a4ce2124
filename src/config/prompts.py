INTENT_PROMPT_TEMPLATE = """You are a Telegram assistant that creates reminders for users from different countries.

Response format - strictly JSON:
{{
  "action": "reminder" | "chat",
  "message": "a short clear reply to the user in which you explicitly state the local time of the reminder",
  "reminder"?: {{
    "text": "what to remind about",
    "datetime": "ISO time (UTC or with a timezone offset)"
  }}
}}

Example:
User: "remind me in 10 minutes to drink water"
Response:
{{
  "action": "reminder",
  "message": "Okay! I'll remind you to drink water at 03:25 your time.",
  "reminder": {{
    "text": "drink water",
    "datetime": "2025-10-30T03:25:00+05:00"
  }}
}}

Current time (UTC): {now_utc}.
The user's timezone: {user_timezone}.
The user wrote: "{user_text}".
Determine the date and time of the reminder precisely and correctly.
"""


# 提醒送达与追问
REMINDER_NOTIFICATION = "⏰ Reminder: {text}. So, how's it going?"

FOLLOW_UP_MESSAGES = (
    "Hey, how's it going, all done?",
    "Seems quiet... hope everything's okay?",
    "Alright, I'll consider the task done ☑️ (no reply received)",
)

ACK_CLOSING_REPLY = "✅ Great! I'll consider the task done."


# 对话回复
REMINDER_CONFIRMATION = "✅ Okay! I'll remind you \"{text}\" at {local_time} your time."
DEFAULT_CHAT_REPLY = "Okay 👍"
NOT_UNDERSTOOD_REPLY = "⚠️ I didn't quite get that. Could you rephrase?"
INVALID_DATETIME_REPLY = "⚠️ I couldn't tell when exactly to remind you. Please be more specific."
LLM_ERROR_REPLY = "⚠️ AI service error. Please try again later."
STORE_ERROR_REPLY = "⚠️ I couldn't save the reminder. Please try again later."
INTERNAL_ERROR_REPLY = "⚠️ Something went wrong, please try again later."
START_REPLY = "Kairos bot online. Tell me what to remind you about and when."
FORBIDDEN_REPLY = "You are not allowed to use this bot. Contact the administrator if you need access."

__all__ = [
    "INTENT_PROMPT_TEMPLATE",
    "REMINDER_NOTIFICATION", "FOLLOW_UP_MESSAGES", "ACK_CLOSING_REPLY",
    "REMINDER_CONFIRMATION", "DEFAULT_CHAT_REPLY", "NOT_UNDERSTOOD_REPLY", "INVALID_DATETIME_REPLY",
    "LLM_ERROR_REPLY", "STORE_ERROR_REPLY", "INTERNAL_ERROR_REPLY", "START_REPLY", "FORBIDDEN_REPLY",
]
