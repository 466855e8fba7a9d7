"""User-facing bot texts and inline keyboards."""

from typing import Any, Dict, List, Tuple
from uuid import UUID

from app.services.name_validation import MAX_CHILD_AGE, MAX_NAME_LENGTH, MIN_CHILD_AGE, MIN_NAME_LENGTH, NameRejection

# Callback data
CONFIRM_YES = "confirm_yes"
CONFIRM_NO = "confirm_no"
ORDER_ANOTHER = "order_another_video"
RETRY_PREFIX = "retry_video_"

WELCOME = (
    'Welcome to the "New Year Greeting" bot! 🎄\n\n'
    "Please share your phone number using the button below:"
)
WELCOME_BACK = "Welcome back! Glad to see you again! 🎄"
SHARE_PHONE_BUTTON = "📱 Share phone number"
PHONE_RECEIVED = "✅ Thank you! Phone number received."
PHONE_INVALID = '⚠️ Please use the "Share phone number" button.'
ASK_NAME = (
    "✨ Enter the name of the child the greeting is for:\n\n"
    "💡 <i>Spell the name exactly as it should be pronounced.</i>"
)
ASK_NAME_AGAIN = "OK, enter the child's name again:"
ASK_AGE = f"🎂 How old is the child?\n\nEnter an age from {MIN_CHILD_AGE} to {MAX_CHILD_AGE}:"
AGE_INVALID = f"⚠️ Please enter a valid age from {MIN_CHILD_AGE} to {MAX_CHILD_AGE}."
CANCELLED = "❌ Order cancelled. Send /start to begin again."
NOTHING_TO_CANCEL = "Nothing to cancel. Send /start to order a greeting."
IDLE_HINT = "Send /start to order a personal greeting video."
USE_BUTTONS = "Please answer with the buttons above."
ORDER_IN_PROGRESS = "⏳ Please finish or /cancel your current order first."
ORDER_ANOTHER_INTRO = "Wonderful! 🎁 Let's create another New Year greeting!"
ORDER_DATA_MISSING = "❌ Order details were lost. Send /start to try again."
GENERIC_ERROR = "Something went wrong while placing your order. Please try again later with /start."

VIDEO_CAPTION = "Here is your personal New Year greeting! 🎉"
CACHED_READY = "✅ Your video is ready! You can order another greeting."
ALREADY_GENERATING = "⏳ A video for this name is already being generated! We will send it to you as soon as it is ready."
BEING_PREPARED = "Your greeting video is being prepared. It will be ready shortly! 🌲"
ORDER_ANOTHER_BUTTON = "🎬 Order another video"

GENERATION_FAILED = (
    "❌ Unfortunately we could not create the video because of a problem on a third-party server.\n\n"
    "You can try again by pressing the button below:"
)
RETRY_BUTTON = "🔄 Try again"
RETRY_REQUEUED = "🔄 Your request has been resubmitted. We will send the video as soon as it is ready."
RETRY_ALREADY_READY = "✅ The video is already ready! Sending it now..."
RETRY_IN_PROGRESS = "⏳ The video is already being generated. Please wait."
RETRY_NOT_FOUND = "❌ Video not found. Please order a new one."
RETRY_ERROR = "❌ Could not resubmit the request. Please try again later."

NAME_ERRORS = {
    NameRejection.TOO_SHORT: f"⚠️ The name is too short! Please enter at least {MIN_NAME_LENGTH} characters.",
    NameRejection.TOO_LONG: f"⚠️ The name is too long! Please enter at most {MAX_NAME_LENGTH} characters.",
    NameRejection.INVALID_CHARS: "⚠️ The name may only contain letters and a hyphen.",
    NameRejection.MULTIPLE_WORDS: "⚠️ Please enter a single name without spaces.",
    NameRejection.INAPPROPRIATE: "⚠️ This name cannot be used. Please enter another one.",
}


def name_error(error_key: str) -> str:
    return NAME_ERRORS.get(error_key, "⚠️ Invalid name.")


def video_ready(display_name: str) -> str:
    return f"Your greeting video for {display_name} is ready! 🎊"


def confirm_order(display_name: str, age: int) -> str:
    return f"You entered the name <b>{display_name}</b>, age {age}. Is that correct?"


def inline_keyboard(*rows: List[Tuple[str, str]]) -> Dict[str, Any]:
    """Build an inline keyboard from rows of (text, callback_data) pairs."""
    return {
        "inline_keyboard": [
            [{"text": text, "callback_data": data} for text, data in row]
            for row in rows
        ]
    }


def order_another_keyboard() -> Dict[str, Any]:
    return inline_keyboard([(ORDER_ANOTHER_BUTTON, ORDER_ANOTHER)])


def confirm_keyboard() -> Dict[str, Any]:
    return inline_keyboard([("✅ Yes", CONFIRM_YES), ("✏️ No, change it", CONFIRM_NO)])


def retry_keyboard(asset_id: UUID) -> Dict[str, Any]:
    return inline_keyboard([(RETRY_BUTTON, f"{RETRY_PREFIX}{asset_id}")])


def share_phone_keyboard() -> Dict[str, Any]:
    return {
        "keyboard": [[{"text": SHARE_PHONE_BUTTON, "request_contact": True}]],
        "resize_keyboard": True,
        "one_time_keyboard": True,
    }


def remove_keyboard() -> Dict[str, Any]:
    return {"remove_keyboard": True}
