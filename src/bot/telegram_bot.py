"""
Syllabus Calendar — Telegram Bot.

Telegram is the user interface: students manage their classes, upload
syllabus PDFs, browse the resulting calendar, export it as .ics and sync
it with Google Calendar from this bot.

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import io
import logging
from datetime import date
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, ReplyKeyboardMarkup, ReplyKeyboardRemove, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    ConversationHandler,
    MessageHandler,
    filters,
)

from src.config import settings
from src.core.errors import SyllabusCalendarError
from src.ports.calendar_port import CalendarError

if TYPE_CHECKING:
    from src.core.llm import LLMConfig
    from src.data.db import ClassDB, EventDB, SyllabusDB, UserDB
    from src.data.models import AcademicClass
    from src.ports.calendar_port import CalendarPort

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, Any]],
) -> Callable[..., Coroutine[Any, Any, Any]]:
    """Decorator that silently ignores messages from unauthorized users.

    Does NOT send any response to strangers — the bot must not reveal
    its existence to unauthorized users. An empty allow-list admits everyone.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> Any:
        user = update.effective_user
        allowed = settings.ALLOWED_USER_IDS
        if user is None or (allowed and user.id not in allowed):
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return None  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _stores(context: ContextTypes.DEFAULT_TYPE) -> tuple[UserDB, ClassDB, SyllabusDB, EventDB]:
    data = context.bot_data
    return data["user_db"], data["class_db"], data["syllabus_db"], data["event_db"]


async def _active_class(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> AcademicClass | None:
    """The class selected with /use, or None after telling the user how to pick one."""
    _, class_db, _, _ = _stores(context)
    class_id = context.user_data.get("active_class_id")
    cls = None
    if class_id is not None:
        cls = class_db.get_class(class_id, user_id=update.effective_user.id)
    if cls is None:
        context.user_data.pop("active_class_id", None)
        await update.message.reply_text(
            "No class selected. Use /classes to see your classes and /use <id> to pick one."
        )
    return cls


def _parse_int_arg(context: ContextTypes.DEFAULT_TYPE) -> int | None:
    if not context.args:
        return None
    try:
        return int(context.args[0])
    except ValueError:
        return None


def _calendar_for(context: ContextTypes.DEFAULT_TYPE, token_json: str) -> CalendarPort:
    factory = context.bot_data.get("calendar_factory")
    if factory is not None:
        return factory(token_json)
    from src.adapters.google_calendar import GoogleCalendarAdapter
    return GoogleCalendarAdapter(token_json)


async def _connected_calendar(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> CalendarPort | None:
    user_db, _, _, _ = _stores(context)
    user = user_db.get_user(update.effective_user.id)
    if user is None or not user.google_connected:
        await update.message.reply_text(
            "Google Calendar is not connected. Use /connect first."
        )
        return None
    return _calendar_for(context, user.google_token_json)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — register the user and show a welcome message."""
    user_db, _, _, _ = _stores(context)
    tg_user = update.effective_user
    user_db.ensure_user(tg_user.id, tg_user.full_name)

    await update.message.reply_text(
        "Welcome to *Syllabus Calendar*!\n\n"
        "I turn your course syllabi into calendar events:\n"
        "• Use /addclass to create a class, then /use <id> to select it\n"
        "• Send me the syllabus PDF and I'll extract the deadlines\n"
        "• Use /calendar or /events to see what's coming up\n"
        "• Use /export for an .ics file, or /connect to sync with Google Calendar\n\n"
        "Type /help for the full command list.",
        parse_mode="Markdown",
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "*Classes*\n"
        "/addclass — Create a class\n"
        "/classes — List your classes\n"
        "/use <id> — Select the class for uploads and views\n"
        "/deleteclass — Delete a class with its syllabi and events\n\n"
        "*Syllabi*\n"
        "Send a PDF — Extract events into the selected class\n"
        "/syllabi — List syllabi of the selected class\n"
        "/reprocess <id> — Run extraction again on a syllabus\n"
        "/status <id> — Processing status of a syllabus\n\n"
        "*Calendar*\n"
        "/events — Upcoming events (selected class, or all)\n"
        "/calendar [YYYY-MM] — Month view\n"
        "/day YYYY-MM-DD — Events of one day\n"
        "/deleteevent <id> — Delete an event (and its Google copy)\n"
        "/export — Download an .ics file\n\n"
        "*Google Calendar*\n"
        "/connect — Link your Google account\n"
        "/disconnect — Unlink it\n"
        "/calendars — List your Google calendars\n"
        "/sync [pull] — Push new events (and pull remote ones)\n"
        "/import — Pull Google events into the selected class",
        parse_mode="Markdown",
    )


# ---------------------------------------------------------------------------
# Class commands
# ---------------------------------------------------------------------------

# ConversationHandler states for /addclass
(
    CLASS_NAME,
    CLASS_CODE,
    CLASS_INSTRUCTOR,
    CLASS_SEMESTER,
    CLASS_YEAR,
) = range(5)

_SKIP = "-"
_SEMESTERS = [["Fall", "Spring"], ["Summer", "Winter"], [_SKIP]]


def _optional(text: str) -> str | None:
    text = text.strip()
    return None if text in ("", _SKIP) else text


@authorized_only
async def cmd_addclass(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Handle /addclass — start class creation conversation."""
    context.user_data["new_class"] = {}
    await update.message.reply_text("What's the class name? (e.g., 'Introduction to Psychology')")
    return CLASS_NAME


async def addclass_name(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    name = update.message.text.strip()
    if not name:
        await update.message.reply_text("Class name is required. Please enter a name.")
        return CLASS_NAME
    context.user_data["new_class"]["name"] = name
    await update.message.reply_text(f"Course code? (e.g., 'PSY 101', or '{_SKIP}' to skip)")
    return CLASS_CODE


async def addclass_code(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data["new_class"]["code"] = _optional(update.message.text)
    await update.message.reply_text(f"Instructor? ('{_SKIP}' to skip)")
    return CLASS_INSTRUCTOR


async def addclass_instructor(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data["new_class"]["instructor"] = _optional(update.message.text)
    keyboard = ReplyKeyboardMarkup(_SEMESTERS, one_time_keyboard=True, resize_keyboard=True)
    await update.message.reply_text("Which semester?", reply_markup=keyboard)
    return CLASS_SEMESTER


async def addclass_semester(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data["new_class"]["semester"] = _optional(update.message.text)
    await update.message.reply_text(
        f"Academic year? (e.g., '2024', or '{_SKIP}' to skip)",
        reply_markup=ReplyKeyboardRemove(),
    )
    return CLASS_YEAR


async def addclass_year(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    """Receive the academic year and create the class."""
    _, class_db, _, _ = _stores(context)
    fields = context.user_data.pop("new_class", {})
    fields["academic_year"] = _optional(update.message.text)

    try:
        cls = class_db.add_class(user_id=update.effective_user.id, **fields)
    except (SyllabusCalendarError, ValueError) as exc:
        await update.message.reply_text(f"Couldn't create the class: {exc}")
        return ConversationHandler.END

    context.user_data["active_class_id"] = cls.id
    await update.message.reply_text(
        f"✅ Class *{cls.name}* created (id `{cls.id}`) and selected.\n"
        "Send me its syllabus PDF to extract the events.",
        parse_mode="Markdown",
    )
    return ConversationHandler.END


async def addclass_cancel(update: Update, context: ContextTypes.DEFAULT_TYPE) -> int:
    context.user_data.pop("new_class", None)
    await update.message.reply_text("Class creation cancelled.", reply_markup=ReplyKeyboardRemove())
    return ConversationHandler.END


def _class_label(cls: AcademicClass) -> str:
    label = cls.name
    if cls.code:
        label = f"{cls.code} — {label}"
    term = " ".join(p for p in (cls.semester, cls.academic_year) if p)
    if term:
        label += f" ({term})"
    return label


@authorized_only
async def cmd_classes(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /classes — list the user's classes."""
    _, class_db, _, _ = _stores(context)
    classes = class_db.list_classes(update.effective_user.id)
    if not classes:
        await update.message.reply_text("No classes yet. Use /addclass to create one.")
        return

    active = context.user_data.get("active_class_id")
    lines = ["Your classes:"]
    for cls in classes:
        marker = "▶" if cls.id == active else "•"
        lines.append(f"{marker} {cls.id}: {_class_label(cls)}")
    await update.message.reply_text("\n".join(lines))


@authorized_only
async def cmd_use(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /use <id> — select the class for uploads and views."""
    _, class_db, _, _ = _stores(context)
    class_id = _parse_int_arg(context)
    if class_id is None:
        await update.message.reply_text("Usage: /use <class_id>\nUse /classes to see IDs.")
        return

    cls = class_db.get_class(class_id, user_id=update.effective_user.id)
    if cls is None:
        await update.message.reply_text("Class not found. Use /classes to see valid IDs.")
        return

    context.user_data["active_class_id"] = cls.id
    await update.message.reply_text(f"Selected: {_class_label(cls)}")


@authorized_only
async def cmd_deleteclass(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /deleteclass — show classes as buttons to pick from."""
    _, class_db, _, _ = _stores(context)
    classes = class_db.list_classes(update.effective_user.id)
    if not classes:
        await update.message.reply_text("No classes to delete.")
        return

    keyboard = [
        [InlineKeyboardButton(_class_label(c), callback_data=f"delclass:{c.id}")]
        for c in classes
    ]
    await update.message.reply_text(
        "Which class do you want to delete? Its syllabi and events go with it.",
        reply_markup=InlineKeyboardMarkup(keyboard),
    )


async def _handle_deleteclass_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle the inline button tap to delete a class."""
    _, class_db, _, _ = _stores(context)
    query = update.callback_query
    await query.answer()

    user = query.from_user
    allowed = settings.ALLOWED_USER_IDS
    if user is None or (allowed and user.id not in allowed):
        return

    class_id = int(query.data.split(":")[1])
    if not class_db.delete_class(class_id, user.id):
        await query.edit_message_text("Class not found or already deleted.")
        return

    if context.user_data.get("active_class_id") == class_id:
        context.user_data.pop("active_class_id", None)
    await query.edit_message_text("✅ Class deleted.")


# ---------------------------------------------------------------------------
# Syllabus upload and processing
# ---------------------------------------------------------------------------


def _events_summary(message: str, events: list) -> str:
    from src.core.calendar_grid import render_event_list

    if not events:
        return message
    return f"{message}\n\n{render_event_list(events)}"


@authorized_only
async def handle_document(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle an uploaded document — run the syllabus pipeline on it."""
    from src.core.pipeline import process_upload

    cls = await _active_class(update, context)
    if cls is None:
        return

    document = update.message.document
    if document.file_size and document.file_size > settings.MAX_UPLOAD_BYTES:
        limit_mb = settings.MAX_UPLOAD_BYTES // (1024 * 1024)
        await update.message.reply_text(f"File is too large. The limit is {limit_mb} MB.")
        return

    _, class_db, syllabus_db, event_db = _stores(context)
    llm_config: LLMConfig = context.bot_data["llm_config"]
    processing_msg = await update.message.reply_text("Processing syllabus...")

    try:
        tg_file = await context.bot.get_file(document.file_id)
        content = bytes(await tg_file.download_as_bytearray())
        result = await process_upload(
            content,
            document.mime_type,
            document.file_name or "syllabus.pdf",
            cls.id,
            update.effective_user.id,
            class_db,
            syllabus_db,
            event_db,
            llm_config,
        )
    except SyllabusCalendarError as exc:
        logger.warning("Syllabus upload rejected: %s", exc)
        await processing_msg.edit_text(str(exc))
        return
    except Exception as exc:
        logger.error("Syllabus upload error: %s", exc)
        await processing_msg.edit_text(
            "Sorry, something went wrong while processing your syllabus. Please try again."
        )
        return

    reply = _events_summary(result.message, result.saved)
    if result.syllabus is not None:
        reply += f"\n\nSyllabus id: {result.syllabus.id}"
    await processing_msg.edit_text(reply)


@authorized_only
async def cmd_syllabi(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /syllabi — list syllabi of the selected class."""
    cls = await _active_class(update, context)
    if cls is None:
        return
    _, _, syllabus_db, _ = _stores(context)

    syllabi = syllabus_db.list_syllabi(cls.id)
    if not syllabi:
        await update.message.reply_text("No syllabi uploaded for this class yet.")
        return

    lines = [f"Syllabi for {cls.name}:"]
    for s in syllabi:
        lines.append(f"• {s.id}: {s.original_filename} [{s.processing_status}]")
    await update.message.reply_text("\n".join(lines))


@authorized_only
async def cmd_reprocess(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /reprocess <id> — run extraction again over a stored syllabus."""
    from src.core.pipeline import reprocess_syllabus

    syllabus_id = _parse_int_arg(context)
    if syllabus_id is None:
        await update.message.reply_text("Usage: /reprocess <syllabus_id>\nUse /syllabi to see IDs.")
        return
    cls = await _active_class(update, context)
    if cls is None:
        return

    _, _, syllabus_db, event_db = _stores(context)
    processing_msg = await update.message.reply_text("Reprocessing syllabus...")
    try:
        result = await reprocess_syllabus(
            syllabus_id,
            cls.id,
            update.effective_user.id,
            syllabus_db,
            event_db,
            context.bot_data["llm_config"],
        )
    except SyllabusCalendarError as exc:
        await processing_msg.edit_text(str(exc))
        return

    await processing_msg.edit_text(_events_summary(result.message, result.saved))


@authorized_only
async def cmd_status(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /status <id> — processing status of a syllabus."""
    from src.core.pipeline import syllabus_status

    syllabus_id = _parse_int_arg(context)
    if syllabus_id is None:
        await update.message.reply_text("Usage: /status <syllabus_id>")
        return

    _, _, syllabus_db, event_db = _stores(context)
    try:
        status = syllabus_status(syllabus_id, update.effective_user.id, syllabus_db, event_db)
    except SyllabusCalendarError as exc:
        await update.message.reply_text(str(exc))
        return

    text = f"Status: {status.status}"
    if status.error:
        text += f"\nError: {status.error}"
    if status.status == "completed":
        text = _events_summary(f"{text}\n{len(status.events)} event(s).", status.events)
    await update.message.reply_text(text)


# ---------------------------------------------------------------------------
# Calendar views
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_events(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /events — upcoming events of the selected class, or of all classes."""
    from src.core.calendar_grid import render_event_list

    _, _, _, event_db = _stores(context)
    events = event_db.list_events(
        update.effective_user.id,
        class_id=context.user_data.get("active_class_id"),
        start_date=date.today().isoformat(),
    )
    if not events:
        await update.message.reply_text("No upcoming events.")
        return
    await update.message.reply_text(render_event_list(events))


@authorized_only
async def cmd_deleteevent(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /deleteevent <id> [calendar_id] — delete an event, here and on Google."""
    from src.core.calendar_sync import remove_event

    event_id = _parse_int_arg(context)
    if event_id is None:
        await update.message.reply_text("Usage: /deleteevent <event id> (ids are shown by /events)")
        return
    calendar_id = context.args[1] if len(context.args) > 1 else "primary"

    user_db, _, _, event_db = _stores(context)
    user = user_db.get_user(update.effective_user.id)
    calendar = None
    if user is not None and user.google_connected:
        calendar = _calendar_for(context, user.google_token_json)

    try:
        result = await remove_event(
            event_db, update.effective_user.id, event_id, calendar, calendar_id
        )
    except SyllabusCalendarError as exc:
        await update.message.reply_text(str(exc))
        return
    await update.message.reply_text(result.message)


def _parse_month(arg: str | None) -> tuple[int, int] | None:
    if not arg:
        today = date.today()
        return today.year, today.month
    parts = arg.split("-")
    if len(parts) != 2:
        return None
    try:
        year, month = int(parts[0]), int(parts[1])
    except ValueError:
        return None
    if not 1 <= month <= 12:
        return None
    return year, month


def _month_view(
    context: ContextTypes.DEFAULT_TYPE, user_id: int, year: int, month: int
) -> tuple[str, InlineKeyboardMarkup]:
    from src.core.calendar_grid import (
        build_month_grid,
        month_bounds,
        render_event_list,
        render_month,
        shift_month,
    )

    _, _, _, event_db = _stores(context)
    first, last = month_bounds(year, month)
    events = event_db.list_events(
        user_id,
        class_id=context.user_data.get("active_class_id"),
        start_date=first.isoformat(),
        end_date=last.isoformat(),
    )
    days = build_month_grid(year, month, events)
    text = f"```\n{render_month(year, month, days)}\n\n{render_event_list(events)}\n```"

    prev_y, prev_m = shift_month(year, month, -1)
    next_y, next_m = shift_month(year, month, 1)
    keyboard = InlineKeyboardMarkup([[
        InlineKeyboardButton("◀", callback_data=f"cal:{prev_y:04d}-{prev_m:02d}"),
        InlineKeyboardButton("Today", callback_data="cal:today"),
        InlineKeyboardButton("▶", callback_data=f"cal:{next_y:04d}-{next_m:02d}"),
    ]])
    return text, keyboard


@authorized_only
async def cmd_calendar(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /calendar [YYYY-MM] — month grid with navigation buttons."""
    parsed = _parse_month(context.args[0] if context.args else None)
    if parsed is None:
        await update.message.reply_text("Usage: /calendar [YYYY-MM]")
        return

    text, keyboard = _month_view(context, update.effective_user.id, *parsed)
    await update.message.reply_text(text, reply_markup=keyboard, parse_mode="Markdown")


async def _handle_calendar_callback(
    update: Update, context: ContextTypes.DEFAULT_TYPE
) -> None:
    """Handle month navigation buttons."""
    query = update.callback_query
    await query.answer()

    user = query.from_user
    allowed = settings.ALLOWED_USER_IDS
    if user is None or (allowed and user.id not in allowed):
        return

    arg = query.data.split(":", 1)[1]
    parsed = _parse_month(None if arg == "today" else arg)
    if parsed is None:
        return
    text, keyboard = _month_view(context, user.id, *parsed)
    await query.edit_message_text(text, reply_markup=keyboard, parse_mode="Markdown")


@authorized_only
async def cmd_day(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /day YYYY-MM-DD — details of the events on one day."""
    from src.core.calendar_grid import CalendarDay, render_day_details
    from src.core.validation import parse_iso_date

    day = parse_iso_date(context.args[0]) if context.args else None
    if day is None:
        await update.message.reply_text("Usage: /day YYYY-MM-DD")
        return

    _, _, _, event_db = _stores(context)
    events = event_db.list_events(
        update.effective_user.id,
        class_id=context.user_data.get("active_class_id"),
        start_date=day.isoformat(),
        end_date=day.isoformat(),
    )
    cell = CalendarDay(date=day, events=events, is_today=day == date.today(), is_current_month=True)
    await update.message.reply_text(render_day_details(cell))


@authorized_only
async def cmd_export(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /export — send the events as an .ics file."""
    from src.core.ics_export import export_events

    _, _, _, event_db = _stores(context)
    events = event_db.list_events(
        update.effective_user.id,
        class_id=context.user_data.get("active_class_id"),
    )
    if not events:
        await update.message.reply_text("No events to export.")
        return

    ics_bytes = export_events(events, event_db, settings.CALENDAR_NAME)
    await update.message.reply_document(
        document=io.BytesIO(ics_bytes),
        filename="syllabus-calendar.ics",
        caption=f"{len(events)} event(s). Import this file into your calendar app.",
    )


# ---------------------------------------------------------------------------
# Google Calendar
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_connect(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /connect [code] — link the user's Google account.

    Without an argument, replies with the consent URL; with the code the
    user got back from Google, stores the token.
    """
    from src.integrations.google_auth import exchange_google_auth_code, get_google_auth_url

    user_db, _, _, _ = _stores(context)
    tg_user = update.effective_user

    if not context.args:
        try:
            auth_url, flow = get_google_auth_url()
        except FileNotFoundError as exc:
            logger.error("/connect: %s", exc)
            await update.message.reply_text("Google Calendar is not configured on this server.")
            return
        context.user_data["google_flow"] = flow
        await update.message.reply_text(
            "1. Open this link and allow access to your calendar:\n"
            f"{auth_url}\n\n"
            "2. Send me the code you get back as: /connect <code>"
        )
        return

    flow = context.user_data.pop("google_flow", None)
    if flow is None:
        await update.message.reply_text("Start with /connect to get a fresh link first.")
        return

    try:
        token_json = exchange_google_auth_code(flow, context.args[0])
    except Exception as exc:
        logger.error("Google auth code exchange failed: %s", exc)
        await update.message.reply_text("That code didn't work. Run /connect again to get a new link.")
        return

    email = None
    try:
        email = await _calendar_for(context, token_json).primary_email()
    except CalendarError as exc:
        logger.warning("Could not read primary calendar after connect: %s", exc)

    user_db.ensure_user(tg_user.id, tg_user.full_name)
    user_db.set_google_token(tg_user.id, token_json, email)
    await update.message.reply_text(
        f"✅ Google Calendar connected{f' as {email}' if email else ''}."
    )


@authorized_only
async def cmd_disconnect(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /disconnect — forget the user's Google token."""
    from src.core.calendar_sync import disconnect

    user_db, _, _, _ = _stores(context)
    if disconnect(user_db, update.effective_user.id):
        await update.message.reply_text("Google Calendar disconnected.")
    else:
        await update.message.reply_text("Google Calendar was not connected.")


@authorized_only
async def cmd_calendars(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /calendars — list the user's Google calendars."""
    calendar = await _connected_calendar(update, context)
    if calendar is None:
        return

    try:
        calendars = await calendar.list_calendars()
    except CalendarError as exc:
        logger.error("/calendars error: %s", exc)
        await update.message.reply_text("Couldn't fetch your calendars. Please try again later.")
        return

    if not calendars:
        await update.message.reply_text("No calendars found.")
        return
    lines = ["Your Google calendars:"]
    for cal in calendars:
        suffix = " (primary)" if cal.get("primary") else ""
        lines.append(f"• {cal['summary']}{suffix}")
    await update.message.reply_text("\n".join(lines))


@authorized_only
async def cmd_sync(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /sync [pull] — push unsent events, optionally pull remote ones."""
    from src.core.calendar_sync import SyncOptions, sync_events

    calendar = await _connected_calendar(update, context)
    if calendar is None:
        return

    pull = bool(context.args) and context.args[0].lower() == "pull"
    class_id = context.user_data.get("active_class_id")
    if pull and class_id is None:
        await update.message.reply_text("Select a class with /use <id> to pull events into.")
        return

    _, _, _, event_db = _stores(context)
    options = SyncOptions(class_id=class_id, pull=pull)
    try:
        result = await sync_events(calendar, event_db, update.effective_user.id, options)
    except (CalendarError, SyllabusCalendarError) as exc:
        logger.error("/sync error: %s", exc)
        await update.message.reply_text(f"Sync failed: {exc}")
        return

    text = result.message
    if result.errors:
        text += "\n" + "\n".join(f"• {e}" for e in result.errors)
    await update.message.reply_text(text)


@authorized_only
async def cmd_import(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /import — pull Google events into the selected class."""
    from src.core.calendar_sync import SyncOptions, import_events

    cls = await _active_class(update, context)
    if cls is None:
        return
    calendar = await _connected_calendar(update, context)
    if calendar is None:
        return

    _, _, _, event_db = _stores(context)
    try:
        result = await import_events(
            calendar, event_db, update.effective_user.id, SyncOptions(class_id=cls.id)
        )
    except (CalendarError, SyllabusCalendarError) as exc:
        logger.error("/import error: %s", exc)
        await update.message.reply_text(f"Import failed: {exc}")
        return

    await update.message.reply_text(f"Imported {result.pulled} event(s) into {cls.name}.")


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    user_db: UserDB | None = None,
    class_db: ClassDB | None = None,
    syllabus_db: SyllabusDB | None = None,
    event_db: EventDB | None = None,
    llm_config: LLMConfig | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Stores and the LLM config default to ones built from settings.
    """
    from src.core.llm import LLMConfig
    from src.data.db import ClassDB, EventDB, SyllabusDB, UserDB

    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    # Store collaborators in bot_data for handler access
    app.bot_data["user_db"] = user_db or UserDB()
    app.bot_data["class_db"] = class_db or ClassDB()
    app.bot_data["syllabus_db"] = syllabus_db or SyllabusDB()
    app.bot_data["event_db"] = event_db or EventDB()
    app.bot_data["llm_config"] = llm_config or LLMConfig.from_settings()

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("classes", cmd_classes))
    app.add_handler(CommandHandler("use", cmd_use))
    app.add_handler(CommandHandler("deleteclass", cmd_deleteclass))
    app.add_handler(CommandHandler("syllabi", cmd_syllabi))
    app.add_handler(CommandHandler("reprocess", cmd_reprocess))
    app.add_handler(CommandHandler("status", cmd_status))
    app.add_handler(CommandHandler("events", cmd_events))
    app.add_handler(CommandHandler("deleteevent", cmd_deleteevent))
    app.add_handler(CommandHandler("calendar", cmd_calendar))
    app.add_handler(CommandHandler("day", cmd_day))
    app.add_handler(CommandHandler("export", cmd_export))
    app.add_handler(CommandHandler("connect", cmd_connect))
    app.add_handler(CommandHandler("disconnect", cmd_disconnect))
    app.add_handler(CommandHandler("calendars", cmd_calendars))
    app.add_handler(CommandHandler("sync", cmd_sync))
    app.add_handler(CommandHandler("import", cmd_import))
    app.add_handler(CallbackQueryHandler(_handle_deleteclass_callback, pattern=r"^delclass:\d+$"))
    app.add_handler(CallbackQueryHandler(_handle_calendar_callback, pattern=r"^cal:"))

    # /addclass conversation handler
    _text = filters.TEXT & ~filters.COMMAND
    addclass_conv = ConversationHandler(
        entry_points=[CommandHandler("addclass", cmd_addclass)],
        states={
            CLASS_NAME: [MessageHandler(_text, addclass_name)],
            CLASS_CODE: [MessageHandler(_text, addclass_code)],
            CLASS_INSTRUCTOR: [MessageHandler(_text, addclass_instructor)],
            CLASS_SEMESTER: [MessageHandler(_text, addclass_semester)],
            CLASS_YEAR: [MessageHandler(_text, addclass_year)],
        },
        fallbacks=[CommandHandler("cancel", addclass_cancel)],
    )
    app.add_handler(addclass_conv)

    # Syllabus uploads
    app.add_handler(MessageHandler(filters.Document.ALL, handle_document))

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting Syllabus Calendar bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
