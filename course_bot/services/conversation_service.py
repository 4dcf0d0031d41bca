"""
Conversation Service - сценарий проверки покупки и доступ к курсам.

Per-chat state machine:
    (no session) --/start--> AWAITING_EMAIL --email--> AWAITING_ORDER_ID
    AWAITING_ORDER_ID --paid order + saved user--> (no session, verified)

Every handler returns the replies to send; nothing here talks to Telegram.
All session reads and writes for a chat happen under that chat's lock.
"""

import logging
from html import escape
from typing import Awaitable, Callable, List, Optional

from audit_logger import AuditLogger, ERROR as ACTIVITY_ERROR
from exceptions import (
    DuplicateEmailError,
    InvalidInputError,
    PersistenceError,
    RateLimitError,
    TransientOracleError,
    VerificationFailedError,
    support_hint,
)
from input_validators import validate_email, validate_order_id
from security_middleware import TokenBucketLimiter

from ..schemas import (
    BotReply,
    ConversationStep,
    UserSchema,
    VerificationReason,
)
from .menu_builder import COURSES_MENU, COURSE_PREFIX, LESSON_PREFIX, MenuBuilder
from .order_oracle import WooCommerceOrderOracle
from .record_store import RecordStore
from .session_store import SessionStore

logger = logging.getLogger("conversation_service")

ProgressCallback = Callable[[BotReply], Awaitable[None]]

# ============================================================================
# MESSAGES
# ============================================================================

WELCOME_MESSAGE = (
    "👋 Welcome to our course bot! "
    "Please provide your email address to verify your purchase."
)
ALREADY_VERIFIED_MESSAGE = "✅ Welcome back! You are already verified with email: {email}"
BANNED_MESSAGE = f"🚫 Your account has been banned. Please {support_hint()} for assistance."
RESUME_ORDER_MESSAGE = (
    "👋 Welcome back! We have your email on file: {email}\n\n"
    "Please provide your WooCommerce order ID to complete verification."
)
INVALID_EMAIL_MESSAGE = InvalidInputError(
    "Please provide a valid email address (for example: name@example.com)."
).to_user_message()
ASK_ORDER_ID_MESSAGE = "📧 Thank you! Now please provide your order ID."
INVALID_ORDER_ID_MESSAGE = InvalidInputError(
    "Please provide a valid order ID (numeric values only)."
).to_user_message()
VERIFYING_MESSAGE = "⏳ Verifying your order. Please wait..."
VERIFIED_MESSAGE = "🎉 Your purchase has been verified! You now have access to our courses."
USE_START_MESSAGE = "Please use /start to begin the verification process."
NOT_VERIFIED_MESSAGE = "🔒 Please verify your purchase first. Use /start to begin."
COURSE_NOT_FOUND_MESSAGE = "❌ Course not found."
LESSON_NOT_FOUND_MESSAGE = "❌ Lesson not found."
UNKNOWN_OPTION_MESSAGE = "❌ This option is no longer available."

REJECTION_MESSAGES = {
    VerificationReason.NOT_FOUND: (
        "We could not find an order with this ID. "
        "Please check the order ID and send it again."
    ),
    VerificationReason.EMAIL_MISMATCH: (
        "This order was placed with a different email address. "
        "Please send the order ID that belongs to {email}."
    ),
    VerificationReason.UNPAID: (
        "This order has not been paid yet. "
        "Once the payment is complete, send the order ID again."
    ),
}

HELP_MESSAGE = (
    "<b>❓ Help</b>\n\n"
    "/start - verify your purchase or check your status\n"
    "/courses - browse your courses\n"
    "/help - show this message\n\n"
    "To get access, send the email you used at checkout, "
    "then the order ID from your confirmation email."
)


class ConversationService:
    """Verification dialogue plus the course browsing that it unlocks."""

    def __init__(self, record_store: RecordStore, session_store: SessionStore,
                 oracle: WooCommerceOrderOracle, rate_limiter: TokenBucketLimiter = None,
                 audit: AuditLogger = None, menu_builder: MenuBuilder = None):
        """
        Initialize conversation service.

        Args:
            record_store: Users, courses and lessons
            session_store: In-flight verification sessions
            oracle: Order payment check
            rate_limiter: Chat limiter applied to /start and free text
            audit: Activity feed; defaults to one over ``record_store``
            menu_builder: Course menu renderer
        """
        self.record_store = record_store
        self.session_store = session_store
        self.oracle = oracle
        self.rate_limiter = rate_limiter
        self.audit = audit or AuditLogger(record_store)
        self.menu_builder = menu_builder or MenuBuilder()

    def _allowed(self, chat_id) -> bool:
        return self.rate_limiter is None or self.rate_limiter.try_consume(chat_id)

    @staticmethod
    def _rate_limited() -> List[BotReply]:
        return [BotReply(text=RateLimitError("rate limited").to_user_message())]

    def _course_menu(self) -> BotReply:
        return self.menu_builder.build_course_menu(self.record_store.list_active_courses())

    # ========================================================================
    # VERIFICATION FLOW
    # ========================================================================

    async def handle_start(self, chat_id) -> List[BotReply]:
        """Handle /start: greet, resume or (re)open the verification dialogue."""
        if not self._allowed(chat_id):
            return self._rate_limited()

        chat_id = str(chat_id)
        async with self.session_store.locked(chat_id):
            user = self.record_store.get_user_by_chat_id(chat_id)

            if user is not None and user.is_banned:
                logger.info(f"🚫 Banned user {user.id} tried /start (chat {chat_id})")
                return [BotReply(text=BANNED_MESSAGE)]

            if user is not None and user.is_verified:
                logger.info(f"✅ Verified user {user.id} restarted (chat {chat_id})")
                return [
                    BotReply(text=ALREADY_VERIFIED_MESSAGE.format(email=escape(user.email))),
                    self._course_menu(),
                ]

            if user is not None:
                self.session_store.start(chat_id, ConversationStep.AWAITING_ORDER_ID,
                                         pending_email=user.email)
                logger.info(f"🔄 Chat {chat_id} resumed verification for stored email")
                return [BotReply(text=RESUME_ORDER_MESSAGE.format(email=escape(user.email)))]

            self.session_store.start(chat_id, ConversationStep.AWAITING_EMAIL)
            logger.info(f"👋 Chat {chat_id} started verification")
            return [BotReply(text=WELCOME_MESSAGE)]

    async def handle_text(self, chat_id, text: str,
                          on_progress: Optional[ProgressCallback] = None) -> List[BotReply]:
        """
        Handle free text according to the chat's current step.

        Args:
            chat_id: Telegram chat id
            text: Raw message text
            on_progress: Awaited with a notice before the order lookup starts

        Returns:
            Replies to send, in order
        """
        if not self._allowed(chat_id):
            return self._rate_limited()

        chat_id = str(chat_id)
        async with self.session_store.locked(chat_id):
            session = self.session_store.get(chat_id)
            if session is None:
                return [BotReply(text=USE_START_MESSAGE)]

            self.session_store.touch(chat_id)
            if session.step == ConversationStep.AWAITING_EMAIL:
                return self._accept_email(chat_id, text)
            return await self._accept_order_id(chat_id, session.pending_email, text, on_progress)

    def _email_taken(self, chat_id: str, email: str) -> bool:
        owner = self.record_store.get_user_by_email(email)
        if owner is not None and owner.chat_id != chat_id:
            return True
        pending_chat = self.session_store.find_chat_by_pending_email(email)
        return pending_chat is not None and pending_chat != chat_id

    def _accept_email(self, chat_id: str, text: str) -> List[BotReply]:
        email, error = validate_email(text)
        if error:
            return [BotReply(text=INVALID_EMAIL_MESSAGE)]

        if self._email_taken(chat_id, email):
            logger.info(f"⚠️ Chat {chat_id} tried an email that belongs to another chat")
            return [BotReply(text=DuplicateEmailError(email).to_user_message())]

        self.session_store.start(chat_id, ConversationStep.AWAITING_ORDER_ID, pending_email=email)
        return [BotReply(text=ASK_ORDER_ID_MESSAGE)]

    async def _accept_order_id(self, chat_id: str, email: str, text: str,
                               on_progress: Optional[ProgressCallback]) -> List[BotReply]:
        order_id, error = validate_order_id(text)
        if error:
            return [BotReply(text=INVALID_ORDER_ID_MESSAGE)]

        stored = self.record_store.get_user_by_chat_id(chat_id)
        if stored is not None and stored.is_banned:
            self.session_store.delete(chat_id)
            logger.info(f"🚫 Banned user {stored.id} tried to verify order {order_id} (chat {chat_id})")
            return [BotReply(text=BANNED_MESSAGE)]

        if on_progress is not None:
            await on_progress(BotReply(text=VERIFYING_MESSAGE))

        result = await self.oracle.verify(order_id, email)
        self.session_store.touch(chat_id)

        if result.is_transient:
            logger.warning(f"⚠️ Order {order_id} for chat {chat_id} left unverified: {result.detail}")
            return [BotReply(text=TransientOracleError(result.detail or "").to_user_message())]

        if not result.paid:
            logger.info(f"❌ Order {order_id} rejected for chat {chat_id}: {result.reason.value}")
            error = VerificationFailedError(
                REJECTION_MESSAGES[result.reason].format(email=escape(email)),
                context={"order_id": order_id, "reason": result.reason.value},
            )
            return [BotReply(text=error.to_user_message())]

        try:
            user = self.record_store.upsert_user(chat_id, email, is_verified=True, order_id=order_id)
        except PersistenceError as e:
            logger.error(f"❌ Paid order {order_id} for chat {chat_id} could not be saved: {e.message}")
            self.audit.record(ACTIVITY_ERROR, f"Failed to save verified user for order {order_id}",
                              chat_id=chat_id)
            return [BotReply(text=e.to_user_message())]

        self.session_store.delete(chat_id)
        self.audit.user_event(f"User verified purchase with order {order_id}",
                              user_id=user.id, chat_id=chat_id)
        logger.info(f"🎉 Chat {chat_id} verified with order {order_id}")
        if self._authorized_user(chat_id) is None:
            return [BotReply(text=self._refusal(chat_id))]
        return [BotReply(text=VERIFIED_MESSAGE), self._course_menu()]

    # ========================================================================
    # COURSE BROWSING
    # ========================================================================

    def _authorized_user(self, chat_id: str) -> Optional[UserSchema]:
        user = self.record_store.get_user_by_chat_id(chat_id)
        if user is None or user.is_banned or not user.is_verified:
            return None
        return user

    def _refusal(self, chat_id: str) -> str:
        user = self.record_store.get_user_by_chat_id(chat_id)
        if user is not None and user.is_banned:
            return BANNED_MESSAGE
        return NOT_VERIFIED_MESSAGE

    async def handle_courses(self, chat_id) -> List[BotReply]:
        """Handle /courses: the top-level menu for verified users."""
        chat_id = str(chat_id)
        user = self._authorized_user(chat_id)
        if user is None:
            return [BotReply(text=self._refusal(chat_id))]

        self.audit.user_event("Opened course list", user_id=user.id, chat_id=chat_id)
        return [self._course_menu()]

    async def handle_selection(self, chat_id, selector: str) -> List[BotReply]:
        """
        Handle a menu button press.

        Unknown or vanished ids come back as a single alert reply; nothing
        is mutated on this path.
        """
        chat_id = str(chat_id)
        user = self._authorized_user(chat_id)
        if user is None:
            return [BotReply(text=self._refusal(chat_id), alert=True)]

        if selector == COURSES_MENU:
            return [self._course_menu()]
        if selector.startswith(COURSE_PREFIX):
            return self._show_course(user, chat_id, selector[len(COURSE_PREFIX):])
        if selector.startswith(LESSON_PREFIX):
            return self._show_lesson(user, chat_id, selector[len(LESSON_PREFIX):])

        logger.warning(f"⚠️ Unknown selector from chat {chat_id}: {selector}")
        return [BotReply(text=UNKNOWN_OPTION_MESSAGE, alert=True)]

    @staticmethod
    def _parse_id(raw: str) -> Optional[int]:
        return int(raw) if raw.isascii() and raw.isdecimal() else None

    def _show_course(self, user: UserSchema, chat_id: str, raw_id: str) -> List[BotReply]:
        course_id = self._parse_id(raw_id)
        course = self.record_store.get_course(course_id) if course_id is not None else None
        if course is None or not course.is_active:
            return [BotReply(text=COURSE_NOT_FOUND_MESSAGE, alert=True)]

        lessons = self.record_store.list_subcontent(course.id)
        self.audit.user_event(f"Opened course: {course.title}", user_id=user.id, chat_id=chat_id)
        return [self.menu_builder.build_course_view(course, lessons)]

    def _show_lesson(self, user: UserSchema, chat_id: str, raw_id: str) -> List[BotReply]:
        lesson_id = self._parse_id(raw_id)
        lesson = self.record_store.get_subcontent(lesson_id) if lesson_id is not None else None
        course = self.record_store.get_course(lesson.course_id) if lesson is not None else None
        if lesson is None or course is None or not course.is_active:
            return [BotReply(text=LESSON_NOT_FOUND_MESSAGE, alert=True)]

        self.audit.user_event(f"Opened lesson: {lesson.title}", user_id=user.id, chat_id=chat_id)
        return [self.menu_builder.build_lesson_view(lesson, course)]

    async def handle_help(self) -> List[BotReply]:
        return [BotReply(text=HELP_MESSAGE)]

    def get_stats(self) -> dict:
        return {
            "sessions": self.session_store.get_stats(),
            "oracle": self.oracle.get_stats(),
        }
