"""
Record Store - доступ к пользователям, курсам, урокам и журналу активности.

DRY Principle: Единственное место для чтения/записи записей.
"Not found" is always an explicit ``None`` (or empty list); only failed
writes raise, as ``PersistenceError``.
"""

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from itertools import count
from threading import RLock
from typing import Dict, Iterable, List, Optional

from db_service import BaseRepository, DatabaseConnectionPool
from exceptions import PersistenceError

from ..schemas import (
    ActivitySchema,
    ApiConfigurationSchema,
    CourseSchema,
    CourseSubcontentSchema,
    UserSchema,
)

logger = logging.getLogger("record_store")


def _lesson_order(lesson: CourseSubcontentSchema):
    return (lesson.order_index, lesson.id)


class RecordStore(ABC):
    """Contract the bot relies on; the dashboard owns the data."""

    # Users
    @abstractmethod
    def get_user(self, user_id: int) -> Optional[UserSchema]: ...

    @abstractmethod
    def get_user_by_chat_id(self, chat_id: str) -> Optional[UserSchema]: ...

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[UserSchema]: ...

    @abstractmethod
    def get_users(self, user_ids: Iterable[int]) -> List[UserSchema]: ...

    @abstractmethod
    def upsert_user(self, chat_id: str, email: str, is_verified: bool,
                    order_id: Optional[str]) -> UserSchema:
        """Create the user for ``chat_id`` or update email, flag and order id."""

    @abstractmethod
    def set_user_banned(self, user_id: int, banned: bool) -> Optional[UserSchema]: ...

    # Courses
    @abstractmethod
    def get_course(self, course_id: int) -> Optional[CourseSchema]: ...

    @abstractmethod
    def list_active_courses(self) -> List[CourseSchema]: ...

    @abstractmethod
    def list_subcontent(self, course_id: int) -> List[CourseSubcontentSchema]:
        """Lessons of a course ordered by ``order_index`` then id."""

    @abstractmethod
    def get_subcontent(self, subcontent_id: int) -> Optional[CourseSubcontentSchema]: ...

    @abstractmethod
    def create_course(self, title: str, description: str = "", content: str = "",
                      is_active: bool = True) -> CourseSchema: ...

    @abstractmethod
    def create_subcontent(self, course_id: int, title: str, content: str = "",
                          url: Optional[str] = None, order_index: int = 0) -> CourseSubcontentSchema: ...

    # Activities
    @abstractmethod
    def create_activity(self, kind: str, description: str, user_id: Optional[int] = None,
                        admin_id: Optional[int] = None, chat_id: Optional[str] = None) -> ActivitySchema: ...

    @abstractmethod
    def list_activities(self, limit: int = 20) -> List[ActivitySchema]: ...

    # API configurations
    @abstractmethod
    def get_api_configuration(self, name: str) -> Optional[ApiConfigurationSchema]: ...

    @abstractmethod
    def save_api_configuration(self, configuration: ApiConfigurationSchema) -> ApiConfigurationSchema: ...


class InMemoryRecordStore(RecordStore):
    """Thread-safe in-process store with the same uniqueness rules as the database."""

    def __init__(self):
        self._lock = RLock()
        self._ids = {name: count(1) for name in ("users", "courses", "lessons", "activities")}
        self._users: Dict[int, UserSchema] = {}
        self._courses: Dict[int, CourseSchema] = {}
        self._lessons: Dict[int, CourseSubcontentSchema] = {}
        self._activities: List[ActivitySchema] = []
        self._configurations: Dict[str, ApiConfigurationSchema] = {}

    def _find_user(self, **criteria) -> Optional[UserSchema]:
        for user in self._users.values():
            if all(getattr(user, k) == v for k, v in criteria.items()):
                return user.model_copy()
        return None

    def get_user(self, user_id: int) -> Optional[UserSchema]:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy() if user else None

    def get_user_by_chat_id(self, chat_id: str) -> Optional[UserSchema]:
        with self._lock:
            return self._find_user(chat_id=str(chat_id))

    def get_user_by_email(self, email: str) -> Optional[UserSchema]:
        with self._lock:
            return self._find_user(email=email)

    def get_users(self, user_ids: Iterable[int]) -> List[UserSchema]:
        with self._lock:
            return [self._users[i].model_copy() for i in user_ids if i in self._users]

    def upsert_user(self, chat_id: str, email: str, is_verified: bool,
                    order_id: Optional[str]) -> UserSchema:
        chat_id = str(chat_id)
        with self._lock:
            owner = self._find_user(email=email)
            if owner and owner.chat_id != chat_id:
                raise PersistenceError(f"email already belongs to chat {owner.chat_id}",
                                       context={"chat_id": chat_id})

            existing = self._find_user(chat_id=chat_id)
            if existing:
                user = existing.model_copy(update={
                    "email": email, "is_verified": is_verified, "order_id": order_id,
                })
            else:
                user = UserSchema(id=next(self._ids["users"]), chat_id=chat_id, email=email,
                                  is_verified=is_verified, order_id=order_id)
            self._users[user.id] = user
            return user.model_copy()

    def set_user_banned(self, user_id: int, banned: bool) -> Optional[UserSchema]:
        with self._lock:
            user = self._users.get(user_id)
            if not user:
                return None
            self._users[user_id] = user.model_copy(update={"is_banned": banned})
            return self._users[user_id].model_copy()

    def get_course(self, course_id: int) -> Optional[CourseSchema]:
        with self._lock:
            course = self._courses.get(course_id)
            return course.model_copy() if course else None

    def list_active_courses(self) -> List[CourseSchema]:
        with self._lock:
            return [c.model_copy() for c in sorted(self._courses.values(), key=lambda c: c.id)
                    if c.is_active]

    def list_subcontent(self, course_id: int) -> List[CourseSubcontentSchema]:
        with self._lock:
            lessons = [lesson for lesson in self._lessons.values() if lesson.course_id == course_id]
            return [lesson.model_copy() for lesson in sorted(lessons, key=_lesson_order)]

    def get_subcontent(self, subcontent_id: int) -> Optional[CourseSubcontentSchema]:
        with self._lock:
            lesson = self._lessons.get(subcontent_id)
            return lesson.model_copy() if lesson else None

    def create_course(self, title: str, description: str = "", content: str = "",
                      is_active: bool = True) -> CourseSchema:
        with self._lock:
            course = CourseSchema(id=next(self._ids["courses"]), title=title,
                                  description=description, content=content, is_active=is_active)
            self._courses[course.id] = course
            return course.model_copy()

    def create_subcontent(self, course_id: int, title: str, content: str = "",
                          url: Optional[str] = None, order_index: int = 0) -> CourseSubcontentSchema:
        with self._lock:
            if course_id not in self._courses:
                raise PersistenceError(f"course {course_id} does not exist")
            lesson = CourseSubcontentSchema(id=next(self._ids["lessons"]), course_id=course_id,
                                            title=title, content=content, url=url,
                                            order_index=order_index)
            self._lessons[lesson.id] = lesson
            return lesson.model_copy()

    def create_activity(self, kind: str, description: str, user_id: Optional[int] = None,
                        admin_id: Optional[int] = None, chat_id: Optional[str] = None) -> ActivitySchema:
        with self._lock:
            activity = ActivitySchema(id=next(self._ids["activities"]), kind=kind,
                                      description=description, user_id=user_id,
                                      admin_id=admin_id, chat_id=chat_id)
            self._activities.append(activity)
            return activity

    def list_activities(self, limit: int = 20) -> List[ActivitySchema]:
        with self._lock:
            return list(reversed(self._activities))[:limit]

    def get_api_configuration(self, name: str) -> Optional[ApiConfigurationSchema]:
        with self._lock:
            configuration = self._configurations.get(name)
            return configuration.model_copy(deep=True) if configuration else None

    def save_api_configuration(self, configuration: ApiConfigurationSchema) -> ApiConfigurationSchema:
        with self._lock:
            self._configurations[configuration.name] = configuration.model_copy(deep=True)
            return configuration


class SQLiteRecordStore(RecordStore):
    """SQLite-backed store built on the shared connection pool."""

    def __init__(self, pool: DatabaseConnectionPool):
        self.pool = pool
        self.pool.init_schema()
        self.users = BaseRepository("users", pool)
        self.courses = BaseRepository("courses", pool)
        self.lessons = BaseRepository("course_subcontents", pool)
        self.activities = BaseRepository("activities", pool)
        self.configurations = BaseRepository("api_configurations", pool)

    @staticmethod
    def _user(row) -> Optional[UserSchema]:
        return UserSchema.model_validate(row) if row else None

    @staticmethod
    def _course(row) -> Optional[CourseSchema]:
        return CourseSchema.model_validate(row) if row else None

    @staticmethod
    def _lesson(row) -> Optional[CourseSubcontentSchema]:
        return CourseSubcontentSchema.model_validate(row) if row else None

    def _write(self, action: str, fn, *args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except sqlite3.Error as e:
            logger.error(f"❌ Failed to {action}: {e}")
            raise PersistenceError(f"failed to {action}", context={"driver_error": str(e)}) from e

    def get_user(self, user_id: int) -> Optional[UserSchema]:
        return self._user(self.users.get_by_id(user_id))

    def get_user_by_chat_id(self, chat_id: str) -> Optional[UserSchema]:
        return self._user(self.users.find_one(chat_id=str(chat_id)))

    def get_user_by_email(self, email: str) -> Optional[UserSchema]:
        return self._user(self.users.find_one(email=email))

    def get_users(self, user_ids: Iterable[int]) -> List[UserSchema]:
        users = []
        for user_id in user_ids:
            user = self.get_user(user_id)
            if user:
                users.append(user)
        return users

    def upsert_user(self, chat_id: str, email: str, is_verified: bool,
                    order_id: Optional[str]) -> UserSchema:
        chat_id = str(chat_id)
        existing = self.get_user_by_chat_id(chat_id)
        if existing:
            row = self._write("update user", self.users.update, existing.id,
                              email=email, is_verified=int(is_verified), order_id=order_id)
        else:
            row = self._write("create user", self.users.create, chat_id=chat_id, email=email,
                              is_verified=int(is_verified), is_banned=0, order_id=order_id)
        return self._user(row)

    def set_user_banned(self, user_id: int, banned: bool) -> Optional[UserSchema]:
        if not self.get_user(user_id):
            return None
        return self._user(self._write("ban user", self.users.update, user_id, is_banned=int(banned)))

    def get_course(self, course_id: int) -> Optional[CourseSchema]:
        return self._course(self.courses.get_by_id(course_id))

    def list_active_courses(self) -> List[CourseSchema]:
        return [self._course(row) for row in self.courses.find(order_by="id", is_active=1)]

    def list_subcontent(self, course_id: int) -> List[CourseSubcontentSchema]:
        rows = self.lessons.find(order_by="order_index, id", course_id=course_id)
        return [self._lesson(row) for row in rows]

    def get_subcontent(self, subcontent_id: int) -> Optional[CourseSubcontentSchema]:
        return self._lesson(self.lessons.get_by_id(subcontent_id))

    def create_course(self, title: str, description: str = "", content: str = "",
                      is_active: bool = True) -> CourseSchema:
        return self._course(self._write("create course", self.courses.create, title=title,
                                        description=description, content=content,
                                        is_active=int(is_active)))

    def create_subcontent(self, course_id: int, title: str, content: str = "",
                          url: Optional[str] = None, order_index: int = 0) -> CourseSubcontentSchema:
        return self._lesson(self._write("create lesson", self.lessons.create, course_id=course_id,
                                        title=title, content=content, url=url,
                                        order_index=order_index))

    def create_activity(self, kind: str, description: str, user_id: Optional[int] = None,
                        admin_id: Optional[int] = None, chat_id: Optional[str] = None) -> ActivitySchema:
        row = self._write("record activity", self.activities.create, kind=kind,
                          description=description, user_id=user_id, admin_id=admin_id,
                          chat_id=chat_id)
        return ActivitySchema.model_validate(row)

    def list_activities(self, limit: int = 20) -> List[ActivitySchema]:
        rows = self.activities.find(order_by="id DESC", limit=limit)
        return [ActivitySchema.model_validate(row) for row in rows]

    def get_api_configuration(self, name: str) -> Optional[ApiConfigurationSchema]:
        row = self.configurations.find_one(name=name)
        if not row:
            return None
        row["credentials"] = json.loads(row.get("credentials") or "{}")
        return ApiConfigurationSchema.model_validate(row)

    def save_api_configuration(self, configuration: ApiConfigurationSchema) -> ApiConfigurationSchema:
        fields = {
            "url": configuration.url,
            "credentials": json.dumps(configuration.credentials),
            "is_active": int(configuration.is_active),
            "updated_by": configuration.updated_by,
            "updated_at": configuration.updated_at.isoformat(sep=" "),
        }
        existing = self.configurations.find_one(name=configuration.name)
        if existing:
            self._write("update api configuration", self.configurations.update,
                        existing["id"], **fields)
        else:
            self._write("create api configuration", self.configurations.create,
                        name=configuration.name, **fields)
        return self.get_api_configuration(configuration.name)