"""
Menu Builder - курсы и уроки в виде inline-меню.

Pure transformation of course records into replies; no I/O, no state.
"""

from html import escape
from typing import List, Optional

import config

from ..schemas import BotReply, CourseSchema, CourseSubcontentSchema, Menu, MenuButton

COURSES_MENU = "courses_menu"
COURSE_PREFIX = "course_"
LESSON_PREFIX = "lesson_"


def course_selector(course_id: int) -> str:
    return f"{COURSE_PREFIX}{course_id}"


def lesson_selector(lesson_id: int) -> str:
    return f"{LESSON_PREFIX}{lesson_id}"


def truncate(text: str, limit: int) -> str:
    """Cut ``text`` to ``limit`` characters, ending with an ellipsis when cut."""
    text = (text or "").strip()
    if limit <= 0 or len(text) <= limit:
        return text
    return text[: max(limit - 1, 0)].rstrip() + "…"


class MenuBuilder:
    """Builds the course -> lesson menus with back navigation at each level."""

    def __init__(self, summary_length: int = None):
        self.summary_length = summary_length if summary_length is not None else config.MENU_SUMMARY_LENGTH

    def build_course_menu(self, courses: List[CourseSchema]) -> BotReply:
        """Top-level menu: one button per active course."""
        if not courses:
            return BotReply(text="📭 No courses available at the moment.")

        rows = [[MenuButton(label=f"📚 {course.title}", selector=course_selector(course.id))]
                for course in courses]
        return BotReply(text="🎓 <b>Available Courses</b>\n\nChoose a course:", menu=Menu(rows=rows))

    def build_course_view(self, course: CourseSchema,
                          lessons: List[CourseSubcontentSchema]) -> BotReply:
        """Course summary plus its lessons, ordered, with a way back to the course list."""
        parts = [f"📚 <b>{escape(course.title)}</b>"]
        if course.description:
            parts.append(escape(truncate(course.description, self.summary_length)))
        if course.content:
            parts.append(escape(truncate(course.content, self.summary_length)))

        ordered = sorted(lessons, key=lambda lesson: (lesson.order_index, lesson.id))
        if ordered:
            parts.append("👇 <b>Lessons:</b>")
        else:
            parts.append("No lessons in this course yet.")

        rows = [[MenuButton(label=f"{position}. {lesson.title}", selector=lesson_selector(lesson.id))]
                for position, lesson in enumerate(ordered, start=1)]
        rows.append([MenuButton(label="⬅️ All courses", selector=COURSES_MENU)])
        return BotReply(text="\n\n".join(parts), menu=Menu(rows=rows))

    def build_lesson_view(self, lesson: CourseSubcontentSchema,
                          course: Optional[CourseSchema] = None) -> BotReply:
        """Full lesson body (never truncated) with a way back to its course."""
        parts = [f"📖 <b>{escape(lesson.title)}</b>"]
        if course is not None:
            parts[0] += f"\n<i>{escape(course.title)}</i>"
        if lesson.content:
            parts.append(escape(lesson.content))
        if lesson.url:
            parts.append(f'🔗 <a href="{escape(lesson.url, quote=True)}">Open resource</a>')

        rows = [
            [MenuButton(label="⬅️ Back to course", selector=course_selector(lesson.course_id))],
            [MenuButton(label="📚 All courses", selector=COURSES_MENU)],
        ]
        return BotReply(text="\n\n".join(parts), menu=Menu(rows=rows))
