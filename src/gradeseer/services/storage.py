from __future__ import annotations

import functools
import sqlite3
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, TypeVar

from gradeseer.config.settings import settings
from gradeseer.core.grades import final_grade, history_status
from gradeseer.core.models import DEFAULT_UNITS, Subject
from gradeseer.core.numbers import format_number, to_number

NOTIFICATION_DEDUPE_WINDOW = timedelta(hours=24)

SUBJECT_UPDATABLE = ("name", "target_grade", "units", "color", "is_major")
ITEM_UPDATABLE = ("name", "score", "max", "date", "target", "topic")


class StorageError(Exception):
    pass


class NotFoundError(StorageError):
    pass


def new_id() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _target_text(value: Any) -> Optional[str]:
    target = to_number(value, 0.0)
    return format_number(target) if target > 0 else None


def _required_name(value: Any, label: str) -> str:
    name = "" if value is None else str(value).strip()
    if not name:
        raise StorageError(f"{label} name cannot be empty")
    return name


F = TypeVar("F", bound=Callable[..., Any])


def _locked(method: F) -> F:
    @functools.wraps(method)
    def wrapper(self: "Storage", *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


class Storage:
    def __init__(self, db_path: str = "gradeseer.db") -> None:
        self.db_path = db_path
        # One connection is shared by the request threadpool; each public
        # operation holds the lock for its whole read-modify-commit cycle.
        self._lock = threading.RLock()
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    @classmethod
    def from_settings(cls) -> "Storage":
        return cls(settings.database_path)

    @_locked
    def close(self) -> None:
        self.conn.close()

    def _init_schema(self) -> None:
        cur = self.conn.cursor()
        cur.executescript(
            """
            CREATE TABLE IF NOT EXISTS subjects (
              id TEXT PRIMARY KEY,
              name TEXT NOT NULL,
              is_major INTEGER NOT NULL DEFAULT 0,
              user_email TEXT NOT NULL,
              target_grade TEXT,
              color TEXT DEFAULT '#3B82F6',
              units INTEGER NOT NULL DEFAULT 3
            );

            CREATE TABLE IF NOT EXISTS components (
              id TEXT PRIMARY KEY,
              name TEXT NOT NULL,
              percentage TEXT NOT NULL,
              priority INTEGER NOT NULL,
              subject_id TEXT NOT NULL,
              FOREIGN KEY(subject_id) REFERENCES subjects(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS items (
              id TEXT PRIMARY KEY,
              component_id TEXT NOT NULL,
              name TEXT NOT NULL,
              score REAL,
              max REAL,
              date TEXT,
              target REAL,
              topic TEXT,
              FOREIGN KEY(component_id) REFERENCES components(id) ON DELETE CASCADE
            );

            CREATE TABLE IF NOT EXISTS subject_history (
              id TEXT PRIMARY KEY,
              subject_id TEXT NOT NULL,
              user_email TEXT NOT NULL,
              course_name TEXT NOT NULL,
              target_grade TEXT NOT NULL,
              final_grade TEXT NOT NULL,
              status TEXT NOT NULL,
              units INTEGER NOT NULL DEFAULT 3,
              completed_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS notifications (
              id TEXT PRIMARY KEY,
              user_email TEXT NOT NULL,
              type TEXT NOT NULL,
              title TEXT NOT NULL,
              message TEXT NOT NULL,
              subject_id TEXT,
              subject_name TEXT,
              due_date TEXT,
              read INTEGER NOT NULL DEFAULT 0,
              created_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_subjects_user ON subjects(user_email);
            CREATE INDEX IF NOT EXISTS idx_components_subject ON components(subject_id);
            CREATE INDEX IF NOT EXISTS idx_items_component ON items(component_id);
            """
        )
        self.conn.commit()

    @staticmethod
    def _subject_row(row: sqlite3.Row) -> Dict[str, Any]:
        data = dict(row)
        data["is_major"] = bool(data["is_major"])
        return data

    @staticmethod
    def _notification_row(row: sqlite3.Row) -> Dict[str, Any]:
        data = dict(row)
        data["read"] = bool(data["read"])
        return data

    @staticmethod
    def _validate_components(components: Iterable[Mapping[str, Any]]) -> None:
        priorities = set()
        total = 0.0
        for component in components:
            percentage = to_number(component.get("percentage"), 0.0)
            if percentage < 0 or percentage > 100:
                raise StorageError(f"Component '{component.get('name')}' weight must be between 0 and 100")
            priority = int(to_number(component.get("priority"), 0.0))
            if priority in priorities:
                raise StorageError(f"Duplicate component priority {priority}")
            priorities.add(priority)
            total += percentage
        if total > 100:
            raise StorageError(f"Component weights add up to {format_number(total)}%, more than 100%")

    # subjects

    @_locked
    def create_subject(
        self,
        user_email: str,
        *,
        name: str,
        is_major: bool = False,
        target_grade: Any = None,
        color: Optional[str] = None,
        units: Optional[int] = None,
        components: Optional[List[Mapping[str, Any]]] = None,
    ) -> Dict[str, Any]:
        components = components or []
        self._validate_components(components)

        subject_id = new_id()
        with self.conn:
            self.conn.execute(
                """INSERT INTO subjects(id, name, is_major, user_email, target_grade, color, units)
                   VALUES(?,?,?,?,?,?,?)""",
                (
                    subject_id,
                    name,
                    1 if is_major else 0,
                    user_email,
                    _target_text(target_grade),
                    color or "#3B82F6",
                    units or DEFAULT_UNITS,
                ),
            )
            for component in components:
                self.conn.execute(
                    "INSERT INTO components(id, name, percentage, priority, subject_id) VALUES(?,?,?,?,?)",
                    (
                        new_id(),
                        component["name"],
                        format_number(to_number(component.get("percentage"), 0.0)),
                        int(to_number(component.get("priority"), 0.0)),
                        subject_id,
                    ),
                )
        return self.get_subject(subject_id, user_email)

    def _components_with_items(self, subject_id: str) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM components WHERE subject_id=? ORDER BY priority", (subject_id,))
        components = [dict(row) for row in cur.fetchall()]
        for component in components:
            cur.execute("SELECT * FROM items WHERE component_id=? ORDER BY rowid", (component["id"],))
            component["items"] = [dict(row) for row in cur.fetchall()]
        return components

    @_locked
    def get_subject(self, subject_id: str, user_email: str) -> Dict[str, Any]:
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM subjects WHERE id=? AND user_email=?", (subject_id, user_email))
        row = cur.fetchone()
        if not row:
            raise NotFoundError("Subject not found")
        subject = self._subject_row(row)
        subject["components"] = self._components_with_items(subject_id)
        return subject

    @_locked
    def list_subjects(self, user_email: str) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute("SELECT * FROM subjects WHERE user_email=? ORDER BY rowid", (user_email,))
        subjects = [self._subject_row(row) for row in cur.fetchall()]
        for subject in subjects:
            subject["components"] = self._components_with_items(subject["id"])
        return subjects

    @_locked
    def update_subject(self, subject_id: str, user_email: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
        updates = {key: changes[key] for key in SUBJECT_UPDATABLE if key in changes}
        if not updates:
            raise StorageError("No fields to update")
        self.get_subject(subject_id, user_email)

        if "target_grade" in updates:
            updates["target_grade"] = _target_text(updates["target_grade"])
        if "is_major" in updates:
            updates["is_major"] = 1 if updates["is_major"] else 0
        if "units" in updates:
            updates["units"] = updates["units"] or DEFAULT_UNITS
        if "name" in updates:
            updates["name"] = _required_name(updates["name"], "Subject")

        assignments = ", ".join(f"{key}=?" for key in updates)
        self.conn.execute(
            f"UPDATE subjects SET {assignments} WHERE id=? AND user_email=?",
            (*updates.values(), subject_id, user_email),
        )
        self.conn.commit()
        return self.get_subject(subject_id, user_email)

    @_locked
    def delete_subject(self, subject_id: str, user_email: str) -> None:
        cur = self.conn.execute("DELETE FROM subjects WHERE id=? AND user_email=?", (subject_id, user_email))
        self.conn.commit()
        if cur.rowcount == 0:
            raise NotFoundError("Subject not found")

    # components

    def _component_owner(self, component_id: str, user_email: str) -> sqlite3.Row:
        cur = self.conn.cursor()
        cur.execute(
            """SELECT c.*, s.user_email
               FROM components c JOIN subjects s ON s.id=c.subject_id
               WHERE c.id=? AND s.user_email=?""",
            (component_id, user_email),
        )
        row = cur.fetchone()
        if not row:
            raise NotFoundError("Component not found")
        return row

    @_locked
    def add_component(
        self,
        subject_id: str,
        user_email: str,
        *,
        name: str,
        percentage: float,
        priority: int,
    ) -> Dict[str, Any]:
        subject = self.get_subject(subject_id, user_email)
        self._validate_components(
            [*subject["components"], {"name": name, "percentage": percentage, "priority": priority}]
        )
        component_id = new_id()
        self.conn.execute(
            "INSERT INTO components(id, name, percentage, priority, subject_id) VALUES(?,?,?,?,?)",
            (component_id, name, format_number(percentage), priority, subject_id),
        )
        self.conn.commit()
        return {"id": component_id, "name": name, "percentage": format_number(percentage),
                "priority": priority, "subject_id": subject_id, "items": []}

    @_locked
    def update_component(
        self,
        component_id: str,
        user_email: str,
        *,
        name: Optional[str] = None,
        percentage: Optional[float] = None,
    ) -> Dict[str, Any]:
        row = self._component_owner(component_id, user_email)
        if percentage is not None:
            cur = self.conn.execute(
                "SELECT name, percentage, priority FROM components WHERE subject_id=? AND id<>?",
                (row["subject_id"], component_id),
            )
            siblings = [dict(sibling) for sibling in cur.fetchall()]
            self._validate_components(
                [*siblings, {"name": row["name"], "percentage": percentage, "priority": row["priority"]}]
            )
            percentage_text = format_number(percentage)
        else:
            percentage_text = row["percentage"]
        self.conn.execute(
            "UPDATE components SET name=?, percentage=? WHERE id=?",
            (_required_name(name, "Component") if name is not None else row["name"], percentage_text, component_id),
        )
        self.conn.commit()
        cur = self.conn.execute("SELECT * FROM components WHERE id=?", (component_id,))
        return dict(cur.fetchone())

    @_locked
    def delete_component(self, component_id: str, user_email: str) -> None:
        self._component_owner(component_id, user_email)
        self.conn.execute("DELETE FROM components WHERE id=?", (component_id,))
        self.conn.commit()

    # items

    def _item_owner(self, item_id: str, user_email: str) -> sqlite3.Row:
        cur = self.conn.cursor()
        cur.execute(
            """SELECT i.*
               FROM items i
               JOIN components c ON c.id=i.component_id
               JOIN subjects s ON s.id=c.subject_id
               WHERE i.id=? AND s.user_email=?""",
            (item_id, user_email),
        )
        row = cur.fetchone()
        if not row:
            raise NotFoundError("Item not found")
        return row

    @_locked
    def create_item(self, component_id: str, user_email: str, values: Mapping[str, Any]) -> Dict[str, Any]:
        self._component_owner(component_id, user_email)
        item_id = new_id()
        self.conn.execute(
            """INSERT INTO items(id, component_id, name, score, max, date, target, topic)
               VALUES(?,?,?,?,?,?,?,?)""",
            (
                item_id,
                component_id,
                values["name"],
                values.get("score"),
                values.get("max"),
                values.get("date"),
                values.get("target"),
                values.get("topic") or None,
            ),
        )
        self.conn.commit()
        cur = self.conn.execute("SELECT * FROM items WHERE id=?", (item_id,))
        return dict(cur.fetchone())

    @_locked
    def update_item(self, item_id: str, user_email: str, changes: Mapping[str, Any]) -> Dict[str, Any]:
        updates = {key: changes[key] for key in ITEM_UPDATABLE if key in changes}
        if not updates:
            raise StorageError("No fields to update")
        self._item_owner(item_id, user_email)
        if "name" in updates:
            updates["name"] = _required_name(updates["name"], "Item")
        assignments = ", ".join(f"{key}=?" for key in updates)
        self.conn.execute(f"UPDATE items SET {assignments} WHERE id=?", (*updates.values(), item_id))
        self.conn.commit()
        cur = self.conn.execute("SELECT * FROM items WHERE id=?", (item_id,))
        return dict(cur.fetchone())

    @_locked
    def delete_item(self, item_id: str, user_email: str) -> None:
        self._item_owner(item_id, user_email)
        self.conn.execute("DELETE FROM items WHERE id=?", (item_id,))
        self.conn.commit()

    @_locked
    def list_upcoming_items(self, user_email: str) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute(
            """SELECT i.id, i.name, i.score, i.max, i.date, i.target, i.topic,
                      c.name AS component_name, s.name AS subject_name, s.id AS subject_id
               FROM items i
               JOIN components c ON c.id=i.component_id
               JOIN subjects s ON s.id=c.subject_id
               WHERE s.user_email=? AND i.score IS NULL
               ORDER BY i.date IS NULL, i.date DESC""",
            (user_email,),
        )
        return [dict(row) for row in cur.fetchall()]

    # finish / history

    @_locked
    def finish_subject(self, subject_id: str, user_email: str) -> Dict[str, Any]:
        tree = self.get_subject(subject_id, user_email)
        subject = Subject.from_dict(tree)
        grade_point = final_grade(subject)
        target_text = tree.get("target_grade") or "0"
        record = {
            "id": new_id(),
            "subject_id": subject_id,
            "user_email": user_email,
            "course_name": subject.name,
            "target_grade": target_text,
            "final_grade": f"{grade_point:.2f}",
            "status": history_status(grade_point, to_number(target_text, 0.0)),
            "units": subject.units,
            "completed_at": _now().isoformat(),
        }

        try:
            with self.conn:
                self.conn.execute(
                    """INSERT INTO subject_history(id, subject_id, user_email, course_name, target_grade,
                                                   final_grade, status, units, completed_at)
                       VALUES(:id, :subject_id, :user_email, :course_name, :target_grade,
                              :final_grade, :status, :units, :completed_at)""",
                    record,
                )
                self.conn.execute(
                    "DELETE FROM items WHERE component_id IN (SELECT id FROM components WHERE subject_id=?)",
                    (subject_id,),
                )
                self.conn.execute("DELETE FROM components WHERE subject_id=?", (subject_id,))
                self.conn.execute("DELETE FROM subjects WHERE id=?", (subject_id,))
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to finish subject: {exc}") from exc
        return record

    @_locked
    def list_history(self, user_email: str) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT * FROM subject_history WHERE user_email=? ORDER BY completed_at DESC",
            (user_email,),
        )
        return [dict(row) for row in cur.fetchall()]

    @_locked
    def delete_history(self, history_id: str, user_email: str) -> None:
        cur = self.conn.execute(
            "DELETE FROM subject_history WHERE id=? AND user_email=?",
            (history_id, user_email),
        )
        self.conn.commit()
        if cur.rowcount == 0:
            raise NotFoundError("History entry not found")

    # notifications

    @_locked
    def list_notifications(self, user_email: str) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute(
            "SELECT * FROM notifications WHERE user_email=? ORDER BY created_at DESC",
            (user_email,),
        )
        return [self._notification_row(row) for row in cur.fetchall()]

    @_locked
    def create_notification(
        self,
        user_email: str,
        *,
        type: str,
        title: str,
        message: str,
        subject_id: Optional[str] = None,
        subject_name: Optional[str] = None,
        due_date: Optional[str] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        """Store a notification unless an identical one exists from the last 24 hours.

        Returns ``(notification, created)``.
        """
        now = _now()
        cur = self.conn.cursor()
        cur.execute(
            """SELECT * FROM notifications
               WHERE user_email=? AND type=? AND title=? AND subject_id IS ?
               ORDER BY created_at DESC""",
            (user_email, type, title, subject_id),
        )
        for row in cur.fetchall():
            created_at = datetime.fromisoformat(row["created_at"])
            if now - created_at < NOTIFICATION_DEDUPE_WINDOW:
                return self._notification_row(row), False

        notification_id = new_id()
        self.conn.execute(
            """INSERT INTO notifications(id, user_email, type, title, message, subject_id,
                                         subject_name, due_date, read, created_at)
               VALUES(?,?,?,?,?,?,?,?,0,?)""",
            (notification_id, user_email, type, title, message, subject_id, subject_name, due_date, now.isoformat()),
        )
        self.conn.commit()
        cur.execute("SELECT * FROM notifications WHERE id=?", (notification_id,))
        return self._notification_row(cur.fetchone()), True

    @_locked
    def set_notification_read(self, notification_id: str, user_email: str, read: bool) -> Dict[str, Any]:
        cur = self.conn.execute(
            "UPDATE notifications SET read=? WHERE id=? AND user_email=?",
            (1 if read else 0, notification_id, user_email),
        )
        self.conn.commit()
        if cur.rowcount == 0:
            raise NotFoundError("Notification not found")
        cur = self.conn.execute("SELECT * FROM notifications WHERE id=?", (notification_id,))
        return self._notification_row(cur.fetchone())

    @_locked
    def mark_all_notifications_read(self, user_email: str) -> int:
        cur = self.conn.execute("UPDATE notifications SET read=1 WHERE user_email=? AND read=0", (user_email,))
        self.conn.commit()
        return cur.rowcount

    @_locked
    def delete_notification(self, notification_id: str, user_email: str) -> None:
        cur = self.conn.execute(
            "DELETE FROM notifications WHERE id=? AND user_email=?",
            (notification_id, user_email),
        )
        self.conn.commit()
        if cur.rowcount == 0:
            raise NotFoundError("Notification not found")
