"""
sitebid/repository.py

Row-level persistence for users, projects, bids and milestones.

A Repository is bound to ONE connection for the lifetime of a request and is
passed explicitly into every service call; there is no module-level handle.
Multi-row writes run inside ``with repo.transaction():`` so they commit or
roll back together.

Conditional writes (``... WHERE status = :expected``) return the affected row
count; a 0 means another request changed the row first.
"""

from __future__ import annotations

import json
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Generator, Iterable, List, Optional

from sitebid.db import DbConnection, commit, execute_query, rollback, row_to_dict
from sitebid.models import Bid, Milestone, Project, User


# Updatable columns per table (keys of partial updates are checked against these)
USER_COLUMNS = {
    "first_name", "last_name", "phone", "address", "bio",
    "years_experience", "specializations", "is_active",
}
PROJECT_COLUMNS = {
    "title", "description", "location", "budget", "status", "category",
    "urgency", "expected_start_date", "expected_end_date",
}
MILESTONE_COLUMNS = {
    "title", "description", "status", "position", "assignee_id",
    "estimated_start_date", "estimated_end_date", "actual_start_date",
    "actual_end_date", "payment_amount", "is_paid", "notes",
}


def to_db_value(value: Any) -> Any:
    """Convert Python values to the representation stored in the database."""
    if value is None:
        return None
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value))
    return value


# Money columns are NUMERIC(10, 2); SQLite hands them back as REAL or INTEGER
CENTS = Decimal("0.01")


def _decimal(value: Any) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(str(value)).quantize(CENTS)


def _fetch_one(result: Any) -> Optional[Dict[str, Any]]:
    # fetchall() so the statement is fully stepped and releases its read lock
    rows = result.fetchall()
    return row_to_dict(rows[0]) if rows else None


def _fetch_all(result: Any) -> List[Dict[str, Any]]:
    return [row_to_dict(row) for row in result.fetchall()]


# ---------------------------------------------------------
# Row -> model conversion
# ---------------------------------------------------------
def user_from_row(row: Dict[str, Any]) -> User:
    try:
        specializations = json.loads(row.get("specializations") or "[]")
    except (json.JSONDecodeError, TypeError):
        specializations = []
    return User(
        id=row["id"],
        email=row["email"],
        first_name=row["first_name"],
        last_name=row["last_name"],
        role=row["role"],
        phone=row.get("phone"),
        address=row.get("address"),
        bio=row.get("bio"),
        years_experience=row.get("years_experience"),
        specializations=specializations,
        is_active=bool(row.get("is_active", 1)),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def project_from_row(row: Dict[str, Any]) -> Project:
    return Project(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        description=row["description"],
        location=row["location"],
        budget=_decimal(row.get("budget")),
        status=row["status"],
        category=row["category"],
        urgency=row.get("urgency") or "medium",
        expected_start_date=row.get("expected_start_date"),
        expected_end_date=row.get("expected_end_date"),
        accepted_bid_id=row.get("accepted_bid_id"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def bid_from_row(row: Dict[str, Any]) -> Bid:
    return Bid(
        id=row["id"],
        project_id=row["project_id"],
        contractor_id=row["contractor_id"],
        price=_decimal(row["price"]),
        estimated_duration=row["estimated_duration"],
        description=row["description"],
        status=row["status"],
        proposed_start_date=row.get("proposed_start_date"),
        warranty=row.get("warranty"),
        valid_until=row.get("valid_until"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


def milestone_from_row(row: Dict[str, Any]) -> Milestone:
    return Milestone(
        id=row["id"],
        project_id=row["project_id"],
        assignee_id=row.get("assignee_id"),
        title=row["title"],
        description=row.get("description"),
        status=row["status"],
        order=row["position"],
        estimated_start_date=row.get("estimated_start_date"),
        estimated_end_date=row.get("estimated_end_date"),
        actual_start_date=row.get("actual_start_date"),
        actual_end_date=row.get("actual_end_date"),
        payment_amount=_decimal(row.get("payment_amount")),
        is_paid=bool(row.get("is_paid", 0)),
        notes=row.get("notes"),
        created_at=row.get("created_at"),
        updated_at=row.get("updated_at"),
    )


class Repository:
    """Transaction-scoped data access bound to a single connection."""

    def __init__(self, conn: DbConnection):
        self.conn = conn

    @contextmanager
    def transaction(self) -> Generator["Repository", None, None]:
        """Commit on success, roll back on any exception and re-raise."""
        try:
            yield self
            commit(self.conn)
        except BaseException:
            rollback(self.conn)
            raise

    def _execute(self, query: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return execute_query(self.conn, query, params)

    def _insert(self, table: str, values: Dict[str, Any]) -> None:
        columns = ", ".join(values)
        placeholders = ", ".join(f":{column}" for column in values)
        self._execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            {column: to_db_value(value) for column, value in values.items()},
        )

    def _update(
        self,
        table: str,
        allowed: Iterable[str],
        row_id: str,
        fields: Dict[str, Any],
        now: datetime,
        where_status: Optional[str] = None,
    ) -> int:
        unknown = set(fields) - set(allowed)
        if unknown:
            raise ValueError(f"Unknown {table} columns: {sorted(unknown)}")

        params = {f"v_{column}": to_db_value(value) for column, value in fields.items()}
        params["updated_at"] = to_db_value(now)
        params["row_id"] = row_id
        assignments = [f"{column} = :v_{column}" for column in fields]
        assignments.append("updated_at = :updated_at")

        query = f"UPDATE {table} SET {', '.join(assignments)} WHERE id = :row_id"
        if where_status is not None:
            query += " AND status = :expected_status"
            params["expected_status"] = where_status
        return self._execute(query, params).rowcount

    # =====================================================================
    # Users
    # =====================================================================

    def get_user(self, user_id: str) -> Optional[User]:
        row = _fetch_one(self._execute("SELECT * FROM users WHERE id = :id", {"id": user_id}))
        return user_from_row(row) if row else None

    def get_identity(self, user_id: str) -> Optional[Dict[str, Any]]:
        """Minimal fields for identity resolution: id, role, is_active."""
        return _fetch_one(self._execute(
            "SELECT id, role, is_active FROM users WHERE id = :id",
            {"id": user_id},
        ))

    def get_credentials(self, email: str) -> Optional[Dict[str, Any]]:
        return _fetch_one(self._execute(
            "SELECT id, email, role, password_hash, is_active FROM users WHERE email = :email",
            {"email": email},
        ))

    def insert_user(self, values: Dict[str, Any]) -> None:
        self._insert("users", values)

    def update_user(self, user_id: str, fields: Dict[str, Any], now: datetime) -> int:
        return self._update("users", USER_COLUMNS, user_id, fields, now)

    def list_contractors(self) -> List[User]:
        rows = _fetch_all(self._execute(
            """
            SELECT * FROM users
            WHERE role = 'contractor' AND is_active = 1
            ORDER BY COALESCE(years_experience, 0) DESC, last_name ASC
            """
        ))
        return [user_from_row(row) for row in rows]

    # =====================================================================
    # Projects
    # =====================================================================

    def fetch_project_row(self, project_id: str) -> Optional[Dict[str, Any]]:
        """Project columns plus the owner's is_active flag."""
        return _fetch_one(self._execute(
            """
            SELECT p.*, u.is_active AS owner_is_active
            FROM projects p
            JOIN users u ON u.id = p.owner_id
            WHERE p.id = :id
            """,
            {"id": project_id},
        ))

    def get_project(self, project_id: str) -> Optional[Project]:
        row = _fetch_one(self._execute("SELECT * FROM projects WHERE id = :id", {"id": project_id}))
        return project_from_row(row) if row else None

    def insert_project(self, values: Dict[str, Any]) -> None:
        self._insert("projects", values)

    def update_project(
        self,
        project_id: str,
        fields: Dict[str, Any],
        now: datetime,
        expected_status: Optional[str] = None,
    ) -> int:
        return self._update("projects", PROJECT_COLUMNS, project_id, fields, now, expected_status)

    def commit_project_to_bid(self, project_id: str, bid_id: str, now: datetime) -> int:
        """
        Guarded claim of an open project by an accepted bid.

        Re-reads status at write time: 0 rows means the project is no longer
        open or another bid was accepted first.
        """
        return self._execute(
            """
            UPDATE projects
            SET status = 'in_progress', accepted_bid_id = :bid_id, updated_at = :now
            WHERE id = :id AND status = 'open' AND accepted_bid_id IS NULL
            """,
            {"id": project_id, "bid_id": bid_id, "now": to_db_value(now)},
        ).rowcount

    def delete_project(self, project_id: str) -> int:
        return self._execute("DELETE FROM projects WHERE id = :id", {"id": project_id}).rowcount

    def list_projects(
        self,
        owner_id: Optional[str] = None,
        statuses: Optional[Iterable[str]] = None,
    ) -> List[Project]:
        """Projects of active owners, newest first."""
        clauses = ["u.is_active = 1"]
        params: Dict[str, Any] = {}
        if owner_id is not None:
            clauses.append("p.owner_id = :owner_id")
            params["owner_id"] = owner_id
        if statuses is not None:
            names = []
            for i, status in enumerate(statuses):
                params[f"s{i}"] = to_db_value(status)
                names.append(f":s{i}")
            clauses.append(f"p.status IN ({', '.join(names)})")
        rows = _fetch_all(self._execute(
            f"""
            SELECT p.* FROM projects p
            JOIN users u ON u.id = p.owner_id
            WHERE {' AND '.join(clauses)}
            ORDER BY p.created_at DESC
            """,
            params,
        ))
        return [project_from_row(row) for row in rows]

    # =====================================================================
    # Bids
    # =====================================================================

    def fetch_bid_row(self, bid_id: str) -> Optional[Dict[str, Any]]:
        """Bid columns plus parent project owner/status and owner activity."""
        return _fetch_one(self._execute(
            """
            SELECT b.*,
                   p.owner_id AS project_owner_id,
                   p.status AS project_status,
                   u.is_active AS owner_is_active
            FROM bids b
            JOIN projects p ON p.id = b.project_id
            JOIN users u ON u.id = p.owner_id
            WHERE b.id = :id
            """,
            {"id": bid_id},
        ))

    def get_bid(self, bid_id: str) -> Optional[Bid]:
        row = _fetch_one(self._execute("SELECT * FROM bids WHERE id = :id", {"id": bid_id}))
        return bid_from_row(row) if row else None

    def has_live_bid(self, project_id: str, contractor_id: str) -> bool:
        row = _fetch_one(self._execute(
            """
            SELECT id FROM bids
            WHERE project_id = :project_id
              AND contractor_id = :contractor_id
              AND status <> 'withdrawn'
            """,
            {"project_id": project_id, "contractor_id": contractor_id},
        ))
        return row is not None

    def insert_bid(self, values: Dict[str, Any]) -> None:
        self._insert("bids", values)

    def set_bid_status(self, bid_id: str, expected: str, new: str, now: datetime) -> int:
        return self._execute(
            """
            UPDATE bids SET status = :new, updated_at = :now
            WHERE id = :id AND status = :expected
            """,
            {"id": bid_id, "expected": expected, "new": new, "now": to_db_value(now)},
        ).rowcount

    def reject_pending_bids(self, project_id: str, except_bid_id: str, now: datetime) -> int:
        return self._execute(
            """
            UPDATE bids SET status = 'rejected', updated_at = :now
            WHERE project_id = :project_id AND id <> :bid_id AND status = 'pending'
            """,
            {"project_id": project_id, "bid_id": except_bid_id, "now": to_db_value(now)},
        ).rowcount

    def list_bids(
        self,
        contractor_id: Optional[str] = None,
        project_owner_id: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> List[Bid]:
        clauses = []
        params: Dict[str, Any] = {}
        if contractor_id is not None:
            clauses.append("b.contractor_id = :contractor_id")
            params["contractor_id"] = contractor_id
        if project_owner_id is not None:
            clauses.append("p.owner_id = :owner_id")
            params["owner_id"] = project_owner_id
        if project_id is not None:
            clauses.append("b.project_id = :project_id")
            params["project_id"] = project_id
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        rows = _fetch_all(self._execute(
            f"""
            SELECT b.* FROM bids b
            LEFT JOIN projects p ON p.id = b.project_id
            {where}
            ORDER BY b.created_at DESC
            """,
            params,
        ))
        return [bid_from_row(row) for row in rows]

    # =====================================================================
    # Milestones
    # =====================================================================

    def fetch_milestone_row(self, milestone_id: str) -> Optional[Dict[str, Any]]:
        """Milestone columns plus parent project owner/status and owner activity."""
        return _fetch_one(self._execute(
            """
            SELECT m.*,
                   p.owner_id AS project_owner_id,
                   p.status AS project_status,
                   u.is_active AS owner_is_active
            FROM milestones m
            JOIN projects p ON p.id = m.project_id
            JOIN users u ON u.id = p.owner_id
            WHERE m.id = :id
            """,
            {"id": milestone_id},
        ))

    def get_milestone(self, milestone_id: str) -> Optional[Milestone]:
        row = _fetch_one(self._execute("SELECT * FROM milestones WHERE id = :id", {"id": milestone_id}))
        return milestone_from_row(row) if row else None

    def insert_milestone(self, values: Dict[str, Any]) -> None:
        self._insert("milestones", values)

    def update_milestone(
        self,
        milestone_id: str,
        fields: Dict[str, Any],
        now: datetime,
        expected_status: Optional[str] = None,
    ) -> int:
        return self._update("milestones", MILESTONE_COLUMNS, milestone_id, fields, now, expected_status)

    def delete_milestone(self, milestone_id: str) -> int:
        return self._execute("DELETE FROM milestones WHERE id = :id", {"id": milestone_id}).rowcount

    def list_milestones(self, project_id: str) -> List[Milestone]:
        rows = _fetch_all(self._execute(
            "SELECT * FROM milestones WHERE project_id = :project_id ORDER BY position ASC, created_at ASC",
            {"project_id": project_id},
        ))
        return [milestone_from_row(row) for row in rows]
