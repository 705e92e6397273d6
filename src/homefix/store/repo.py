"""Repository pattern for database operations.

Tickets, their uploaded photos and analyses, plus contact form submissions.
Analysis lists are stored as JSON text columns.
"""

import json
from typing import Optional, Dict, Any, List
from .db import get_db_connection
import logging

logger = logging.getLogger("store")

MAX_TICKET_LIMIT = 100


def _safe_json(value: Optional[str]) -> Any:
    """Decode a JSON column; a corrupt value reads as an empty list."""
    if value is None or value == "":
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logger.warning(f"Failed to parse stored JSON: {value[:80]!r}")
        return []


def _dump(value: Any) -> Optional[str]:
    return json.dumps(value) if value is not None else None


class Repo:
    @staticmethod
    def create_ticket(description: str, user_email: Optional[str] = None) -> int:
        with get_db_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO tickets (description, user_email) VALUES (?, ?)",
                (description, user_email or None)
            )
            conn.commit()
            return cursor.lastrowid

    @staticmethod
    def create_asset(ticket_id: int, path: str, original_name: str, mime: str, size_bytes: int) -> int:
        with get_db_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO assets (ticket_id, path, original_name, mime, size_bytes)
                VALUES (?, ?, ?, ?, ?)
                """,
                (ticket_id, path, original_name, mime, size_bytes)
            )
            conn.commit()
            return cursor.lastrowid

    @staticmethod
    def create_analysis(
        ticket_id: int,
        materials: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        steps: List[str],
        likelihood: Optional[Dict[str, float]] = None,
        safety: Optional[List[str]] = None,
        youtube_url: Optional[str] = None,
    ) -> int:
        with get_db_connection() as conn:
            cursor = conn.execute(
                """
                INSERT INTO analyses (ticket_id, materials, tools, steps, likelihood, safety, youtube_url)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    ticket_id,
                    json.dumps(materials),
                    json.dumps(tools),
                    json.dumps(steps),
                    _dump(likelihood),
                    _dump(safety),
                    youtube_url or None,
                )
            )
            conn.commit()
            return cursor.lastrowid

    @staticmethod
    def update_ticket_status(ticket_id: int, status: str):
        with get_db_connection() as conn:
            conn.execute("UPDATE tickets SET status = ? WHERE id = ?", (status, ticket_id))
            conn.commit()

    @staticmethod
    def get_tickets_with_analysis(limit: int = 50) -> List[Dict[str, Any]]:
        """
        Newest tickets first, each with its most recent analysis (if any)
        under `latest_analysis`. The limit is clamped to 1..100.
        """
        limit = max(1, min(int(limit), MAX_TICKET_LIMIT))
        with get_db_connection() as conn:
            rows = conn.execute(
                """
                SELECT
                    t.id, t.created_at, t.status, t.user_email, t.description,
                    a.id AS analysis_id, a.materials, a.tools, a.steps,
                    a.likelihood, a.safety, a.youtube_url,
                    a.created_at AS analysis_created_at
                FROM tickets t
                LEFT JOIN analyses a ON a.id = (
                    SELECT MAX(id) FROM analyses WHERE ticket_id = t.id
                )
                ORDER BY t.created_at DESC, t.id DESC
                LIMIT ?
                """,
                (limit,)
            ).fetchall()

        tickets = []
        for row in rows:
            ticket = {
                "id": row["id"],
                "created_at": row["created_at"],
                "status": row["status"],
                "user_email": row["user_email"],
                "description": row["description"],
            }
            if row["analysis_id"] is not None:
                ticket["latest_analysis"] = {
                    "id": row["analysis_id"],
                    "ticket_id": row["id"],
                    "materials": _safe_json(row["materials"]) or [],
                    "tools": _safe_json(row["tools"]) or [],
                    "steps": _safe_json(row["steps"]) or [],
                    "likelihood": _safe_json(row["likelihood"]),
                    "safety": _safe_json(row["safety"]),
                    "youtube_url": row["youtube_url"],
                    "created_at": row["analysis_created_at"],
                }
            tickets.append(ticket)
        return tickets

    @staticmethod
    def get_assets_by_ticket_id(ticket_id: int) -> List[Dict[str, Any]]:
        with get_db_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM assets WHERE ticket_id = ? ORDER BY created_at ASC, id ASC",
                (ticket_id,)
            ).fetchall()
            return [dict(row) for row in rows]

    @staticmethod
    def create_contact_submission(name: str, email: str, subject: str, message: str) -> int:
        with get_db_connection() as conn:
            cursor = conn.execute(
                "INSERT INTO contact_submissions (name, email, subject, message) VALUES (?, ?, ?, ?)",
                (name, email, subject, message)
            )
            conn.commit()
            return cursor.lastrowid
