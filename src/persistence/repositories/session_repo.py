"""Session repository for database operations."""

import json
from datetime import datetime
from typing import List, Optional

import aiosqlite
import structlog

from src.core.exceptions import PersistenceError
from src.domain.models.agent import ClassifierResult
from src.domain.models.knowledge import KnowledgeEntry, utc_now
from src.domain.models.pipeline_state import PipelineState
from src.domain.models.session import Session, Turn

log = structlog.get_logger(__name__)


class SessionRepository:
    """Repository for session and turn CRUD operations."""

    def __init__(self, db_path: str):
        self.db_path = db_path

    async def create(self, session: Session) -> Session:
        """Insert a new session (turns are added separately)."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "INSERT INTO sessions (id, domain_config_name, persona_config_name, status, "
                "current_entry, classifier_result, metadata, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    session.id,
                    session.domain_config_name,
                    session.persona_config_name,
                    session.status,
                    self._dump(session.current_entry),
                    self._dump(session.classifier_result),
                    json.dumps(session.metadata),
                    session.created_at.isoformat(),
                    session.updated_at.isoformat(),
                ),
            )
            await db.commit()

        log.debug("session_created", session_id=session.id)
        return session

    async def get(self, session_id: str) -> Optional[Session]:
        """Get a session by ID with its turns in turn order."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM sessions WHERE id = ?", (session_id,)
            )
            row = await cursor.fetchone()
            if not row:
                return None

            cursor = await db.execute(
                "SELECT * FROM turns WHERE session_id = ? ORDER BY turn_number",
                (session_id,),
            )
            turn_rows = await cursor.fetchall()

        return self._row_to_session(row, [self._row_to_turn(r) for r in turn_rows])

    async def update(self, session: Session) -> Session:
        """Persist the session's mutable fields."""
        updated = session.model_copy(update={"updated_at": utc_now()})

        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "UPDATE sessions SET status = ?, current_entry = ?, classifier_result = ?, "
                "metadata = ?, updated_at = ? WHERE id = ?",
                (
                    updated.status,
                    self._dump(updated.current_entry),
                    self._dump(updated.classifier_result),
                    json.dumps(updated.metadata),
                    updated.updated_at.isoformat(),
                    updated.id,
                ),
            )
            await db.commit()
            if cursor.rowcount == 0:
                raise PersistenceError(f"Cannot update missing session: {session.id}")

        return updated

    async def add_turn(self, session_id: str, turn: Turn) -> None:
        """Append a turn to the session's log."""
        try:
            async with aiosqlite.connect(self.db_path) as db:
                await db.execute("PRAGMA foreign_keys = ON")
                await db.execute(
                    "INSERT INTO turns (session_id, turn_number, user_input, "
                    "pipeline_result, completeness_score, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (
                        session_id,
                        turn.turn_number,
                        turn.user_input,
                        turn.pipeline_result.model_dump_json(),
                        turn.completeness_score,
                        turn.created_at.isoformat(),
                    ),
                )
                await db.commit()
        except aiosqlite.IntegrityError as e:
            raise PersistenceError(
                f"Cannot add turn {turn.turn_number} to session {session_id}: {e}"
            ) from e

        log.debug("turn_added", session_id=session_id, turn_number=turn.turn_number)

    async def list(self, status: Optional[str] = None) -> List[Session]:
        """List sessions, newest first, optionally filtered by status."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            if status:
                cursor = await db.execute(
                    "SELECT id FROM sessions WHERE status = ? ORDER BY created_at DESC",
                    (status,),
                )
            else:
                cursor = await db.execute(
                    "SELECT id FROM sessions ORDER BY created_at DESC"
                )
            rows = await cursor.fetchall()

        sessions = []
        for row in rows:
            session = await self.get(row["id"])
            if session is not None:
                sessions.append(session)
        return sessions

    async def delete(self, session_id: str) -> bool:
        """Delete a session and its turns. Returns True if deleted."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("PRAGMA foreign_keys = ON")
            cursor = await db.execute(
                "DELETE FROM sessions WHERE id = ?", (session_id,)
            )
            await db.commit()
            return cursor.rowcount > 0

    @staticmethod
    def _dump(model) -> Optional[str]:
        return model.model_dump_json() if model is not None else None

    def _row_to_session(self, row: aiosqlite.Row, turns: List[Turn]) -> Session:
        """Convert a database row to a Session model."""
        current_entry = (
            KnowledgeEntry.model_validate_json(row["current_entry"])
            if row["current_entry"]
            else None
        )
        classifier_result = (
            ClassifierResult.model_validate_json(row["classifier_result"])
            if row["classifier_result"]
            else None
        )

        return Session(
            id=row["id"],
            domain_config_name=row["domain_config_name"],
            persona_config_name=row["persona_config_name"],
            status=row["status"],
            turns=turns,
            current_entry=current_entry,
            classifier_result=classifier_result,
            metadata=json.loads(row["metadata"]) if row["metadata"] else {},
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _row_to_turn(self, row: aiosqlite.Row) -> Turn:
        return Turn(
            turn_number=row["turn_number"],
            user_input=row["user_input"],
            pipeline_result=PipelineState.model_validate_json(row["pipeline_result"]),
            completeness_score=row["completeness_score"],
            created_at=datetime.fromisoformat(row["created_at"]),
        )
