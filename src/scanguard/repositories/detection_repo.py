"""
Repositories for the ``detections`` and ``moderator_reviews`` tables.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

import aiosqlite

from scanguard.datatypes.sanction_datatypes import ModeratorReviewItem, ReviewStatus


@dataclass
class DetectionRecord:
    """A single row from the ``detections`` table."""
    user_id: str
    guild_id: int
    channel_id: int
    message_id: int
    image_url: str
    image_hash: str
    method: str
    confidence: float
    flagged: bool
    requires_review: bool
    action_taken: str = "none"
    processing_time_ms: int = 0
    id: int | None = None


class DetectionRepo:
    """Low-level CRUD for the ``detections`` table."""

    @staticmethod
    async def insert(conn: aiosqlite.Connection, record: DetectionRecord) -> int:
        cursor = await conn.execute(
            """
            INSERT INTO detections (
                user_id, guild_id, channel_id, message_id, image_url, image_hash,
                method, confidence, flagged, requires_review, action_taken, processing_time_ms
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                str(record.user_id),
                record.guild_id,
                record.channel_id,
                record.message_id,
                record.image_url,
                record.image_hash,
                record.method,
                record.confidence,
                int(record.flagged),
                int(record.requires_review),
                record.action_taken,
                record.processing_time_ms,
            ),
        )
        return int(cursor.lastrowid)

    @staticmethod
    async def set_action_taken(conn: aiosqlite.Connection, detection_id: int, action_taken: str) -> None:
        await conn.execute(
            "UPDATE detections SET action_taken = ? WHERE id = ?",
            (action_taken, detection_id),
        )

    @staticmethod
    async def get(conn: aiosqlite.Connection, detection_id: int) -> DetectionRecord | None:
        async with conn.execute(
            """
            SELECT id, user_id, guild_id, channel_id, message_id, image_url, image_hash,
                   method, confidence, flagged, requires_review, action_taken, processing_time_ms
            FROM detections WHERE id = ?
            """,
            (detection_id,),
        ) as cursor:
            row = await cursor.fetchone()
        if row is None:
            return None
        return DetectionRecord(
            id=row["id"],
            user_id=row["user_id"],
            guild_id=row["guild_id"],
            channel_id=row["channel_id"],
            message_id=row["message_id"],
            image_url=row["image_url"],
            image_hash=row["image_hash"],
            method=row["method"],
            confidence=row["confidence"],
            flagged=bool(row["flagged"]),
            requires_review=bool(row["requires_review"]),
            action_taken=row["action_taken"],
            processing_time_ms=row["processing_time_ms"],
        )


def _row_to_review(row: aiosqlite.Row) -> ModeratorReviewItem:
    return ModeratorReviewItem(
        id=row["id"],
        detection_id=row["detection_id"],
        sanction_id=row["sanction_id"],
        status=ReviewStatus(row["status"]),
        moderator_id=row["moderator_id"],
        notes=row["notes"],
    )


class ReviewRepo:
    """Low-level CRUD for the ``moderator_reviews`` table."""

    @staticmethod
    async def insert(conn: aiosqlite.Connection, item: ModeratorReviewItem) -> int:
        cursor = await conn.execute(
            "INSERT INTO moderator_reviews (detection_id, sanction_id, status, notes) VALUES (?, ?, ?, ?)",
            (item.detection_id, item.sanction_id, item.status.value, item.notes),
        )
        return int(cursor.lastrowid)

    @staticmethod
    async def get(conn: aiosqlite.Connection, review_id: int) -> ModeratorReviewItem | None:
        async with conn.execute(
            "SELECT id, detection_id, sanction_id, status, moderator_id, notes FROM moderator_reviews WHERE id = ?",
            (review_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_review(row) if row is not None else None

    @staticmethod
    async def get_for_sanction(conn: aiosqlite.Connection, sanction_id: int) -> ModeratorReviewItem | None:
        async with conn.execute(
            "SELECT id, detection_id, sanction_id, status, moderator_id, notes "
            "FROM moderator_reviews WHERE sanction_id = ? ORDER BY id DESC LIMIT 1",
            (sanction_id,),
        ) as cursor:
            row = await cursor.fetchone()
        return _row_to_review(row) if row is not None else None

    @staticmethod
    async def resolve(
        conn: aiosqlite.Connection,
        review_id: int,
        status: ReviewStatus,
        moderator_id: str,
        notes: str = "",
    ) -> bool:
        """
        Set a terminal status on a pending review.

        Returns False when the review is missing or already decided.
        """
        if status is ReviewStatus.PENDING:
            raise ValueError("Reviews can only be resolved to approved or rejected")
        cursor = await conn.execute(
            """
            UPDATE moderator_reviews
            SET status = ?, moderator_id = ?, notes = ?, reviewed_at = CURRENT_TIMESTAMP
            WHERE id = ? AND status = 'pending'
            """,
            (status.value, moderator_id, notes, review_id),
        )
        return cursor.rowcount == 1

    @staticmethod
    async def list_pending(conn: aiosqlite.Connection) -> List[ModeratorReviewItem]:
        async with conn.execute(
            "SELECT id, detection_id, sanction_id, status, moderator_id, notes "
            "FROM moderator_reviews WHERE status = 'pending' ORDER BY id"
        ) as cursor:
            rows = await cursor.fetchall()
        return [_row_to_review(row) for row in rows]
