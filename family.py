"""Family member storage used for per-member expense rollups."""

import logging
from typing import Optional, Tuple

from database_ops import DatabaseManager, FamilyMember
from domain import FamilyMemberRecord
from exceptions import ValidationError

logger = logging.getLogger(__name__)


class FamilyManager:
    """Store-backed operations on family members."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    def list_members(self, user_id: str) -> Tuple[FamilyMemberRecord, ...]:
        """Return the user's family members ordered by name."""
        rows = self.db_manager.select(FamilyMember, user_id, order_by="name")
        return tuple(FamilyMemberRecord.from_row(row) for row in rows)

    def add_member(self, user_id: str, name: str, relationship: Optional[str] = None) -> FamilyMemberRecord:
        """
        Add a family member.

        Raises:
            ValidationError: If the name is empty
            StoreError: If the insert fails
        """
        normalized = (name or "").strip()
        if not normalized:
            raise ValidationError("Family member name is required", details={"field": "name"})
        row = self.db_manager.insert(FamilyMember, {
            "user_id": user_id,
            "name": normalized,
            "relationship": (relationship or "").strip() or None,
        })
        logger.info("Added family member '%s'", normalized)
        return FamilyMemberRecord.from_row(row)

    def delete_member(self, user_id: str, member_id: int) -> None:
        self.db_manager.delete(FamilyMember, user_id, member_id)
