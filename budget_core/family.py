import logging
import re
from dataclasses import replace
from typing import Optional, Tuple

from budget_core.domain import ADMIN, MEMBER, CurrentUser, FamilyMember, MemberProfile
from budget_core.errors import PermissionDenied, RecordNotFound, ValidationError
from budget_core.functional import first
from budget_core.storage import StoragePort
from budget_core.transforms import new_id
from budget_core.validation import validate_family_member

logger = logging.getLogger(__name__)


def user_id_for_email(email: str) -> str:
    """Stable account id derived from an email address."""
    return re.sub(r"[^a-z0-9]+", "-", email.strip().lower()).strip("-")


class FamilyService:
    """Family membership for the signed-in user.

    Admins add and remove members under their own ``family_id``; regular
    members can only list them.  A user's role inside a family always comes
    from the stored roster, never from the caller.
    """

    def __init__(self, storage: StoragePort, user: CurrentUser):
        self.storage = storage
        self.user = user

    def members(self) -> Tuple[FamilyMember, ...]:
        if not self.user.family_id:
            return ()
        return self.storage.list_family(self.user.family_id)

    def join(self, family_id: str) -> CurrentUser:
        """Resolve the user's role in ``family_id`` from its roster."""
        roster = self.storage.list_family(family_id)
        member = first(roster, lambda m: m.user_id == self.user.id).get_or_else(None)
        if member is None:
            logger.warning("%s is not a member of family %s", self.user.id, family_id)
            raise PermissionDenied("You are not a member of this family")
        self.user = replace(self.user, family_id=family_id, role=member.role)
        return self.user

    def start_family(self, nickname: Optional[str] = None) -> CurrentUser:
        """Create a family with the current user as its admin."""
        if self.user.family_id:
            return self.user
        family_id = new_id()
        self.storage.add_family_member(FamilyMember(
            id=new_id(),
            family_id=family_id,
            user_id=self.user.id,
            role=ADMIN,
            nickname=nickname or self.user.name,
            profile=MemberProfile(name=self.user.name, email=self.user.email),
            created_by=self.user.id,
        ))
        self.user = replace(self.user, family_id=family_id, role=ADMIN)
        logger.info("Started family %s for %s", family_id, self.user.id)
        return self.user

    def _require_admin(self) -> str:
        if not self.user.is_admin or not self.user.family_id:
            raise PermissionDenied("Only family administrators can manage members")
        return self.user.family_id

    def add_member(self, name: str, email: str, nickname: str,
                   role: str = MEMBER, user_id: Optional[str] = None) -> FamilyMember:
        family_id = self._require_admin()
        wanted = email.strip().lower()
        if any(m.profile.email.lower() == wanted for m in self.members()):
            raise ValidationError({
                "error": "duplicate_email",
                "message": f"{email} is already a member of this family",
                "email": email,
            })
        member = FamilyMember(
            id=new_id(),
            family_id=family_id,
            user_id=user_id or user_id_for_email(email),
            role=role,
            nickname=nickname,
            profile=MemberProfile(name=name, email=email.strip()),
            created_by=self.user.id,
        )
        result = validate_family_member(member)
        if result.is_left():
            raise ValidationError(result.get_error())
        self.storage.add_family_member(member)
        return member

    def remove_member(self, member_id: str) -> None:
        family_id = self._require_admin()
        member = first(self.members(), lambda m: m.id == member_id).get_or_else(None)
        if member is None:
            raise RecordNotFound("family_members", member_id)
        if member.user_id == self.user.id or member.is_admin:
            raise PermissionDenied("Administrators cannot be removed")
        self.storage.remove_family_member(family_id, member_id)
