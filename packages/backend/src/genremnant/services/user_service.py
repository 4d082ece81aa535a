"""User service: accounts, profiles, roles and contributor requests.

Learn: Service layer separates business logic from HTTP routing.
API routes call services, services call the database. Every state
change commits together with its audit event, so the events table never
claims something happened that was rolled back.

Moderation rules:
- New accounts are always `regular` + `active`
- Only admins change roles/status, and never their own
- Contributor requests: none → pending → approved | rejected → pending ...
- Deleting a user removes everything they own in one transaction
"""

import uuid
from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from genremnant.auth.password import MIN_PASSWORD_LENGTH, hash_password, verify_password
from genremnant.db.models import (
    SOCIAL_FIELDS,
    USER_ROLES,
    Comment,
    ContributorRequest,
    Friendship,
    Post,
    Reaction,
    User,
)
from genremnant.events.store import EventStore
from genremnant.events.types import (
    CONTRIBUTOR_APPROVED,
    CONTRIBUTOR_REJECTED,
    CONTRIBUTOR_REQUESTED,
    USER_DELETED,
    USER_PROFILE_UPDATED,
    USER_REGISTERED,
    USER_ROLE_CHANGED,
    USER_STATUS_CHANGED,
)

logger = structlog.get_logger()


class RegistrationError(Exception):
    """Registration input rejected (password mismatch, too short)."""


class DuplicateEmailError(Exception):
    """Raised when the email is already registered."""


class InvalidCredentialsError(Exception):
    """Unknown email or wrong password."""


class AccountSuspendedError(Exception):
    """Login attempted on a suspended account."""


class UserNotFoundError(Exception):
    pass


class SelfModerationError(Exception):
    """An admin tried to demote, suspend or delete themselves."""


class ContributorRequestError(Exception):
    """Contributor request in the wrong state for the requested action."""


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    """Business logic for user accounts."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.events = EventStore(db)

    # ─── Registration / login ───────────────────────────

    async def register(
        self,
        email: str,
        display_name: str,
        password: str,
        confirm_password: str,
        request_to_contribute: bool = False,
    ) -> User:
        if password != confirm_password:
            raise RegistrationError("Passwords do not match")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise RegistrationError(
                f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
            )

        email = normalize_email(email)
        if await self.get_by_email(email):
            raise DuplicateEmailError("Email already registered")

        user = User(
            email=email,
            display_name=display_name.strip(),
            password_hash=hash_password(password),
            role="regular",
            status="active",
        )
        self.db.add(user)
        try:
            await self.db.flush()
        except IntegrityError:
            await self.db.rollback()
            raise DuplicateEmailError("Email already registered")

        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=USER_REGISTERED,
            data={"email": email, "display_name": user.display_name},
        )
        if request_to_contribute:
            await self._open_contributor_request(user)

        await self.db.commit()
        logger.info("user.registered", user_id=str(user.id))
        return user

    async def authenticate(self, email: str, password: str) -> User:
        """Check credentials. Suspension is only revealed to the password holder."""
        user = await self.get_by_email(normalize_email(email))
        if not user or not verify_password(password, user.password_hash):
            raise InvalidCredentialsError("Invalid credentials")
        if user.status == "suspended":
            raise AccountSuspendedError("Account is suspended")

        user.last_login_at = datetime.now(timezone.utc)
        await self.db.commit()
        return user

    async def ensure_admin(
        self, email: str, password: str, display_name: str
    ) -> tuple[User, bool]:
        """Create an admin account, or promote and reactivate an existing one.

        Returns (user, created).
        """
        email = normalize_email(email)
        user = await self.get_by_email(email)
        if user:
            user.role = "admin"
            user.status = "active"
            user.updated_at = datetime.now(timezone.utc)
            await self.db.commit()
            return user, False

        user = User(
            email=email,
            display_name=display_name,
            password_hash=hash_password(password),
            role="admin",
            status="active",
        )
        self.db.add(user)
        await self.db.flush()
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=USER_REGISTERED,
            data={"email": email, "display_name": display_name, "role": "admin"},
        )
        await self.db.commit()
        return user, True

    # ─── Lookups ────────────────────────────────────────

    async def get(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalars().first()

    async def list_users(self) -> list[User]:
        result = await self.db.execute(select(User).order_by(User.created_at.desc()))
        return list(result.scalars().all())

    async def discover(self, viewer_id: uuid.UUID) -> list[User]:
        """Everyone except the viewer, for the Discover Remnants page."""
        result = await self.db.execute(
            select(User)
            .where(User.id != viewer_id, User.status == "active")
            .order_by(User.display_name)
        )
        return list(result.scalars().all())

    # ─── Profile ────────────────────────────────────────

    async def update_profile(self, user: User, **fields) -> User:
        """Partial update: only non-None fields are applied.

        Social handles may be cleared by sending an empty string.
        """
        changed = {}
        for name in ("display_name", *SOCIAL_FIELDS):
            value = fields.get(name)
            if value is None:
                continue
            if name in SOCIAL_FIELDS:
                value = value.strip() or None
            else:
                value = value.strip()
            setattr(user, name, value)
            changed[name] = value

        if changed:
            user.updated_at = datetime.now(timezone.utc)
            await self.events.append(
                stream_id=f"user:{user.id}",
                event_type=USER_PROFILE_UPDATED,
                data={"fields": sorted(changed)},
            )
            await self.db.commit()
        return user

    async def set_social_handle(
        self, user: User, field: str, value: Optional[str]
    ) -> User:
        if field not in SOCIAL_FIELDS:
            raise ValueError(f"Unknown social field: {field}")
        setattr(user, field, (value or "").strip() or None)
        user.updated_at = datetime.now(timezone.utc)
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=USER_PROFILE_UPDATED,
            data={"fields": [field]},
        )
        await self.db.commit()
        return user

    # ─── Contributor requests ───────────────────────────

    async def request_contributor(self, user: User) -> ContributorRequest:
        if user.role in ("contributor", "admin"):
            raise ContributorRequestError("User is already a contributor")
        if user.contributor_request_status == "pending":
            raise ContributorRequestError("Contributor request already pending")

        request = await self._open_contributor_request(user)
        await self.db.commit()
        return request

    async def _open_contributor_request(self, user: User) -> ContributorRequest:
        """Create or reopen the user's request row (caller commits)."""
        now = datetime.now(timezone.utc)
        result = await self.db.execute(
            select(ContributorRequest).where(ContributorRequest.user_id == user.id)
        )
        request = result.scalars().first()
        if request is None:
            request = ContributorRequest(user_id=user.id, requested_at=now)
            request.user = user
            self.db.add(request)
        request.status = "pending"
        request.requested_at = now
        request.reviewed_at = None
        request.reviewed_by = None
        request.feedback = None

        user.contributor_request_status = "pending"
        user.rejection_feedback = None
        user.updated_at = now
        await self.db.flush()

        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=CONTRIBUTOR_REQUESTED,
            data={"request_id": str(request.id)},
        )
        return request

    async def list_contributor_requests(
        self, status: Optional[str] = "pending"
    ) -> list[ContributorRequest]:
        query = select(ContributorRequest).order_by(ContributorRequest.requested_at)
        if status:
            query = query.where(ContributorRequest.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def approve_contributor(self, actor: User, user_id: uuid.UUID) -> User:
        user, request = await self._pending_request(user_id)
        now = datetime.now(timezone.utc)

        request.status = "approved"
        request.reviewed_at = now
        request.reviewed_by = actor.id
        user.contributor_request_status = "approved"
        user.rejection_feedback = None
        if user.role == "regular":
            user.role = "contributor"
        user.updated_at = now

        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=CONTRIBUTOR_APPROVED,
            data={"request_id": str(request.id)},
            metadata={"actor_id": str(actor.id)},
        )
        await self.db.commit()
        return user

    async def reject_contributor(
        self, actor: User, user_id: uuid.UUID, feedback: str = ""
    ) -> User:
        user, request = await self._pending_request(user_id)
        now = datetime.now(timezone.utc)

        request.status = "rejected"
        request.reviewed_at = now
        request.reviewed_by = actor.id
        request.feedback = feedback or None
        user.contributor_request_status = "rejected"
        user.rejection_feedback = feedback or None
        user.updated_at = now

        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=CONTRIBUTOR_REJECTED,
            data={"request_id": str(request.id), "feedback": feedback},
            metadata={"actor_id": str(actor.id)},
        )
        await self.db.commit()
        return user

    async def _pending_request(
        self, user_id: uuid.UUID
    ) -> tuple[User, ContributorRequest]:
        user = await self.get(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        result = await self.db.execute(
            select(ContributorRequest).where(ContributorRequest.user_id == user_id)
        )
        request = result.scalars().first()
        if not request or request.status != "pending":
            raise ContributorRequestError("No pending contributor request")
        return user, request

    # ─── Admin moderation ───────────────────────────────

    async def change_role(
        self, actor: User, user_id: uuid.UUID, new_role: str
    ) -> User:
        if new_role not in USER_ROLES:
            raise ValueError(f"Invalid role: {new_role}")
        user = await self._moderation_target(actor, user_id)
        old_role = user.role
        user.role = new_role
        user.updated_at = datetime.now(timezone.utc)

        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=USER_ROLE_CHANGED,
            data={"from": old_role, "to": new_role},
            metadata={"actor_id": str(actor.id)},
        )
        await self.db.commit()
        logger.info(
            "user.role_changed", user_id=str(user.id), role_from=old_role, role_to=new_role
        )
        return user

    async def set_status(self, actor: User, user_id: uuid.UUID, status: str) -> User:
        user = await self._moderation_target(actor, user_id)
        old_status = user.status
        user.status = status
        user.updated_at = datetime.now(timezone.utc)

        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=USER_STATUS_CHANGED,
            data={"from": old_status, "to": status},
            metadata={"actor_id": str(actor.id)},
        )
        await self.db.commit()
        logger.info("user.status_changed", user_id=str(user.id), status=status)
        return user

    async def admin_update_whatsapp(
        self, actor: User, user_id: uuid.UUID, whatsapp: Optional[str]
    ) -> User:
        user = await self.get(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        user.whatsapp = (whatsapp or "").strip() or None
        user.updated_at = datetime.now(timezone.utc)
        await self.events.append(
            stream_id=f"user:{user.id}",
            event_type=USER_PROFILE_UPDATED,
            data={"fields": ["whatsapp"]},
            metadata={"actor_id": str(actor.id)},
        )
        await self.db.commit()
        return user

    async def delete_user(self, actor: User, user_id: uuid.UUID) -> None:
        """Hard-delete a user and everything hanging off them.

        Learn: one transaction, children first. Reactions and comments are
        removed both where the user wrote them and where they sit on the
        user's posts, then the posts, friendships and requests, then the
        user row. FK cascades would do the same on a database that
        enforces them; the explicit deletes make it independent of that.
        """
        user = await self._moderation_target(actor, user_id)
        own_posts = select(Post.id).where(Post.author_id == user_id)

        await self.db.execute(
            delete(Reaction).where(
                or_(Reaction.user_id == user_id, Reaction.post_id.in_(own_posts))
            )
        )
        await self.db.execute(
            delete(Comment).where(
                or_(Comment.user_id == user_id, Comment.post_id.in_(own_posts))
            )
        )
        await self.db.execute(delete(Post).where(Post.author_id == user_id))
        await self.db.execute(
            delete(Friendship).where(
                or_(Friendship.requester_id == user_id, Friendship.addressee_id == user_id)
            )
        )
        await self.db.execute(
            delete(ContributorRequest).where(ContributorRequest.user_id == user_id)
        )
        await self.db.execute(delete(User).where(User.id == user_id))

        await self.events.append(
            stream_id=f"user:{user_id}",
            event_type=USER_DELETED,
            data={"email": user.email},
            metadata={"actor_id": str(actor.id)},
        )
        await self.db.commit()
        logger.info("user.deleted", user_id=str(user_id))

    async def _moderation_target(self, actor: User, user_id: uuid.UUID) -> User:
        if user_id == actor.id:
            raise SelfModerationError("Admins cannot change their own account")
        user = await self.get(user_id)
        if not user:
            raise UserNotFoundError(f"User {user_id} not found")
        return user
