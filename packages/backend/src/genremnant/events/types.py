"""Event type constants.

Learn: Centralizing event types as constants prevents typos and
makes it easy to discover all event types in the system.
Each area of the app adds its own event types here.
"""

# ─── Users and roles ─────────────────────────────────────

USER_REGISTERED = "user.registered"
USER_ROLE_CHANGED = "user.role_changed"
USER_STATUS_CHANGED = "user.status_changed"
USER_PROFILE_UPDATED = "user.profile_updated"
USER_DELETED = "user.deleted"

CONTRIBUTOR_REQUESTED = "contributor.requested"
CONTRIBUTOR_APPROVED = "contributor.approved"
CONTRIBUTOR_REJECTED = "contributor.rejected"

# ─── Posts ───────────────────────────────────────────────

POST_CREATED = "post.created"
POST_UPDATED = "post.updated"
POST_APPROVED = "post.approved"
POST_REJECTED = "post.rejected"
POST_DELETED = "post.deleted"

# ─── Interactions ────────────────────────────────────────

COMMENT_ADDED = "comment.added"
COMMENT_UPDATED = "comment.updated"
COMMENT_DELETED = "comment.deleted"
REACTION_UPDATED = "reaction.updated"
REACTION_REMOVED = "reaction.removed"

# ─── Friendships ─────────────────────────────────────────

FRIENDSHIP_REQUESTED = "friendship.requested"
FRIENDSHIP_ACCEPTED = "friendship.accepted"
FRIENDSHIP_REJECTED = "friendship.rejected"
FRIENDSHIP_REMOVED = "friendship.removed"

# ─── Wire names pushed to websocket / polling clients ────

WIRE_REACTION_UPDATE = "reaction_update"
WIRE_COMMENT_UPDATE = "comment_update"

# Audit event type → wire type for the /api/updates feed.
NOTIFICATION_TYPES = {
    REACTION_UPDATED: WIRE_REACTION_UPDATE,
    REACTION_REMOVED: WIRE_REACTION_UPDATE,
    COMMENT_ADDED: WIRE_COMMENT_UPDATE,
    COMMENT_DELETED: WIRE_COMMENT_UPDATE,
}
