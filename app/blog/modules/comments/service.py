from __future__ import annotations

from datetime import timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select

from app.blog.api import iso
from app.blog.audit import log_admin_action
from app.blog.constants import COMMENT_STATUSES, COMMENTS_PER_HOUR
from app.blog.modules.comments.models import Comment, CommentLike
from app.blog.rbac import primary_role
from app.blog.utils import utcnow
from app.blog.validation import sanitize_comment

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.blog.models import User


class CommentError(Exception):
    """Business-rule failure with the HTTP status the API should answer with."""

    def __init__(self, message: str, status: int = 400):
        super().__init__(message)
        self.message = message
        self.status = status


def comment_user_to_dict(user: "User") -> dict[str, Any]:
    return {
        "id": user.id,
        "name": user.name,
        "image": user.image,
        "role": primary_role(user).upper(),
    }


def comment_to_dict(c: Comment, *, replies: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    return {
        "id": c.id,
        "content": sanitize_comment(c.content),
        "postSlug": c.post_slug,
        "parentId": c.parent_id,
        "status": c.status,
        "user": comment_user_to_dict(c.user),
        "likeCount": c.like_count,
        "dislikeCount": c.dislike_count,
        "replies": replies if replies is not None else [],
        "createdAt": iso(c.created_at),
        "updatedAt": iso(c.updated_at),
    }


def build_comment_tree(comments: list[Comment]) -> list[dict[str, Any]]:
    """
    Nest a flat list of comments into reply trees, newest first at every level.

    Replies whose parent is not in the list (e.g. parent still pending) are dropped.
    """
    ordered = sorted(comments, key=lambda c: (c.created_at, c.id), reverse=True)
    ids = {c.id for c in ordered}
    children: dict[int | None, list[Comment]] = {}
    for c in ordered:
        if c.parent_id is not None and c.parent_id not in ids:
            continue
        children.setdefault(c.parent_id, []).append(c)

    def _node(c: Comment) -> dict[str, Any]:
        return comment_to_dict(c, replies=[_node(r) for r in children.get(c.id, [])])

    return [_node(c) for c in children.get(None, [])]


def approved_comment_tree(s: "Session", post_slug: str) -> list[dict[str, Any]]:
    rows = s.scalars(
        select(Comment).where(Comment.post_slug == post_slug, Comment.status == "APPROVED")
    ).all()
    return build_comment_tree(list(rows))


def count_recent_comments(s: "Session", user_id: int, *, hours: int = 1) -> int:
    since = utcnow() - timedelta(hours=hours)
    return s.scalar(
        select(func.count(Comment.id)).where(Comment.user_id == user_id, Comment.created_at >= since)
    ) or 0


def create_comment(
    s: "Session",
    *,
    user: "User",
    content: str,
    post_slug: str,
    parent_id: int | None,
    ip_address: str | None,
    user_agent: str | None,
) -> Comment:
    """Create a PENDING comment. Caller commits."""
    clean = sanitize_comment(content).strip()
    if not clean:
        raise CommentError("Comment content is invalid after sanitization", 400)

    if parent_id is not None:
        parent = s.get(Comment, parent_id)
        if not parent:
            raise CommentError("Parent comment not found", 404)
        if parent.post_slug != post_slug:
            raise CommentError("Parent comment belongs to different post", 400)

    if count_recent_comments(s, user.id) >= COMMENTS_PER_HOUR:
        raise CommentError("Too many comments. Please wait before posting again.", 429)

    c = Comment(
        content=clean,
        post_slug=post_slug,
        user_id=user.id,
        parent_id=parent_id,
        status="PENDING",
        ip_address=ip_address,
        user_agent=(user_agent or "")[:255] or None,
    )
    c.user = user
    s.add(c)
    s.flush()
    return c


def toggle_like(s: "Session", *, user: "User", comment: Comment, like_type: str) -> str | None:
    """
    Apply a LIKE/DISLIKE vote. Voting the same type twice removes the vote.
    Returns the user's vote afterwards (None when removed). Caller commits.
    """
    existing = s.scalars(
        select(CommentLike).where(CommentLike.user_id == user.id, CommentLike.comment_id == comment.id)
    ).one_or_none()

    if existing is None:
        comment.likes.append(CommentLike(user_id=user.id, type=like_type))
        result: str | None = like_type
    elif existing.type == like_type:
        comment.likes.remove(existing)
        result = None
    else:
        existing.type = like_type
        result = like_type
    s.flush()
    return result


def moderate_comment(s: "Session", *, actor: "User", comment: Comment, status: str, reason: str | None) -> Comment:
    if status not in COMMENT_STATUSES:
        raise CommentError("Invalid status", 400)
    old_status = comment.status
    comment.status = status
    log_admin_action(
        s,
        actor=actor,
        action=f"comment_{status.lower()}",
        target_type="comment",
        target_id=comment.id,
        details={
            "commentUserId": comment.user_id,
            "content": comment.content[:100],
            "postSlug": comment.post_slug,
            "previousStatus": old_status,
            "reason": reason,
        },
    )
    return comment


def delete_comment(s: "Session", *, actor: "User", comment: Comment) -> None:
    """Hard delete a leaf comment (and its likes). Comments with replies must be hidden instead."""
    reply_count = s.scalar(select(func.count(Comment.id)).where(Comment.parent_id == comment.id)) or 0
    if reply_count:
        raise CommentError("Cannot delete comment with replies. Mark as hidden instead.", 400)

    details = {
        "commentUserId": comment.user_id,
        "content": comment.content[:100],
        "postSlug": comment.post_slug,
        "status": comment.status,
    }
    comment_id = comment.id
    s.delete(comment)
    log_admin_action(
        s,
        actor=actor,
        action="comment_deleted",
        target_type="comment",
        target_id=comment_id,
        details=details,
    )


def comment_status_counts(s: "Session") -> dict[str, int]:
    counts = {status: 0 for status in COMMENT_STATUSES}
    for status, n in s.execute(select(Comment.status, func.count(Comment.id)).group_by(Comment.status)).all():
        counts[status] = n
    return counts


def admin_comment_to_dict(c: Comment) -> dict[str, Any]:
    d = comment_to_dict(c)
    d["user"]["email"] = c.user.email
    d["ipAddress"] = c.ip_address
    d["parent"] = (
        {"id": c.parent.id, "content": c.parent.content[:100], "user": {"name": c.parent.user.name}}
        if c.parent is not None
        else None
    )
    d["replyCount"] = len(c.replies)
    return d
