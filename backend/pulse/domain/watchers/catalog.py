"""Watch specs for every monitored collection.

Each WatchSpec supplies three callables to the generic Watcher: `extract` turns a
change event into occurrences, `recipients` picks who hears about one
occurrence, and `template` words the message for one recipient.
"""
import logging
import re
from typing import Any, Iterable, Optional

from pulse.domain.common.types import parse_timestamp, to_epoch_ms
from pulse.domain.notifications.models import Category
from pulse.domain.watchers.models import (
    ChangeEvent,
    ChangeKind,
    NotificationIntent,
    Occurrence,
    Recipient,
    WatchContext,
    WatchSpec,
)

logger = logging.getLogger(__name__)

COMMUNITY_NOTICES = "community_notices"
MARKET_ITEMS = "market_items"
CHATS = "chats"
REPORTS = "reports"
VOLUNTEER_POSTS = "volunteer_posts"

MENTION_RE = re.compile(r"@(\w+(?:\s+\w+){0,2})")
APPROVED_STATUSES = ("active", "approved")


# Helpers

def truncate(text: Any, limit: int) -> str:
    text = "" if text is None else str(text)
    return text[:limit] + "..." if len(text) > limit else text


def children(value: Any) -> list[tuple[str, dict[str, Any]]]:
    """(id, child) pairs of a keyed map or a list of objects carrying an `id`."""
    if isinstance(value, dict):
        return [(str(k), v) for k, v in value.items() if isinstance(v, dict)]
    if isinstance(value, list):
        return [(str(v.get("id", i)), v) for i, v in enumerate(value) if isinstance(v, dict)]
    return []


def member_ids(value: Any) -> list[str]:
    """Member ids from a list of ids or a map keyed by id."""
    if isinstance(value, dict):
        return [str(k) for k, v in value.items() if v]
    if isinstance(value, list):
        return [str(v) for v in value if v]
    return []


def like_entries(likes: Any) -> list[tuple[str, Any]]:
    """(liker id, liked-at) pairs; a like is either {createdAt: ..} or a bare timestamp/flag."""
    if not isinstance(likes, dict):
        return []
    entries = []
    for liker_id, value in likes.items():
        if not value:
            continue
        created = value.get("createdAt") if isinstance(value, dict) else value
        entries.append((str(liker_id), parse_timestamp(created)))
    return entries


def _ms(value) -> str:
    return str(to_epoch_ms(value)) if value is not None else "0"


def title_case_status(status: str) -> str:
    return " ".join(word.capitalize() for word in status.replace("_", " ").split())


async def resolve_mention(text: str, ctx: WatchContext) -> Optional[str]:
    """User id of the first @mention in text; tries the longest name (up to three words) first."""
    match = MENTION_RE.search(text or "")
    if not match:
        return None
    words = match.group(1).split()
    for size in range(len(words), 0, -1):
        user_id = await ctx.directory.find_id_by_name(" ".join(words[:size]))
        if user_id:
            return user_id
    return None


def _intent(recipient: Recipient, title: str, body: str, category: Category, **payload) -> NotificationIntent:
    payload["type"] = category.value
    return NotificationIntent(recipient=recipient, title=title, body=body, category=category, payload=payload)


# Community notices

async def extract_notice(event: ChangeEvent, ctx: WatchContext) -> list[Occurrence]:
    notice = event.data
    return [
        Occurrence(
            entity_id=event.key,
            dedup_key=f"notice:{event.key}",
            actor_id=notice.get("authorId"),
            created_at=parse_timestamp(notice.get("createdAt")),
            context=notice,
        )
    ]


async def notice_recipients(occ: Occurrence, ctx: WatchContext) -> list[Recipient]:
    community_id = occ.context.get("communityId")
    if not community_id:
        logger.warning("Notice %s has no communityId; not broadcasting", occ.entity_id)
        return []
    return [Recipient.community(community_id, exclude_user_id=occ.actor_id)]


async def notice_template(occ: Occurrence, recipient: Recipient, ctx: WatchContext) -> NotificationIntent:
    notice = occ.context
    content = notice.get("content") or ""
    details = truncate(content, 100) if content else "No additional details provided."
    body = (
        f'{notice.get("authorName") or "Administrator"} posted new community notice: '
        f'"{notice.get("title") or "Community Announcement"}"\n\n{details}'
    )
    return _intent(
        recipient, "Community Notice", body, Category.COMMUNITY_NOTICES,
        noticeId=occ.entity_id, communityId=notice.get("communityId"), authorId=occ.actor_id,
    )


# Comments on a notice

async def extract_comments(event: ChangeEvent, ctx: WatchContext) -> list[Occurrence]:
    notice = event.data
    occurrences = []
    for comment_id, comment in children(notice.get("comments")):
        occurrences.append(
            Occurrence(
                entity_id=event.key,
                dedup_key=f"notice-comment:{event.key}:{comment_id}",
                actor_id=comment.get("authorId"),
                created_at=parse_timestamp(comment.get("createdAt")),
                context={"notice": notice, "comment_id": comment_id, "comment": comment},
            )
        )
    return occurrences


async def notice_author(occ: Occurrence, ctx: WatchContext) -> list[Recipient]:
    author_id = occ.context["notice"].get("authorId")
    return [Recipient.user(author_id)] if author_id else []


async def comment_template(occ: Occurrence, recipient: Recipient, ctx: WatchContext) -> NotificationIntent:
    notice, comment = occ.context["notice"], occ.context["comment"]
    text = str(comment.get("text") or comment.get("content") or "").strip() or "(No comment text)"
    name = await ctx.names.resolve(occ.actor_id, preferred=comment.get("authorName"))
    return _intent(
        recipient, "New Comment on Your Notice", f'{name} commented: "{truncate(text, 50)}"',
        Category.SOCIAL_INTERACTIONS,
        noticeId=occ.entity_id, commentId=occ.context["comment_id"],
        communityId=notice.get("communityId"), authorId=occ.actor_id,
    )


# Likes on a notice, a comment, a reply

async def extract_notice_likes(event: ChangeEvent, ctx: WatchContext) -> list[Occurrence]:
    notice = event.data
    return [
        Occurrence(
            entity_id=event.key,
            dedup_key=f"notice-like:{event.key}:{liker_id}:{_ms(liked_at)}",
            actor_id=liker_id,
            created_at=liked_at,
            context={"notice": notice},
        )
        for liker_id, liked_at in like_entries(notice.get("likes"))
    ]


async def notice_like_template(occ: Occurrence, recipient: Recipient, ctx: WatchContext) -> NotificationIntent:
    notice = occ.context["notice"]
    name = await ctx.names.resolve(occ.actor_id)
    return _intent(
        recipient, "New Like on Your Notice",
        f'{name} liked your notice: "{notice.get("title") or "Community Notice"}"',
        Category.SOCIAL_INTERACTIONS,
        noticeId=occ.entity_id, communityId=notice.get("communityId"),
        likerId=occ.actor_id, noticeAuthorId=notice.get("authorId"),
    )


async def extract_comment_likes(event: ChangeEvent, ctx: WatchContext) -> list[Occurrence]:
    notice = event.data
    occurrences = []
    for comment_id, comment in children(notice.get("comments")):
        for liker_id, liked_at in like_entries(comment.get("likes")):
            occurrences.append(
                Occurrence(
                    entity_id=event.key,
                    dedup_key=f"comment-like:{event.key}:{comment_id}:{liker_id}:{_ms(liked_at)}",
                    actor_id=liker_id,
                    created_at=liked_at,
                    context={"notice": notice, "comment_id": comment_id, "comment": comment},
                )
            )
    return occurrences


async def comment_author(occ: Occurrence, ctx: WatchContext) -> list[Recipient]:
    author_id = occ.context["comment"].get("authorId")
    return [Recipient.user(author_id)] if author_id else []


async def comment_like_template(occ: Occurrence, recipient: Recipient, ctx: WatchContext) -> NotificationIntent:
    notice, comment = occ.context["notice"], occ.context["comment"]
    text = truncate(str(comment.get("text") or comment.get("content") or "").strip(), 30) or "(No comment text)"
    name = await ctx.names.resolve(occ.actor_id)
    return _intent(
        recipient, "New Like on Your Comment", f'{name} liked your comment: "{text}"',
        Category.SOCIAL_INTERACTIONS,
        noticeId=occ.entity_id, commentId=occ.context["comment_id"], communityId=notice.get("communityId"),
        likerId=occ.actor_id, commentAuthorId=comment.get("authorId"), noticeAuthorId=notice.get("authorId"),
    )


def _replies(comment: dict[str, Any]) -> list[tuple[str, dict[str, Any]]]:
    return children(comment.get("replies"))


async def extract_reply_likes(event: ChangeEvent, ctx: WatchContext) -> list[Occurrence]:
    notice = event.data
    occurrences = []
    for comment_id, comment in children(notice.get("comments")):
        for reply_id, reply in _replies(comment):
            for liker_id, liked_at in like_entries(reply.get("likes")):
                occurrences.append(
                    Occurrence(
                        entity_id=event.key,
                        dedup_key=f"reply-like:{event.key}:{comment_id}:{reply_id}:{liker_id}:{_ms(liked_at)}",
                        actor_id=liker_id,
                        created_at=liked_at,
                        context={
                            "notice": notice, "comment_id": comment_id, "comment": comment,
                            "reply_id": reply_id, "reply": reply,
                        },
                    )
                )
    return occurrences


async def reply_author(occ: Occurrence, ctx: WatchContext) -> list[Recipient]:
    author_id = occ.context["reply"].get("authorId")
    return [Recipient.user(author_id)] if author_id else []


async def reply_like_template(occ: Occurrence, recipient: Recipient, ctx: WatchContext) -> NotificationIntent:
    notice, comment, reply = occ.context["notice"], occ.context["comment"], occ.context["reply"]
    text = truncate(str(reply.get("text") or reply.get("content") or "").strip(), 30) or "(No reply text)"
    name = await ctx.names.resolve(occ.actor_id)
    return _intent(
        recipient, "New Like on Your Reply", f'{name} liked your reply: "{text}"',
        Category.SOCIAL_INTERACTIONS,
        noticeId=occ.entity_id, commentId=occ.context["comment_id"], replyId=occ.context["reply_id"],
        communityId=notice.get("communityId"), likerId=occ.actor_id,
        replyAuthorId=reply.get("authorId"), commentAuthorId=comment.get("authorId"),
        noticeAuthorId=notice.get("authorId"),
    )


# Replies to a comment

async def extract_replies(event: ChangeEvent, ctx: WatchContext) -> list[Occurrence]:
    notice = event.data
    occurrences = []
    for comment_id, comment in children(notice.get("comments")):
        replies = _replies(comment)
        authors = {reply_id: reply.get("authorId") for reply_id, reply in replies}
        for reply_id, reply in replies:
            occurrences.append(
                Occurrence(
                    entity_id=event.key,
                    dedup_key=f"reply:{event.key}:{comment_id}:{reply_id}",
                    actor_id=reply.get("authorId"),
                    created_at=parse_timestamp(reply.get("createdAt")),
                    context={
                        "notice": notice, "comment_id": comment_id, "comment": comment,
                        "reply_id": reply_id, "reply": reply,
                        "reply_to_author": authors.get(str(reply.get("replyToId") or "")),
                    },
                )
            )
    return occurrences


async def reply_recipients(occ: Occurrence, ctx: WatchContext) -> list[Recipient]:
    """Comment author first, then the mentioned (or replied-to) user; duplicates collapse to the first."""
    recipients = []
    comment_author_id = occ.context["comment"].get("authorId")
    if comment_author_id:
        recipients.append(Recipient.user(comment_author_id, role="reply"))
    reply = occ.context["reply"]
    mentioned = await resolve_mention(str(reply.get("content") or reply.get("text") or ""), ctx)
    mentioned = mentioned or occ.context.get("reply_to_author")
    if mentioned:
        recipients.append(Recipient.user(mentioned, role="mention"))
    return recipients


async def reply_template(occ: Occurrence, recipient: Recipient, ctx: WatchContext) -> NotificationIntent:
    notice, reply = occ.context["notice"], occ.context["reply"]
    text = truncate(str(reply.get("content") or reply.get("text") or "").strip(), 50) or "(No reply text)"
    name = await ctx.names.resolve(occ.actor_id, preferred=reply.get("authorName"))
    payload = dict(
        noticeId=occ.entity_id, commentId=occ.context["comment_id"], replyId=occ.context["reply_id"],
        communityId=notice.get("communityId"), authorId=occ.actor_id, replyText=text,
    )
    if recipient.role == "mention":
        return _intent(
            recipient, "You Were Mentioned in a Reply", f'{name} mentioned you in a reply: "{text}"',
            Category.SOCIAL_INTERACTIONS, mentioned="true", mentionedUserId=recipient.id, **payload,
        )
    return _intent(
        recipient, "New Reply to Your Comment", f'{name} replied to your comment: "{text}"',
        Category.SOCIAL_INTERACTIONS,
        parentCommentId=occ.context["comment_id"], parentCommentAuthorId=recipient.id, **payload,
    )


# Marketplace

async def extract_market_item(event: ChangeEvent, ctx: WatchContext) -> list[Occurrence]:
    item = event.data
    return [
        Occurrence(
            entity_id=event.key,
            dedup_key=f"market-item:{event.key}",
            actor_id=item.get("sellerId"),
            created_at=parse_timestamp(item.get("createdAt")),
            context=item,
        )
    ]


async def market_item_recipients(occ: Occurrence, ctx: WatchContext) -> list[Recipient]:
    item = occ.context
    community_id = item.get("communityId")
    if not community_id:
        return []
    status = item.get("status")
    if status in APPROVED_STATUSES:
        return [Recipient.community(community_id, exclude_user_id=occ.actor_id)]
    if status == "pending":
        admins = await ctx.directory.list_admin_ids(community_id)
        return [Recipient.user(admin_id, role="admin") for admin_id in admins]
    return []


async def market_item_template(occ: Occurrence, recipient: Recipient, ctx: WatchContext) -> NotificationIntent:
    item = occ.context
    payload = dict(itemId=occ.entity_id, communityId=item.get("communityId"), sellerId=item.get("sellerId"))
    if recipient.role == "admin":
        return _intent(
            recipient, "New Item Pending Approval",
            f'{item.get("sellerName")} posted: "{item.get("title")}". Review it now.',
            Category.MARKETPLACE, status="pending", **payload,
        )
    return _intent(
        recipient, "New Item in Marketplace",
        f'{item.get("sellerName")} is selling: "{item.get("title")}" for {item.get("price")}',
        Category.MARKETPLACE, **payload,
    )


async def extract_market_status(event: ChangeEvent, ctx: WatchContext) -> list[Occurrence]:
    """Status transitions out of pending; every observation updates the stored snapshot."""
    item = event.data
    status = item.get("status")
    previous = await ctx.dedup.remember_value(f"market-status:{event.key}", status)
    if event.kind is ChangeKind.ADDED or previous is None or previous == status:
        return []
    if previous != "pending" or status not in APPROVED_STATUSES + ("rejected",):
        return []
    return [
        Occurrence(
            entity_id=event.key,
            dedup_key=f"market-status:{event.key}:{previous}:{status}",
            actor_id=None,
            created_at=None,
            context={"item": item, "status": status, "previous": previous},
        )
    ]


async def market_status_recipients(occ: Occurrence, ctx: WatchContext) -> list[Recipient]:
    item = occ.context["item"]
    seller_id = item.get("sellerId")
    recipients = [Recipient.user(seller_id, role="seller")] if seller_id else []
    if occ.context["status"] in APPROVED_STATUSES and item.get("communityId"):
        recipients.append(Recipient.community(item["communityId"], exclude_user_id=seller_id))
    return recipients


async def market_status_template(occ: Occurrence, recipient: Recipient, ctx: WatchContext) -> NotificationIntent:
    item = occ.context["item"]
    approved = occ.context["status"] in APPROVED_STATUSES
    payload = dict(itemId=occ.entity_id, communityId=item.get("communityId"))
    if recipient.is_community:
        return _intent(
            recipient, "New Item in Marketplace",
            f'{item.get("sellerName")} is selling: "{item.get("title")}" for {item.get("price")}',
            Category.MARKETPLACE, sellerId=item.get("sellerId"), **payload,
        )
    if approved:
        return _intent(
            recipient, "Item Approved",
            f'Your item "{item.get("title")}" has been approved and is now live in the marketplace.',
            Category.MARKETPLACE, status="approved", **payload,
        )
    reason = f' Reason: {item["rejectionReason"]}' if item.get("rejectionReason") else ""
    return _intent(
        recipient, "Item Rejected", f'Your item "{item.get("title")}" has been rejected.{reason}',
        Category.MARKETPLACE, status="rejected", **payload,
    )


# Chat

async def extract_chat_messages(event: ChangeEvent, ctx: WatchContext) -> list[Occurrence]:
    chat = event.data
    occurrences = []
    for message_id, message in children(chat.get("messages")):
        occurrences.append(
            Occurrence(
                entity_id=event.key,
                dedup_key=f"chat:{event.key}:{message_id}",
                actor_id=message.get("senderId"),
                created_at=parse_timestamp(message.get("timestamp") or message.get("createdAt")),
                context={"chat": chat, "message_id": message_id, "message": message},
            )
        )
    return occurrences


async def chat_recipients(occ: Occurrence, ctx: WatchContext) -> list[Recipient]:
    chat = occ.context["chat"]
    other = chat.get("sellerId") if occ.actor_id == chat.get("buyerId") else chat.get("buyerId")
    return [Recipient.user(other)] if other else []


async def chat_template(occ: Occurrence, recipient: Recipient, ctx: WatchContext) -> Optional[NotificationIntent]:
    chat, message = occ.context["chat"], occ.context["message"]
    text = str(message.get("text") or message.get("message") or "")
    if not text.strip():
        return None
    name = await ctx.names.resolve(occ.actor_id)
    return _intent(
        recipient, "New Message", f'{name}: "{truncate(text, 50)}"', Category.CHAT,
        chatId=occ.entity_id, messageId=occ.context["message_id"], senderId=occ.actor_id, itemId=chat.get("itemId"),
    )


# Reports

async def extract_report(event: ChangeEvent, ctx: WatchContext) -> list[Occurrence]:
    report = event.data
    return [
        Occurrence(
            entity_id=event.key,
            dedup_key=f"report:{event.key}",
            actor_id=report.get("userId"),
            created_at=parse_timestamp(report.get("createdAt")),
            context=report,
        )
    ]


async def community_admins(occ: Occurrence, ctx: WatchContext) -> list[Recipient]:
    community_id = occ.context.get("communityId")
    if not community_id:
        return []
    return [Recipient.user(admin_id, role="admin") for admin_id in await ctx.directory.list_admin_ids(community_id)]


async def report_template(occ: Occurrence, recipient: Recipient, ctx: WatchContext) -> NotificationIntent:
    report = occ.context
    description = report.get("description")
    detail = f" - {truncate(description, 50)}" if description else ""
    return _intent(
        recipient, "New Community Report",
        f'A new report has been submitted: "{report.get("issueType")}"{detail}',
        Category.REPORTS, reportId=occ.entity_id, communityId=report.get("communityId"), userId=occ.actor_id,
    )


async def extract_report_status(event: ChangeEvent, ctx: WatchContext) -> list[Occurrence]:
    report = event.data
    status = report.get("status")
    previous = await ctx.dedup.remember_value(f"report-status:{event.key}", status)
    if event.kind is ChangeKind.ADDED or not status or previous == status:
        return []
    if previous is None and status == "pending":
        return []
    return [
        Occurrence(
            entity_id=event.key,
            dedup_key=f"report-status:{event.key}:{status}",
            actor_id=report.get("updatedBy"),
            created_at=None,
            context={"report": report, "status": status, "previous": previous or "pending"},
        )
    ]


async def reporter(occ: Occurrence, ctx: WatchContext) -> list[Recipient]:
    user_id = occ.context["report"].get("userId")
    if not user_id:
        logger.warning("Report %s has no userId; no status notification", occ.entity_id)
        return []
    # Admins are not told about status changes they made to their own report
    if occ.actor_id == user_id and await ctx.directory.is_admin(user_id):
        return []
    return [Recipient.user(user_id, notify_self=True)]


async def report_status_template(occ: Occurrence, recipient: Recipient, ctx: WatchContext) -> NotificationIntent:
    report = occ.context["report"]
    return _intent(
        recipient, "Report Status Updated",
        f'Your report "{report.get("issueType") or "Community Issue"}" has been updated to: '
        f'{title_case_status(occ.context["status"])}',
        Category.REPORTS,
        reportId=occ.entity_id, status=occ.context["status"], previousStatus=occ.context["previous"],
        communityId=report.get("communityId"), userId=recipient.id,
    )


# Volunteer posts

def post_owner(post: dict[str, Any]) -> Optional[str]:
    return post.get("adminId") or post.get("userId")


async def extract_volunteer_post(event: ChangeEvent, ctx: WatchContext) -> list[Occurrence]:
    post = event.data
    event_date = parse_timestamp(post.get("eventDate"))
    if event_date is not None and event_date < ctx.clock():
        logger.info("Volunteer post %s has a past event date; not announcing", event.key)
        return []
    return [
        Occurrence(
            entity_id=event.key,
            dedup_key=f"volunteer:{event.key}",
            actor_id=post_owner(post),
            created_at=parse_timestamp(post.get("createdAt") or post.get("date")),
            context=post,
        )
    ]


async def volunteer_post_recipients(occ: Occurrence, ctx: WatchContext) -> list[Recipient]:
    community_id = occ.context.get("communityId")
    return [Recipient.community(community_id, exclude_user_id=occ.actor_id)] if community_id else []


async def volunteer_post_template(occ: Occurrence, recipient: Recipient, ctx: WatchContext) -> NotificationIntent:
    post = occ.context
    creator = post.get("adminName") or post.get("userName") or "Someone"
    return _intent(
        recipient, "New Volunteer Opportunity", f'{creator} posted: "{post.get("title")}"', Category.VOLUNTEER,
        volunteerId=occ.entity_id, postId=occ.entity_id, communityId=post.get("communityId"), userId=occ.actor_id,
    )


async def extract_volunteer_joins(event: ChangeEvent, ctx: WatchContext) -> list[Occurrence]:
    """One occurrence per member that joined since the last observation of this post."""
    post = event.data
    owner = post_owner(post)
    entity_key = f"volunteer-joins:{event.key}"
    delta = await ctx.dedup.diff_membership(entity_key, member_ids(post.get("joinedUsers")), exclude=[owner] if owner else ())
    if event.kind is ChangeKind.ADDED:
        # Members present at creation are the baseline
        return []
    return [
        Occurrence(
            entity_id=event.key,
            dedup_key=None,
            actor_id=joiner,
            created_at=None,
            context=post,
            member_of=entity_key,
            member_id=joiner,
        )
        for joiner in delta.joined
    ]


async def volunteer_join_recipients(occ: Occurrence, ctx: WatchContext) -> list[Recipient]:
    recipients = []
    owner = post_owner(occ.context)
    if owner:
        recipients.append(Recipient.user(owner, role="owner"))
    recipients.append(Recipient.user(occ.member_id, role="joiner", notify_self=True))
    return recipients


async def volunteer_join_template(occ: Occurrence, recipient: Recipient, ctx: WatchContext) -> NotificationIntent:
    post = occ.context
    payload = dict(volunteerId=occ.entity_id, postId=occ.entity_id, communityId=post.get("communityId"))
    if recipient.role == "joiner":
        return _intent(
            recipient, "Joined Volunteer Post",
            f'You have successfully joined the volunteer post: "{post.get("title")}"',
            Category.VOLUNTEER, status="joined", **payload,
        )
    name = await ctx.names.resolve(occ.member_id)
    return _intent(
        recipient, "New Volunteer Joined", f'{name} joined your volunteer post: "{post.get("title")}"',
        Category.VOLUNTEER, joinerId=occ.member_id, **payload,
    )


ADDED = (ChangeKind.ADDED,)
MODIFIED = (ChangeKind.MODIFIED,)
ADDED_OR_MODIFIED = (ChangeKind.ADDED, ChangeKind.MODIFIED)


def build_watch_specs() -> list[WatchSpec]:
    return [
        WatchSpec("community_notices", COMMUNITY_NOTICES, ADDED, Category.COMMUNITY_NOTICES,
                  extract_notice, notice_recipients, notice_template),
        WatchSpec("notice_comments", COMMUNITY_NOTICES, MODIFIED, Category.SOCIAL_INTERACTIONS,
                  extract_comments, notice_author, comment_template),
        WatchSpec("notice_likes", COMMUNITY_NOTICES, MODIFIED, Category.SOCIAL_INTERACTIONS,
                  extract_notice_likes, notice_author, notice_like_template),
        WatchSpec("comment_likes", COMMUNITY_NOTICES, MODIFIED, Category.SOCIAL_INTERACTIONS,
                  extract_comment_likes, comment_author, comment_like_template),
        WatchSpec("comment_replies", COMMUNITY_NOTICES, MODIFIED, Category.SOCIAL_INTERACTIONS,
                  extract_replies, reply_recipients, reply_template),
        WatchSpec("reply_likes", COMMUNITY_NOTICES, MODIFIED, Category.SOCIAL_INTERACTIONS,
                  extract_reply_likes, reply_author, reply_like_template),
        WatchSpec("marketplace_items", MARKET_ITEMS, ADDED, Category.MARKETPLACE,
                  extract_market_item, market_item_recipients, market_item_template),
        WatchSpec("marketplace_status", MARKET_ITEMS, ADDED_OR_MODIFIED, Category.MARKETPLACE,
                  extract_market_status, market_status_recipients, market_status_template, use_recency=False),
        WatchSpec("chat_messages", CHATS, MODIFIED, Category.CHAT,
                  extract_chat_messages, chat_recipients, chat_template),
        WatchSpec("reports", REPORTS, ADDED, Category.REPORTS,
                  extract_report, community_admins, report_template),
        WatchSpec("report_status", REPORTS, ADDED_OR_MODIFIED, Category.REPORTS,
                  extract_report_status, reporter, report_status_template, use_recency=False),
        WatchSpec("volunteer_posts", VOLUNTEER_POSTS, ADDED, Category.VOLUNTEER,
                  extract_volunteer_post, volunteer_post_recipients, volunteer_post_template),
        WatchSpec("volunteer_joins", VOLUNTEER_POSTS, ADDED_OR_MODIFIED, Category.VOLUNTEER,
                  extract_volunteer_joins, volunteer_join_recipients, volunteer_join_template, use_recency=False),
    ]


def watch_specs_for(collections: Iterable[str]) -> list[WatchSpec]:
    wanted = set(collections)
    return [spec for spec in build_watch_specs() if spec.collection in wanted]
