from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, timezone

from community_lifecycle.community.errors import ValidationError
from community_lifecycle.community.types import (
    MemberOrderColumn,
    MemberPage,
    MemberRole,
    MemberStatus,
    MembershipRecord,
    SortOrder,
    normalize_enum_filter,
)

MIN_PAGE_LIMIT = 1
MAX_PAGE_LIMIT = 500


@dataclass(frozen=True, slots=True)
class MemberListQuery:
    statuses: tuple[MemberStatus, ...] | None = None
    roles: tuple[MemberRole, ...] | None = None
    joined_after: datetime | None = None
    joined_before: datetime | None = None
    search: str | None = None
    limit: int | None = None
    offset: int = 0
    order: SortOrder = SortOrder.ASC
    order_by: MemberOrderColumn = MemberOrderColumn.JOINED_AT


def _as_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _as_bound(value: object, *, end_of_day: bool) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.max if end_of_day else time.min)
    else:
        try:
            parsed = datetime.fromisoformat(str(value))
        except ValueError as exc:
            raise ValidationError(f"invalid date filter: {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _normalize_search(value: object) -> str | None:
    if value is None:
        return None
    term = str(value).strip().lower()
    return term or None


def build_member_list_query(filters: Mapping[str, object] | None = None) -> MemberListQuery:
    """Validate and clamp raw listing filters.

    Unknown status/role values raise; everything else is coerced to a safe
    default (limit into ``[1, 500]``, offset ``>= 0``, unsupported order
    columns to ``joined_at``).
    """
    filters = filters or {}

    limit = _as_int(filters.get("limit"))
    if limit is not None:
        limit = min(max(limit, MIN_PAGE_LIMIT), MAX_PAGE_LIMIT)

    offset = max(_as_int(filters.get("offset")) or 0, 0)

    raw_order = str(filters.get("order") or "").strip().lower()
    order = SortOrder.DESC if raw_order == SortOrder.DESC.value else SortOrder.ASC

    raw_order_by = str(filters.get("order_by") or "").strip().lower()
    try:
        order_by = MemberOrderColumn(raw_order_by)
    except ValueError:
        order_by = MemberOrderColumn.JOINED_AT

    return MemberListQuery(
        statuses=normalize_enum_filter(MemberStatus, filters.get("status")),
        roles=normalize_enum_filter(MemberRole, filters.get("role")),
        joined_after=_as_bound(filters.get("joined_after"), end_of_day=False),
        joined_before=_as_bound(filters.get("joined_before"), end_of_day=True),
        search=_normalize_search(filters.get("search")),
        limit=limit,
        offset=offset,
        order=order,
        order_by=order_by,
    )


def membership_matches_search(membership: MembershipRecord, term: str) -> bool:
    if any(term in value.lower() for value in membership.metadata.search_values()):
        return True
    return term in str(membership.user_id)


def _matches(membership: MembershipRecord, query: MemberListQuery) -> bool:
    if query.statuses is not None and membership.status not in query.statuses:
        return False
    if query.roles is not None and membership.role not in query.roles:
        return False
    if query.joined_after is not None and membership.joined_at < query.joined_after:
        return False
    if query.joined_before is not None and membership.joined_at > query.joined_before:
        return False
    if query.search is not None and not membership_matches_search(membership, query.search):
        return False
    return True


def apply_member_list_query(
    memberships: Iterable[MembershipRecord],
    query: MemberListQuery,
) -> MemberPage:
    """Filter, sort and paginate in Python with the same rules the SQL store uses."""
    matching = [membership for membership in memberships if _matches(membership, query)]
    column = query.order_by.value
    descending = query.order == SortOrder.DESC

    # Rows with a NULL order column sort last in both directions, like
    # ``NULLS LAST`` in the SQL implementation.
    present = [membership for membership in matching if getattr(membership, column) is not None]
    missing = [membership for membership in matching if getattr(membership, column) is None]
    present.sort(key=lambda membership: (getattr(membership, column), membership.id), reverse=descending)
    missing.sort(key=lambda membership: membership.id, reverse=descending)
    ordered = present + missing

    end = None if query.limit is None else query.offset + query.limit
    return MemberPage(
        items=ordered[query.offset:end],
        total=len(matching),
        limit=query.limit,
        offset=query.offset,
    )
