"""
Batch reconciliation.

A client sends the state it wants for a list of slots. We read every current
row for those slots in one query, diff item by item, and hand the resulting
directives to store.bulk_apply as a single unit. Submitting the same batch
twice leaves the store unchanged the second time and reports every item as
skipped/exact.
"""
from typing import NamedTuple, Optional

from flask import current_app

from models.reservation import (
    BLOCKED, DRAFT_STATUSES, EXCLUSIVE_STATUSES, PENDING, REQUEST_CANCELED,
)
from services import store
from services.dependents import owned_dependent_ids
from services.errors import (
    ConflictError, ForbiddenError, InvalidStateError, ValidationError,
)
from services.reservations import REQUESTER_TARGETS, check_requester_transition, pick_own_row
from services.slots import build_slot_key, check_studios
from services.store import DeleteDirective, InsertDirective, SlotKey, UpdateDirective
from utils.roles import ADMIN, STUDENT

DELETE = "delete"

INSERTED = "inserted"
UPDATED = "updated"
DELETED = "deleted"
SKIPPED_EXACT = "skipped/exact"
SKIPPED_DELETE_NOOP = "skipped/deleteNoop"

# Optional fields compared/written only when the item supplies them
ANNOTATION_FIELDS = ("dependent_id", "remark", "reason", "cancel_reason")


class DesiredSlotState(NamedTuple):
    slot: SlotKey
    section_label: Optional[str]
    status: Optional[str]
    dependent_id: Optional[int] = None
    remark: Optional[str] = None
    reason: Optional[str] = None
    cancel_reason: Optional[str] = None


def parse_item(raw) -> DesiredSlotState:
    if not isinstance(raw, dict):
        raise ValidationError("Each update must be an object")

    def text(name):
        value = raw.get(name)
        if value is None:
            return None
        if not isinstance(value, str):
            raise ValidationError(f"{name} must be a string")
        return value.strip()

    slot = build_slot_key(raw.get("studio_id"), raw.get("room_id"), raw.get("date"), raw.get("section_key"))
    status = text("status") or None
    label = text("section_label") or None
    if status != DELETE and not label:
        raise ValidationError("Missing required fields: section_label")

    dependent_id = raw.get("dependent_id")
    if dependent_id is not None:
        try:
            dependent_id = int(dependent_id)
        except (TypeError, ValueError):
            raise ValidationError("dependent_id must be an integer")

    return DesiredSlotState(
        slot=slot,
        section_label=label,
        status=status,
        dependent_id=dependent_id,
        remark=text("remark"),
        reason=text("reason"),
        cancel_reason=text("cancel_reason"),
    )


def parse_items(raw_items):
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("Please provide an array of updates")
    limit = current_app.config.get("BATCH_MAX_ITEMS", 200)
    if len(raw_items) > limit:
        raise ValidationError(f"At most {limit} updates per batch")

    items = [parse_item(raw) for raw in raw_items]
    seen = set()
    for item in items:
        if item.slot in seen:
            raise ValidationError(f"Slot {item.slot.section_key} on {item.slot.date.isoformat()} appears twice")
        seen.add(item.slot)
    return items


def _resolve_status(item, actor_role):
    if actor_role == STUDENT:
        status = item.status or PENDING
        allowed = REQUESTER_TARGETS + (DELETE,)
    else:
        status = item.status or BLOCKED
        allowed = (BLOCKED, DELETE)
    if status not in allowed:
        raise ValidationError(f"status must be one of {', '.join(allowed)}")
    return status


def _owned_rows(existing, actor_id, actor_role):
    by_key = {}
    for row in existing:
        if actor_role == STUDENT and row.requester_id != actor_id:
            continue
        if actor_role == ADMIN and not (row.requester_id is None and row.status == BLOCKED):
            continue
        by_key.setdefault(row.slot_key, []).append(row)
    return by_key


def _desired_fields(item, status):
    fields = {"status": status, "section_label": item.section_label}
    for name in ANNOTATION_FIELDS:
        value = getattr(item, name)
        if value is not None:
            fields[name] = value if not isinstance(value, str) else (value or None)
    return fields


def _is_exact(row, fields):
    return all(getattr(row, name) == value for name, value in fields.items())


def plan_batch(items, actor_id, actor_role):
    """
    Diff desired states against the store. Returns (directives, outcomes)
    without writing anything.
    """
    if actor_role not in (STUDENT, ADMIN):
        raise ForbiddenError("Only students and admins can submit batches")
    check_studios([i.slot for i in items])

    if actor_role == STUDENT:
        wanted = {i.dependent_id for i in items if i.dependent_id is not None}
        owned = owned_dependent_ids(actor_id, wanted)
        if wanted - owned:
            raise ValidationError(f"Unknown dependent(s): {sorted(wanted - owned)}")

    existing = store.find_by_slot_keys(i.slot for i in items)
    mine = _owned_rows(existing, actor_id, actor_role)
    occupied = {
        (r.studio_id, r.date, r.section_key): r
        for r in existing
        if r.status in EXCLUSIVE_STATUSES
    }

    directives = []
    outcomes = []
    for item in items:
        status = _resolve_status(item, actor_role)
        rows = mine.get(item.slot, [])
        row = pick_own_row(rows, status) if actor_role == STUDENT else (rows[0] if rows else None)

        if status == DELETE:
            if row is None:
                outcomes.append(SKIPPED_DELETE_NOOP)
                continue
            if actor_role == STUDENT and row.status not in DRAFT_STATUSES:
                raise InvalidStateError(f"Reservation {row.id} is {row.status} and cannot be deleted")
            directives.append(DeleteDirective(row.id, row.version, item.slot))
            outcomes.append(DELETED)
            continue

        fields = _desired_fields(item, status)

        if row is not None:
            if actor_role == STUDENT:
                check_requester_transition(row.status, status)
            if _is_exact(row, fields):
                outcomes.append(SKIPPED_EXACT)
                continue
            directives.append(UpdateDirective(row.id, row.version, fields, item.slot))
            outcomes.append(UPDATED)
            continue

        if actor_role == STUDENT:
            if status not in DRAFT_STATUSES:
                raise InvalidStateError("A new reservation must start as pending or requested")
            holder = occupied.get(item.slot.occupancy_key)
            if holder is not None:
                raise ConflictError(
                    f"Slot {item.slot.section_key} on {item.slot.date.isoformat()} is already {holder.status}"
                )
            fields["requester_id"] = actor_id
        # Blocks on an occupied slot are left to the store's exclusivity check

        fields.update(
            studio_id=item.slot.studio_id,
            room_id=item.slot.room_id,
            date=item.slot.date,
            section_key=item.slot.section_key,
        )
        directives.append(InsertDirective(fields))
        outcomes.append(INSERTED)

    return directives, outcomes


def summarize(outcomes):
    return {
        "inserted": outcomes.count(INSERTED),
        "updated": outcomes.count(UPDATED),
        "skipped": {
            "exact": outcomes.count(SKIPPED_EXACT),
            "deleteNoop": outcomes.count(SKIPPED_DELETE_NOOP),
        },
        "deleted": outcomes.count(DELETED),
        "total": len(outcomes),
        "outcomes": outcomes,
    }


def reconcile_batch(raw_items, actor_id, actor_role=STUDENT):
    """
    Apply a client batch all-or-nothing. Raises ConflictError if the store
    rejects the change set; the caller may recompute and resubmit.
    """
    items = parse_items(raw_items)
    directives, outcomes = plan_batch(items, actor_id, actor_role)
    if directives:
        store.bulk_apply(directives)
    return summarize(outcomes)
