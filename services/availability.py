from services import store


def is_available(studio_id, date, section_key) -> bool:
    """True iff nothing confirmed or blocked sits on the slot."""
    return store.find_exclusive(studio_id, date, section_key) is None


def free_sections(studio_id, date):
    """
    Section keys still open on `date`.

    The section vocabulary is whatever has ever been recorded for the studio,
    so a studio with no history yields an empty list, which is not the same
    thing as a fully booked day (see has_history).
    """
    known = store.distinct_sections(studio_id)
    if not known:
        return []
    taken = store.occupied_sections(studio_id, date)
    return sorted(k for k in known if k not in taken)


def free_sections_with_labels(studio_id, date):
    known = store.distinct_sections(studio_id)
    taken = store.occupied_sections(studio_id, date)
    return [
        {"section_key": k, "section_label": known[k]}
        for k in sorted(known)
        if k not in taken
    ]


def has_history(studio_id) -> bool:
    return bool(store.distinct_sections(studio_id))
