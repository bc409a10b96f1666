"""Event name constants.

Learn: Centralizing event names prevents typos between the handlers that
publish and the frontend listeners (EventSource.addEventListener) that
consume them. Payloads stay small — usually just enough for the client to
know what to re-fetch.
"""

# ─── Case channel (keyed by case id) ─────────────────────

CASE_UPDATE = "case_update"  # status, title, funding, assignment changed
MESSAGES = "messages"  # new chat message in the case thread
DOCUMENTS = "documents"  # file uploaded or deleted
TASKS = "tasks"  # checklist task added or completed
INVITATION = "invitation"  # paralegal invited, accepted or declined

# ─── Notification channel (keyed by user id) ─────────────

NOTIFICATIONS = "notifications"  # default: bell badge should refresh

CASE_EVENTS = frozenset({CASE_UPDATE, MESSAGES, DOCUMENTS, TASKS, INVITATION})

# Names accepted by the publish API
EVENT_NAME_PATTERN = r"^[A-Za-z0-9_.:-]{1,64}$"


def breaks_framing(name: str) -> bool:
    """True if name would end the "event:" line early and forge a field."""
    return "\r" in name or "\n" in name
