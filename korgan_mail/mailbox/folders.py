"""Folder identifiers and their gateway label/query mappings."""

from enum import Enum


class MailFolder(str, Enum):
    """A logical mailbox view: seven base folders plus one search variant each."""

    INBOX = "inbox"
    SENT = "sent"
    DRAFTS = "drafts"
    SPAM = "spam"
    STARRED = "starred"
    IMPORTANT = "important"
    TRASH = "trash"

    INBOX_SEARCH = "inbox_search"
    SENT_SEARCH = "sent_search"
    DRAFTS_SEARCH = "drafts_search"
    SPAM_SEARCH = "spam_search"
    STARRED_SEARCH = "starred_search"
    IMPORTANT_SEARCH = "important_search"
    TRASH_SEARCH = "trash_search"

    @property
    def is_search(self) -> bool:
        return self in SEARCH_TO_BASE

    @property
    def base_folder(self) -> "MailFolder":
        """The base folder of a search variant; a base folder maps to itself."""
        return SEARCH_TO_BASE.get(self, self)

    @property
    def search_folder(self) -> "MailFolder":
        """The search variant of this folder's base."""
        return BASE_TO_SEARCH[self.base_folder]

    @property
    def display_name(self) -> str:
        name = DISPLAY_NAME[self.base_folder]
        return f"{name} search" if self.is_search else name

    @property
    def labels(self) -> list[str] | None:
        """Gateway label filter for this folder, or None when it uses a query."""
        label = FOLDER_LABEL.get(self.base_folder)
        return [label] if label else None

    @property
    def query(self) -> str | None:
        """Gateway free-text query for folders with no dedicated label."""
        return FOLDER_QUERY.get(self.base_folder)


BASE_FOLDERS: tuple[MailFolder, ...] = (
    MailFolder.INBOX,
    MailFolder.SENT,
    MailFolder.DRAFTS,
    MailFolder.SPAM,
    MailFolder.STARRED,
    MailFolder.IMPORTANT,
    MailFolder.TRASH,
)

# ── Search variant mappings ────────────────────────────────────────────────────

BASE_TO_SEARCH: dict[MailFolder, MailFolder] = {
    MailFolder.INBOX: MailFolder.INBOX_SEARCH,
    MailFolder.SENT: MailFolder.SENT_SEARCH,
    MailFolder.DRAFTS: MailFolder.DRAFTS_SEARCH,
    MailFolder.SPAM: MailFolder.SPAM_SEARCH,
    MailFolder.STARRED: MailFolder.STARRED_SEARCH,
    MailFolder.IMPORTANT: MailFolder.IMPORTANT_SEARCH,
    MailFolder.TRASH: MailFolder.TRASH_SEARCH,
}

SEARCH_TO_BASE: dict[MailFolder, MailFolder] = {v: k for k, v in BASE_TO_SEARCH.items()}

# ── Gateway filters ────────────────────────────────────────────────────────────

# The gateway has no "important" label, so that folder filters by query instead.
FOLDER_LABEL: dict[MailFolder, str] = {
    MailFolder.INBOX: "INBOX",
    MailFolder.SENT: "SENT",
    MailFolder.DRAFTS: "DRAFT",
    MailFolder.SPAM: "SPAM",
    MailFolder.STARRED: "STARRED",
    MailFolder.TRASH: "TRASH",
}

FOLDER_QUERY: dict[MailFolder, str] = {
    MailFolder.IMPORTANT: "is:important",
}

DISPLAY_NAME: dict[MailFolder, str] = {
    MailFolder.INBOX: "Inbox",
    MailFolder.SENT: "Sent",
    MailFolder.DRAFTS: "Drafts",
    MailFolder.SPAM: "Spam",
    MailFolder.STARRED: "Starred",
    MailFolder.IMPORTANT: "Important",
    MailFolder.TRASH: "Trash",
}


def parse_folder(name: str) -> MailFolder:
    """Resolve a user-supplied folder name (case-insensitive, '-' or '_')."""
    key = name.strip().lower().replace("-", "_")
    try:
        return MailFolder(key)
    except ValueError:
        valid = ", ".join(f.value for f in MailFolder)
        raise ValueError(f"Unknown folder {name!r}; expected one of: {valid}") from None
