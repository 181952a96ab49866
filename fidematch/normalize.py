import re


def normalize_term(term: str) -> str:
    """Store key for a search term: every whitespace run removed, case folded."""
    return "".join(term.split()).casefold()


def normalize_header(header: str) -> str:
    return "".join(header.split()).casefold()


FIRST_NAME_ALIASES = {"firstName", "First Name", "firstname", "first_name", "First", "FirstName"}
LAST_NAME_ALIASES = {"lastName", "Last Name", "lastname", "last_name", "Last", "LastName"}
NAME_ONLY_HEADER = "Name"

_FIRST_KEYS = {normalize_header(a) for a in FIRST_NAME_ALIASES}
_LAST_KEYS = {normalize_header(a) for a in LAST_NAME_ALIASES}

_FEDERATION_SUFFIX = re.compile(r"([A-Z]{3})$")


def is_first_name_header(header: str) -> bool:
    return normalize_header(header) in _FIRST_KEYS


def is_last_name_header(header: str) -> bool:
    return normalize_header(header) in _LAST_KEYS


def normalize_federation(text: str) -> str:
    """Reduce a noisy federation cell (flag text, line breaks) to its 3-letter code."""
    cleaned = re.sub(r"[\n\r]+", "", text or "").strip()
    m = _FEDERATION_SUFFIX.search(cleaned)
    return m.group(1) if m else cleaned


def primary_term(last_name: str, first_name: str) -> str:
    return f"{last_name}, {first_name}"


def reversed_term(last_name: str, first_name: str) -> str:
    # Swap token order; the registry is queried with the given name first.
    return f"{first_name}, {last_name}"
