import re

_ZIP_RE = re.compile(r"\b\d{5}(?:-\d{4})?\b")

def clean_text(t: str | None) -> str:
    if not t:
        return ""
    t = re.sub(r"\s+", " ", t)
    return t.strip()

def extract_zip(address: str | None) -> str | None:
    """First US zip (ZIP or ZIP+4) found in a free-form address."""
    m = _ZIP_RE.search(clean_text(address))
    return m.group(0) if m else None
