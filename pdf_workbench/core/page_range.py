from typing import List, Optional, Set


def _to_int(value: str, original: str) -> int:
    try:
        return int(value)
    except ValueError:
        raise ValueError(f"Invalid page range: {original}") from None


def _parse_part(total_pages: int, part: str, original: str) -> Set[int]:
    if part == "first":
        return {0}
    if part == "last":
        return {total_pages - 1}
    if "-" in part:
        s, e = part.split("-", 1)
        s_i = _to_int(s, original) if s else 1
        e_i = _to_int(e, original) if e else total_pages
        if s_i < 1 or e_i < s_i or s_i > total_pages:
            raise ValueError(f"Invalid page range: {original}")
        return set(range(s_i - 1, min(e_i, total_pages)))
    p = _to_int(part, original)
    if p < 1 or p > total_pages:
        raise ValueError(f"Page {p} out of range (1-{total_pages})")
    return {p - 1}


def parse_page_range(total_pages: int, page_range: Optional[str]) -> List[int]:
    """Return sorted zero-based page indices.

    Supports None (all pages), "first", "last", "N", "S-E" (open ends allowed)
    and comma-separated combinations such as "1,3,5-7".
    """
    if total_pages <= 0:
        return []
    if page_range is None or not str(page_range).strip():
        return list(range(total_pages))

    selected: Set[int] = set()
    for part in str(page_range).strip().lower().split(","):
        part = part.strip()
        if part:
            selected |= _parse_part(total_pages, part, page_range)
    return sorted(selected)
