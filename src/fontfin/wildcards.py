"""
Glob-style wildcard matching.

Patterns understand three special characters:

- `*` matches zero or more characters.
- A leading `^` anchors the pattern to the start of the input.
- A trailing `$` anchors the pattern to the end of the input.

`match_wildcard` always matches the whole input, so the anchors are accepted
there but change nothing. `wildcard_substring` searches for a span inside a
larger text, which is where the anchors matter.
"""

from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Optional

from fontfin.constants import DEFAULT_MAX_WORKERS

STAR = "*"
ANCHOR_START = "^"
ANCHOR_END = "$"


def _strip_anchors(pattern: str) -> tuple[str, bool, bool]:
    anchor_start = pattern.startswith(ANCHOR_START)
    if anchor_start:
        pattern = pattern[1:]
    anchor_end = pattern.endswith(ANCHOR_END)
    if anchor_end:
        pattern = pattern[:-1]
    return pattern, anchor_start, anchor_end


def match_wildcard(text: str, pattern: str) -> bool:
    """
    Return whether `pattern` matches the whole of `text`.

    The match is a single forward pass. When a literal fails after a `*` was seen,
    the pattern resumes just past that `*` and the star absorbs one more character
    of input. An empty pattern never matches, not even an empty input.

    Parameters:
        text (str): The string to test.
        pattern (str): Wildcard pattern, e.g. `"*.ttf"`.

    Returns:
        bool: `True` if the pattern matches the entire input.
    """
    if not pattern:
        return False
    body, _, _ = _strip_anchors(pattern)

    n, m = len(text), len(body)
    t = p = 0
    star = -1
    mark = 0
    while t < n:
        if p < m and body[p] == STAR:
            star, mark = p, t
            p += 1
        elif p < m and body[p] == text[t]:
            t += 1
            p += 1
        elif star >= 0:
            mark += 1
            t = mark
            p = star + 1
        else:
            return False

    while p < m and body[p] == STAR:
        p += 1
    return p == m


def match_any_wildcard(text: str, patterns: Iterable[str]) -> bool:
    """Return `True` if any pattern matches `text`; stops at the first success."""
    return any(match_wildcard(text, pattern) for pattern in patterns)


def match_any_wildcard_parallel(
    text: str, patterns: Iterable[str], max_workers: Optional[int] = None
) -> bool:
    """
    Evaluate every pattern on its own worker and return on the first match.

    Slower patterns are not waited for: as soon as one worker reports success the
    pending work is cancelled and `True` is returned.

    Parameters:
        text (str): The string to test.
        patterns (Iterable[str]): Candidate patterns.
        max_workers (Optional[int]): Pool size; defaults to one worker per pattern up to DEFAULT_MAX_WORKERS.

    Returns:
        bool: `True` if at least one pattern matches.
    """
    pattern_list = list(patterns)
    if not pattern_list:
        return False

    workers = max_workers or min(len(pattern_list), DEFAULT_MAX_WORKERS)
    executor = ThreadPoolExecutor(max_workers=workers)
    try:
        futures = [
            executor.submit(match_wildcard, text, pattern) for pattern in pattern_list
        ]
        for future in as_completed(futures):
            if future.result():
                return True
        return False
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def filter_wildcards(
    inputs: Iterable[str], filters: Iterable[str]
) -> Dict[str, List[str]]:
    """
    Group inputs by the filters that match them.

    Returns:
        Dict[str, List[str]]: Every filter mapped to the inputs it matches, in input order. Filters that match nothing map to an empty list.
    """
    input_list = list(inputs)
    return {
        pattern: [item for item in input_list if match_wildcard(item, pattern)]
        for pattern in filters
    }


def _match_span(
    text: str, start: int, body: str, exclude: str, anchor_end: bool
) -> Optional[int]:
    """
    Match `body` against `text` beginning exactly at `start`.

    Returns the end offset of the shortest match, or `None`. A star never absorbs
    a character from `exclude`.
    """
    n, m = len(text), len(body)
    t, p = start, 0
    star, mark = -1, start
    while True:
        if p < m and body[p] == STAR:
            star, mark = p, t
            p += 1
            continue
        if p == m:
            if not anchor_end or t == n:
                return t
        elif t < n and text[t] == body[p]:
            t += 1
            p += 1
            continue
        if star < 0 or mark >= n or text[mark] in exclude:
            return None
        mark += 1
        t, p = mark, star + 1


def _candidate_starts(text: str, body: str, exclude: str, anchor_start: bool):
    if anchor_start:
        yield 0
        return
    if not body or body[0] == STAR:
        # A leading star can only be cut short by an excluded character, so a new
        # start is worth trying just past each one.
        yield 0
        for index, char in enumerate(text):
            if char in exclude:
                yield index + 1
        return
    index = text.find(body[0])
    while index != -1:
        yield index
        index = text.find(body[0], index + 1)


def wildcard_substring(text: str, pattern: str, exclude: str = "") -> Optional[str]:
    """
    Find the first span of `text` matching `pattern`.

    The span with the leftmost start wins, and among those the shortest. `^` pins
    the start to offset 0 and `$` pins the end to the end of the input. A trailing
    `*` extends the span to the end of the input, stopping before the first
    character from `exclude`. No `*` may absorb an excluded character.

    Parameters:
        text (str): Text to search in.
        pattern (str): Wildcard pattern, e.g. `"https://*.zip"`.
        exclude (str): Characters a wildcard is not allowed to span.

    Returns:
        Optional[str]: The matching span, or `None` if there is none or the pattern is empty.
    """
    if not pattern or not text:
        return None
    body, anchor_start, anchor_end = _strip_anchors(pattern)

    to_end = False
    if not anchor_end and body.endswith(STAR):
        body = body.rstrip(STAR)
        to_end = True

    for start in _candidate_starts(text, body, exclude, anchor_start):
        if start > len(text):
            break
        end = _match_span(text, start, body, exclude, anchor_end)
        if end is None:
            continue
        if to_end:
            while end < len(text) and text[end] not in exclude:
                end += 1
        return text[start:end]
    return None
