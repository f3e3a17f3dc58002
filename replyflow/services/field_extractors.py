"""Deterministic field extraction from inbound message text.

Pure functions, no I/O and no AI. Expiry extraction is deliberately strict:
only explicit calendar dates are returned as structured data. Relative or
partial expressions ("next month", "Feb 2026") are never turned into dates;
the sentence is surfaced as a hint for a human to confirm instead.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, TypeVar

from replyflow.core.constants import (
    EXPIRY_CONTEXT_AFTER,
    EXPIRY_CONTEXT_BEFORE,
    EXPIRY_HINT_MAX_LENGTH,
    EXPIRY_MAX_YEARS_AHEAD,
    EXPIRY_PAST_TOLERANCE_DAYS,
)
from replyflow.db.enums import ExpiryItemType, ServiceType

logger = logging.getLogger(__name__)

T = TypeVar("T")


# =============================================================================
# Result types
# =============================================================================


@dataclass(frozen=True)
class ServiceMatch:
    service: ServiceType
    matched_term: str
    score: int


@dataclass(frozen=True)
class ExtractedExpiry:
    item_type: ExpiryItemType
    expiry_date: date
    matched_text: str


@dataclass(frozen=True)
class ExtractedCounts:
    partners: int | None = None
    visas: int | None = None

    def is_empty(self) -> bool:
        return self.partners is None and self.visas is None


@dataclass(frozen=True)
class ExtractedIdentity:
    name: str | None = None
    email: str | None = None

    def is_empty(self) -> bool:
        return self.name is None and self.email is None


@dataclass
class ExtractedFields:
    service: ServiceMatch | None = None
    nationality: str | None = None
    expiries: list[ExtractedExpiry] = field(default_factory=list)
    expiry_hint_text: str | None = None
    counts: ExtractedCounts = field(default_factory=ExtractedCounts)
    identity: ExtractedIdentity = field(default_factory=ExtractedIdentity)
    failed_extractors: list[str] = field(default_factory=list)


# =============================================================================
# Service detection
# =============================================================================

# (service, keywords, synonyms, misspellings)
SERVICE_SYNONYMS: list[tuple[ServiceType, list[str], list[str], list[str]]] = [
    (
        ServiceType.FAMILY_VISA,
        ["family visa", "family", "wife", "husband", "children", "dependent", "spouse"],
        ["family residence visa", "family sponsorship", "dependent visa", "spouse visa"],
        ["famili visa", "family viza", "famly visa"],
    ),
    (
        ServiceType.GOLDEN_VISA,
        ["golden visa", "golden", "10 year visa", "10-year visa", "long term visa"],
        ["gold visa", "golden residence", "long-term residence", "permanent visa"],
        ["golden viza", "goldan visa"],
    ),
    (
        ServiceType.FREELANCE_VISA,
        ["freelance visa", "freelance", "freelancer", "freelancing"],
        ["freelance permit", "freelancer permit", "self-employed visa"],
        ["freelance viza", "frelance visa"],
    ),
    (
        ServiceType.EMPLOYMENT_VISA,
        ["employment visa", "work visa", "work permit", "employment", "job visa"],
        ["employee visa", "worker visa", "employment permit", "labor visa"],
        ["employement visa", "work viza"],
    ),
    (
        ServiceType.VISIT_VISA,
        ["visit visa", "tourist visa", "tourist", "visitor visa", "visit"],
        ["visitor permit", "short stay visa", "entry visa"],
        ["visit viza", "tourist viza"],
    ),
    (
        ServiceType.MAINLAND_BUSINESS_SETUP,
        ["business setup", "business license", "company setup", "mainland", "trade license"],
        [
            "mainland company",
            "mainland license",
            "company registration",
            "business registration",
            "commercial license",
        ],
        ["business set up", "bussiness setup", "bussiness license"],
    ),
    (
        ServiceType.FREEZONE_BUSINESS_SETUP,
        ["freezone", "free zone"],
        ["free zone company", "freezone company", "free zone license", "offshore company"],
        ["fre zone", "freezon"],
    ),
    (
        ServiceType.PRO_SERVICES,
        ["pro services", "typing", "government services"],
        ["public relations officer", "typing center", "immigration services"],
        ["pro service", "typing services"],
    ),
    (
        ServiceType.VISA_RENEWAL,
        ["visa renewal", "renew visa", "renewal", "renew"],
        ["visa extension", "renew residence", "extend visa"],
        ["renewel", "renual"],
    ),
    (
        ServiceType.EMIRATES_ID,
        ["emirates id", "eid"],
        ["uae id", "emirates identity"],
        ["emirate id", "emirats id"],
    ),
]

_KEYWORD_SCORE = 10
_SYNONYM_SCORE = 8
_MISSPELLING_SCORE = 5


def _contains_term(lowered: str, term: str) -> bool:
    return re.search(rf"(?<![a-z0-9]){re.escape(term)}(?![a-z0-9])", lowered) is not None


def detect_service(text: str | None) -> ServiceMatch | None:
    """
    Match a service by keyword, synonym or misspelling.

    Highest score wins; ties go to the longest matched phrase.
    """
    if not text or not text.strip():
        return None
    lowered = text.lower()

    best: ServiceMatch | None = None
    for service, keywords, synonyms, misspellings in SERVICE_SYNONYMS:
        for score, terms in (
            (_KEYWORD_SCORE, keywords),
            (_SYNONYM_SCORE, synonyms),
            (_MISSPELLING_SCORE, misspellings),
        ):
            matched = [term for term in terms if _contains_term(lowered, term)]
            if not matched:
                continue
            term = max(matched, key=len)
            candidate = ServiceMatch(service=service, matched_term=term, score=score)
            if best is None or (candidate.score, len(candidate.matched_term)) > (
                best.score,
                len(best.matched_term),
            ):
                best = candidate
            break
    return best


# =============================================================================
# Nationality
# =============================================================================

# country name -> demonym
COUNTRY_DEMONYMS: dict[str, str] = {
    "afghanistan": "Afghan",
    "algeria": "Algerian",
    "australia": "Australian",
    "bangladesh": "Bangladeshi",
    "brazil": "Brazilian",
    "canada": "Canadian",
    "china": "Chinese",
    "egypt": "Egyptian",
    "ethiopia": "Ethiopian",
    "france": "French",
    "germany": "German",
    "ghana": "Ghanaian",
    "india": "Indian",
    "indonesia": "Indonesian",
    "iran": "Iranian",
    "iraq": "Iraqi",
    "italy": "Italian",
    "jordan": "Jordanian",
    "kazakhstan": "Kazakh",
    "kenya": "Kenyan",
    "lebanon": "Lebanese",
    "malaysia": "Malaysian",
    "morocco": "Moroccan",
    "nepal": "Nepali",
    "nigeria": "Nigerian",
    "oman": "Omani",
    "pakistan": "Pakistani",
    "palestine": "Palestinian",
    "philippines": "Filipino",
    "russia": "Russian",
    "saudi arabia": "Saudi",
    "south africa": "South African",
    "spain": "Spanish",
    "sri lanka": "Sri Lankan",
    "sudan": "Sudanese",
    "syria": "Syrian",
    "tunisia": "Tunisian",
    "turkey": "Turkish",
    "uganda": "Ugandan",
    "uk": "British",
    "united kingdom": "British",
    "ukraine": "Ukrainian",
    "usa": "American",
    "united states": "American",
    "uzbekistan": "Uzbek",
    "uae": "Emirati",
    "yemen": "Yemeni",
}

DEMONYMS: dict[str, str] = {d.lower(): d for d in COUNTRY_DEMONYMS.values()}
DEMONYMS.update({"filipina": "Filipino", "pakistan": "Pakistani", "english": "British"})

NATIONALITY_STOPWORDS = frozenset(
    {"looking", "interested", "here", "from", "a", "an", "the", "not", "in", "at", "new"}
)

_NATIONALITY_PATTERNS = [
    re.compile(r"\bnationality\s*(?:is|:|-)?\s*([a-z]+(?:\s+[a-z]+)?)"),
    re.compile(r"\b([a-z]+(?:\s+[a-z]+)?)\s+(?:national|citizen|passport holder)\b"),
    re.compile(r"\b(?:i am|i'm|im)\s+(?:an?\s+)?([a-z]+(?:\s+[a-z]+)?)"),
    re.compile(r"\bfrom\s+([a-z]+(?:\s+[a-z]+)?)"),
]


def _lookup_nationality(candidate: str) -> str | None:
    words = candidate.split()
    if not words:
        return None
    # Two-word names first ("sri lanka"), then the word nearest the cue.
    phrases = [" ".join(words[:2]), words[0]] if len(words) > 1 else [words[0]]
    for phrase in phrases:
        if phrase in NATIONALITY_STOPWORDS:
            continue
        if phrase in DEMONYMS:
            return DEMONYMS[phrase]
        if phrase in COUNTRY_DEMONYMS:
            return COUNTRY_DEMONYMS[phrase]
    # "... sri lankan national": the demonym sits right before the cue.
    if len(words) > 1 and words[-1] in DEMONYMS:
        return DEMONYMS[words[-1]]
    return None


def extract_nationality(text: str | None) -> str | None:
    """Return a canonical demonym ("Indian") or None."""
    if not text:
        return None
    lowered = text.lower()
    for pattern in _NATIONALITY_PATTERNS:
        for match in pattern.finditer(lowered):
            nationality = _lookup_nationality(match.group(1).strip())
            if nationality:
                return nationality
    return None


# =============================================================================
# Expiry dates
# =============================================================================

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}
_MONTH_RE = (
    r"(jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|aug(?:ust)?"
    r"|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)

_ISO_DATE = re.compile(r"\b(\d{4})-(\d{1,2})-(\d{1,2})\b")
_DMY_DATE = re.compile(r"\b(\d{1,2})[/-](\d{1,2})[/-](\d{4}|\d{2})\b")
_DAY_MONTH_YEAR = re.compile(
    rf"\b(\d{{1,2}})(?:st|nd|rd|th)?\s+{_MONTH_RE}\.?,?\s+(\d{{4}}|\d{{2}})\b", re.IGNORECASE
)
_MONTH_DAY_YEAR = re.compile(
    rf"\b{_MONTH_RE}\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})\b", re.IGNORECASE
)

RELATIVE_DATE_PATTERNS = [
    re.compile(
        r"\bin\s+(?:\d+|a|an|one|two|three|four|five|six|few|couple of)\s+"
        r"(?:days?|weeks?|months?|years?)\b"
    ),
    re.compile(r"\bnext\s+(?:week|month|year)\b"),
    re.compile(r"\bthis\s+(?:week|month|year)\b"),
    re.compile(r"\bend of (?:the )?(?:week|month|year)\b"),
    re.compile(r"\b(?:soon|tomorrow|shortly)\b"),
]

EXPIRY_KEYWORDS = re.compile(
    r"expir|valid\s+(?:until|till|upto|up to)|renewal date|renew by"
)

# Order matters only for equal distance; longer phrases are listed first.
EXPIRY_TYPE_KEYWORDS: list[tuple[ExpiryItemType, list[str]]] = [
    (ExpiryItemType.ESTABLISHMENT_CARD_EXPIRY, ["establishment card", "immigration card"]),
    (ExpiryItemType.TRADE_LICENSE_EXPIRY, ["trade license", "trade licence", "license", "licence"]),
    (ExpiryItemType.EMIRATES_ID_EXPIRY, ["emirates id", "e-id", "eid", "id card"]),
    (ExpiryItemType.PASSPORT_EXPIRY, ["passport"]),
    (ExpiryItemType.INSURANCE_EXPIRY, ["insurance"]),
    (ExpiryItemType.VISA_EXPIRY, ["visa", "residence", "residency"]),
]


def pivot_two_digit_year(year: int) -> int:
    """00-49 -> 20YY, 50-99 -> 19YY."""
    if year >= 100:
        return year
    return 2000 + year if year < 50 else 1900 + year


def has_relative_date(text: str) -> bool:
    lowered = text.lower()
    return any(pattern.search(lowered) for pattern in RELATIVE_DATE_PATTERNS)


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _find_explicit_dates(text: str) -> list[tuple[date, int, int]]:
    """Return (date, start, end) for every explicit calendar date in ``text``."""
    found: list[tuple[date, int, int]] = []
    taken: list[tuple[int, int]] = []

    def _claim(start: int, end: int) -> bool:
        if any(start < t_end and end > t_start for t_start, t_end in taken):
            return False
        taken.append((start, end))
        return True

    for match in _ISO_DATE.finditer(text):
        if _claim(match.start(), match.end()):
            parsed = _safe_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
            if parsed:
                found.append((parsed, match.start(), match.end()))

    for match in _DMY_DATE.finditer(text):
        if _claim(match.start(), match.end()):
            year = pivot_two_digit_year(int(match.group(3)))
            parsed = _safe_date(year, int(match.group(2)), int(match.group(1)))
            if parsed:
                found.append((parsed, match.start(), match.end()))

    for match in _DAY_MONTH_YEAR.finditer(text):
        if _claim(match.start(), match.end()):
            month = _MONTHS[match.group(2)[:3].lower()]
            year = pivot_two_digit_year(int(match.group(3)))
            parsed = _safe_date(year, month, int(match.group(1)))
            if parsed:
                found.append((parsed, match.start(), match.end()))

    for match in _MONTH_DAY_YEAR.finditer(text):
        if _claim(match.start(), match.end()):
            month = _MONTHS[match.group(1)[:3].lower()]
            parsed = _safe_date(int(match.group(3)), month, int(match.group(2)))
            if parsed:
                found.append((parsed, match.start(), match.end()))

    return sorted(found, key=lambda item: item[1])


def _classify_expiry_type(window: str, date_offset: int) -> ExpiryItemType:
    best: tuple[int, ExpiryItemType] | None = None
    for item_type, keywords in EXPIRY_TYPE_KEYWORDS:
        for keyword in keywords:
            for match in re.finditer(rf"(?<![a-z]){re.escape(keyword)}(?![a-z])", window):
                distance = abs(match.start() - date_offset)
                if best is None or distance < best[0]:
                    best = (distance, item_type)
    return best[1] if best else ExpiryItemType.DOCUMENT_EXPIRY


def _add_years(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year + years)
    except ValueError:
        return day.replace(year=day.year + years, day=28)


def extract_expiry_dates(text: str | None, today: date) -> list[ExtractedExpiry]:
    """
    Extract explicit expiry dates.

    A date counts only with an expiry keyword within the surrounding window
    (-50/+100 chars) and within [today - 1 year, today + 20 years]. Any
    relative expression anywhere in the text disqualifies the whole message.
    """
    if not text:
        return []
    if has_relative_date(text):
        return []

    earliest = today - timedelta(days=EXPIRY_PAST_TOLERANCE_DAYS)
    latest = _add_years(today, EXPIRY_MAX_YEARS_AHEAD)

    results: list[ExtractedExpiry] = []
    seen: set[tuple[ExpiryItemType, date]] = set()
    for parsed, start, end in _find_explicit_dates(text):
        if not earliest <= parsed <= latest:
            continue
        window_start = max(0, start - EXPIRY_CONTEXT_BEFORE)
        window = text[window_start : end + EXPIRY_CONTEXT_AFTER].lower()
        if not EXPIRY_KEYWORDS.search(window):
            continue
        item_type = _classify_expiry_type(window, start - window_start)
        if (item_type, parsed) in seen:
            continue
        seen.add((item_type, parsed))
        results.append(
            ExtractedExpiry(item_type=item_type, expiry_date=parsed, matched_text=text[start:end])
        )
    return results


_SENTENCE_SPLIT = re.compile(r"(?<=[.!?\n])\s+")


def extract_expiry_hint(text: str | None) -> str | None:
    """Return the sentence mentioning an expiry, for human confirmation."""
    if not text:
        return None
    for sentence in _SENTENCE_SPLIT.split(text):
        if EXPIRY_KEYWORDS.search(sentence.lower()):
            return sentence.strip()[:EXPIRY_HINT_MAX_LENGTH]
    return None


# =============================================================================
# Counts
# =============================================================================

_NUMBER_WORDS = {
    "zero": 0, "no": 0, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5,
    "six": 6, "seven": 7, "eight": 8, "nine": 9, "ten": 10,
}
_NUMBER_RE = r"(\d{1,2}|zero|no|one|two|three|four|five|six|seven|eight|nine|ten)"
_PARTNERS_RE = re.compile(rf"\b{_NUMBER_RE}\s+(?:partners?|shareholders?|owners?)\b")
_VISAS_RE = re.compile(rf"\b{_NUMBER_RE}\s+(?:(?:employee|staff|employment)\s+)?visas?\b")


def _to_int(token: str) -> int:
    return int(token) if token.isdigit() else _NUMBER_WORDS[token]


def extract_counts(text: str | None) -> ExtractedCounts:
    """Partners 1-10, visas 0-10."""
    if not text:
        return ExtractedCounts()
    lowered = text.lower()
    partners = visas = None

    match = _PARTNERS_RE.search(lowered)
    if match:
        value = _to_int(match.group(1))
        if 1 <= value <= 10:
            partners = value

    match = _VISAS_RE.search(lowered)
    if match:
        value = _to_int(match.group(1))
        if 0 <= value <= 10:
            visas = value

    return ExtractedCounts(partners=partners, visas=visas)


# =============================================================================
# Identity
# =============================================================================

_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")
_NAME_RE = re.compile(
    r"(?i:\bmy name is|\bthis is|\bname\s*:)\s+([A-Z][a-z]+(?:\s+[A-Z][a-z]+){0,2})"
)
NAME_COMMON_WORDS = frozenset(
    {
        "Golden", "Visa", "Business", "Setup", "Dubai", "Abu", "Dhabi", "Hello", "Hi",
        "Interested", "Looking", "Family", "Freelance", "Company", "License", "Need",
        "Please", "Thanks", "Urgent", "The",
    }
)


def extract_identity(text: str | None) -> ExtractedIdentity:
    if not text:
        return ExtractedIdentity()

    email_match = _EMAIL_RE.search(text)
    email = email_match.group(0).lower() if email_match else None

    name = None
    name_match = _NAME_RE.search(text)
    if name_match:
        words = []
        for word in name_match.group(1).split():
            if word in NAME_COMMON_WORDS:
                break
            words.append(word)
        name = " ".join(words) or None

    return ExtractedIdentity(name=name, email=email)


# =============================================================================
# Aggregate
# =============================================================================


def _run_isolated(name: str, func: Callable[[], T], default: T, failures: list[str]) -> T:
    try:
        return func()
    except Exception:
        logger.exception("Field extractor %s failed", name)
        failures.append(name)
        return default


def extract_fields(text: str | None, today: date) -> ExtractedFields:
    """Run every extractor; one failing extractor never hides the others."""
    failures: list[str] = []
    expiries = _run_isolated(
        "expiry_dates", lambda: extract_expiry_dates(text, today), [], failures
    )
    hint = None
    if not expiries:
        hint = _run_isolated("expiry_hint", lambda: extract_expiry_hint(text), None, failures)

    return ExtractedFields(
        service=_run_isolated("service", lambda: detect_service(text), None, failures),
        nationality=_run_isolated(
            "nationality", lambda: extract_nationality(text), None, failures
        ),
        expiries=expiries,
        expiry_hint_text=hint,
        counts=_run_isolated("counts", lambda: extract_counts(text), ExtractedCounts(), failures),
        identity=_run_isolated(
            "identity", lambda: extract_identity(text), ExtractedIdentity(), failures
        ),
        failed_extractors=failures,
    )
