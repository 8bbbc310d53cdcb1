"""
Claim Normalizer
=================

Post-processes validated claims so that equivalent readings from
different images look the same before fusion:

1. Numeric values — strings like "4,56 mm" or "1,23ct" become 4.56 / 1.23
2. Cut shapes — label keywords (often Cyrillic) map onto one English vocabulary
3. Categorical labels — lower-cased snake_case ("Eye Clean" → "eye_clean")
   and clarity mapped onto eye_clean / lightly_included / included
4. Label text — whitespace collapsed

This is the deterministic cleanup step between the oracle and fusion.
It applies fixed rules only (no LLM calls).

Data Flow:
    Oracle JSON → Validator → Normalizer → PerImageExtraction
"""

from __future__ import annotations

import logging
import math
import re
from typing import Optional

from gemfuse.schemas.claim import NUMERIC_FIELDS, Claim, ClaimField, ClaimValue
from gemfuse.utils import normalize_whitespace

logger = logging.getLogger("gemfuse.extract.normalizer")


# ── Cut keyword mapping ────────────────────────────────────────────

# Checked in order as substrings of the lower-cased value.
CUT_SHAPE_KEYWORDS: list[tuple[str, str]] = [
    ("asscher", "asscher"), ("ашер", "asscher"), ("ашшер", "asscher"),
    ("cushion", "cushion"), ("кушон", "cushion"), ("кушен", "cushion"),
    ("princess", "princess"), ("принцесс", "princess"),
    ("radiant", "radiant"), ("радиант", "radiant"),
    ("marquise", "marquise"), ("маркиз", "marquise"),
    ("emerald", "emerald"), ("изумрудн", "emerald"),
    ("octagon", "octagon"), ("октагон", "octagon"),
    ("baguette", "baguette"), ("багет", "baguette"),
    ("trillion", "trillion"), ("триллион", "trillion"), ("треугол", "trillion"),
    ("cabochon", "cabochon"), ("кабошон", "cabochon"),
    ("heart", "heart"), ("сердц", "heart"), ("сердеч", "heart"),
    ("pear", "pear"), ("груш", "pear"), ("капл", "pear"),
    ("oval", "oval"), ("овал", "oval"),
    ("round", "round"), ("круг", "round"),
]

# Categorical fields whose values are short labels, not free text.
LABEL_FIELDS: frozenset[ClaimField] = frozenset({
    ClaimField.CUT_SHAPE,
    ClaimField.CUT_STYLE,
    ClaimField.COLOR_FAMILY,
    ClaimField.COLOR_GRADE_EST,
    ClaimField.FLUORESCENCE_COLOR,
    ClaimField.FLUORESCENCE_STRENGTH,
})

# Coarse clarity buckets; lab grades and common phrasings map onto them.
CLARITY_BUCKETS: frozenset[str] = frozenset({"eye_clean", "lightly_included", "included"})
CLARITY_SYNONYMS: dict[str, str] = {
    "clean": "eye_clean", "loupe_clean": "eye_clean", "flawless": "eye_clean",
    "fl": "eye_clean", "if": "eye_clean", "vvs": "eye_clean", "vvs1": "eye_clean",
    "vvs2": "eye_clean", "vs": "eye_clean", "vs1": "eye_clean", "vs2": "eye_clean",
    "slightly_included": "lightly_included", "si": "lightly_included",
    "si1": "lightly_included", "si2": "lightly_included",
    "moderately_included": "lightly_included",
    "heavily_included": "included", "i1": "included", "i2": "included",
    "i3": "included", "p1": "included", "p2": "included", "p3": "included",
}

_NUMBER_WITH_UNIT = re.compile(
    r"^([-+]?\d+(?:[.,]\d+)?)\s*(?:mm|мм|ct|cts|carats?|кт|кар|карат[а-я]*)?\.?$",
    re.IGNORECASE,
)
_NON_WORD = re.compile(r"[^\w]+", re.UNICODE)


def parse_decimal(value: ClaimValue) -> Optional[float]:
    """
    Read a measurement as a float.

    Accepts numbers and strings with a comma or dot decimal separator
    and an optional mm/ct unit suffix. Booleans, NaN, infinities and
    anything else return None.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _NUMBER_WITH_UNIT.match(value.strip().replace("\u00a0", " "))
        if not match:
            return None
        number = float(match.group(1).replace(",", "."))
    return number if math.isfinite(number) else None


def normalize_cut_shape(value: str) -> str:
    """Map a cut description onto the controlled shape vocabulary."""
    lowered = value.strip().lower()
    for keyword, shape in CUT_SHAPE_KEYWORDS:
        if keyword in lowered:
            return shape
    return to_label(lowered)


def normalize_clarity(value: str) -> Optional[str]:
    """Map a clarity description onto a coarse bucket; None if unrecognized."""
    label = to_label(value)
    if label in CLARITY_BUCKETS:
        return label
    return CLARITY_SYNONYMS.get(label)


def to_label(value: str) -> str:
    """Lower-case snake_case form of a short categorical label."""
    return _NON_WORD.sub("_", value.strip().lower()).strip("_")


class ClaimNormalizer:
    """
    Normalizes claim values for fusion.

    Operations (applied per claim):
        1. Drop claims with no value
        2. Parse numeric fields; drop the claim if the value is not a number
        3. Map clarity onto its coarse buckets; drop unrecognized grades
        4. Map cut shapes through the keyword table
        5. Snake-case categorical labels
        6. Collapse whitespace in label text

    Usage:
        normalizer = ClaimNormalizer()
        claims, dropped = normalizer.normalize(claims)

    Args:
        map_cut_keywords: Apply the cut keyword table.
        drop_empty: Remove claims whose value is null or blank.
    """

    def __init__(self, map_cut_keywords: bool = True, drop_empty: bool = True):
        self.map_cut_keywords = map_cut_keywords
        self.drop_empty = drop_empty

    def normalize(self, claims: list[Claim]) -> tuple[list[Claim], int]:
        """
        Apply all normalization steps.

        Args:
            claims: Validated claims from one image.

        Returns:
            (normalized claims in input order, number of claims dropped)
        """
        result: list[Claim] = []
        dropped = 0

        for claim in claims:
            if claim.is_empty:
                if self.drop_empty:
                    dropped += 1
                    continue
                result.append(claim)
                continue

            normalized = self.normalize_claim(claim)
            if normalized is None:
                logger.warning(
                    f"Dropping {claim.field.value} claim with unusable value {claim.value!r}"
                )
                dropped += 1
                continue
            result.append(normalized)

        return result, dropped

    def normalize_claim(self, claim: Claim) -> Optional[Claim]:
        """Normalize one claim; None means it cannot be used."""
        value = claim.value

        if claim.field in NUMERIC_FIELDS:
            number = parse_decimal(value)
            if number is None:
                return None
            return self._with_value(claim, number)

        if claim.field == ClaimField.CLARITY_EST:
            bucket = normalize_clarity(str(value))
            return None if bucket is None else self._with_value(claim, bucket)

        if not isinstance(value, str):
            return claim

        if claim.field == ClaimField.CUT_SHAPE and self.map_cut_keywords:
            return self._with_value(claim, normalize_cut_shape(value))
        if claim.field in LABEL_FIELDS:
            return self._with_value(claim, to_label(value) or value.strip())
        if claim.field == ClaimField.LABEL_TEXT:
            return self._with_value(claim, normalize_whitespace(value))
        return claim

    @staticmethod
    def _with_value(claim: Claim, value: ClaimValue) -> Claim:
        if value == claim.value and type(value) is type(claim.value):
            return claim
        return claim.model_copy(update={"value": value})
