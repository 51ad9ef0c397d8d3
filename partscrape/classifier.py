"""Part taxonomy classification.

Two tiers, first match wins:

1. Override rules: ordered, high-confidence keyword rules. They exist so
   that e.g. "T-Motor F7 AIO" lands in `stack` even though it mentions
   "motor", and "Motor Mount" never becomes a motor.
2. Weighted scoring over keyword/pattern hits. Accessories short-circuit
   to `other`; ties go to the first category in SCORING_ORDER; an all-zero
   or fully tied board is `other`.

`classify()` is the plain result used by ingestion. `classify_with_details()`
adds a confidence score and reasoning and consults a brand table when the
rules are not conclusive; `compare_classifications()` puts both side by side
for operator review.
"""

import re
from dataclasses import asdict, dataclass
from typing import Callable, Dict, List, Optional, Tuple

__all__ = [
    "SCORING_ORDER",
    "ClassificationResult",
    "classify",
    "classify_with_details",
    "compare_classifications",
    "determine_category",
]

SCORING_ORDER: Tuple[str, ...] = ("motor", "frame", "camera", "prop", "battery", "stack")

ACCESSORY_TERMS = ("mount", "dampener", "accessory")

STATOR_RE = re.compile(r"\b(?:0[89]|1[0-5]|2[0-8]|3[01])(?:0[2-9]|1[0-5])\b")
KV_RE = re.compile(r"\d+\s*kv\b")
PROP_SIZE_RE = re.compile(r"\b\d+(?:\.\d+)?\s*x\s*\d+(?:\.\d+)?\s*x\s*\d\b")
CELL_COUNT_RE = re.compile(r"\b\d{1,2}\s*s\b")

BRAND_CATEGORIES: Dict[str, Tuple[str, ...]] = {
    "battery": ("tattu", "gnb", "cnhl", "gens ace", "ovonic", "zeee", "dinogy", "gaoneng"),
    "prop": ("gemfan", "hqprop", "hq prop", "dalprop", "ethix", "azure"),
    "camera": ("runcam", "foxeer", "caddx", "walksnail", "hdzero", "air unit"),
    "stack": ("holybro", "matek", "jhemcu", "mamba", "speedybee f"),
    "frame": ("armattan", "source one", "realacc"),
    "motor": ("brotherhobby", "xing", "velox"),
}


@dataclass(frozen=True)
class ClassificationResult:
    category: str
    confidence: int
    method: str
    reasoning: str

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def _has(text: str, *terms: str) -> bool:
    return any(term in text for term in terms)


def _is_stack(text: str) -> bool:
    if _has(text, "flight controller", "aio", "all-in-one"):
        return True
    return "stack" in text and not _has(text, "mount", "dampener")


def _is_motor(text: str) -> bool:
    return "motor" in text and "mount" not in text


def _is_frame(text: str) -> bool:
    return _has(text, "frame", "chassis") and not _has(text, "mount", "dampener")


def _is_camera(text: str) -> bool:
    return "camera" in text or "cam " in text or " cam" in text


def _is_prop(text: str) -> bool:
    return _has(text, "propeller", "props", "prop ")


def _is_battery(text: str) -> bool:
    return _has(text, "battery", "lipo", "li-po")


def _is_esc(text: str) -> bool:
    return "esc" in text and "mount" not in text


# Evaluated in this order; the first rule that matches decides.
OVERRIDE_RULES: Tuple[Tuple[str, str, Callable[[str], bool]], ...] = (
    ("stack", "flight controller / AIO / stack phrasing", _is_stack),
    ("motor", "'motor' without 'mount'", _is_motor),
    ("frame", "'frame'/'chassis' without mount or dampener", _is_frame),
    ("camera", "'camera'/'cam' token", _is_camera),
    ("prop", "'propeller'/'props'/'prop' token", _is_prop),
    ("battery", "'battery'/'lipo'/'li-po'", _is_battery),
    ("stack", "'esc' without 'mount'", _is_esc),
)


def _score(text: str) -> Dict[str, int]:
    scores = {category: 0 for category in SCORING_ORDER}

    if KV_RE.search(text) or STATOR_RE.search(text) or _has(text, "stator", "brushless"):
        scores["motor"] += 2
    if "motor" in text and "mount" not in text:
        scores["motor"] += 1

    if _has(text, "frame", "chassis", "wheelbase", "carbon fiber"):
        scores["frame"] += 2
    if _has(text, "freestyle", "racing", "micro"):
        scores["frame"] += 1

    if "fpv" in text and _has(text, "camera", "cam"):
        scores["camera"] += 2
    if _has(text, "lens", "cmos", "ccd", "tvl"):
        scores["camera"] += 1

    if _has(text, "propeller", "props", "blade") or PROP_SIZE_RE.search(text):
        scores["prop"] += 2
    if _has(text, "5inch", "6inch", "tri-blade"):
        scores["prop"] += 1

    if _has(text, "battery", "lipo", "mah", "cell") or CELL_COUNT_RE.search(text):
        scores["battery"] += 2
    if _has(text, "1300mah", "1500mah", "4s", "6s"):
        scores["battery"] += 1

    if _has(text, "flight controller", "aio", "all-in-one"):
        scores["stack"] += 3
    if "stack" in text and not _has(text, "mount", "dampener"):
        scores["stack"] += 2
    if _has(text, "esc", "gyro"):
        scores["stack"] += 1

    return scores


def _pick(scores: Dict[str, int]) -> str:
    values = list(scores.values())
    best = max(values)
    if best == 0 or min(values) == best:
        return "other"
    for category in SCORING_ORDER:
        if scores[category] == best:
            return category
    return "other"


def _text(name: str, description: Optional[str], url: Optional[str]) -> str:
    return f"{name} {description or ''} {url or ''}".lower()


def _evaluate(text: str) -> Tuple[str, str, List[str], Optional[Dict[str, int]]]:
    """Returns (category, method, reasoning, scores)."""
    for category, label, rule in OVERRIDE_RULES:
        if rule(text):
            return category, "override", [f"override rule matched: {label}"], None

    hits = [term for term in ACCESSORY_TERMS if term in text]
    if hits:
        return "other", "accessory", [f"accessory term(s) present: {', '.join(hits)}"], None

    scores = _score(text)
    category = _pick(scores)
    reasoning = [f"scores: {', '.join(f'{k}={v}' for k, v in scores.items())}"]
    if category == "other":
        reasoning.append("no unique non-zero maximum")
    return category, "scoring", reasoning, scores


def classify(name: str, description: Optional[str] = None, url: Optional[str] = None) -> str:
    """Assign one taxonomy category to a product. Deterministic."""
    return _evaluate(_text(name, description, url))[0]


def _scoring_confidence(scores: Dict[str, int], category: str) -> int:
    if category == "other":
        return 30
    ranked = sorted(scores.values(), reverse=True)
    margin = ranked[0] - ranked[1]
    return min(85, 50 + 10 * margin)


def _brand_category(text: str) -> Optional[Tuple[str, str]]:
    for category in SCORING_ORDER:
        for brand in BRAND_CATEGORIES.get(category, ()):
            if brand in text:
                return category, brand
    return None


def classify_with_details(
    name: str,
    description: Optional[str] = None,
    url: Optional[str] = None,
) -> ClassificationResult:
    """Classification with confidence and reasoning.

    Same rules as `classify()`, plus a brand table consulted when the rules
    fall through to an uncertain result (scoring `other`, or a scoring win
    with a one-point margin).
    """
    text = _text(name, description, url)
    category, method, reasoning, scores = _evaluate(text)

    if method == "override":
        confidence = 90
    elif method == "accessory":
        confidence = 80
    else:
        confidence = _scoring_confidence(scores or {}, category)

    if method == "scoring" and confidence <= 60:
        brand = _brand_category(text)
        if brand is not None and brand[0] != category:
            reasoning.append(f"brand '{brand[1]}' indicates {brand[0]}")
            category, method, confidence = brand[0], "brand", 75

    return ClassificationResult(
        category=category,
        confidence=confidence,
        method=method,
        reasoning="; ".join(reasoning),
    )


def compare_classifications(
    name: str,
    description: Optional[str] = None,
    url: Optional[str] = None,
) -> Dict[str, object]:
    """Legacy vs detailed classification, for manual review."""
    legacy = classify(name, description, url)
    enhanced = classify_with_details(name, description, url)
    return {
        "name": name,
        "legacy": legacy,
        "enhanced": enhanced.to_dict(),
        "agree": legacy == enhanced.category,
    }


def determine_category(
    url: str,
    name: str,
    description: Optional[str] = None,
    category_for_url: Optional[Callable[[str], Optional[str]]] = None,
) -> str:
    """Category for a scraped page: vendor URL mapping first, then text rules."""
    if category_for_url is not None:
        mapped = category_for_url(url)
        if mapped:
            return mapped
    return classify(name, description, url)
