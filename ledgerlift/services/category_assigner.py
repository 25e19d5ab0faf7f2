"""Layered category assignment: user learning, then keyword rules, then a fallback bucket."""

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Protocol

from ledgerlift.models import (
    Category,
    CategoryAssignment,
    CategoryAttempt,
    CategorySource,
    LearningRecord,
    TransactionType,
)

logger = logging.getLogger(__name__)

MAX_PATTERN_LENGTH = 80


class CategoryPoolEmptyError(Exception):
    """Raised when a user has no categories at all to assign from."""

    pass


class LearningStore(Protocol):
    def find_learning_pattern(self, user_id: str, pattern: str) -> Optional[LearningRecord]: ...

    def upsert_learning_pattern(self, user_id: str, pattern: str, category_id: str) -> LearningRecord: ...


def _freeze(groups: dict[str, list[str]]) -> Mapping[str, tuple[str, ...]]:
    return MappingProxyType({key: tuple(values) for key, values in groups.items()})


@dataclass(frozen=True)
class CategoryRules:
    """Immutable keyword configuration for the rule tier."""

    keywords: Mapping[str, tuple[str, ...]]
    aliases: Mapping[str, tuple[str, ...]] = field(default_factory=lambda: MappingProxyType({}))
    fallback_names: tuple[str, ...] = ("other", "misc", "uncategorized")
    keyword_score: float = 0.7
    exact_score: float = 0.9
    name_score: float = 0.6
    signal_bonus: float = 0.05
    max_rule_confidence: float = 0.8
    fallback_confidence: float = 0.3
    learning_base: float = 0.6
    learning_step: float = 0.05
    learning_cap: float = 0.95


DEFAULT_RULES = CategoryRules(
    keywords=_freeze(
        {
            "groceries": ["grocery", "supermarket", "mart", "blinkit", "zepto", "bigbasket", "dmart", "ratnadeep",
                          "more retail", "reliance fresh", "nature basket", "store", "market", "dairy"],
            "food": ["swiggy", "zomato", "restaurant", "dine", "burger", "pizza", "cafe", "coffee", "starbucks",
                     "mcdonalds", "dominos", "kfc", "subway", "sweet", "bakery", "hotel", "kitchen", "eats", "food",
                     "pan", "cold drink", "colddrink", "tea", "beverages", "nashta", "bhojnalaya", "dhaba"],
            "travel": ["ola", "uber", "rapido", "irctc", "flight", "airline", "indigo", "vistara", "air india",
                       "train", "rail", "metro", "bus", "travel", "trip", "booking", "mmt", "makemytrip", "goibibo",
                       "fuel", "petrol", "pump", "shell", "hpcl", "bpcl", "ioc", "filling station", "automotive"],
            "utilities": ["electricity", "water", "gas", "dth", "mobile", "recharge", "bill", "bescom", "cesc",
                          "adani", "jio", "airtel", "vi", "bsnl", "broadband", "internet", "wifi"],
            "rent": ["rent", "landlord", "housing", "maintenance"],
            "salary": ["salary", "payroll", "credited by", "bonus", "stipend"],
            "shopping": ["amazon", "flipkart", "myntra", "ajio", "meesho", "nykaa", "tatacliq", "decathlon", "zara",
                         "h&m", "trends", "retail", "shop", "fashion", "clothing"],
            "investment": ["sip", "mutual fund", "mf", "insurance", "lic", "zerodha", "groww", "upstox",
                           "angel one", "ppf", "epf", "nps", "premium"],
            "medical": ["pharmacy", "medical", "hospital", "clinic", "doctor", "dr.", "health", "lab",
                        "diagnostics", "medplus", "apollo", "practo", "1mg"],
            "entertainment": ["netflix", "prime", "hotstar", "spotify", "youtube", "movie", "cinema", "inox", "pvr",
                              "bookmyshow", "game", "playstation", "steam"],
            "transfer": ["upi", "transfer", "sent to", "received from", "upi lite"],
        }
    ),
    aliases=_freeze({"medical": ["health"], "utilities": ["bill"], "transfer": ["money"]}),
)


def normalize_pattern(text: str) -> str:
    """Lowercase, collapse whitespace and cap the length of a narration."""
    return " ".join((text or "").lower().split())[:MAX_PATTERN_LENGTH]


def _keyword_hit(keyword: str, text: str) -> bool:
    # Keywords of three characters or fewer ("vi", "ola", "mf") must stand alone
    if len(keyword) <= 3:
        return re.search(rf"(?<![a-z0-9]){re.escape(keyword)}(?![a-z0-9])", text) is not None
    return keyword in text


class CategoryAssigner:
    """
    Assign categories to narrations for one user at a time.

    Tiers are tried in order and each one records an attempt, hit or miss.
    A learning hit returns immediately, so the rule tier never runs and the
    attempt log holds only the learning entry.
    """

    def __init__(self, store: Optional[LearningStore] = None, rules: CategoryRules = DEFAULT_RULES):
        self.store = store
        self.rules = rules

    def assign(
        self,
        user_id: str,
        description: str,
        categories: list[Category],
        txn_type: TransactionType | str | None = None,
    ) -> CategoryAssignment:
        """
        Pick a category id for a narration.

        Raises:
            CategoryPoolEmptyError: If ``categories`` is empty
        """
        if not categories:
            raise CategoryPoolEmptyError(f"No categories available for user {user_id}")

        pattern = normalize_pattern(description)
        pool = self._filter_pool(categories, txn_type)
        attempts: list[CategoryAttempt] = []

        learned = self._learning_tier(user_id, pattern, attempts)
        if learned:
            return learned

        ruled = self._rule_tier(pattern, pool, attempts)
        if ruled:
            logger.info(f"Category assignment (rule): {pattern!r} -> {ruled.category_id} ({ruled.confidence:.2f})")
            return ruled

        return self._fallback_tier(pattern, pool, attempts)

    def learn(self, user_id: str, description: str, category_id: str) -> LearningRecord:
        """Record a manual correction; repeated corrections increase the hit count."""
        if self.store is None:
            raise RuntimeError("CategoryAssigner has no learning store")
        pattern = normalize_pattern(description)
        record = self.store.upsert_learning_pattern(user_id, pattern, category_id)
        logger.info(f"Learned {pattern!r} -> {category_id} (hits={record.hits})")
        return record

    @staticmethod
    def _filter_pool(categories: list[Category], txn_type: TransactionType | str | None) -> list[Category]:
        if txn_type is None:
            return list(categories)
        entry_type = txn_type.entry_type if isinstance(txn_type, TransactionType) else txn_type
        filtered = [category for category in categories if category.type == entry_type]
        return filtered or list(categories)

    def _learning_tier(self, user_id: str, pattern: str, attempts: list[CategoryAttempt]) -> CategoryAssignment | None:
        if self.store is None:
            attempts.append(
                CategoryAttempt(source=CategorySource.LEARNING, reason="No learning store configured", score=0.0)
            )
            return None

        record = self.store.find_learning_pattern(user_id, pattern) if pattern else None
        if record is None:
            attempts.append(
                CategoryAttempt(source=CategorySource.LEARNING, reason=f"No learned pattern for {pattern!r}", score=0.0)
            )
            return None

        rules = self.rules
        confidence = min(rules.learning_base + record.hits * rules.learning_step, rules.learning_cap)
        attempts.append(
            CategoryAttempt(
                source=CategorySource.LEARNING,
                category_id=record.category_id,
                reason=f"Matched user learning pattern {pattern!r} with {record.hits} hits",
                score=confidence,
            )
        )
        logger.info(f"Category assignment (learning): {pattern!r} -> {record.category_id} ({confidence:.2f})")
        return CategoryAssignment(
            category_id=record.category_id,
            source=CategorySource.LEARNING,
            confidence=confidence,
            attempts=attempts,
        )

    def _target_for_group(self, group: str, pool: list[Category]) -> Category | None:
        names = (group,) + self.rules.aliases.get(group, ())
        for category in pool:
            lowered = category.name.lower()
            if any(name in lowered for name in names):
                return category
        return None

    def _rule_tier(self, pattern: str, pool: list[Category], attempts: list[CategoryAttempt]) -> CategoryAssignment | None:
        rules = self.rules
        signals: dict[str, list[float]] = {}
        reasons: dict[str, list[str]] = {}

        if pattern:
            for group, keywords in rules.keywords.items():
                target = self._target_for_group(group, pool)
                if target is None:
                    continue
                for keyword in keywords:
                    if not _keyword_hit(keyword, pattern):
                        continue
                    score = rules.exact_score if pattern == keyword else rules.keyword_score
                    signals.setdefault(target.id, []).append(score)
                    reasons.setdefault(target.id, []).append(f"keyword {keyword!r} ({group})")

            for category in pool:
                name = category.name.lower().strip()
                if name and name in pattern:
                    signals.setdefault(category.id, []).append(rules.name_score)
                    reasons.setdefault(category.id, []).append(f"category name {category.name!r}")

        if not signals:
            attempts.append(
                CategoryAttempt(source=CategorySource.RULE, reason="No keyword or category name matched", score=0.0)
            )
            return None

        def total(scores: list[float]) -> float:
            return max(scores) + rules.signal_bonus * (len(scores) - 1)

        best_id = max(signals, key=lambda category_id: total(signals[category_id]))
        best_score = total(signals[best_id])
        confidence = min(best_score, rules.max_rule_confidence)

        attempts.append(
            CategoryAttempt(
                source=CategorySource.RULE,
                category_id=best_id,
                reason="Matched " + ", ".join(reasons[best_id]),
                score=round(best_score, 4),
            )
        )
        return CategoryAssignment(
            category_id=best_id,
            source=CategorySource.RULE,
            confidence=confidence,
            attempts=attempts,
        )

    def _fallback_tier(self, pattern: str, pool: list[Category], attempts: list[CategoryAttempt]) -> CategoryAssignment:
        rules = self.rules
        fallback = next(
            (c for c in pool if any(name in c.name.lower() for name in rules.fallback_names)),
            pool[0],
        )
        attempts.append(
            CategoryAttempt(
                source=CategorySource.FALLBACK,
                category_id=fallback.id,
                reason="No strong match, using fallback category",
                score=rules.fallback_confidence,
            )
        )
        logger.info(f"Category assignment (fallback): {pattern!r} -> {fallback.id}")
        return CategoryAssignment(
            category_id=fallback.id,
            source=CategorySource.FALLBACK,
            confidence=rules.fallback_confidence,
            attempts=attempts,
        )
