"""Rule-based content categorization for free-text transaction descriptions.

Used for ad-hoc insights rather than persisted records: a description is
mapped to one of a fixed set of categories by keyword/regex rules, then by
the personal-transfer heuristic, and finally to "Others".
"""

import re
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Optional


class ContentCategory(str, Enum):
    """Static categories of the content categorizer."""

    ELECTRICITY = "Electricity"
    FOOD_DINING = "Food & Dining"
    SNACKS_TOBACCO = "Snacks & Tobacco"
    TRAVEL_TRANSPORT = "Travel & Transport"
    MOBILE_RECHARGE = "Mobile Recharge"
    FUEL = "Fuel"
    AUTOMOBILE = "Automobile"
    SHOPPING = "Shopping"
    GROCERIES = "Groceries"
    ENTERTAINMENT = "Entertainment"
    HEALTHCARE = "Healthcare"
    EDUCATION = "Education"
    INSURANCE = "Insurance"
    BANKING_FINANCE = "Banking & Finance"
    ONLINE_SERVICES = "Online Services"
    RENT = "Rent"
    INCOME = "Income"
    PERSONAL_TRANSFER = "Personal Transfer"
    OTHERS = "Others"
    UNCATEGORIZED = "Uncategorized"


@dataclass(frozen=True)
class ContentRule:
    category: ContentCategory
    keywords: tuple[str, ...]
    regex: re.Pattern


def _rule(category: ContentCategory, keywords: list[str], pattern: str) -> ContentRule:
    return ContentRule(category, tuple(keywords), re.compile(rf"\b(?:{pattern})\b", re.IGNORECASE))


# Order matters: the first matching rule wins
CONTENT_RULES: list[ContentRule] = [
    _rule(
        ContentCategory.ELECTRICITY,
        ["dgvcl", "electric", "power", "mseb", "bescom", "tneb", "electricity bill"],
        "dgvcl|electric|power|mseb|bescom|tneb",
    ),
    _rule(
        ContentCategory.FOOD_DINING,
        ["tea time tales", "hotel", "restaurant", "cafe", "chinese", "pizza", "burger", "swiggy",
         "zomato", "dominos", "mcdonald", "kfc", "subway", "food"],
        "tea time tales|hotel|restaurant|cafe|chinese|pizza|burger|swiggy|zomato|dominos|mcdonald|kfc|subway|food|dining",
    ),
    _rule(
        ContentCategory.SNACKS_TOBACCO,
        ["pan center", "pan centre", "tobacco", "cigarette", "beedi"],
        "pan center|pan centre|tobacco|cigarette|beedi",
    ),
    _rule(
        ContentCategory.TRAVEL_TRANSPORT,
        ["irctc", "rail", "railway", "flight", "bus", "uber", "ola", "rapido", "metro", "airline",
         "indigo", "spicejet", "air india"],
        "irctc|rail|railway|flight|bus|uber|ola|rapido|metro|airline|indigo|spicejet|air india",
    ),
    _rule(
        ContentCategory.MOBILE_RECHARGE,
        ["airtel", "vi", "vodafone", "jio", "bsnl", "recharge", "prepaid", "postpaid", "mobile"],
        "airtel|vodafone|vi|jio|bsnl|recharge|prepaid|postpaid",
    ),
    _rule(
        ContentCategory.FUEL,
        ["petrol", "petroleum", "fuel", "hp", "bpcl", "iocl", "shell", "reliance petroleum", "diesel", "cng"],
        "petrol|petroleum|fuel|hp|bpcl|iocl|shell|reliance petroleum|diesel|cng",
    ),
    _rule(
        ContentCategory.AUTOMOBILE,
        ["motors", "garage", "auto", "service center", "car wash", "vehicle", "bike", "scooter",
         "tyre", "spare parts"],
        "motors|garage|auto|service center|car wash|vehicle|bike|scooter|tyre|spare parts",
    ),
    _rule(
        ContentCategory.SHOPPING,
        ["furnishers", "furniture", "mall", "amazon", "flipkart", "myntra", "store", "shop", "retail",
         "supermarket", "dmart", "reliance fresh", "big bazaar"],
        "furnishers|furniture|mall|amazon|flipkart|myntra|store|shop|retail|supermarket|dmart|reliance fresh|big bazaar",
    ),
    _rule(
        ContentCategory.GROCERIES,
        ["grocery", "kirana", "vegetables", "fruits", "provisions", "general store"],
        "grocery|kirana|vegetables|fruits|provisions|general store",
    ),
    _rule(
        ContentCategory.ENTERTAINMENT,
        ["netflix", "amazon prime", "hotstar", "spotify", "youtube", "cinema", "movie", "pvr",
         "inox", "theatre"],
        "netflix|amazon prime|hotstar|spotify|youtube|cinema|movie|pvr|inox|theatre",
    ),
    _rule(
        ContentCategory.HEALTHCARE,
        ["hospital", "clinic", "pharmacy", "medical", "doctor", "apollo", "fortis", "max healthcare",
         "medicine", "health"],
        "hospital|clinic|pharmacy|medical|doctor|apollo|fortis|max healthcare|medicine|health",
    ),
    _rule(
        ContentCategory.EDUCATION,
        ["school", "college", "university", "tuition", "course", "coaching", "education", "fees"],
        "school|college|university|tuition|course|coaching|education|fees",
    ),
    _rule(
        ContentCategory.INSURANCE,
        ["insurance", "lic", "policy", "premium"],
        "insurance|lic|policy|premium",
    ),
    _rule(
        ContentCategory.BANKING_FINANCE,
        ["bank", "atm", "loan", "emi", "credit card", "debit card"],
        "bank|atm|loan|emi|credit card|debit card",
    ),
    _rule(
        ContentCategory.ONLINE_SERVICES,
        ["google", "microsoft", "adobe", "subscription", "saas", "cloud"],
        "google|microsoft|adobe|subscription|saas|cloud",
    ),
    _rule(
        ContentCategory.RENT,
        ["rent", "housing", "pg", "hostel"],
        "rent|housing|pg|hostel",
    ),
    _rule(
        ContentCategory.INCOME,
        ["salary", "bonus", "credit", "interest", "dividend", "refund"],
        "salary|bonus|credit|interest|dividend|refund",
    ),
]

# Short keywords ("vi", "hp", "pg") only count as whole words
MIN_SUBSTRING_KEYWORD = 4

CORPORATE_KEYWORDS = [
    "pvt", "ltd", "limited", "inc", "corp", "company", "co", "llp",
    "services", "solutions", "technologies", "systems", "enterprises",
    "india", "international", "global", "store", "shop", "mart",
]
_CORPORATE = re.compile(r"\b(?:" + "|".join(CORPORATE_KEYWORDS) + r")\b")


def is_personal_transfer(description: str) -> bool:
    """Whether a description looks like a person's name (2 to 4 alphabetic words)."""
    cleaned = _CORPORATE.sub("", description.lower()).strip()
    words = cleaned.split()
    return 2 <= len(words) <= 4 and all(re.fullmatch(r"[a-z]+", word) for word in words)


def categorize_description(description: Optional[str]) -> ContentCategory:
    """Map a free-text description to a content category."""
    if not description or not description.strip():
        return ContentCategory.OTHERS

    normalized = description.lower().strip()

    for rule in CONTENT_RULES:
        if rule.regex.search(normalized):
            return rule.category
        for keyword in rule.keywords:
            if len(keyword) >= MIN_SUBSTRING_KEYWORD and keyword in normalized:
                return rule.category

    if is_personal_transfer(normalized):
        return ContentCategory.PERSONAL_TRANSFER

    return ContentCategory.OTHERS


def categorize_descriptions(descriptions: list[str]) -> dict[str, ContentCategory]:
    """Categorize many descriptions at once."""
    return {description: categorize_description(description) for description in descriptions}


def get_all_categories() -> list[str]:
    """All category names the content categorizer can produce, sorted."""
    names = {rule.category.value for rule in CONTENT_RULES}
    names.update({ContentCategory.PERSONAL_TRANSFER.value, ContentCategory.UNCATEGORIZED.value})
    return sorted(names)


def clean_transaction(transaction: dict[str, Any]) -> dict[str, Any]:
    """
    Clean a loosely shaped transaction record before categorization.

    Amount strings lose currency symbols and separators, a missing type is
    inferred (negative amounts and anything not obviously income are
    debits), the description gets whitespace collapsed, and an unusable date
    is replaced by today's date.
    """
    amount = transaction.get("amount")
    if isinstance(amount, str):
        try:
            amount = float(re.sub(r"[^0-9.\-]", "", amount))
        except ValueError:
            amount = 0.0
    amount = float(amount or 0.0)

    description = transaction.get("description") or transaction.get("title") or "Unknown Transaction"
    description = " ".join(str(description).split())

    txn_type = transaction.get("type")
    if not txn_type:
        lowered = description.lower()
        if amount < 0:
            txn_type = "debit"
        elif "credit" in lowered or "salary" in lowered:
            txn_type = "credit"
        else:
            txn_type = "debit"
    amount = abs(amount)

    txn_date = transaction.get("date")
    try:
        txn_date = date.fromisoformat(str(txn_date)[:10]).isoformat()
    except (TypeError, ValueError):
        txn_date = date.today().isoformat()

    return {
        **transaction,
        "amount": amount,
        "type": str(txn_type).lower(),
        "description": description,
        "title": description,
        "date": txn_date,
    }
