# Vault - Query Engine
#
# Category + free-text filtering over the plaintext fields of records.
# Never reads secret_ciphertext. Output order is the input order.

from typing import Dict, Iterable, List, Optional, Sequence

from .models import DEFAULT_CATEGORIES, Category, CredentialRecord


def _fold(value: Optional[str]) -> str:
    return (value or "").casefold()


def matches_category(record: CredentialRecord, category: Optional[str]) -> bool:
    """Case-insensitive exact category match; None matches everything."""
    if category is None:
        return True
    return _fold(record.category) == _fold(category)


def matches_search(record: CredentialRecord, search_term: str) -> bool:
    """Case-insensitive substring match on title or username."""
    term = _fold(search_term)
    if not term:
        return True
    return term in _fold(record.title) or term in _fold(record.username)


class QueryEngine:
    """Stateless filters over a sequence of records."""

    @staticmethod
    def filter(
        records: Iterable[CredentialRecord],
        category: Optional[str] = None,
        search_term: str = "",
    ) -> List[CredentialRecord]:
        """Records passing both the category and search predicates, in input order."""
        return [
            r for r in records
            if matches_category(r, category) and matches_search(r, search_term)
        ]

    @staticmethod
    def category_counts(records: Iterable[CredentialRecord]) -> Dict[str, int]:
        """Count per category, keyed by the first-seen spelling."""
        spelling: Dict[str, str] = {}
        counts: Dict[str, int] = {}
        for r in records:
            folded = _fold(r.category)
            name = spelling.setdefault(folded, r.category)
            counts[name] = counts.get(name, 0) + 1
        return counts

    @staticmethod
    def categories(
        records: Iterable[CredentialRecord],
        known: Sequence[Category] = DEFAULT_CATEGORIES,
    ) -> List[str]:
        """Known category names first, then any others found in ``records``."""
        names = [c.name for c in known]
        seen = {_fold(n) for n in names}
        for r in records:
            folded = _fold(r.category)
            if folded not in seen:
                seen.add(folded)
                names.append(r.category)
        return names
