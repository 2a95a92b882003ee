"""
Owner name matching.

Clerk indexes store parties as "LAST FIRST MIDDLE" with marital and entity
noise ("HUSBAND AND WIFE", "LLC", "TRUSTEE"); assessor sites print
"FIRST LAST". Compare on significant token sets, then fall back to a fuzzy
ratio for typos.
"""

import re
from typing import Set, Tuple

from rapidfuzz import fuzz


class NameMatcher:

    STOPWORDS = {
        "THE", "AND", "OR", "OF", "&", "AN", "AS",
        "LLC", "INC", "INCORPORATED", "CORP", "CORPORATION", "PA", "LTD", "LIMITED", "COMPANY", "CO",
        "TRUST", "TRUSTEE", "TRUSTEES", "TR", "REVOCABLE", "LIVING", "FAMILY", "ESTATE",
        "HUSBAND", "WIFE", "HW", "JTWROS", "SINGLE", "MAN", "WOMAN", "PERSON", "MARRIED", "UNMARRIED",
        "ETAL", "ET", "AL", "ETUX", "UX", "ETVIR", "VIR",
        "FKA", "NKA", "AKA", "DBA",
    }

    ALIASES = {
        "BOB": "ROBERT", "ROB": "ROBERT", "BOBBY": "ROBERT",
        "BILL": "WILLIAM", "WILL": "WILLIAM", "WILLIE": "WILLIAM",
        "JIM": "JAMES", "JIMMY": "JAMES",
        "MIKE": "MICHAEL", "TOM": "THOMAS", "DAVE": "DAVID",
        "DAN": "DANIEL", "DANNY": "DANIEL", "CHRIS": "CHRISTOPHER",
        "JOE": "JOSEPH", "STEVE": "STEVEN", "STEPHEN": "STEVEN",
        "DICK": "RICHARD", "RICK": "RICHARD",
    }

    @classmethod
    def normalize(cls, name: str) -> Set[str]:
        if not name:
            return set()
        clean = re.sub(r"[^\w\s]", " ", name.upper())
        # Single letters are initials; they create false matches
        return {t for t in clean.split() if t not in cls.STOPWORDS and len(t) > 1}

    @classmethod
    def match(cls, name1: str, name2: str) -> Tuple[str, float]:
        """
        Returns (match type, confidence). Types: EXACT, SUPERSET, SUBSET,
        ALIAS, FUZZY_JACCARD, FUZZY_STRING, NONE.
        """
        set1 = cls.normalize(name1)
        set2 = cls.normalize(name2)
        if not set1 or not set2:
            return "NONE", 0.0

        if set1 == set2:
            return "EXACT", 1.0

        # Party added/removed; require two shared tokens so "SMITH" alone does not link
        intersection = set1 & set2
        if min(len(set1), len(set2)) >= 2 and len(intersection) >= 2:
            if set1 <= set2:
                return "SUPERSET", 0.95
            if set2 <= set1:
                return "SUBSET", 0.95

        if {cls.ALIASES.get(t, t) for t in set1} == {cls.ALIASES.get(t, t) for t in set2}:
            return "ALIAS", 0.90

        jaccard = len(intersection) / len(set1 | set2)
        if jaccard >= 0.65:
            return "FUZZY_JACCARD", round(jaccard, 2)

        ratio = fuzz.token_sort_ratio(" ".join(sorted(set1)), " ".join(sorted(set2))) / 100
        if ratio > 0.88:
            return "FUZZY_STRING", round(ratio, 2)

        return "NONE", 0.0

    @classmethod
    def are_linked(cls, name1: str, name2: str, threshold: float = 0.8) -> bool:
        match_type, score = cls.match(name1, name2)
        return match_type != "NONE" and score >= threshold
