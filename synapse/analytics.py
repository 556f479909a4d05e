# synapse/analytics.py
from collections import Counter
from typing import Dict, Iterable

from synapse.models import Document, DocumentStatus


def category_for(content_type: str) -> str:
    """Coarse document category guessed from the MIME type."""
    ct = (content_type or "").lower()
    if "pdf" in ct:
        return "Financial"
    if "word" in ct:
        return "Safety"
    return "HR"


def compute_analytics(documents: Iterable[Document]) -> Dict:
    analyzed = 0
    insights = 0
    per_day: Counter = Counter()
    categories: Counter = Counter()
    for doc in documents:
        if doc.status == DocumentStatus.ANALYZED.value:
            analyzed += 1
        insights += doc.insights or 0
        if doc.uploaded_at is not None:
            per_day[doc.uploaded_at.strftime("%Y-%m-%d")] += 1
        categories[category_for(doc.content_type)] += 1

    return {
        "documents_analyzed": analyzed,
        "insights_generated": insights,
        "uploads_per_day": [{"name": day, "uploads": n} for day, n in sorted(per_day.items())],
        "category_distribution": [{"name": name, "value": n} for name, n in categories.items()],
    }
