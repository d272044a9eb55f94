from __future__ import annotations
import logging
import unicodedata
from typing import Dict, List, Mapping, Optional, Sequence, Set, Tuple

from citeqa.core.entities import CitationAnnotation, ReconciledSource

logger = logging.getLogger("citeqa.citations")

EXACT_SCORE = 1.0
CONTAINMENT_SCORE = 0.95
MATCH_THRESHOLD = 0.5
UNKNOWN_DOCUMENT = "unknown"

# letters, digits and combining marks of any script; everything else separates words
_WORD_CATEGORIES = ("L", "N", "M")


def normalize(text: str) -> str:
    chars = (ch if unicodedata.category(ch)[0] in _WORD_CATEGORIES else " " for ch in (text or "").lower())
    return " ".join("".join(chars).split())


def jaccard(a: str, b: str) -> float:
    ta, tb = set(a.split()), set(b.split())
    union = ta | tb
    return len(ta & tb) / len(union) if union else 0.0


def similarity(norm_quote: str, norm_citation: str) -> float:
    """Score two already-normalized strings: exact > containment > word Jaccard."""
    if not norm_quote or not norm_citation:
        return 0.0
    if norm_quote == norm_citation:
        return EXACT_SCORE
    if norm_quote in norm_citation or norm_citation in norm_quote:
        return CONTAINMENT_SCORE
    return jaccard(norm_quote, norm_citation)


def greedy_assign(
    quotes: Sequence[str],
    citations: Sequence[CitationAnnotation],
    threshold: float = MATCH_THRESHOLD,
) -> List[Optional[int]]:
    """
    For each quote in order, pick the best not-yet-consumed citation.
    Ties go to the earliest citation. Returns citation indexes (None when unmatched).
    """
    norm_cits = [normalize(c.quote_text) for c in citations]
    consumed: Set[int] = set()
    assignment: List[Optional[int]] = []

    for quote in quotes:
        nq = normalize(quote)
        best_idx, best_score, best_rank = None, -1.0, (-1.0, False)
        for idx, nc in enumerate(norm_cits):
            if idx in consumed:
                continue
            score = similarity(nq, nc)
            # a reordered word set also reaches 1.0; a true exact match still wins
            rank = (score, bool(nq) and nq == nc)
            if rank > best_rank:
                best_idx, best_score, best_rank = idx, score, rank
        if best_idx is not None and best_score >= threshold:
            consumed.add(best_idx)
            assignment.append(best_idx)
        else:
            assignment.append(None)
    return assignment


def locate_in_documents(
    quote: str,
    selected: Sequence[str],
    normalized_texts: Mapping[str, str],
) -> str:
    """First selected document whose text contains the quote, else the first selected, else unknown."""
    nq = normalize(quote)
    if nq:
        for label in selected:
            if nq in normalized_texts.get(label, ""):
                return label
    return selected[0] if selected else UNKNOWN_DOCUMENT


def dedupe_citations(
    citations: Sequence[CitationAnnotation],
    document_labels: Mapping[str, str],
) -> List[ReconciledSource]:
    seen: Set[Tuple[str, str]] = set()
    out: List[ReconciledSource] = []
    for c in citations:
        key = (c.document_id, c.quote_text)
        if key in seen:
            continue
        seen.add(key)
        out.append(ReconciledSource(
            document_label=document_labels.get(c.document_id, UNKNOWN_DOCUMENT),
            document_id=c.document_id,
            quote_text=c.quote_text,
        ))
    return out


class CitationReconciler:
    """
    Aligns the quotes of a structured answer with the service's citation annotations,
    falling back to raw document text for quotes no citation supports.
    Deterministic for identical inputs.
    """

    def __init__(self, threshold: float = MATCH_THRESHOLD):
        self.threshold = threshold

    def reconcile(
        self,
        quotes: Sequence[str],
        citations: Sequence[CitationAnnotation],
        selected: Sequence[str],
        document_texts: Mapping[str, str],
        document_labels: Mapping[str, str],
    ) -> List[ReconciledSource]:
        """
        quotes           answer quotes, in answer order
        citations        annotations the service returned
        selected         selected document labels, in selection order
        document_texts   label -> full text, for the containment fallback
        document_labels  documentId -> label, for citations and fallback ids
        """
        if not quotes:
            return dedupe_citations(citations, document_labels)

        ids_by_label: Dict[str, str] = {label: doc_id for doc_id, label in document_labels.items()}
        normalized_texts: Dict[str, str] = {}
        assignment = greedy_assign(quotes, citations, self.threshold)

        sources: List[ReconciledSource] = []
        seen: Set[Tuple[str, str]] = set()
        unmatched = 0
        for quote, idx in zip(quotes, assignment):
            if idx is not None:
                doc_id: Optional[str] = citations[idx].document_id
                label = document_labels.get(doc_id, UNKNOWN_DOCUMENT)
            else:
                unmatched += 1
                if not normalized_texts:
                    normalized_texts = {
                        label: normalize(document_texts.get(label, "")) for label in selected
                    }
                label = locate_in_documents(quote, selected, normalized_texts)
                doc_id = ids_by_label.get(label)

            if doc_id is not None:
                if (doc_id, quote) in seen:
                    continue
                seen.add((doc_id, quote))
            sources.append(ReconciledSource(document_label=label, document_id=doc_id, quote_text=quote))

        logger.info(
            f"🔗 Reconciled {len(quotes)} quotes against {len(citations)} citations "
            f"({unmatched} via document text)"
        )
        return sources
