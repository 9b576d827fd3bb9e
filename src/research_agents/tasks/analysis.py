"""Keyword heuristics that compare a document set against a research question.

Everything here is deterministic for a given input apart from the report
timestamp and the recency check, which look at the current date.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from research_agents.extraction.models import Document
from research_agents.framework.errors import ErrorDetail

MAX_THEMES = 7
MAX_GAPS = 10
MAX_QUESTIONS = 10
SUMMARY_CHARS = 500
RECENCY_YEARS = 5

_WORD_RE = re.compile(r"[a-z][a-z\-]{2,}")
_STOPWORDS = frozenset(
    """
    about above after again against also although among analysis another approach
    approaches are around based because been before being below between both but
    can could current data does doing done during each either even every few
    findings first from further have having here however into its itself just
    last less many more most much must near need neither new next none nor not
    now often only other others otherwise our over paper papers part per rather
    recent research results same several should show shows since some such than
    that the their them then there these they this those though through thus
    together too under until upon use used uses using very via was were what
    when where whether which while who whom whose why will with within without
    work would year years yet your study studies across well may might one two
    three fig figure table section journal university abstract introduction
    conclusion conclusions discussion method methods http https www doi org
    """.split(),
)


@dataclass(frozen=True, slots=True)
class MethodSignature:
    name: str
    category: str
    keywords: tuple[str, ...]


METHOD_CATALOG: tuple[MethodSignature, ...] = (
    MethodSignature(
        "Randomized controlled trial",
        "quantitative",
        ("randomized controlled", "randomised controlled"),
    ),
    MethodSignature("Survey", "quantitative", ("survey", "questionnaire")),
    MethodSignature("Regression analysis", "quantitative", ("regression",)),
    MethodSignature("Meta-analysis", "quantitative", ("meta-analysis", "systematic review")),
    MethodSignature("Interviews", "qualitative", ("interview",)),
    MethodSignature("Case study", "qualitative", ("case study", "case studies")),
    MethodSignature("Ethnography", "qualitative", ("ethnograph",)),
    MethodSignature("Thematic analysis", "qualitative", ("thematic analysis", "grounded theory")),
    MethodSignature("Mixed methods", "mixed", ("mixed method", "mixed-method")),
    MethodSignature(
        "Machine learning",
        "computational",
        ("machine learning", "neural network", "deep learning"),
    ),
    MethodSignature("Simulation", "computational", ("simulation", "agent-based model")),
)
METHOD_CATEGORIES: tuple[str, ...] = ("quantitative", "qualitative", "mixed", "computational")


@dataclass(slots=True)
class Theme:
    theme: str
    frequency: int
    document_ids: list[str]
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "theme": self.theme,
            "frequency": self.frequency,
            "document_ids": list(self.document_ids),
            "description": self.description,
        }


@dataclass(slots=True)
class Methodology:
    name: str
    category: str
    document_ids: list[str]
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "category": self.category,
            "document_ids": list(self.document_ids),
            "description": self.description,
        }


@dataclass(slots=True)
class ResearchGap:
    """A question the document set leaves open; ``impact_score`` is 1-10."""

    gap: str
    reasoning: str
    impact_score: int
    related_documents: list[str] = field(default_factory=list)
    kind: str = "coverage"
    focus: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "gap": self.gap,
            "reasoning": self.reasoning,
            "impact_score": self.impact_score,
            "related_documents": list(self.related_documents),
            "kind": self.kind,
        }


@dataclass(slots=True)
class SuggestedQuestion:
    question: str
    rationale: str
    suggested_methods: list[str]

    def to_dict(self) -> dict[str, Any]:
        return {
            "question": self.question,
            "rationale": self.rationale,
            "suggested_methods": list(self.suggested_methods),
        }


def keywords(text: str) -> list[str]:
    """Lowercased content words of four letters or more."""

    return [
        word.strip("-")
        for word in _WORD_RE.findall(text.lower())
        if len(word.strip("-")) >= 4 and word.strip("-") not in _STOPWORDS
    ]


def summarize(document: Document) -> str:
    if document.abstract:
        return document.abstract
    text = document.full_text
    if len(text) <= SUMMARY_CHARS:
        return text
    return text[:SUMMARY_CHARS].rstrip() + "..."


def build_overview(documents: Sequence[Document], requested: int) -> dict[str, Any]:
    years = [document.year for document in documents if document.year is not None]
    return {
        "total_documents": len(documents),
        "requested_documents": requested,
        "year_range": {
            "earliest": min(years) if years else None,
            "latest": max(years) if years else None,
        },
        "documents": [
            {**document.to_dict(), "summary": summarize(document)} for document in documents
        ],
    }


def identify_themes(
    documents: Sequence[Document],
    question: str,
    *,
    max_themes: int = MAX_THEMES,
) -> list[Theme]:
    """Rank terms shared across documents, boosting those in the question."""

    if not documents:
        return []
    question_terms = set(keywords(question))
    document_terms = {document.id: Counter(keywords(document.full_text)) for document in documents}
    document_frequency: Counter[str] = Counter()
    total_frequency: Counter[str] = Counter()
    for counts in document_terms.values():
        document_frequency.update(counts.keys())
        total_frequency.update(counts)

    min_documents = 2 if len(documents) > 1 else 1
    candidates = [term for term, df in document_frequency.items() if df >= min_documents]
    candidates.sort(
        key=lambda term: (
            -document_frequency[term],
            term not in question_terms,
            -total_frequency[term],
            term,
        ),
    )

    themes = []
    for term in candidates[:max_themes]:
        ids = [doc_id for doc_id, counts in document_terms.items() if term in counts]
        description = f"Discussed in {len(ids)} of {len(documents)} documents"
        if term in question_terms:
            description += "; part of the research question"
        themes.append(
            Theme(theme=term, frequency=len(ids), document_ids=ids, description=description),
        )
    return themes


def extract_methodologies(documents: Sequence[Document]) -> list[Methodology]:
    found = []
    for signature in METHOD_CATALOG:
        ids = [
            document.id
            for document in documents
            if any(keyword in document.full_text.lower() for keyword in signature.keywords)
        ]
        if ids:
            found.append(
                Methodology(
                    name=signature.name,
                    category=signature.category,
                    document_ids=ids,
                    description=f"Used in {len(ids)} of {len(documents)} documents",
                ),
            )
    found.sort(key=lambda method: (-len(method.document_ids), method.name))
    return found


def identify_gaps(
    documents: Sequence[Document],
    question: str,
    *,
    methodologies: Sequence[Methodology] | None = None,
    now: datetime | None = None,
) -> list[ResearchGap]:
    """Compare question terms, method categories and publication years with the corpus.

    ``methodologies`` of ``None`` means they were not analysed, so no
    method-category gaps are reported. Gaps are sorted by impact, highest first.
    """

    gaps: list[ResearchGap] = []
    term_documents = {document.id: set(keywords(document.full_text)) for document in documents}

    for term in dict.fromkeys(keywords(question)):
        ids = [doc_id for doc_id, terms in term_documents.items() if term in terms]
        if not ids:
            gaps.append(
                ResearchGap(
                    gap=f"No reviewed document addresses '{term}'",
                    reasoning=f"The research question mentions '{term}' but none of the "
                    f"{len(documents)} documents discuss it.",
                    impact_score=9,
                    kind="uncovered_term",
                    focus=term,
                ),
            )
        elif len(ids) == 1 and len(documents) > 1:
            gaps.append(
                ResearchGap(
                    gap=f"'{term}' is examined by a single document",
                    reasoning="Findings that rest on one source have not been corroborated.",
                    impact_score=7,
                    related_documents=ids,
                    kind="single_source",
                    focus=term,
                ),
            )

    if methodologies is not None:
        covered = {method.category for method in methodologies}
        for category in METHOD_CATEGORIES:
            if category not in covered:
                gaps.append(
                    ResearchGap(
                        gap=f"No {category} studies among the reviewed documents",
                        reasoning=f"The document set lacks {category} evidence, which limits "
                        "methodological triangulation.",
                        impact_score=6,
                        kind="method_category",
                        focus=category,
                    ),
                )

    years = [document.year for document in documents if document.year is not None]
    current_year = (now or datetime.now(tz=UTC)).year
    if years and max(years) < current_year - RECENCY_YEARS:
        since = max(years)
        gaps.append(
            ResearchGap(
                gap=f"No work published after {since} is represented",
                reasoning=f"The most recent document dates from {since}; newer developments "
                "are not reflected.",
                impact_score=5,
                related_documents=[document.id for document in documents if document.year == since],
                kind="recency",
                focus=str(since),
            ),
        )

    if len(documents) < 3:
        gaps.append(
            ResearchGap(
                gap=f"Evidence base is limited to {len(documents)} document(s)",
                reasoning="A small corpus cannot establish consensus or expose disagreements.",
                impact_score=4,
                related_documents=[document.id for document in documents],
                kind="small_corpus",
            ),
        )

    gaps.sort(key=lambda gap: -gap.impact_score)
    return gaps[:MAX_GAPS]


def suggest_questions(question: str, gaps: Sequence[ResearchGap]) -> list[SuggestedQuestion]:
    core = question.strip().rstrip("?").strip()
    suggestions: list[SuggestedQuestion] = []
    seen: set[str] = set()
    for gap in gaps:
        suggestion = _question_for_gap(core, gap)
        if suggestion.question in seen:
            continue
        seen.add(suggestion.question)
        suggestions.append(suggestion)
        if len(suggestions) == MAX_QUESTIONS:
            break
    if not suggestions:
        suggestions.append(
            SuggestedQuestion(
                question=f"Which open problems remain for: {core}?",
                rationale="The reviewed documents cover the question's terms; a deeper "
                "comparison of their conclusions is the next step.",
                suggested_methods=["Systematic literature review"],
            ),
        )
    return suggestions


def _question_for_gap(core: str, gap: ResearchGap) -> SuggestedQuestion:
    if gap.kind == "uncovered_term":
        return SuggestedQuestion(
            question=f"What role does {gap.focus} play in: {core}?",
            rationale=gap.reasoning,
            suggested_methods=["Systematic literature review", "Exploratory case study"],
        )
    if gap.kind == "single_source":
        return SuggestedQuestion(
            question=f"Do findings on {gap.focus} hold beyond a single study?",
            rationale=gap.reasoning,
            suggested_methods=["Replication study", "Meta-analysis"],
        )
    if gap.kind == "method_category":
        methods = [sig.name for sig in METHOD_CATALOG if sig.category == gap.focus]
        return SuggestedQuestion(
            question=f"What would a {gap.focus} study reveal about: {core}?",
            rationale=gap.reasoning,
            suggested_methods=methods,
        )
    if gap.kind == "recency":
        return SuggestedQuestion(
            question=f"How have developments since {gap.focus} changed the answer to: {core}?",
            rationale=gap.reasoning,
            suggested_methods=["Updated literature review"],
        )
    return SuggestedQuestion(
        question=f"Which additional sources would strengthen the evidence on: {core}?",
        rationale=gap.reasoning,
        suggested_methods=["Systematic literature review"],
    )


def render_report(
    *,
    question: str,
    overview: dict[str, Any],
    themes: Sequence[Theme],
    methodologies: Sequence[Methodology],
    gaps: Sequence[ResearchGap],
    questions: Sequence[SuggestedQuestion],
    failures: Sequence[ErrorDetail] = (),
    version: str = "1.0.0",
    now: datetime | None = None,
) -> str:
    generated = (now or datetime.now(tz=UTC)).isoformat(timespec="seconds")
    years = overview["year_range"]
    lines = [
        "# Research Synthesis Report",
        "",
        f"**Research Question:** {question}",
        "",
        f"**Generated:** {generated}",
        "",
        f"**Documents Analyzed:** {overview['total_documents']}",
        "",
        "---",
        "",
        "## Literature Overview",
        "",
        f"**Year Range:** {years['earliest'] or 'unknown'} - {years['latest'] or 'unknown'}",
        "",
        "## Key Documents",
        "",
    ]
    for entry in overview["documents"]:
        authors = ", ".join(entry["authors"][:3]) or "Unknown"
        citation = f"{authors} ({entry['year'] or 'n.d.'})"
        lines += [f"### {entry['title']}", "", f"**Citation:** {citation}", ""]
        if entry["doi"]:
            lines += [f"**DOI:** [{entry['doi']}](https://doi.org/{entry['doi']})", ""]
        lines += [entry["summary"] or "No summary available.", ""]

    if themes:
        lines += ["## Common Themes", ""]
        for theme in themes:
            lines.append(f"- **{theme.theme}**: {theme.description}")
        lines.append("")

    if methodologies:
        lines += [
            "## Methodological Approaches",
            "",
            "| Methodology | Category | Documents | Description |",
            "|------------|----------|-----------|-------------|",
        ]
        for method in methodologies:
            lines.append(
                f"| {method.name} | {method.category} | {len(method.document_ids)} | "
                f"{method.description} |",
            )
        lines.append("")

    lines += ["## Identified Research Gaps", ""]
    if not gaps:
        lines += ["No gaps identified.", ""]
    for index, gap in enumerate(gaps, start=1):
        lines += [
            f"{index}. **{gap.gap}** (Impact: {gap.impact_score}/10)",
            f"   - **Reasoning:** {gap.reasoning}",
            f"   - **Related Documents:** {len(gap.related_documents)}",
            "",
        ]

    lines += ["## Suggested Research Questions", ""]
    for index, suggestion in enumerate(questions, start=1):
        lines += [
            f"{index}. **{suggestion.question}**",
            f"   - **Rationale:** {suggestion.rationale}",
            f"   - **Suggested Methods:** {', '.join(suggestion.suggested_methods)}",
            "",
        ]

    if failures:
        lines += ["## Sources Not Analyzed", ""]
        for failure in failures:
            lines.append(f"- `{failure.source}`: {failure.message} ({failure.code})")
        lines.append("")

    lines += ["---", "", f"*Generated by Research Synthesis v{version}*", ""]
    return "\n".join(lines)
