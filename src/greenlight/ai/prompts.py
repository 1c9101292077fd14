"""Prompt templates for the structuring, categorization and Q&A calls.

Every builder returns an OpenAI-style message list ready for
``LLMClient.complete()``.
"""

from __future__ import annotations

from enum import Enum


class DocumentDomain(str, Enum):
    """Closed set of document types the classifier may pick from."""

    DEFAULT_SOP = "DEFAULT_SOP"
    TECHNICAL_GUIDE = "TECHNICAL_GUIDE"
    POLICY = "POLICY"
    MEETING_NOTES = "MEETING_NOTES"
    FAQ = "FAQ"
    TROUBLESHOOTING = "TROUBLESHOOTING"
    ONBOARDING = "ONBOARDING"
    AI_DETERMINED = "AI_DETERMINED"


_DOMAIN_DESCRIPTIONS: dict[DocumentDomain, str] = {
    DocumentDomain.DEFAULT_SOP: "step-by-step standard operating procedure",
    DocumentDomain.TECHNICAL_GUIDE: "technical how-to or system documentation",
    DocumentDomain.POLICY: "company policy, rules or guidelines",
    DocumentDomain.MEETING_NOTES: "meeting notes, decisions and action items",
    DocumentDomain.FAQ: "frequently asked questions with answers",
    DocumentDomain.TROUBLESHOOTING: "problem symptoms, causes and fixes",
    DocumentDomain.ONBOARDING: "onboarding material for new team members",
    DocumentDomain.AI_DETERMINED: "none of the above; a unique document type",
}

# Section skeleton the structuring call must follow, per known domain.
_DOMAIN_TEMPLATES: dict[DocumentDomain, str] = {
    DocumentDomain.DEFAULT_SOP: "Title, Purpose, Scope, Procedure (numbered steps), Notes, Summary",
    DocumentDomain.TECHNICAL_GUIDE: "Title, Overview, Prerequisites, Instructions, Examples, Summary",
    DocumentDomain.POLICY: "Title, Purpose, Policy Statement, Responsibilities, Exceptions, Summary",
    DocumentDomain.MEETING_NOTES: "Title, Attendees, Discussion, Decisions, Action Items, Summary",
    DocumentDomain.FAQ: "Title, Overview, Questions and Answers (### per question), Summary",
    DocumentDomain.TROUBLESHOOTING: "Title, Symptoms, Causes, Resolution Steps, Escalation, Summary",
    DocumentDomain.ONBOARDING: "Title, Welcome, First Steps, Resources, Contacts, Summary",
}

_STRUCTURING_GUIDELINES = """\
Guidelines:
- Create clear headings and sections
- Maintain factual accuracy
- Remove redundant information
- Use proper markdown formatting
- Preserve important details and context
- Ensure the content flows logically"""


def classification_messages(raw_content: str) -> list[dict]:
    options = "\n".join(f"- {d.value}: {desc}" for d, desc in _DOMAIN_DESCRIPTIONS.items())
    return [
        {
            "role": "system",
            "content": (
                "You classify internal business content by document type.\n"
                f"Choose exactly one label:\n{options}\n\n"
                "Respond with the label only, no explanation."
            ),
        },
        {"role": "user", "content": f"Classify this content:\n\n{raw_content[:4000]}"},
    ]


def structuring_messages(
    domain: DocumentDomain,
    source_content: list[str],
    source_type: str,
    redacted_entities: int = 0,
) -> list[dict]:
    """Fixed-template prompt for a known domain, open-ended for AI_DETERMINED."""
    joined = "\n\n---\n\n".join(source_content)
    pii_note = f"The content has been processed for PII removal ({redacted_entities} entities found)."

    if domain == DocumentDomain.AI_DETERMINED:
        system = (
            "You are an expert technical writer. The following content does not fit a standard "
            "document type. Decide the most useful structure for it yourself and produce a "
            f"well-organized markdown document.\n\n{_STRUCTURING_GUIDELINES}\n\n{pii_note}"
        )
        user = (
            f"Structure the following content from {len(source_content)} {source_type} source(s):\n\n"
            f"{joined}\n\n"
            "Start with a '# ' title, choose whatever sections best serve a reader, "
            "and end with a '## Summary' section. Return only the markdown document."
        )
    else:
        system = (
            f"You are an expert content structurer. Turn raw {source_type} content into a "
            f"{_DOMAIN_DESCRIPTIONS[domain]}.\n\n{_STRUCTURING_GUIDELINES}\n\n{pii_note}"
        )
        user = (
            f"Structure the following content from {len(source_content)} source(s):\n\n"
            f"{joined}\n\n"
            f"Use these sections: {_DOMAIN_TEMPLATES[domain]}.\n"
            "Start with a '# ' title. Return only the structured content in markdown format."
        )
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


def topic_messages(content: str, existing_topics: list[str] | None = None) -> list[dict]:
    existing = ""
    if existing_topics:
        existing = f"\n\nExisting topics in the system: {', '.join(existing_topics)}"
    return [
        {
            "role": "system",
            "content": (
                "You are a topic classification expert. Analyze content and identify 2-5 relevant "
                "topics that best categorize the document.\n\n"
                "Rules:\n"
                "- Return topics as a JSON array of strings\n"
                "- Use existing topics when appropriate\n"
                "- Topics should be concise (1-3 words)"
                f"{existing}"
            ),
        },
        {
            "role": "user",
            "content": (
                f"Analyze this content and identify the most relevant topics:\n\n{content}\n\n"
                'Return only a JSON array, for example: ["HR Policy", "Remote Work", "Benefits"]'
            ),
        },
    ]


def question_answering_messages(question: str, context: str) -> list[dict]:
    return [
        {
            "role": "system",
            "content": (
                "You are a helpful assistant that answers questions based on provided context documents.\n\n"
                "Guidelines:\n"
                "- Only use information from the provided context\n"
                "- If you don't have enough information, say so clearly\n"
                "- Cite which documents you're referencing when possible\n"
                "- Be concise but comprehensive"
            ),
        },
        {
            "role": "user",
            "content": (
                f"Question: {question}\n\nContext documents:\n{context}\n\n"
                "Please provide a helpful answer based on the context provided."
            ),
        },
    ]


def category_suggestion_messages(title: str, content: str, existing: list[str]) -> list[dict]:
    return [
        {
            "role": "system",
            "content": (
                "You organize a company knowledge base into categories. Pick the best existing "
                "category for the document, or answer NEW_CATEGORY if none fits.\n\n"
                f"Existing categories: {', '.join(existing)}\n\n"
                'Respond with JSON: {"category": "...", "confidence": 0.0-1.0, "reasoning": "..."}'
            ),
        },
        {"role": "user", "content": f"Title: {title}\n\n{content[:2000]}"},
    ]


def theme_analysis_messages(documents: list[tuple[str, str, str]]) -> list[dict]:
    """*documents* is a list of (id, title, excerpt) tuples."""
    listing = "\n\n".join(f"[{doc_id}] {title}\n{excerpt}" for doc_id, title, excerpt in documents)
    return [
        {
            "role": "system",
            "content": (
                "You group knowledge-base documents into business categories (for example HR, IT, "
                "Finance & Accounting, Operations, Compliance & Legal, Training & Development).\n\n"
                "Respond with a JSON array of objects: "
                '[{"name": "...", "description": "...", "confidence": 0.0-1.0, "document_ids": ["..."]}]'
            ),
        },
        {"role": "user", "content": f"Documents:\n\n{listing}"},
    ]
