from __future__ import annotations

from rto_validator.prompts.store import PromptTemplate
from rto_validator.requirements.models import Requirement
from rto_validator.storage.models import ValidationSession

SMART_QUESTION_TYPES = frozenset({"knowledge_evidence"})


def build_session_context(session: ValidationSession) -> str:
    """Header that pins the model to this session's own documents."""
    document_names = [document.file_name for document in session.documents]
    lines = [
        "VALIDATION SESSION CONTEXT",
        f"Session ID: {session.id}",
        f"Session created: {session.created_at}",
        f"Unit code: {session.unit_code}",
        f"RTO code: {session.rto_code or 'unknown'}",
        f"Documents in this session ({len(document_names)}):",
    ]
    lines.extend(f"- {name}" for name in document_names)
    lines.append(
        "Only use and cite content from the documents listed above. Ignore any "
        "other document, including ones from earlier validation sessions."
    )
    return "\n".join(lines)


def render_template(
    prompt_text: str,
    *,
    requirement: Requirement,
    session: ValidationSession,
) -> str:
    replacements = {
        "{{requirement_number}}": requirement.number,
        "{{requirement_text}}": requirement.text,
        "{{requirement_type}}": requirement.display_type,
        "{{unit_code}}": session.unit_code,
        "{{unit_title}}": str(requirement.metadata.get("unit_title") or ""),
        "{{document_type}}": session.document_type,
    }
    rendered = prompt_text
    for placeholder, value in replacements.items():
        rendered = rendered.replace(placeholder, value)
    return rendered


def output_format_instruction(requirement: Requirement) -> str:
    question_field = (
        "smart_question" if requirement.type in SMART_QUESTION_TYPES else "smart_task"
    )
    return "\n".join(
        [
            "Respond with a single JSON object with these fields:",
            '- "status": one of "Met", "Partially Met", "Not Met"',
            '- "reasoning": why the documents do or do not meet the requirement',
            '- "mapped_content": the document content that addresses it',
            '- "citations": array of {"document": ..., "page": ..., "excerpt": ...}',
            f'- "{question_field}": a question or task that would close any gap',
            '- "benchmark_answer": the expected learner response',
            '- "unmapped_content": what is missing, if anything',
        ]
    )


def build_validation_prompt(
    template: PromptTemplate,
    *,
    requirement: Requirement,
    session: ValidationSession,
) -> str:
    body = render_template(
        template.prompt_text, requirement=requirement, session=session
    )
    return "\n\n".join(
        [
            build_session_context(session),
            body,
            output_format_instruction(requirement),
        ]
    )
