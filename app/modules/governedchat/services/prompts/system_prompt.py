from typing import Iterable

from app.modules.governedchat.services.retrieval.retriever import RetrievedDocument

# Each source is rendered "[filename]: information" so citations match filenames.
DOCUMENT_TMPL = "[{source}]: {page_content}\n"


def format_document(document: RetrievedDocument) -> str:
    return DOCUMENT_TMPL.format(source=document.source, page_content=document.content)


def format_sources(documents: Iterable[RetrievedDocument]) -> str:
    return "\n".join(format_document(d) for d in documents)


def build_rag_system_prompt(template: str, documents: Iterable[RetrievedDocument]) -> str:
    """
    Injects the rendered sources into the ``{context}`` slot of the template.
    str.replace keeps any other braces in a configured template literal.
    """
    return template.replace("{context}", format_sources(documents))
