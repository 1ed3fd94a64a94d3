"""Read-only views of the remote convention catalog."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from agentteams.exceptions import ConventionError
from agentteams.schemas.convention import PageMeta

if TYPE_CHECKING:
    from agentteams.client import ConventionClient


def list_conventions(client: ConventionClient) -> dict[str, Any]:
    """Summaries of every convention in catalog order, in the API's ``{data, meta}`` envelope.

    Pages are merged, so ``meta`` describes a single page holding everything.
    """
    data = [
        doc.model_dump(by_alias=True, include={"id", "title", "category", "updated_at", "created_at"})
        for doc in client.fetch_all()
    ]
    meta = PageMeta(total_pages=1, page=1, page_size=len(data))
    return {"data": data, "meta": meta.model_dump(by_alias=True)}


def show_conventions(client: ConventionClient) -> str:
    """Every convention body, each under a small identifying header."""
    catalog = client.fetch_all()
    if not catalog:
        raise ConventionError(
            "No conventions found for this project. Create one via the web dashboard first."
        )

    sections: list[str] = []
    for doc in catalog:
        header = (
            f"# {doc.title or 'untitled'}\n"
            f"category: {doc.category or 'uncategorized'}\n"
            f"id: {doc.id}"
        )
        sections.append(f"{header}\n\n{client.fetch_body(doc.id)}")
    return "\n\n---\n\n".join(sections)
