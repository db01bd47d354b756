"""
Embedded JSON-LD contexts.

Canonicalization only ever resolves the two contexts below, from the
copies shipped in the contexts/ directory. Any other context URL is
rejected instead of being fetched.
"""

import copy
import json
from functools import lru_cache
from pathlib import Path

from .errors import CanonicalizationError

CREDENTIALS_V2_CONTEXT = "https://www.w3.org/ns/credentials/v2"
OB_V3P0_CONTEXT = "https://purl.imsglobal.org/spec/ob/v3p0/context-3.0.3.json"

# Context URL -> filename in the contexts/ directory
CONTEXT_CACHE = {
    CREDENTIALS_V2_CONTEXT: "credentials-v2.json",
    OB_V3P0_CONTEXT: "ob-v3p0-context-3.0.3.json",
}


def _get_contexts_dir() -> Path:
    return Path(__file__).parent / "contexts"


@lru_cache(maxsize=None)
def _load_context(url: str) -> dict:
    with open(_get_contexts_dir() / CONTEXT_CACHE[url], encoding="utf-8") as f:
        return json.load(f)


def get_context(url: str) -> dict:
    """Return a private copy of an embedded context document."""
    if url not in CONTEXT_CACHE:
        raise CanonicalizationError("Unsupported JSON-LD context", {"context": url})
    return copy.deepcopy(_load_context(url))


def document_loader(url, options=None):
    """PyLD document loader serving only the embedded contexts."""
    return {
        "contentType": "application/ld+json",
        "contextUrl": None,
        "documentUrl": url,
        "document": get_context(url),
    }


def check_contexts(document) -> None:
    """
    Reject documents referencing contexts outside the embedded table.

    Walks the whole document, so nested (embedded) @context values are
    checked too. Inline context objects are rejected as well.
    """
    if isinstance(document, list):
        for item in document:
            check_contexts(item)
        return
    if not isinstance(document, dict):
        return
    for key, value in document.items():
        if key == "@context":
            entries = value if isinstance(value, list) else [value]
            for entry in entries:
                if not isinstance(entry, str) or entry not in CONTEXT_CACHE:
                    raise CanonicalizationError(
                        "Unsupported JSON-LD context", {"context": entry}
                    )
        else:
            check_contexts(value)
