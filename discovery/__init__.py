"""
Discovery - conversational "who knows what" search

Retrieval-augmented chat over an organization's people, projects and posts:
- Retriever: query parsing, multi-strategy search, result fusion
- Responder: sufficiency scoring, gap detection, answer synthesis
- Server: bounded augmentation loop and SSE streaming
"""

__version__ = "0.1.0"
