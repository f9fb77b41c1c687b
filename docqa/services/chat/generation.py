"""Prompt assembly and chat completion calls.

Every model is reached through the openai SDK: Gemini through its
OpenAI-compatible endpoint, Grok through the xAI API.
"""

import logging
from typing import AsyncIterator, Dict, List, Mapping, Optional, Sequence

from openai import AsyncOpenAI

from docqa.core.config import settings
from docqa.schemas.chat import HistoryMessage
from docqa.services.chat.models import provider_model_name
from docqa.services.retrieval.retriever import RetrievedChunk

logger = logging.getLogger(__name__)

EXCERPT_SEPARATOR = "\n\n---\n\n"

SINGLE_CITATION_FORMAT = (
    "Look for [Page X] markers in the text. For single-document searches, your references should "
    'include the page number. Example: "Drug X is indicated[1]. Dosage is 100mg[2].\n\n---\n\n'
    '**References**\n[1] Page 15\n[2] Page 45"'
)

MULTI_CITATION_FORMAT = (
    "Look for [Page X] and [Source: Document Name] markers in the text. For multi-document searches, "
    "your references MUST include both the source document name AND page number. Example: "
    '"Drug X is indicated[1]. Dosage is 100mg[2].\n\n---\n\n**References**\n'
    '[1] Manual A, Page 15\n[2] Manual B, Page 42"'
)

CONFLICT_INSTRUCTIONS = """
6. **CRITICAL FOR MULTI-DOCUMENT SEARCHES**: If you notice CONFLICTING or CONTRADICTORY information between the sources:
   - Explicitly state that "Different recommendations exist between sources" or similar
   - Present BOTH perspectives clearly with their respective source citations
   - If publication years are mentioned or implied, note which guideline is more recent
   - Do NOT try to reconcile or choose between conflicts - present them transparently
   - If differences are due to context (e.g., different patient populations), explain the distinction"""

GEMINI_STYLE = """

RESPONSE STYLE - STRICTLY FOLLOW:
- Use markdown tables when presenting structured data
- Present information in the most compact, scannable format
- Lead with the direct answer, then provide details
- **MANDATORY**: Include footnotes [1], [2], etc. for EVERY claim with references at response end"""

GROK_STYLE = """

RESPONSE STYLE - STRICTLY FOLLOW:
- ALWAYS add a brief introductory sentence explaining the context
- When presenting factual data, include WHY it matters
- Use more descriptive language - explain, don't just list
- **MANDATORY**: Include footnotes [1], [2], etc. for EVERY claim with references at response end"""


def document_display_name(titles: Sequence[str]) -> str:
    titles = [t for t in titles if t]
    if not titles:
        return "the provided documents"
    return " and ".join(titles)


def build_context(
    chunks: Sequence[RetrievedChunk],
    titles_by_slug: Mapping[str, str],
    multi_document: bool,
) -> str:
    """Excerpts as ``content [Page N] [Source: title]`` joined by separators."""
    excerpts = []
    for chunk in chunks:
        page = f" [Page {chunk.page_number}]" if chunk.page_number else ""
        source = ""
        if multi_document:
            source = f" [Source: {titles_by_slug.get(chunk.document_slug, chunk.document_slug)}]"
        excerpts.append(f"{chunk.content}{page}{source}")
    return EXCERPT_SEPARATOR.join(excerpts)


def build_system_prompt(doc_name: str, context: str, multi_document: bool, model: str) -> str:
    """System prompt restricting answers to the excerpts, with citation rules."""
    subject = f"multiple documents: {doc_name}" if multi_document else f"the {doc_name}"
    citation_format = MULTI_CITATION_FORMAT if multi_document else SINGLE_CITATION_FORMAT
    reference_rule = (
        "**FOR MULTI-DOCUMENT**: References MUST include source document name AND page (e.g., [1] Manual A, Page 15)"
        if multi_document
        else "Extract page numbers from [Page X] markers for citations (e.g., [1] Page 15)"
    )
    conflicts = CONFLICT_INSTRUCTIONS if multi_document else ""

    prompt = f"""You are a helpful assistant that answers questions based on {subject}.

***CRITICAL FORMATTING REQUIREMENT: You MUST include footnotes [1], [2], etc. for EVERY claim/fact in your response, with references at the end. {citation_format}***

IMPORTANT RULES:
1. Answer questions ONLY using information from the provided relevant excerpts below
2. If the answer is not in the excerpts, say "I don't have that information in the provided sections of the {doc_name}"
3. Be concise and professional
4. If you're unsure, admit it rather than guessing
5. Do NOT mention chunk numbers or reference which excerpt information came from{conflicts}

FORMATTING RULES:
- Use **bold** for important terms and section titles
- Use bullet points (- or *) for lists
- Use numbered lists (1., 2., 3.) for sequential steps
- Keep paragraphs short and scannable
- **MANDATORY**: Use footnotes [1], [2], etc. for EVERY claim or fact
- **MANDATORY**: Provide numbered references at the end of EVERY response
- {reference_rule}

RELEVANT EXCERPTS FROM {doc_name.upper()}:
---
{context}
---"""
    return prompt + (GEMINI_STYLE if model == "gemini" else GROK_STYLE)


def build_messages(system_prompt: str, history: Sequence[HistoryMessage], message: str) -> List[Dict[str, str]]:
    messages = [{"role": "system", "content": system_prompt}]
    for item in history:
        messages.append({"role": "user" if item.role == "user" else "assistant", "content": item.content})
    messages.append({"role": "user", "content": message})
    return messages


class ChatGenerator:
    """Buffered and streamed completions for the configured chat models."""

    def __init__(
        self,
        gemini_client: Optional[AsyncOpenAI] = None,
        xai_client: Optional[AsyncOpenAI] = None,
        temperature: Optional[float] = None,
    ):
        self._gemini_client = gemini_client
        self._xai_client = xai_client
        self.temperature = settings.CHAT_TEMPERATURE if temperature is None else temperature

    def _client(self, model: str) -> AsyncOpenAI:
        if model == "gemini":
            if self._gemini_client is None:
                self._gemini_client = AsyncOpenAI(api_key=settings.GEMINI_API_KEY, base_url=settings.GEMINI_BASE_URL)
            return self._gemini_client
        if self._xai_client is None:
            self._xai_client = AsyncOpenAI(api_key=settings.XAI_API_KEY, base_url=settings.XAI_BASE_URL)
        return self._xai_client

    async def generate(self, model: str, messages: List[Dict[str, str]]) -> str:
        """Full response text for ``messages``."""
        model_name = provider_model_name(model)
        logger.info(f"Generating with {model_name}")
        completion = await self._client(model).chat.completions.create(
            model=model_name,
            messages=messages,
            temperature=self.temperature,
        )
        return completion.choices[0].message.content or ""

    async def stream(self, model: str, messages: List[Dict[str, str]]) -> AsyncIterator[str]:
        """Yield non-empty response fragments as they arrive."""
        model_name = provider_model_name(model)
        logger.info(f"Streaming with {model_name}")
        stream = await self._client(model).chat.completions.create(
            model=model_name,
            messages=messages,
            temperature=self.temperature,
            stream=True,
        )
        async for event in stream:
            if not event.choices:
                continue
            content = event.choices[0].delta.content
            if content:
                yield content
