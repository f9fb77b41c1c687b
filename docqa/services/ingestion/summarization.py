"""Abstract and keyword generation for ingested documents.

Two strategies sit behind one interface: ``LLMSummarizer`` asks a chat model
for an abstract and weighted keywords, ``FrequencySummarizer`` derives
keywords from word and phrase frequencies without any network call.
Neither raises; a failed summary degrades to no abstract and no keywords.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from functools import cmp_to_key
import json
import logging
import math
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from openai import AsyncOpenAI

from docqa.core.config import settings
from docqa.services.ingestion.chunking import Chunk

logger = logging.getLogger(__name__)

MIN_WORD_LENGTH = 3
MIN_FREQUENCY = 1
PHRASE_BOOST = 1.5
# Weights closer than this let phrases sort ahead of single words
PHRASE_TIE_WINDOW = 0.1

STOP_WORDS = frozenset("""
a an and are as at be by for from has he in is it its of on that the to was were will with this
but they have had what said each which their time if up out many then them these so some her
would make like into him two more very after words long than first been call who oil sit now
find down day did get come made may part over new sound take only little work know place year
live me back give most thing our just name good sentence man think say great where help through
much before line right too mean old any same tell boy follow came want show also around form
three small set put end does another well large must big even such because turn here why ask
went men read need land different home us move try kind hand picture again change off play spell
air away animal house point page letter mother answer found study still learn should america
world how not can when there accessed use used using uses see one all do done doing go gone going
got getting saw seen seeing making makes took taken taking takes coming comes
""".split())

URL_SCHEME_REGEX = re.compile(r"^[a-z]+://", re.IGNORECASE)
HAS_LETTER_REGEX = re.compile(r"[a-z]", re.IGNORECASE)
PUNCTUATION_REGEX = re.compile(r"[^\w\s-]")


@dataclass
class DocumentSummary:
    abstract: Optional[str] = None
    keywords: List[Dict[str, Any]] = field(default_factory=list)
    method: str = "none"


def combine_chunks(chunks: Sequence[Chunk], limit: Optional[int] = None) -> str:
    """Join non-empty chunk contents with blank lines."""
    selected = chunks[:limit] if limit else chunks
    return "\n\n".join(c.content for c in selected if c.content and c.content.strip())


def _is_phrase(term: str) -> bool:
    return " " in term


def _compare_keywords(a: Dict[str, Any], b: Dict[str, Any]) -> int:
    if abs(a["weight"] - b["weight"]) < PHRASE_TIE_WINDOW:
        if _is_phrase(a["term"]) and not _is_phrase(b["term"]):
            return -1
        if not _is_phrase(a["term"]) and _is_phrase(b["term"]):
            return 1
    if b["weight"] > a["weight"]:
        return 1
    if b["weight"] < a["weight"]:
        return -1
    return 0


def rank_keywords(keywords: List[Dict[str, Any]], max_keywords: int) -> List[Dict[str, Any]]:
    """Sort by weight, keep the top terms, then let phrases win near-ties."""
    top = sorted(keywords, key=lambda k: k["weight"], reverse=True)[:max_keywords]
    return sorted(top, key=cmp_to_key(_compare_keywords))


class Summarizer(ABC):
    """Produces an abstract and weighted keywords for a chunked document."""

    @abstractmethod
    async def summarize(self, chunks: Sequence[Chunk], title: str) -> DocumentSummary:
        ...


class FrequencySummarizer(Summarizer):
    """Keyword extraction by word and phrase frequency. No abstract."""

    def __init__(self, max_keywords: int = 30):
        self.max_keywords = max_keywords

    @staticmethod
    def tokenize(text: str) -> List[str]:
        words = PUNCTUATION_REGEX.sub(" ", text.lower()).split()
        tokens = []
        for word in words:
            if word.startswith(("http", "www")) or "://" in word or URL_SCHEME_REGEX.match(word):
                continue
            if word.isdigit() or not HAS_LETTER_REGEX.search(word):
                continue
            if len(word) < MIN_WORD_LENGTH or word in STOP_WORDS:
                continue
            tokens.append(word)
        return tokens

    @staticmethod
    def count_phrases(words: List[str]) -> Dict[str, int]:
        phrases: Dict[str, int] = {}
        for size in (2, 3):
            for i in range(len(words) - size + 1):
                phrase = " ".join(words[i:i + size])
                phrases[phrase] = phrases.get(phrase, 0) + 1
        return phrases

    @staticmethod
    def normalize_weights(frequencies: Dict[str, float]) -> Dict[str, float]:
        """Scale frequencies linearly into [0.1, 1.0], rounded to 2 decimals."""
        if not frequencies:
            return {}
        low, high = min(frequencies.values()), max(frequencies.values())
        spread = high - low
        if spread == 0:
            return {term: 0.5 for term in frequencies}
        return {
            term: round(0.1 + ((freq - low) / spread) * 0.9, 2)
            for term, freq in frequencies.items()
        }

    def generate_keywords(self, chunks: Sequence[Chunk]) -> List[Dict[str, Any]]:
        text = combine_chunks(chunks)
        if not text.strip():
            return []

        words = self.tokenize(text)
        if not words:
            return []

        terms: Dict[str, float] = {}
        for word in words:
            terms[word] = terms.get(word, 0) + 1
        terms = {term: freq for term, freq in terms.items() if freq >= MIN_FREQUENCY}

        for phrase, freq in self.count_phrases(words).items():
            if freq >= MIN_FREQUENCY:
                terms[phrase] = math.ceil(freq * PHRASE_BOOST)

        weights = self.normalize_weights(terms)
        keywords = [{"term": term.strip(), "weight": weight} for term, weight in weights.items() if term.strip()]
        return rank_keywords(keywords, self.max_keywords)

    async def summarize(self, chunks: Sequence[Chunk], title: str) -> DocumentSummary:
        try:
            keywords = self.generate_keywords(chunks)
        except Exception as e:
            logger.error(f"Frequency keyword generation failed for '{title}': {e}", exc_info=True)
            keywords = []
        logger.info(f"Generated {len(keywords)} frequency keywords for '{title}'")
        return DocumentSummary(abstract=None, keywords=keywords, method="frequency")


class LLMSummarizer(Summarizer):
    """Abstract and keywords from chat completions."""

    ABSTRACT_SYSTEM_PROMPT = (
        "You are an expert at creating concise, informative abstracts from document content. "
        "Create a 100-word abstract that captures the key themes, purpose, and scope of the document."
    )
    KEYWORD_SYSTEM_PROMPT = (
        "You are an expert at analyzing document content and extracting key terms and concepts. "
        "Identify the most important keywords, phrases, and concepts that would be useful for a word "
        "cloud visualization. Focus on domain-specific terms, key concepts, and important topics. "
        "Always respond with valid JSON."
    )

    def __init__(
        self,
        client: Optional[AsyncOpenAI] = None,
        abstract_model: Optional[str] = None,
        keyword_model: Optional[str] = None,
        max_chunks: Optional[int] = None,
        max_chars: Optional[int] = None,
        keyword_batch_chars: Optional[int] = None,
        max_keywords: Optional[int] = None,
    ):
        self.client = client or AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        self.abstract_model = abstract_model or settings.ABSTRACT_MODEL
        self.keyword_model = keyword_model or settings.KEYWORD_MODEL
        self.max_chunks = max_chunks or settings.ABSTRACT_MAX_CHUNKS
        self.max_chars = max_chars or settings.ABSTRACT_MAX_CHARS
        self.keyword_batch_chars = keyword_batch_chars or settings.KEYWORD_BATCH_MAX_CHARS
        self.max_keywords = max_keywords or settings.MAX_KEYWORDS

    def abstract_input(self, chunks: Sequence[Chunk]) -> str:
        text = combine_chunks(chunks, self.max_chunks)
        if len(text) > self.max_chars:
            return text[:self.max_chars] + "..."
        return text

    async def generate_abstract(self, chunks: Sequence[Chunk], title: str) -> Optional[str]:
        text = self.abstract_input(chunks)
        if not text:
            return None
        try:
            response = await self.client.chat.completions.create(
                model=self.abstract_model,
                messages=[
                    {"role": "system", "content": self.ABSTRACT_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": (
                            f'Please create a 100-word abstract for a document titled "{title}". '
                            f"Base your abstract on the following content from the document:\n\n{text}\n\n"
                            "Provide ONLY the abstract text, no additional commentary. "
                            "The abstract should be exactly 100 words."
                        ),
                    },
                ],
                temperature=0.7,
                max_tokens=200,
            )
            content = response.choices[0].message.content if response.choices else None
        except Exception as e:
            logger.error(f"Abstract generation failed for '{title}': {e}")
            return None

        if not content or not content.strip():
            logger.warning(f"Empty abstract returned for '{title}'")
            return None
        return content.strip()

    def keyword_batches(self, chunks: Sequence[Chunk]) -> List[List[Chunk]]:
        batches: List[List[Chunk]] = []
        current: List[Chunk] = []
        size = 0
        for chunk in chunks:
            length = len(chunk.content)
            if current and size + length > self.keyword_batch_chars:
                batches.append(current)
                current, size = [], 0
            current.append(chunk)
            size += length + 2
        if current:
            batches.append(current)
        return batches

    @staticmethod
    def parse_keywords(content: Optional[str]) -> List[Dict[str, Any]]:
        """Parse a JSON keyword response, tolerating prose around the object."""
        if not content:
            return []
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError:
            match = re.search(r"\{.*\}", content, re.DOTALL)
            if not match:
                return []
            try:
                parsed = json.loads(match.group(0))
            except json.JSONDecodeError:
                return []

        if not isinstance(parsed, dict):
            return []
        raw = parsed.get("keywords") or parsed.get("keyword") or []
        if not isinstance(raw, list):
            return []

        keywords = []
        for item in raw:
            if not isinstance(item, dict):
                continue
            term = item.get("term") or item.get("word") or item.get("text") or ""
            if not isinstance(term, str) or not term.strip():
                continue
            weight = item.get("weight")
            if isinstance(weight, (int, float)) and not isinstance(weight, bool):
                weight = max(0.1, min(1.0, float(weight)))
            else:
                weight = 0.5
            keywords.append({"term": term.strip().lower(), "weight": weight})
        return keywords

    def merge_keyword_batches(self, batches: Iterable[List[Dict[str, Any]]]) -> List[Dict[str, Any]]:
        """Average duplicate terms across batches and re-normalize the top terms."""
        merged: Dict[str, Dict[str, float]] = {}
        for batch in batches:
            for keyword in batch:
                term = keyword["term"]
                entry = merged.get(term)
                if entry:
                    entry["weight"] = (entry["weight"] * entry["count"] + keyword["weight"]) / (entry["count"] + 1)
                    entry["count"] += 1
                else:
                    merged[term] = {"weight": keyword["weight"], "count": 1}

        boosted = []
        for term, entry in merged.items():
            boost = min(0.5, (entry["count"] - 1) * 0.05)
            boosted.append({"term": term, "weight": min(1.0, entry["weight"] * (1 + boost))})
        boosted.sort(key=lambda k: k["weight"], reverse=True)
        boosted = boosted[:self.max_keywords]

        if not boosted:
            return []
        low = min(k["weight"] for k in boosted)
        high = max(k["weight"] for k in boosted)
        spread = high - low
        if spread == 0:
            return [{"term": k["term"], "weight": 0.5} for k in boosted]
        return [
            {"term": k["term"], "weight": round(0.1 + ((k["weight"] - low) / spread) * 0.9, 2)}
            for k in boosted
        ]

    async def generate_keywords(self, chunks: Sequence[Chunk], title: str) -> List[Dict[str, Any]]:
        batches = self.keyword_batches(chunks)
        results = []
        for number, batch in enumerate(batches, start=1):
            text = combine_chunks(batch)
            try:
                response = await self.client.chat.completions.create(
                    model=self.keyword_model,
                    messages=[
                        {"role": "system", "content": self.KEYWORD_SYSTEM_PROMPT},
                        {
                            "role": "user",
                            "content": (
                                "Analyze the following document content and extract 20-30 key terms, phrases, "
                                "and concepts that best represent this document section. For each term, assign "
                                "a weight from 0.1 to 1.0 based on its importance.\n\n"
                                f'Document title: "{title}"\n\n'
                                f"Content (batch {number}/{len(batches)}):\n{text}\n\n"
                                'Return a JSON object with a "keywords" property containing an array of objects, '
                                'each with "term" (string) and "weight" (number) properties.'
                            ),
                        },
                    ],
                    temperature=0.7,
                    max_tokens=800,
                    response_format={"type": "json_object"},
                )
                content = response.choices[0].message.content if response.choices else None
            except Exception as e:
                logger.error(f"Keyword batch {number}/{len(batches)} failed for '{title}': {e}")
                continue
            results.append(self.parse_keywords(content))

        return self.merge_keyword_batches(results)

    async def summarize(self, chunks: Sequence[Chunk], title: str) -> DocumentSummary:
        abstract = await self.generate_abstract(chunks, title)
        try:
            keywords = await self.generate_keywords(chunks, title)
        except Exception as e:
            logger.error(f"Keyword generation failed for '{title}': {e}", exc_info=True)
            keywords = []
        logger.info(
            f"Summarized '{title}': abstract={'yes' if abstract else 'no'}, {len(keywords)} keywords"
        )
        return DocumentSummary(abstract=abstract, keywords=keywords, method="llm")


def get_summarizer(strategy: Optional[str] = None) -> Summarizer:
    """Build the configured summarizer strategy."""
    strategy = (strategy or settings.SUMMARIZER_STRATEGY).lower()
    if strategy == "frequency":
        return FrequencySummarizer(max_keywords=settings.MAX_KEYWORDS)
    if strategy == "llm":
        return LLMSummarizer()
    raise ValueError(f"Unknown summarizer strategy: {strategy}")
