"""Two-stage question generation: draft candidates, then have the model vet them.

Stage 1 fails closed (no usable draft means no candidates). Stage 2 fails open
(an unusable verdict keeps every draft).
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from .llm import LLMClient

logger = logging.getLogger(__name__)

DRAFT_SYSTEM_PROMPT = "You are a helpful AI tutor that generates JSON output."
REVIEW_SYSTEM_PROMPT = "You are a quality control bot that outputs JSON arrays of indices."

_FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*")


@dataclass(frozen=True)
class Candidate:
    text: str
    options: list[str]
    correct_option_index: int

    def as_payload(self) -> dict:
        return {
            "question": self.text,
            "options": list(self.options),
            "correct_index": self.correct_option_index,
        }


def strip_code_fences(raw: str) -> str:
    return _FENCE_RE.sub("", raw or "").strip()


def _draft_prompt(text: str, study_key: str) -> str:
    return f"""
You are an expert tutor generating active recall questions.
The user is studying: '{study_key}'.

Your goal is to generate as many multiple-choice questions as necessary to cover the key concepts in the text below.
- Do not limit yourself to 3 questions; generate more if the text contains enough information.
- Ensure the questions are NOT REDUNDANT (do not ask the same thing in different ways).
- Use your best judgment to determine the appropriate number of questions.

INPUT HANDLING:
- The user text may be partially malformed, contain "garbage" characters, or be copy-pasted LaTeX that lost formatting.
- Do your best to interpret the intended meaning and reconstruct valid concepts.
- If the text is completely unintelligible, return an empty array.
- It is OK to use LaTeX notation (e.g., $x^2$, $\\sum$) in the questions and options if appropriate and correct.

CRITICAL: Since these questions will be reviewed randomly later, they must be SELF-CONTAINED.
- DO NOT use words like "this theory", "this law", "the text", "here", "above".
- Explicitly state the subject/context in the question text itself.
- Example Bad: "What does this law state?"
- Example Good: "What does Newton's first law state?"
- LANGUAGE: The questions and options MUST be in the SAME LANGUAGE as the User Text.

User Text:
\"\"\"
{text}
\"\"\"

Return ONLY a raw JSON array (no markdown code blocks) of objects with this structure:
[
  {{
    "question": "The question text",
    "options": ["Option A", "Option B", "Option C"],
    "correct_index": 0
  }}
]
"correct_index" is the zero-based index of the correct option in "options".
"""


def _review_prompt(drafts: list[Candidate], source_text: str) -> str:
    listing = json.dumps([c.as_payload() for c in drafts], ensure_ascii=False, indent=2)
    return f"""
You are a strict quality control bot.
You will be given a list of questions generated from a source text.

Your job is to VALIDATE each question for:
1. CONTEXT: Questions must be SELF-CONTAINED. They must NOT refer to "the text", "this paragraph", etc. without naming the subject.
2. CORRECTNESS: The "correct_index" must point to the actually correct option based on the source text provided below.
3. LOGIC: The question and answer must make sense, even if the original text was partially malformed.

Source Text:
\"\"\"
{source_text}
\"\"\"

Questions to Review (indices start at 0):
{listing}

Return a JSON array of integers representing the INDICES of the questions that are GOOD, SELF-CONTAINED, and CORRECT.
Discard any questions that lack context or are factually wrong based on the text.
Example Output: [0, 2, 5]
"""


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _candidate_from_item(item: Any) -> Candidate | None:
    if not isinstance(item, dict):
        return None
    text = item.get("question")
    if not isinstance(text, str):
        text = item.get("text")
    if not isinstance(text, str) or not text.strip():
        return None
    options = item.get("options")
    if not isinstance(options, list):
        return None
    index = _as_int(item.get("correct_index"))
    if index is None:
        index = _as_int(item.get("correct_option_index"))
    if index is None:
        return None
    return Candidate(
        text=text.strip(),
        options=[str(o).strip() for o in options if o is not None],
        correct_option_index=index,
    )


def parse_drafts(raw: str) -> list[Candidate]:
    cleaned = strip_code_fences(raw)
    if not cleaned:
        return []
    try:
        payload = json.loads(cleaned)
    except ValueError:
        logger.warning("generation_draft_unparseable reply_len=%s", len(cleaned))
        return []
    if isinstance(payload, dict):
        payload = payload.get("questions")
    if not isinstance(payload, list):
        logger.warning("generation_draft_not_a_list type=%s", type(payload).__name__)
        return []
    drafts: list[Candidate] = []
    for item in payload:
        cand = _candidate_from_item(item)
        if cand is not None:
            drafts.append(cand)
    dropped = len(payload) - len(drafts)
    if dropped:
        logger.info("generation_draft_dropped count=%s", dropped)
    return drafts


def parse_valid_indices(raw: str) -> list[int] | None:
    """Indices from a review reply, or None when the reply is unusable."""
    cleaned = strip_code_fences(raw)
    if not cleaned:
        return None
    try:
        payload = json.loads(cleaned)
    except ValueError:
        return None
    if not isinstance(payload, list):
        return None
    indices = [i for i in (_as_int(x) for x in payload) if i is not None]
    if payload and not indices:
        return None
    return indices


def filter_by_indices(drafts: list[Candidate], indices: list[int]) -> list[Candidate]:
    keep = set(indices)
    return [c for i, c in enumerate(drafts) if i in keep]


async def draft_questions(llm: LLMClient, text: str, study_key: str) -> list[Candidate]:
    try:
        raw = await llm.complete(DRAFT_SYSTEM_PROMPT, _draft_prompt(text, study_key), temperature=0.7)
    except Exception:
        logger.exception("generation_draft_failed study_key=%s", study_key)
        return []
    return parse_drafts(raw)


async def review_questions(llm: LLMClient, drafts: list[Candidate], source_text: str) -> list[Candidate]:
    if not drafts:
        return []
    try:
        raw = await llm.complete(REVIEW_SYSTEM_PROMPT, _review_prompt(drafts, source_text), temperature=0.1)
    except Exception:
        logger.exception("generation_review_failed drafts=%s keeping_all=1", len(drafts))
        return list(drafts)
    indices = parse_valid_indices(raw)
    if indices is None:
        logger.warning("generation_review_unusable drafts=%s keeping_all=1", len(drafts))
        return list(drafts)
    return filter_by_indices(drafts, indices)


async def generate_questions(llm: LLMClient, text: str, study_key: str) -> list[Candidate]:
    drafts = await draft_questions(llm, text, study_key)
    if not drafts:
        logger.info("generation_done study_key=%s drafts=0 kept=0", study_key)
        return []
    kept = await review_questions(llm, drafts, text)
    logger.info(
        "generation_done study_key=%s drafts=%s kept=%s",
        study_key,
        len(drafts),
        len(kept),
    )
    return kept
