"""
Bot-challenge detection and best-effort solving.

Detection looks for CAPTCHA widgets by selector and for block-page
wording in the HTML. Solving is a swappable strategy; the heuristic
solver only understands simple arithmetic, number-word sums and a few
fixed trivia questions. Anything else is reported as unsolved and the
adapter falls back to a degraded record.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)

CHALLENGE_SELECTORS = '[class*="captcha"], input[name*="captcha"], [id*="captcha"]'

BLOCK_PAGE_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"are you a robot",
        r"verify (?:that )?you are (?:a )?human",
        r"unusual traffic",
        r"checking your browser",
        r"access denied",
        r"cf-challenge",
        r"g-recaptcha|h-captcha",
    )
)

NUMBER_WORDS: dict[str, int] = {
    word: i
    for i, word in enumerate(
        (
            "zero one two three four five six seven eight nine ten eleven twelve "
            "thirteen fourteen fifteen sixteen seventeen eighteen nineteen twenty"
        ).split()
    )
}

OPERATOR_WORDS: dict[str, str] = {
    "plus": "+",
    "add": "+",
    "minus": "-",
    "subtract": "-",
    "times": "*",
    "multiplied by": "*",
    "divided by": "/",
}

TRIVIA_ANSWERS: dict[str, str] = {
    "what color is the sky": "blue",
    "what colour is the sky": "blue",
    "capital of australia": "canberra",
    "how many days in a week": "7",
    "how many legs does a cat have": "4",
    "first letter of the alphabet": "a",
}

_ARITHMETIC = re.compile(r"(-?\d+)\s*([+\-*x×/])\s*(-?\d+)")


def looks_like_challenge(html: str | None) -> bool:
    """True when page text reads like a bot-challenge or block page."""
    if not html:
        return False
    return any(p.search(html) for p in BLOCK_PAGE_PATTERNS)


def _apply(a: int, op: str, b: int) -> str | None:
    if op == "+":
        return str(a + b)
    if op == "-":
        return str(a - b)
    if op in ("*", "x", "×"):
        return str(a * b)
    if op == "/":
        if b == 0 or a % b:
            return None
        return str(a // b)
    return None


def solve_question(text: str | None) -> str | None:
    """
    Answer a toy challenge question.

    >>> solve_question("What is 3 + 4?")
    '7'
    >>> solve_question("What is seven minus two?")
    '5'

    Returns:
        The answer as a string, or None when the question is not recognised
    """
    if not text:
        return None
    lowered = " ".join(text.lower().split())

    match = _ARITHMETIC.search(lowered)
    if match:
        return _apply(int(match.group(1)), match.group(2), int(match.group(3)))

    for phrase, op in OPERATOR_WORDS.items():
        word_match = re.search(rf"\b([a-z]+)\s+{phrase}\s+([a-z]+)\b", lowered)
        if word_match:
            a = NUMBER_WORDS.get(word_match.group(1))
            b = NUMBER_WORDS.get(word_match.group(2))
            if a is not None and b is not None:
                return _apply(a, op, b)

    for question, answer in TRIVIA_ANSWERS.items():
        if question in lowered:
            return answer

    return None


async def detect_challenge(page: Any) -> bool:
    """Check a live page for CAPTCHA widgets or block-page wording."""
    if await page.query_selector(CHALLENGE_SELECTORS) is not None:
        logger.info("CAPTCHA element detected on page")
        return True
    return looks_like_challenge(await page.content())


class ChallengeSolver(ABC):
    """Strategy for clearing a detected challenge."""

    @abstractmethod
    async def attempt_challenge(self, page: Any) -> bool:
        """
        Try to clear the challenge on the page.

        Returns:
            True when the page no longer shows a challenge
        """
        pass


class NoopChallengeSolver(ChallengeSolver):
    """Never attempts anything."""

    async def attempt_challenge(self, page: Any) -> bool:
        return False


class HeuristicChallengeSolver(ChallengeSolver):
    """Reads a question label, answers it with solve_question and submits."""

    QUESTION_SELECTOR = (
        '[class*="captcha"] label, [class*="captcha"] p, '
        'label[for*="captcha"], .captcha-question'
    )
    INPUT_SELECTOR = 'input[name*="captcha"], [class*="captcha"] input[type="text"]'
    SUBMIT_SELECTOR = 'button[type="submit"], input[type="submit"]'

    def __init__(self, settle_timeout_ms: int = 10_000):
        self.settle_timeout_ms = settle_timeout_ms

    async def attempt_challenge(self, page: Any) -> bool:
        question_el = await page.query_selector(self.QUESTION_SELECTOR)
        if question_el is None:
            return False

        answer = solve_question(await question_el.inner_text())
        if answer is None:
            logger.info("Challenge question not recognised")
            return False

        input_el = await page.query_selector(self.INPUT_SELECTOR)
        if input_el is None:
            return False
        await input_el.fill(answer)

        submit_el = await page.query_selector(self.SUBMIT_SELECTOR)
        if submit_el is not None:
            await submit_el.click()
        else:
            await input_el.press("Enter")

        try:
            await page.wait_for_load_state("networkidle", timeout=self.settle_timeout_ms)
        except Exception as e:
            logger.debug(f"Page did not settle after challenge submit: {type(e).__name__}")

        solved = not await detect_challenge(page)
        logger.info(f"Challenge {'cleared' if solved else 'still present'} after heuristic answer")
        return solved


CHALLENGE_SOLVERS: dict[str, type[ChallengeSolver]] = {
    "noop": NoopChallengeSolver,
    "heuristic": HeuristicChallengeSolver,
}
