"""
Unit tests for bot-challenge detection and solving.
"""

import asyncio

import pytest

from event_ingest.ingestion.browser.challenge import (
    CHALLENGE_SELECTORS,
    HeuristicChallengeSolver,
    NoopChallengeSolver,
    detect_challenge,
    looks_like_challenge,
    solve_question,
)


class TestLooksLikeChallenge:
    @pytest.mark.parametrize(
        "html",
        [
            "<p>Please verify you are a human</p>",
            "<title>Access Denied</title>",
            "<div class='g-recaptcha'></div>",
            "Checking your browser before accessing",
        ],
    )
    def test_block_pages(self, html):
        assert looks_like_challenge(html)

    def test_normal_page(self):
        assert not looks_like_challenge("<h1>Swan Lake</h1>")
        assert not looks_like_challenge(None)


class TestSolveQuestion:
    """Tests for the toy question solver."""

    @pytest.mark.parametrize(
        "question,answer",
        [
            ("What is 3 + 4?", "7"),
            ("What is 10 - 12?", "-2"),
            ("Compute 6 x 7", "42"),
            ("What is 12 / 4?", "3"),
            ("What is seven minus two?", "5"),
            ("What is three times four?", "12"),
            ("What is twenty divided by five?", "4"),
            ("What colour is the sky?", "blue"),
            ("Name the capital of Australia", "canberra"),
        ],
    )
    def test_known_patterns(self, question, answer):
        assert solve_question(question) == answer

    def test_uneven_division_unsolved(self):
        assert solve_question("What is 7 / 2?") is None
        assert solve_question("What is 7 / 0?") is None

    def test_unknown(self):
        assert solve_question("Select all images with traffic lights") is None
        assert solve_question("") is None


class TestDetectChallenge:
    def test_widget(self, fake_browser):
        page = fake_browser.Page(elements={CHALLENGE_SELECTORS: fake_browser.Element()})
        assert asyncio.run(detect_challenge(page)) is True

    def test_block_wording(self, fake_browser):
        page = fake_browser.Page()
        page.html = "<h1>Are you a robot?</h1>"
        assert asyncio.run(detect_challenge(page)) is True

    def test_clean_page(self, fake_browser):
        page = fake_browser.Page()
        page.html = "<h1>Hamlet</h1>"
        assert asyncio.run(detect_challenge(page)) is False


class TestSolvers:
    """Tests for the challenge solver strategies."""

    def challenge_page(self, fake_browser, question: str, with_submit: bool = True):
        page = fake_browser.Page()
        page.html = "<form class='captcha'>are you a robot</form>"

        def clear():
            page.elements.pop(CHALLENGE_SELECTORS, None)
            page.html = "<h1>Event</h1>"

        page.elements[CHALLENGE_SELECTORS] = fake_browser.Element()
        page.elements[HeuristicChallengeSolver.QUESTION_SELECTOR] = fake_browser.Element(question)
        page.elements[HeuristicChallengeSolver.INPUT_SELECTOR] = fake_browser.Element()
        if with_submit:
            page.elements[HeuristicChallengeSolver.SUBMIT_SELECTOR] = fake_browser.Element(on_click=clear)
        return page

    def test_noop(self, fake_browser):
        assert asyncio.run(NoopChallengeSolver().attempt_challenge(fake_browser.Page())) is False

    def test_heuristic_solves_and_submits(self, fake_browser):
        page = self.challenge_page(fake_browser, "What is 2 + 2?")
        assert asyncio.run(HeuristicChallengeSolver().attempt_challenge(page)) is True
        assert page.elements[HeuristicChallengeSolver.INPUT_SELECTOR].filled == "4"

    def test_heuristic_presses_enter_without_button(self, fake_browser):
        page = self.challenge_page(fake_browser, "What is 2 + 2?", with_submit=False)
        assert asyncio.run(HeuristicChallengeSolver().attempt_challenge(page)) is False
        assert page.elements[HeuristicChallengeSolver.INPUT_SELECTOR].pressed == ["Enter"]

    def test_heuristic_unknown_question(self, fake_browser):
        page = self.challenge_page(fake_browser, "Click every bus")
        assert asyncio.run(HeuristicChallengeSolver().attempt_challenge(page)) is False
        assert page.elements[HeuristicChallengeSolver.INPUT_SELECTOR].filled is None

    def test_heuristic_without_question(self, fake_browser):
        assert asyncio.run(HeuristicChallengeSolver().attempt_challenge(fake_browser.Page())) is False
