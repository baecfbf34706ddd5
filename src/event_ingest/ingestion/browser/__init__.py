"""
Browser automation for client-rendered sources.

- session: scoped Playwright sessions with a spoofed fingerprint
- challenge: CAPTCHA/block-page detection and swappable solvers
"""

from .challenge import (
    CHALLENGE_SOLVERS,
    ChallengeSolver,
    HeuristicChallengeSolver,
    NoopChallengeSolver,
    detect_challenge,
    looks_like_challenge,
    solve_question,
)
from .session import BrowserDriver, BrowserSession, BrowserSessionOptions, PlaywrightDriver

__all__ = [
    "BrowserDriver",
    "BrowserSession",
    "BrowserSessionOptions",
    "PlaywrightDriver",
    "CHALLENGE_SOLVERS",
    "ChallengeSolver",
    "HeuristicChallengeSolver",
    "NoopChallengeSolver",
    "detect_challenge",
    "looks_like_challenge",
    "solve_question",
]
