"""
Results view: prints the question/answer pairs handed off by a session.
"""

import sys
from typing import TextIO

from mock_interview.session.qa_store import QAStore
from mock_interview.session.schemas import QAPair


def render_feedback(pairs: list[QAPair], title: str = "Interview Summary", stream: TextIO | None = None) -> None:
    """Print the answered questions in the order they were asked."""
    out = stream or sys.stdout
    print("\n" + "=" * 60, file=out)
    print(title, file=out)
    print("=" * 60, file=out)

    if not pairs:
        print("\nNo questions were answered.", file=out)
    for idx, pair in enumerate(pairs, start=1):
        print(f"\nQ{idx}: {pair.question}", file=out)
        print(f"A{idx}: {pair.answer}", file=out)

    print("\n" + "=" * 60, file=out)


def show_feedback(store: QAStore, stream: TextIO | None = None) -> list[QAPair]:
    """Read the persisted QA list once and print it."""
    pairs = store.load()
    render_feedback(pairs, stream=stream)
    return pairs
