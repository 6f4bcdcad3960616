"""
Main entry point for the mock interview application.
"""

import argparse
import asyncio
import logging
import sys

from mock_interview.agents.answer_evaluator import AnswerEvaluator, AnswerEvaluatorBase
from mock_interview.config import Settings, get_settings
from mock_interview.io.feedback_view import show_feedback
from mock_interview.io.text_interface import TextInterface
from mock_interview.models.llm_client import LLMClient, LLMClientBase
from mock_interview.session.qa_store import QAStore


def setup_logging() -> None:
    """Configure application logging."""
    settings = get_settings()
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mock-interview")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    interview = sub.add_parser("interview", help="Run a mock interview from a resume file")
    interview.add_argument("--resume", required=True, help="Path to a .pdf, .docx or .txt resume")
    interview.add_argument(
        "--mode",
        choices=["text", "voice"],
        default="text",
        help="Run in text or voice mode",
    )
    interview.add_argument(
        "--sectioned",
        action="store_true",
        help="Extract the resume as titled sections instead of the flat field set",
    )

    sub.add_parser("feedback", help="Print the question/answer pairs of the last session")
    return parser


def build_evaluator(settings: Settings, llm_client: LLMClientBase) -> AnswerEvaluatorBase:
    """Evaluate over HTTP when an API server is configured, in-process otherwise."""
    if settings.evaluator_base_url:
        from mock_interview.api.client import HttpAnswerEvaluator

        return HttpAnswerEvaluator(base_url=settings.evaluator_base_url, timeout=settings.evaluator_timeout_s)
    return AnswerEvaluator(llm_client=llm_client)


async def run_interview(args: argparse.Namespace) -> None:
    """
    Run an interactive interview session.

    This is the main async entry point that initializes all components
    and runs the interview loop.
    """
    settings = get_settings()
    logger = logging.getLogger(__name__)

    logger.info("Initializing mock interview...")
    logger.debug(f"Using LLM model: {settings.llm_model_name}")

    llm_client = LLMClient(
        model=settings.llm_model_name,
        timeout=settings.llm_timeout,
    )
    evaluator = build_evaluator(settings, llm_client)

    if args.mode == "voice":
        # Lazy import so text mode doesn't require optional voice deps.
        from mock_interview.io.voice_interface import VoiceInterface

        interface = VoiceInterface(evaluator=evaluator, llm_client=llm_client, settings=settings)
    else:
        interface = TextInterface(evaluator=evaluator, llm_client=llm_client, settings=settings)

    logger.info("Starting interview session...")
    try:
        await interface.run(args.resume, sectioned=args.sectioned)
    finally:
        close = getattr(evaluator, "close", None)
        if close is not None:
            await close()


def serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("mock_interview.api.app:app", host=host, port=port, log_level=get_settings().log_level.lower())


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the application."""
    args = build_parser().parse_args(sys.argv[1:] if argv is None else argv)
    setup_logging()

    if args.command == "serve":
        serve(args.host, args.port)
        return
    if args.command == "feedback":
        show_feedback(QAStore(get_settings().qa_store_path))
        return

    try:
        asyncio.run(run_interview(args))
    except KeyboardInterrupt:
        print("\nInterview session terminated by user.")
        sys.exit(0)
    except Exception as e:
        logging.error(f"Application error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
