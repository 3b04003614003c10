#!/usr/bin/env python
"""Ask questions, chat or generate a quiz from ingested documents.

Usage:
    python scripts/study.py ask "What is Newton's second law?" --doc 1
    python scripts/study.py search "momentum" --doc 1 --top-k 5
    python scripts/study.py quiz --doc 1 --num 5 --mcq 3 --saq 1 --laq 1 --save
    python scripts/study.py chat "Explain momentum" --doc 1          # starts a new chat
    python scripts/study.py chat "And impulse?" --chat-id 4
"""
import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from studymate.errors import StudyMateError
from studymate.log import configure_logging
from studymate.quiz.schemas import Distribution
from studymate.service import StudyService
import structlog

logger = structlog.get_logger()


async def run(args) -> None:
    service = StudyService(db_path=args.db)
    try:
        if args.command == "ask":
            answer = await service.answer(args.query, doc_ids=args.doc or None, top_k=args.top_k)
            print(f"\n{answer.answer_text}\n")
            for c in answer.citations:
                print(f"  [{c.doc_title}] p.{c.page} ({c.score:.3f}): {c.snippet}")
            print()

        elif args.command == "search":
            passages = await service.search(args.query, doc_ids=args.doc or None, top_k=args.top_k)
            for p in passages:
                print(f"  {p.score:.3f}  [{p.doc_title}] p.{p.page_no}: {p.snippet}")

        elif args.command == "quiz":
            distribution = None
            if args.mcq is not None or args.saq is not None or args.laq is not None:
                distribution = Distribution(
                    mcq=args.mcq or 0, saq=args.saq or 0, laq=args.laq or 0
                )
            result = await service.generate_quiz(
                args.doc, args.num, distribution, owner=args.owner, save=args.save
            )
            payload = {
                "provenance": result.provenance.value,
                "questions": [q.model_dump(mode="json") for q in result.questions],
            }
            if args.save:
                payload["quiz_id"] = result.id
            print(json.dumps(payload, indent=2, ensure_ascii=False))

        elif args.command == "chat":
            chat_id = args.chat_id
            if chat_id is None:
                chat_id = service.create_chat(owner=args.owner).id
            reply = await service.send_message(
                chat_id, args.message, doc_ids=args.doc or None, owner=args.owner
            )
            print(f"\n[chat {chat_id}] {reply.message}\n")
            for c in reply.citations:
                print(f"  [{c.doc_title}] p.{c.page}: {c.snippet}")
    finally:
        await service.aclose()


def main():
    parser = argparse.ArgumentParser(description="Query ingested study material")
    parser.add_argument("--db", type=Path, default=None, help="SQLite database path")
    sub = parser.add_subparsers(dest="command", required=True)

    for name in ("ask", "search"):
        cmd = sub.add_parser(name)
        cmd.add_argument("query")
        cmd.add_argument("--doc", type=int, action="append", help="Document ID (repeatable)")
        cmd.add_argument("--top-k", type=int, default=None)

    quiz = sub.add_parser("quiz")
    quiz.add_argument("--doc", type=int, action="append", required=True, help="Document ID (repeatable)")
    quiz.add_argument("--num", type=int, default=10)
    quiz.add_argument("--mcq", type=int)
    quiz.add_argument("--saq", type=int)
    quiz.add_argument("--laq", type=int)
    quiz.add_argument("--owner")
    quiz.add_argument("--save", action="store_true")

    chat = sub.add_parser("chat")
    chat.add_argument("message")
    chat.add_argument("--chat-id", type=int, help="Continue an existing chat")
    chat.add_argument("--doc", type=int, action="append", help="Document ID for context (repeatable)")
    chat.add_argument("--owner")

    args = parser.parse_args()
    configure_logging("WARNING")

    try:
        asyncio.run(run(args))
    except StudyMateError as e:
        print(f"\n❌ {type(e).__name__}: {e.message}\n")
        logger.error("study_script_failed", error=e.message, error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    main()
