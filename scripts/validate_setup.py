#!/usr/bin/env python
"""Check the local environment before ingesting or quizzing.

Runs each check in order and prints one status line per check; the
exit code is 1 when any check fails. Warnings don't affect it.

Usage:
    python scripts/validate_setup.py
    python scripts/validate_setup.py --offline   # skip provider calls
"""
import argparse
import asyncio
import importlib
import sqlite3
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

MARKS = {"ok": "\033[92m✓\033[0m", "warn": "\033[93m⚠\033[0m", "fail": "\033[91m✗\033[0m"}

REQUIRED_MODULES = ("httpx", "numpy", "pydantic", "structlog")
REQUIRED_TABLES = {"documents", "passages", "quizzes", "questions", "attempts", "chats", "chat_messages"}


class CheckWarning(Exception):
    """A check passed with a caveat."""


def check_python():
    version = ".".join(str(n) for n in sys.version_info[:3])
    if sys.version_info < (3, 11):
        raise RuntimeError(f"Python {version} found, 3.11+ required")
    return f"Python {version}"


def check_modules():
    missing = []
    for name in REQUIRED_MODULES:
        try:
            importlib.import_module(name)
        except ImportError:
            missing.append(name)
    if missing:
        raise RuntimeError(f"missing: {', '.join(missing)} (pip install -e .)")
    return ", ".join(REQUIRED_MODULES)


def check_api_key():
    from studymate import config

    if not config.OPENROUTER_API_KEY:
        raise RuntimeError("OPENROUTER_API_KEY is not set")
    return f"key set for {config.OPENROUTER_BASE_URL}"


def check_database():
    from studymate import config
    from studymate.db import Database

    database = Database(config.DB_PATH)
    database.init_schema()
    conn = database.get_connection()
    try:
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        tables = {
            row["name"]
            for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
    except sqlite3.Error as e:
        raise RuntimeError(f"cannot read schema: {e}") from e
    finally:
        conn.close()

    absent = REQUIRED_TABLES - tables
    if absent:
        raise RuntimeError(f"tables missing: {', '.join(sorted(absent))}")
    if mode != "wal":
        raise CheckWarning(f"journal mode is {mode}, readers may block on writes")
    return f"{config.DB_PATH} (wal)"


async def check_chat_model(client):
    from studymate import config

    models = set(await client.list_models())
    if config.CHAT_MODEL not in models:
        raise CheckWarning(f"{config.CHAT_MODEL} not among {len(models)} listed models")
    return config.CHAT_MODEL


async def check_embeddings(client):
    from studymate.rag.embedder import EmbeddingGenerator

    embedder = EmbeddingGenerator(client)
    vector = await embedder.embed("validate setup")
    return f"{len(vector)} dimensions via {', '.join(embedder.models)}"


def report(name, outcome, detail):
    print(f" {MARKS[outcome]} {name:<14} {detail}")


async def run_checks(offline: bool) -> dict:
    counts = {"ok": 0, "warn": 0, "fail": 0}

    async def run(name, check, *args):
        try:
            detail = check(*args)
            if asyncio.iscoroutine(detail):
                detail = await detail
            outcome = "ok"
        except CheckWarning as e:
            outcome, detail = "warn", str(e)
        except Exception as e:
            outcome, detail = "fail", getattr(e, "message", None) or str(e)
        counts[outcome] += 1
        report(name, outcome, detail)
        return outcome

    if await run("python", check_python) == "fail":
        return counts
    if await run("dependencies", check_modules) == "fail":
        return counts

    await run("database", check_database)
    key_outcome = await run("api key", check_api_key)

    if offline or key_outcome == "fail":
        report("provider", "warn", "skipped")
        counts["warn"] += 1
        return counts

    from studymate.llm_client import ProviderClient

    client = ProviderClient()
    try:
        await run("chat model", check_chat_model, client)
        await run("embeddings", check_embeddings, client)
    finally:
        await client.aclose()

    return counts


def main():
    parser = argparse.ArgumentParser(description="Validate the StudyMate setup")
    parser.add_argument("--offline", action="store_true", help="Skip provider calls")
    args = parser.parse_args()

    print("\nStudyMate setup\n")
    counts = asyncio.run(run_checks(args.offline))
    print(f"\n{counts['ok']} passed, {counts['warn']} warnings, {counts['fail']} failed\n")
    sys.exit(1 if counts["fail"] else 0)


if __name__ == "__main__":
    main()
