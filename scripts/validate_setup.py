#!/usr/bin/env python
"""Validate setup - check dependencies, configuration and provider access."""
import asyncio
import sys

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"


def print_success(msg):
    print(f"{GREEN}✓{RESET} {msg}")


def print_error(msg):
    print(f"{RED}✗{RESET} {msg}")


def print_info(msg):
    print(f"{BLUE}ℹ{RESET} {msg}")


def print_warning(msg):
    print(f"{YELLOW}⚠{RESET} {msg}")


def print_section(title):
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}{title:^60}{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")


async def main():
    print_section("Textbook Tutor - Setup Validation")

    errors = []
    warnings = []

    # 1. Python version check
    print_section("1. Python Environment")
    python_version = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    print_info(f"Python version: {python_version}")
    if sys.version_info >= (3, 10):
        print_success("Python version >= 3.10")
    else:
        print_error("Python version < 3.10 (required)")
        errors.append("Python version too old")

    in_venv = sys.base_prefix != sys.prefix
    if in_venv:
        print_success("Running in virtual environment")
    else:
        print_warning("Not running in virtual environment (recommended)")
        warnings.append("Not in venv")

    # 2. Import core dependencies
    print_section("2. Core Dependencies")

    dependencies = [
        ("quart", "Quart web framework"),
        ("hypercorn", "Hypercorn ASGI server"),
        ("httpx", "HTTP client"),
        ("numpy", "Vector math"),
        ("pydantic", "Data validation"),
        ("yaml", "YAML frontmatter"),
        ("structlog", "Structured logging"),
    ]

    for module_name, description in dependencies:
        try:
            __import__(module_name)
            print_success(f"{description:30} ({module_name})")
        except ImportError as e:
            print_error(f"{description:30} ({module_name}) - {e}")
            errors.append(f"Missing: {module_name}")

    # 3. Configuration
    print_section("3. Configuration")

    try:
        from tutor import config

        print_success("Config loaded successfully")
        print_info(f"  Provider URL: {config.LLM_BASE_URL}")
        print_info(f"  Chat model: {config.CHAT_MODEL}")
        print_info(f"  Embedding model: {config.EMBEDDING_MODEL} ({config.EMBEDDING_DIMENSIONS} dims)")
        print_info(f"  Chunking: {config.CHUNK_MIN_WORDS}-{config.CHUNK_MAX_WORDS} words, overlap {config.CHUNK_OVERLAP_WORDS}")
        print_info(f"  Snapshot: {config.SNAPSHOT_PATH}")

        if config.LLM_API_KEY:
            print_success("API key is set")
        else:
            print_warning("OPENAI_API_KEY is not set (fine for local providers)")
            warnings.append("No API key")

        if config.NOTES_DIR.exists():
            print_success(f"Notes directory exists: {config.NOTES_DIR}")
        else:
            print_error(f"Notes directory missing: {config.NOTES_DIR}")
            errors.append("Notes directory missing")

        if config.SNAPSHOT_PATH.exists():
            print_success(f"Snapshot exists: {config.SNAPSHOT_PATH}")
        else:
            print_warning(f"No snapshot yet: {config.SNAPSHOT_PATH} (run scripts/reindex.py)")
            warnings.append("No snapshot")

    except Exception as e:
        print_error(f"Failed to load config: {e}")
        errors.append("Config loading failed")
        return errors, warnings

    # 4. Embedding provider test
    print_section("4. Embedding Provider")

    from tutor.errors import ProviderError
    from tutor.llm_client import LLMClient

    client = LLMClient(retry_attempts=0, timeout=15.0)

    try:
        embedding = await client.embed("test")
        dimension = len(embedding)
        if dimension == config.EMBEDDING_DIMENSIONS:
            print_success(f"Embedding API working (dimension: {dimension})")
        else:
            print_error(
                f"Embedding dimension {dimension} does not match "
                f"EMBEDDING_DIMENSIONS={config.EMBEDDING_DIMENSIONS}"
            )
            errors.append("Embedding dimension mismatch")
    except ProviderError as e:
        print_error(f"Embedding API failed ({e.kind.value}): {e}")
        errors.append(f"Embedding API error: {e.kind.value}")

    # 5. Chat provider test
    print_section("5. Chat Provider")

    try:
        reply = await client.complete(
            [{"role": "user", "content": "Reply with the single word: ok"}],
            temperature=0.0,
            max_tokens=5,
        )
        print_success(f"Chat API working (reply: {reply.strip()[:20]!r})")
    except ProviderError as e:
        print_error(f"Chat API failed ({e.kind.value}): {e}")
        errors.append(f"Chat API error: {e.kind.value}")

    # 6. Summary
    print_section("Summary")

    if not errors:
        print_success("All checks passed! ✨")
    else:
        print_error(f"Found {len(errors)} error(s):")
        for i, error in enumerate(errors, 1):
            print(f"  {i}. {error}")

    if warnings:
        print_warning(f"\nFound {len(warnings)} warning(s):")
        for i, warning in enumerate(warnings, 1):
            print(f"  {i}. {warning}")

    print()
    return errors, warnings


if __name__ == "__main__":
    errors, warnings = asyncio.run(main())
    sys.exit(1 if errors else 0)
