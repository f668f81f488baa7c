"""
Command-line interface for Context Enricher.

Usage:
    context-enricher <command> [args...]
    python -m context_enricher.cli --help

Available commands:
    enrich  Add validated [[...]] context disambiguations to a markdown file
    strip   Remove [[...]] annotations from a markdown file

Examples:
    context-enricher enrich docs/page.md --use-haiku
    context-enricher enrich docs/page.md -o page-rag.md --provider ollama --model qwen2.5:14b
    context-enricher strip page-rag.md -o page.md
"""

import sys

import click
from dotenv import load_dotenv

from .enrich import enrich_command
from .strip import strip_command


@click.group()
@click.help_option("--help", "-h")
def cli():
    """Context Enricher - make crawled markdown self-explanatory for retrieval."""
    load_dotenv()


cli.add_command(enrich_command)
cli.add_command(strip_command)


def main() -> None:
    """
    Main function to handle CLI execution with error handling.
    """
    try:
        cli()
    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        sys.exit(1)
    except Exception as e:
        print(f"An unexpected error occurred: {e}")
        sys.exit(1)
