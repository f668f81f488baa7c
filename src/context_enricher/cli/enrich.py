"""
Enrich command.

Reads a markdown file, runs it through the context-disambiguation pipeline and
writes the enriched markdown next to it (or to ``--output``).
"""

import asyncio
from pathlib import Path
from typing import Any, Optional

import click
from tqdm import tqdm

from context_enricher.config.enrichment import EnrichmentConfig
from context_enricher.config.loader import PROVIDER_PRESETS, load_provider_config
from context_enricher.config.settings import Settings
from context_enricher.exceptions import EnrichmentError
from context_enricher.logging_config import setup_logging
from context_enricher.markdown import parse_markdown, render_markdown
from context_enricher.models import DocumentMetadata, EnrichmentResult
from context_enricher.pipeline import ContextEnrichmentPipeline
from context_enricher.providers import create_provider_client
from context_enricher.providers.base import AsyncProviderClient
from context_enricher.providers.types import Provider


def default_output_path(input_file: Path) -> Path:
    """``page.md`` -> ``page-enhanced.md`` in the same directory."""
    return input_file.with_name(f"{input_file.stem}-enhanced{input_file.suffix}")


def resolve_preset(use_haiku: bool, use_gpt4o: bool, use_ollama: bool) -> dict[str, Any]:
    """Return the overrides of the selected preset, or an empty dict."""
    selected = [name for name, flag in (("haiku", use_haiku), ("gpt4o", use_gpt4o), ("ollama", use_ollama)) if flag]
    if len(selected) > 1:
        raise click.UsageError("Choose at most one of --use-haiku, --use-gpt4o and --use-ollama")
    return dict(PROVIDER_PRESETS[selected[0]]) if selected else {}


async def _enrich(
    provider: AsyncProviderClient,
    config: EnrichmentConfig,
    model: Optional[str],
    blocks: list[dict[str, str]],
    metadata: DocumentMetadata,
    show_progress: bool,
) -> EnrichmentResult:
    async with provider:
        pipeline = ContextEnrichmentPipeline(provider, config=config, model=model)
        with tqdm(total=0, desc="Enriching blocks", unit="block", disable=not show_progress) as bar:

            def on_progress(processed: int, total: int) -> None:
                bar.total = total
                bar.n = processed
                bar.refresh()

            return await pipeline.enhance_document(blocks, metadata, on_progress=on_progress)


@click.command("enrich")
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Output file path.")
@click.option("--provider", type=click.Choice([p.value for p in Provider]), help="AI provider.")
@click.option("--model", help="Model name.")
@click.option("--host", help="Provider host or base URL.")
@click.option("--timeout", type=float, help="Per-call timeout in seconds.")
@click.option("--use-haiku", is_flag=True, help="Preset: Anthropic Claude 3.5 Haiku.")
@click.option("--use-gpt4o", is_flag=True, help="Preset: OpenAI GPT-4o.")
@click.option("--use-ollama", is_flag=True, help="Preset: local Ollama with qwen2.5:14b.")
@click.option("--concurrency", type=click.IntRange(min=1), help="Maximum concurrent AI calls.")
@click.option("--max-retries", type=click.IntRange(min=0), help="Retries per batch after the first attempt.")
@click.option("--batch-words", type=click.IntRange(min=1), help="Target words per batch.")
@click.option("--min-block-chars", type=click.IntRange(min=0), help="Minimum real characters for a block to be enriched.")
@click.option("--log-level", type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False))
@click.option("--log-dir", type=click.Path(file_okay=False, path_type=Path), help="Also log to a rotating file here.")
@click.option("--no-progress", is_flag=True, help="Hide the progress bar.")
@click.help_option("--help", "-h")
def enrich_command(
    input_file: Path,
    output: Optional[Path],
    provider: Optional[str],
    model: Optional[str],
    host: Optional[str],
    timeout: Optional[float],
    use_haiku: bool,
    use_gpt4o: bool,
    use_ollama: bool,
    concurrency: Optional[int],
    max_retries: Optional[int],
    batch_words: Optional[int],
    min_block_chars: Optional[int],
    log_level: Optional[str],
    log_dir: Optional[Path],
    no_progress: bool,
) -> None:
    """
    Add [[...]] context disambiguations to a markdown file.

    INPUT_FILE: Markdown file to enrich

    Examples:
      context-enricher enrich page.md --use-haiku
      context-enricher enrich page.md --provider openai --model gpt-4o-mini -o out.md
    """
    settings = Settings()
    setup_logging(level=(log_level or settings.log_level).upper(), log_dir=log_dir)

    overrides = resolve_preset(use_haiku, use_gpt4o, use_ollama)
    overrides.update(
        {
            key: value
            for key, value in {"provider": provider, "model": model, "host": host, "timeout": timeout}.items()
            if value is not None
        }
    )

    try:
        provider_config = load_provider_config(settings=settings, overrides=overrides)
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    tuning: dict[str, Any] = {"call_timeout": provider_config.timeout}
    for field_name, value in (
        ("concurrency_limit", concurrency),
        ("max_retries", max_retries),
        ("target_batch_words", batch_words),
        ("min_block_chars", min_block_chars),
    ):
        if value is not None:
            tuning[field_name] = value
    config = EnrichmentConfig(**tuning)

    document = parse_markdown(input_file.read_text(encoding="utf-8"))
    metadata = document.document_metadata()
    if not metadata.title:
        metadata.title = input_file.stem

    client = create_provider_client(provider_config)
    try:
        result = asyncio.run(
            _enrich(client, config, provider_config.model, document.blocks, metadata, show_progress=not no_progress)
        )
    except EnrichmentError as e:
        raise click.ClickException(f"Enrichment failed: {e}") from e

    output_path = output or default_output_path(input_file)
    output_path.write_text(
        render_markdown([block.enhanced for block in result.blocks], document.frontmatter), encoding="utf-8"
    )

    report = result.report
    click.echo(f"Enriched markdown written to {output_path}")
    click.echo(
        f"  Blocks: {report.total_blocks} total, {report.eligible_blocks} eligible, "
        f"{report.enhanced_blocks} enhanced, {report.fallback_blocks} fallback"
    )
    click.echo(
        f"  Windows: {report.windows}, batches: {report.batches}, retries: {report.retries}, "
        f"cache hit rate: {report.cache_hit_rate:.1%}"
    )
    click.echo(f"  Insertions: {report.insertions}")
    if report.usage and report.usage.requests:
        click.echo(
            f"  Tokens: {report.usage.prompt_tokens} prompt ({report.usage.cached_tokens} cached), "
            f"{report.usage.completion_tokens} completion"
        )
