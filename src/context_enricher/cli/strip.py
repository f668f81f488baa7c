"""Strip command: remove [[...]] annotations, recovering the original markdown."""

from pathlib import Path
from typing import Optional

import click

from context_enricher.markdown import remove_annotations


@click.command("strip")
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write the result here instead of standard output.",
)
@click.help_option("--help", "-h")
def strip_command(input_file: Path, output: Optional[Path]) -> None:
    """
    Remove [[...]] annotations from an enriched markdown file.

    INPUT_FILE: Markdown file produced by the enrich command
    """
    stripped = remove_annotations(input_file.read_text(encoding="utf-8"))
    if output is None:
        click.echo(stripped, nl=False)
        return
    output.write_text(stripped, encoding="utf-8")
    click.echo(f"Annotations removed: {output}", err=True)
