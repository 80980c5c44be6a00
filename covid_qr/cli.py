"""
CLI Interface
=============
Command-line interface for the certificate decoder.

Usage:
    covid-qr decode <path>                 # auto-detect input type
    covid-qr decode --pdf <pdf_path>
    covid-qr decode --image <png_path>
    covid-qr decode --base64 <txt_path>
    covid-qr decode --encrypted <bin_path>
    covid-qr decode --plaintext <txt_path>
    covid-qr info <pdf_path>
"""

from __future__ import annotations

import json
import os
import sys
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .engine import DecoderConfig, DecoderEngine
from .errors import CovidQrError
from .models import DecodeResult, InputType
from .pdf_extractor import PdfImageExtractor

console = Console()

_FILE = click.Path(exists=True, dir_okay=False)


@click.group()
@click.version_option(version=__version__, prog_name="covid-qr")
def cli():
    """COVID certificate decoder: verify and read vaccination QR codes."""
    pass


@cli.command()
@click.argument("auto_path", required=False, type=_FILE)
@click.option("--pdf", "-p", "pdf_path", type=_FILE, help="Read PDF file")
@click.option("--image", "-i", "image_path", type=_FILE, help="Read QR code from image")
@click.option("--base64", "-b", "base64_path", type=_FILE, help="Read base64-encoded payload")
@click.option("--encrypted", "-e", "encrypted_path", type=_FILE, help="Read encrypted binary payload")
@click.option("--plaintext", "-r", "plaintext_path", type=_FILE, help="Read plaintext record")
@click.option(
    "--public-key", "-k",
    default=None,
    type=_FILE,
    help="PEM public key to verify with (defaults to the issuer key)",
)
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.option(
    "--log-file",
    default=None,
    help="Path to log file",
)
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only JSON result to stdout (for programmatic use)",
)
def decode(
    auto_path: Optional[str],
    pdf_path: Optional[str],
    image_path: Optional[str],
    base64_path: Optional[str],
    encrypted_path: Optional[str],
    plaintext_path: Optional[str],
    public_key: Optional[str],
    log_level: str,
    log_file: Optional[str],
    json_output: bool,
):
    """Decode and verify a vaccination certificate."""

    sources = [
        (path, input_type)
        for path, input_type in (
            (auto_path, None),
            (pdf_path, InputType.PDF),
            (image_path, InputType.IMAGE),
            (base64_path, InputType.BASE64),
            (encrypted_path, InputType.ENCRYPTED),
            (plaintext_path, InputType.PLAINTEXT),
        )
        if path is not None
    ]
    if len(sources) != 1:
        raise click.UsageError(
            "Provide exactly one input: a path, --pdf, --image, --base64, "
            "--encrypted or --plaintext"
        )
    path, input_type = sources[0]

    if json_output:
        # Suppress console output for JSON mode
        log_level = "ERROR"

    config = DecoderConfig(log_level=log_level, log_file=log_file)
    if public_key:
        config.public_key_path = public_key

    try:
        with DecoderEngine(config) as engine:
            result = engine.decode(path, input_type)
    except CovidQrError as e:
        console.print(f"[red]Error ({e.stage}):[/] {escape(str(e))}")
        sys.exit(1)

    if json_output:
        print(json.dumps(
            result.model_dump(),
            indent=2,
            ensure_ascii=False,
            default=str,
        ))
        return

    _display_result(result)


@cli.command()
@click.argument("pdf_path", type=_FILE)
def info(pdf_path: str):
    """List the images embedded in a PDF file."""

    try:
        with PdfImageExtractor.open(pdf_path) as pdf:
            page_count = pdf.page_count
            images = pdf.describe()
    except CovidQrError as e:
        console.print(f"[red]Error ({e.stage}):[/] {escape(str(e))}")
        sys.exit(1)

    console.print()
    table = Table(
        title=f"{os.path.basename(pdf_path)} ({page_count} pages)",
        border_style="cyan",
    )
    table.add_column("Page", justify="right")
    table.add_column("Xref", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("BPC", justify="right")
    table.add_column("Colorspace")
    table.add_column("Soft Mask", justify="center")

    for image in images:
        table.add_row(
            str(image.page_number),
            str(image.xref),
            f"{image.width}x{image.height}",
            str(image.bits_per_component),
            image.colorspace or "-",
            "[yellow]yes (skipped)[/]" if image.has_soft_mask else "[green]no[/]",
        )

    console.print(table)
    console.print(f"[bold]Total:[/] {len(images)} images")
    console.print()


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _display_result(result: DecodeResult):
    """Display the decoded record in a formatted table."""
    record = result.record

    console.print()
    if result.expired:
        console.print(Panel.fit(
            "[bold yellow]Expired vaccination certificate[/]",
            border_style="yellow",
        ))
    else:
        console.print(Panel.fit(
            "[bold green]Valid vaccination certificate[/]",
            border_style="green",
        ))

    table = Table(title="Vaccination Record", border_style="cyan")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Certificate ID", str(record.id))
    table.add_row("Record Version", str(record.version))
    table.add_row("Issue Date", record.issue_date.isoformat())
    table.add_row("Names", escape(record.names))
    table.add_row("Surname Initial", escape(record.first_surname_initial))
    table.add_row("Birthday (DD-MM)", str(record.short_birthdate))
    table.add_row("Valid Until", record.certificate_expiration.isoformat())
    table.add_row("Vaccine", escape(record.vaccine_type))
    console.print(table)

    console.print(
        f"[dim]Source: {escape(result.source)} | "
        f"Input: {result.input_type.value}[/]"
    )
    console.print()


# ─── Entry point (for python -m covid_qr.cli) ─────────────────────────────────


if __name__ == "__main__":
    cli()
