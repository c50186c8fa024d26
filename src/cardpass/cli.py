"""cardpass CLI."""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from cardpass.config import settings
from cardpass.exceptions import ImageDecodeError
from cardpass.models import CardImage, ConfidenceLevel, FieldType
from cardpass.pipeline import (
    CardExtractor,
    FieldRecognizer,
    crop,
    crop_to_card,
    extract_card_data,
    load_layout,
    partition,
    preprocess,
    profile_for,
    render_barcode_image,
)
from cardpass.pipeline.stage_assemble import encode_png

app = typer.Typer(
    name="cardpass",
    help="Extract student ID card fields for digital wallet passes",
    add_completion=False,
)
console = Console()


def configure_logging(level: Optional[str] = None) -> None:
    """Route package logging through rich."""
    logging.basicConfig(
        level=(level or settings.log_level).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
    )


def _load_image(image_path: Path) -> CardImage:
    try:
        return CardImage.from_path(image_path)
    except ImageDecodeError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)


@app.command()
def extract(
    image_path: Path = typer.Argument(..., help="Photo of the ID card"),
    output: Optional[Path] = typer.Option(None, help="Write the pass payload JSON here"),
    dark_text: bool = typer.Option(False, "--dark-text", help="Lower threshold for dark print"),
    detect_card: bool = typer.Option(False, "--detect-card", help="Crop the card out of the photo"),
    layout_file: Optional[Path] = typer.Option(None, "--layout", help="Layout table JSON"),
) -> None:
    """Extract name, ID, class year and barcode from a card photo."""
    configure_logging()
    console.print(f"[bold blue]Processing:[/bold blue] {image_path}")

    image = _load_image(image_path)
    extractor = CardExtractor(
        recognizer=FieldRecognizer(dark_text=dark_text or None),
        layout=load_layout(layout_file),
        detect_card_bounds=detect_card or None,
    )
    record = extract_card_data(image, extractor=extractor)

    table = Table(title="Card fields")
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_column("Confidence")
    for key, value in [
        ("name", record.name),
        ("card_id", record.card_id),
        ("year", record.year),
        ("barcode", record.barcode),
    ]:
        level = record.confidence.get(key, ConfidenceLevel.HIGH)
        style = "green" if level == ConfidenceLevel.HIGH else "yellow"
        table.add_row(key, value, f"[{style}]{level.value}[/{style}]")
    console.print(table)

    if record.needs_review:
        console.print("[yellow]Some fields hold defaults; confirm them before issuing a pass[/yellow]")

    if output is not None:
        output.write_text(json.dumps(record.to_pass_payload(), indent=2), encoding="utf-8")
        console.print(f"[dim]Pass payload written to {output}[/dim]")


@app.command()
def regions(
    image_path: Path = typer.Argument(..., help="Photo of the ID card"),
    output_dir: Path = typer.Argument(..., help="Directory for region images"),
    dark_text: bool = typer.Option(False, "--dark-text", help="Lower threshold for dark print"),
    detect_card: bool = typer.Option(False, "--detect-card", help="Crop the card out of the photo"),
    layout_file: Optional[Path] = typer.Option(None, "--layout", help="Layout table JSON"),
) -> None:
    """Write every preprocessed region as PNG, for layout calibration."""
    configure_logging()
    image = _load_image(image_path)
    if detect_card:
        image = crop_to_card(image)

    output_dir.mkdir(parents=True, exist_ok=True)
    field_regions = partition(image, load_layout(layout_file))

    for field_type, region in field_regions.items():
        pixels = preprocess(crop(image, region), profile_for(field_type, dark_text=dark_text))
        path = output_dir / f"{field_type.value}.png"
        path.write_bytes(encode_png(pixels))
        console.print(
            f"{field_type.value:>8}: x={region.x} y={region.y} "
            f"w={region.width} h={region.height} → {path}"
        )


@app.command()
def barcode(
    value: str = typer.Argument(..., help="Digits to depict"),
    output: Path = typer.Argument(..., help="PNG file to write"),
) -> None:
    """Render the display barcode picture of a value."""
    output.write_bytes(render_barcode_image(value))
    console.print(f"[bold blue]Barcode picture:[/bold blue] {output}")


@app.command()
def layout(
    layout_file: Optional[Path] = typer.Argument(None, help="Layout table JSON"),
) -> None:
    """Show the fractional layout table."""
    table_layout = load_layout(layout_file)

    table = Table(title="Card layout")
    table.add_column("Field", style="bold")
    for column in ("fx", "fy", "fw", "fh"):
        table.add_column(column, justify="right")
    for field_type in FieldType:
        box = table_layout.box_for(field_type)
        table.add_row(field_type.value, *(f"{v:.2f}" for v in (box.fx, box.fy, box.fw, box.fh)))
    console.print(table)


if __name__ == "__main__":
    app()
