"""
Roofline CLI.

Detect a roof outline for an address and print its sections, or summarize an
exported GeoJSON file.

Usage:
    roofline detect "1600 Pennsylvania Ave NW, Washington, DC" --json roof.geojson
    roofline detect "Main St 1" --footprints buildings.geojson --radius 75
    roofline area roof.geojson
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .core.exceptions import RooflineError
from .core.models import DetectionResult, Polygon
from .editing.debounce import LoopScheduler
from .export.geojson import GeoJSONExporter
from .geo.footprint_detector import DetectionOptions, FootprintDetector
from .geo.geocoder import GeocodingResolver, build_geocoding_service
from .geo.providers import FootprintProvider, OverpassFootprintProvider, StaticFootprintProvider
from .sections.aggregator import RoofSectionAggregator
from .session import RoofSession
from .surface.headless import HeadlessSurface
from .utils.logging_config import ensure_logging

app = typer.Typer(
    name="roofline",
    help="Roofline - building footprint detection and roof area sections",
    add_completion=False,
)
console = Console()


def _sections_table(aggregator: RoofSectionAggregator, title: str) -> Table:
    table = Table(title=title)
    table.add_column("#", justify="right")
    table.add_column("Section", style="cyan")
    table.add_column("Slope")
    table.add_column("Area (sq ft)", justify="right")
    table.add_column("Area (m²)", justify="right")
    table.add_column("Included", justify="center")

    for section in aggregator.sections():
        table.add_row(
            str(section.index + 1),
            section.label,
            section.slope_class.value,
            section.formatted_area,
            f"{section.square_meters:.1f}",
            "✓" if section.included else "-",
        )
    return table


def _print_totals(aggregator: RoofSectionAggregator) -> None:
    console.print(
        f"[bold]Total:[/bold] {aggregator.total_square_feet():,.2f} sq ft "
        f"({aggregator.total_square_meters():,.1f} m²)"
    )


async def _detect(
    address: str,
    footprints: Optional[Path],
    radius: Optional[float],
    json_out: Optional[Path],
) -> int:
    provider: FootprintProvider
    if footprints is not None:
        provider = StaticFootprintProvider.from_file(footprints)
    else:
        provider = OverpassFootprintProvider()

    try:
        await provider.load()
        resolver = GeocodingResolver(build_geocoding_service())
    except RooflineError as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1

    detector = FootprintDetector(provider)
    overrides = {"search_radius_m": radius} if radius is not None else {}
    session = RoofSession(
        resolver,
        detector,
        HeadlessSurface(name="primary"),
        scheduler=LoopScheduler(),
    )

    try:
        with console.status(f"[cyan]Searching {address}...[/cyan]"):
            result: Optional[DetectionResult] = await session.search(
                address, DetectionOptions.from_settings(**overrides)
            )

        if result is None:
            console.print(f"[red]Search failed:[/red] {session.current_error}")
            return 1

        polygons: List[Polygon] = session.save_changes()
        location = session.last_geocode.formatted_address if session.last_geocode else address
        console.print(Panel.fit(
            f"[bold blue]{location}[/bold blue]\n"
            f"Query point: {result.query_point.lng:.6f}, {result.query_point.lat:.6f}\n"
            f"Candidates: {len(result.candidates)}  "
            f"Confidence: {result.confidence:.2f}  "
            f"Time: {result.processing_time_s:.2f}s",
            border_style="blue",
        ))
        if result.is_fallback:
            console.print(
                "[yellow]No building footprint found; "
                "showing an approximate square to adjust manually.[/yellow]"
            )

        console.print(_sections_table(session.aggregator, "Roof sections"))
        _print_totals(session.aggregator)

        if json_out is not None:
            GeoJSONExporter().export(polygons, json_out)
        return 0
    finally:
        session.close()
        if isinstance(provider, OverpassFootprintProvider):
            provider.close()


@app.command()
def detect(
    address: str = typer.Argument(..., help="Street address to look up"),
    footprints: Optional[Path] = typer.Option(
        None, "--footprints", "-f", help="Local GeoJSON FeatureCollection of building footprints"
    ),
    radius: Optional[float] = typer.Option(
        None, "--radius", "-r", help="Search radius in meters (default from settings)"
    ),
    json_out: Optional[Path] = typer.Option(
        None, "--json", "-o", help="Write the roof polygons as GeoJSON"
    ),
    log_level: str = typer.Option("WARNING", "--log-level", help="Log level"),
):
    """
    Geocode an address, detect the building footprint and print roof sections.
    """
    ensure_logging(log_level.upper())
    code = asyncio.run(_detect(address, footprints, radius, json_out))
    if code:
        raise typer.Exit(code)


@app.command()
def area(
    input_file: Path = typer.Argument(..., help="GeoJSON file with roof polygons"),
):
    """
    Print labels, areas and totals for a GeoJSON file of roof polygons.
    """
    ensure_logging("WARNING")
    if not input_file.exists():
        console.print(f"[red]File not found:[/red] {input_file}")
        raise typer.Exit(1)

    polygons = GeoJSONExporter.read(input_file)
    if not polygons:
        console.print("[yellow]No valid polygons in file.[/yellow]")
        raise typer.Exit(1)

    aggregator = RoofSectionAggregator(polygons)
    console.print(_sections_table(aggregator, str(input_file)))
    _print_totals(aggregator)


def main():
    app()


if __name__ == "__main__":
    main()
