"""
idmxml CLI
===========
Command-line interface for the idmxml library.

Commands:
    validate    Check an idmXML document against ISO 29481 content rules
    inspect     Show header metadata and the ER / IU tree
    convert     Re-encode a document, optionally to the other schema generation
    detect      Report the idmXSD generation of a document
    version     Show version information

Usage::

    idmxml validate spec.idmxml --strict
    idmxml inspect spec.idmxml --format json
    idmxml convert legacy.idmxml -o spec-v2.idmxml --schema 2.0
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

import click
from lxml import etree as ET
from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

from .. import __version__, config
from ..codec.reader import IdmXmlReader
from ..codec.schema import detect_schema_version
from ..codec.writer import IdmXmlWriter
from ..exceptions import IdmXmlParseError
from ..models.document import IdmDocument
from ..models.exchange import ExchangeRequirement, InformationUnit
from ..models.header import author_display_name
from ..validator.conformance import ProjectValidator, Severity

console = Console()


def _load(path: Path) -> IdmDocument:
    """Parse or exit with code 2, naming the file."""
    try:
        return IdmXmlReader().parse_file(path)
    except IdmXmlParseError as exc:
        console.print(Panel(
            f"[bold]{path}[/bold] could not be opened.\n\n{exc}",
            title="idmXML parse error",
            border_style="red",
        ))
        sys.exit(2)


@click.group()
@click.version_option(version=__version__, prog_name="idmxml")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output")
def cli(verbose: bool) -> None:
    """
    idmxml – Exchange Requirements and idmXML for ISO 29481 IDMs.

    Reads, validates and writes idmXML documents (idmXSD v1 and v2).
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else config.LOG_LEVEL,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


# ---------------------------------------------------------------------------
# validate
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--strict", is_flag=True, help="Exit with code 1 if any warnings")
@click.option("--json-output", is_flag=True, help="Output results as JSON")
def validate(path: Path, strict: bool, json_output: bool) -> None:
    """Validate an idmXML document."""
    document = _load(path)
    result = ProjectValidator().validate(document)

    if json_output:
        output = {
            "file": str(path),
            "passed": result.passed,
            "status": result.status_label(),
            "summary": result.summary(),
            "issues": [issue.to_dict() for issue in result.issues],
        }
        click.echo(json.dumps(output, indent=2))
    else:
        console.print()
        status_str = "[bold green]PASS[/bold green]" if result.passed else "[bold red]FAIL[/bold red]"
        console.print(Panel(
            f"[bold]{path.name}[/bold]\n"
            f"Status: {status_str}  |  {result.status_label()}  |  "
            f"Rules checked: {result.rule_count}",
            title="idmXML Validation",
            border_style="blue",
        ))
        if result.issues:
            t = Table(box=box.SIMPLE)
            t.add_column("Severity")
            t.add_column("Rule", style="dim")
            t.add_column("Path")
            t.add_column("Message")
            for issue in result.issues:
                color = "red" if issue.severity == Severity.ERROR else "yellow"
                t.add_row(f"[{color}]{issue.severity.value}[/{color}]", issue.rule_id, issue.path, issue.message)
            console.print(t)
        console.print()

    exit_code = 0
    if not result.passed:
        exit_code = 1
    elif strict and result.warnings:
        exit_code = 1
    sys.exit(exit_code)


# ---------------------------------------------------------------------------
# inspect
# ---------------------------------------------------------------------------


def _unit_label(unit: InformationUnit) -> str:
    flag = "[red]*[/red]" if unit.is_mandatory else ""
    return f"{unit.name or '[dim]unnamed[/dim]'}{flag} [dim]({unit.data_type})[/dim]"


def _er_tree(er: ExchangeRequirement) -> Tree:
    tree = Tree(f"[bold cyan]{er.name or 'unnamed ER'}[/bold cyan] [dim]{er.guid}[/dim]")
    stack = [(tree, er)]
    while stack:
        branch, current = stack.pop()
        units = [(branch, u) for u in current.information_units]
        while units:
            parent, unit = units.pop(0)
            node = parent.add(_unit_label(unit))
            units[:0] = [(node, sub) for sub in unit.sub_information_units]
        for sub in current.sub_ers:
            sub_branch = branch.add(f"[bold cyan]{sub.name or 'unnamed ER'}[/bold cyan] [dim]{sub.guid}[/dim]")
            stack.append((sub_branch, sub))
    return tree


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--format", "output_format", type=click.Choice(["rich", "json"]), default="rich")
def inspect(path: Path, output_format: str) -> None:
    """Inspect header metadata and the ER tree of a document."""
    document = _load(path)

    if output_format == "json":
        click.echo(document.model_dump_json(by_alias=True, indent=2))
        return

    header = document.header
    console.print()
    console.print(Panel(
        f"[bold]{header.title or path.name}[/bold]\n"
        f"Schema: idmXSD {document.schema_version.value}  |  "
        f"Status: {header.status}  |  Version: {header.version}  |  Language: {header.language}\n"
        f"Authors: {', '.join(author_display_name(a) for a in header.authors) or '-'}",
        title="idmXML Document",
        border_style="blue",
    ))

    t = Table(box=box.SIMPLE, show_header=False)
    t.add_column("Field", style="dim")
    t.add_column("Value")
    t.add_row("IDM guid", header.guids.idm_guid or "-")
    t.add_row("IDM code", header.idm_code or "-")
    t.add_row("Stages", ", ".join(header.project_stages) or "-")
    t.add_row("Uses", ", ".join(header.use_categories) or "-")
    t.add_row("Regions", ", ".join(header.regions) or "-")
    t.add_row("Data-object links", str(len(document.forest.data_object_links)))
    console.print(t)

    if document.forest.roots:
        for root in document.forest.roots:
            console.print(_er_tree(root))
    else:
        console.print("[yellow]No exchange requirements in this document.[/yellow]")
    console.print()


# ---------------------------------------------------------------------------
# convert
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), required=True)
@click.option("--schema", type=click.Choice(["1.0", "2.0"]), default=config.DEFAULT_SCHEMA_VERSION,
              help="Target idmXSD generation")
@click.option("--no-diagram", is_flag=True, help="Do not embed the process map content")
def convert(path: Path, output: Path, schema: str, no_diagram: bool) -> None:
    """Re-encode a document to the chosen schema generation."""
    document = _load(path)
    result = IdmXmlWriter(schema=schema).save(document, output, include_diagram=not no_diagram)
    console.print(f"[green]✓[/green] Wrote idmXSD {schema} document to [bold]{output}[/bold]")
    console.print(f"  IDM guid: {result.guids.idm_guid}")
    console.print(f"  Exchange requirements: {len(result.er_guids)}")


# ---------------------------------------------------------------------------
# detect
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def detect(path: Path) -> None:
    """Report which idmXSD generation a document uses."""
    try:
        root = ET.fromstring(path.read_bytes())
    except ET.XMLSyntaxError as exc:
        console.print(f"[red]{path}: invalid XML: {exc}[/red]")
        sys.exit(2)

    detection = detect_schema_version(root)
    console.print(f"[bold]{path.name}[/bold]: idmXSD {detection.version.value} "
                  f"([dim]{detection.confidence} confidence[/dim])")
    console.print(f"  {detection.details}")
    for indicator in detection.indicators:
        console.print(f"  • {indicator}")


# ---------------------------------------------------------------------------
# version info
# ---------------------------------------------------------------------------


@cli.command("version")
def show_version() -> None:
    """Show detailed version and schema information."""
    console.print(Panel(
        f"[bold cyan]idmxml[/bold cyan] v{__version__}\n\n"
        "Exchange Requirements and idmXML codec for ISO 29481 Information Delivery Manuals\n"
        f"idmXSD v1 namespace: {config.NAMESPACE_V1}\n"
        f"idmXSD v2 namespace: {config.NAMESPACE_V2}\n"
        f"Default output:      idmXSD {config.DEFAULT_SCHEMA_VERSION}\n\n"
        "License:  Apache 2.0",
        title="idmxml",
        border_style="cyan",
    ))
