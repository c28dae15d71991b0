from typing import Dict, List

import click
from rich.console import Console
from rich.table import Table

from synthesizer.compiler import CompilationResult
from synthesizer.registry import ResourceDefinition, ResourceRegistry
from typesys.type_system import TypeKind, TypeRegistry


def format_message(message: str, level: str = "info") -> str:
    prefix = click.style("TFSYNTH:", fg="blue")
    if level == "error":
        return prefix + click.style(f" {message}", fg="red")
    if level == "warning":
        return prefix + click.style(f" {message}", fg="yellow")
    if level == "success":
        return prefix + click.style(f" {message}", fg="green")
    return prefix + f" {message}"


def _split_error(error: str):
    """'type.name: path: message' -> (resource, path, message)"""
    parts = error.split(": ", 2)
    if len(parts) == 3:
        return parts[0], parts[1], parts[2]
    if len(parts) == 2:
        return parts[0], "", parts[1]
    return "", "", error


def display_errors(result: CompilationResult, console: Console):
    """Display every error of one template in a table"""
    console.print(f"\n[red]Template {result.template_name} failed validation:[/red]")
    error_table = Table(show_header=True)
    error_table.add_column("Resource")
    error_table.add_column("Path")
    error_table.add_column("Message")

    for error in result.errors:
        resource, path, message = _split_error(error)
        error_table.add_row(resource, path, message)

    console.print(error_table)


def display_warnings(result: CompilationResult, console: Console):
    for warning in result.warnings:
        console.print(f"[yellow]Warning:[/yellow] {result.template_name}: {warning}")


def display_results(results: Dict[str, CompilationResult], console: Console) -> int:
    """Print results and return the number of failed templates"""
    failed = 0
    for result in results.values():
        display_warnings(result, console)
        if result.success:
            resource_count = sum(len(instances) for instances in result.document.get("resource", {}).values())
            console.print(f"[green]✓[/green] {result.template_name}: {resource_count} resource(s) valid")
        else:
            failed += 1
            display_errors(result, console)
    return failed


def display_resource_types(registry: ResourceRegistry, console: Console):
    table = Table(show_header=True)
    table.add_column("Resource type")
    table.add_column("Attributes")
    table.add_column("Description")
    for name in registry.names():
        definition = registry.get(name)
        table.add_row(name, str(len(definition.schema.attributes)), definition.description)
    console.print(table)


def display_resource_schema(definition: ResourceDefinition, type_registry: TypeRegistry, console: Console):
    console.print(f"\n[blue]{definition.resource_type}[/blue] {definition.description}")
    table = Table(show_header=True)
    table.add_column("Attribute")
    table.add_column("Type")
    table.add_column("Required")
    table.add_column("Default")
    table.add_column("Array mode")

    for attribute in definition.schema.attributes:
        descriptor = type_registry.resolve(attribute.type)
        default = ""
        if attribute.has_default:
            default = "<computed>" if callable(attribute.default) else repr(attribute.default)
        array_mode = attribute.array_mode.value if descriptor.unwrap().kind == TypeKind.ARRAY else ""
        table.add_row(
            attribute.name,
            descriptor.describe(),
            "yes" if attribute.required else "",
            default,
            array_mode,
        )
    console.print(table)

    rules: List[str] = [f"{rule.name}: {rule.description or ', '.join(rule.fields)}" for rule in definition.schema.rules]
    if rules:
        console.print("[blue]Rules:[/blue]")
        for line in rules:
            console.print(f"  • {line}")
