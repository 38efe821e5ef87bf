"""Generate the tools JSON document from an OpenAPI description."""
import logging
from pathlib import Path
from typing import Optional

import typer

from todo_ai.llm.openapi import SchemaSourceError, load_openapi, normalize, write_tools_json
from todo_ai.llm.tools import ToolRegistry

app = typer.Typer(
    name="todo-ai-tools",
    help="Convert an OpenAPI description into tool definitions for the Ask AI dispatcher.",
    add_completion=False,
)


@app.command()
def generate(
    openapi_path: Path = typer.Argument(..., help="OpenAPI YAML or JSON file"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Where to write the tools JSON"),
) -> None:
    """Write ``{"tools": [...]}`` next to the OpenAPI file, or to ``--output``."""
    logging.basicConfig(level=logging.INFO)
    try:
        tools = normalize(load_openapi(openapi_path))
        ToolRegistry(tools)
    except (SchemaSourceError, ValueError) as e:
        typer.echo(f"Error generating tools: {e}", err=True)
        raise typer.Exit(code=1)

    target = output or openapi_path.with_name(f"{openapi_path.stem}-tools.json")
    write_tools_json(tools, target)
    typer.echo(f"Wrote {len(tools)} tools to {target}")


def main() -> None:
    app()


if __name__ == "__main__":
    main()
