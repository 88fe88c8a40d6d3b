"""
CLI interface for the image API using Typer
Usage: image-api process <image_path> --operations '[{"type": "resize", "params": {"width": 800}}]'
"""

import json
import logging
import time
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich import print as rprint

from . import __version__
from .client import ApiClientError, ImageApiClient
from .config import get_config
from .core import ImageProcessor
from .errors import ImageApiError
from .metadata import MetadataExtractor
from .validation import parse_pipeline_steps

# Initialize CLI app
app = typer.Typer(
    name="image-api",
    help="Image API CLI - resize, crop, rotate, format và filter ảnh",
    add_completion=False
)

# Initialize console for rich output
console = Console()

# Setup logging for CLI
logging.basicConfig(
    level=logging.WARNING,  # Less verbose for CLI
    format='%(levelname)s: %(message)s'
)
logger = logging.getLogger(__name__)

OPERATION_PARAMS = {
    "resize": "width (>=1), height (>=1, optional), fit (cover|contain|fill|inside|outside)",
    "crop": "left (>=0), top (>=0), width (>=1), height (>=1)",
    "format": "format (jpeg|png|webp|avif|tiff)",
    "rotate": "angle (90|180|270)",
    "filter": "filter (blur|sharpen|grayscale), sigma (>0, optional)",
}


def setup_logging(verbose: bool = False):
    """Setup logging level based on verbose flag"""
    if verbose:
        logging.getLogger().setLevel(logging.INFO)
        logging.getLogger('image_api').setLevel(logging.INFO)


def load_operations(operations: str):
    """Operations là JSON string hoặc @path tới JSON file"""
    if operations.startswith("@"):
        return Path(operations[1:]).read_text(encoding="utf-8")
    return operations


def default_output_path(image_path: Path, data: bytes) -> Path:
    extractor = MetadataExtractor(get_config())
    extension = extractor.detect_format(data)
    return image_path.with_name(f"{image_path.stem}_processed.{extension}")


@app.command()
def process(
    image_path: str = typer.Argument(..., help="Path to image file to process"),
    operations: str = typer.Option(
        ...,
        "--operations", "-p",
        help="JSON array of {type, params} hoặc @file.json"
    ),
    output_file: Optional[str] = typer.Option(
        None,
        "--output", "-o",
        help="Output image path"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="Enable verbose logging"
    )
):
    """
    Apply a pipeline to a local image file

    Examples:
        image-api process ./sample.jpg -p '[{"type": "rotate", "params": {"angle": 90}}]'
        image-api process ./sample.jpg -p @pipeline.json --output out.png
    """
    setup_logging(verbose)

    image_path_obj = Path(image_path)
    if not image_path_obj.exists():
        rprint(f"[red]Error: File not found: {image_path}[/red]")
        raise typer.Exit(1)

    processor = None
    try:
        steps = parse_pipeline_steps(load_operations(operations))
        processor = ImageProcessor(get_config())
        buffer = image_path_obj.read_bytes()

        rprint(f"[blue]Processing image:[/blue] {image_path}")
        rprint(f"[blue]Steps:[/blue] {' -> '.join(step.type.value for step in steps)}")

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True
        ) as progress:
            task = progress.add_task("Processing image...", total=None)
            start_time = time.time()
            result = processor.run_pipeline_sync(buffer, steps)
            processing_time = time.time() - start_time
            progress.update(task, description="Processing complete!")

        output_path = Path(output_file) if output_file else default_output_path(image_path_obj, result)
        output_path.write_bytes(result)

        metadata = processor.describe(result)
        rprint(f"[green]✓ Processing completed in {processing_time:.2f}s[/green]")

        table = Table(title="Processing Results")
        table.add_column("Property", style="cyan")
        table.add_column("Value", style="white")
        table.add_row("Output Path", str(output_path))
        table.add_row("Image Size", f"{metadata.width}x{metadata.height}")
        table.add_row("Format", metadata.format)
        table.add_row("File Size", f"{metadata.file_size:,} bytes")
        console.print(table)

    except ImageApiError as e:
        rprint(f"[red]{type(e).__name__}: {e.message}[/red]")
        raise typer.Exit(1)
    except OSError as e:
        rprint(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        if processor:
            processor.cleanup()


@app.command()
def inspect(
    image_path: str = typer.Argument(..., help="Path to image file to inspect"),
):
    """Show image information without processing"""
    try:
        buffer = Path(image_path).read_bytes()
        extractor = MetadataExtractor(get_config())
        summary = extractor.summary(extractor.describe(buffer))
    except OSError as e:
        rprint(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except ImageApiError as e:
        rprint(f"[red]Validation Error: {e.message}[/red]")
        raise typer.Exit(1)

    table = Table(title="Image Information")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("File Path", image_path)
    table.add_row("File Size", f"{summary['file_size']:,} bytes")
    table.add_row("Dimensions", summary["dimensions"])
    table.add_row("Mode", summary["mode"])
    table.add_row("Format", summary["format"])
    table.add_row("Transparency", "Yes" if summary["has_transparency"] else "No")
    console.print(table)
    rprint("[green]✓ Image is valid and can be processed[/green]")


@app.command()
def operations():
    """Show supported operations and their parameters"""
    table = Table(title="Supported Operations")
    table.add_column("Operation", style="cyan")
    table.add_column("Parameters", style="white")
    for name, params in OPERATION_PARAMS.items():
        table.add_row(name, params)
    console.print(table)

    config = get_config()
    rprint(f"\n[blue]Input formats:[/blue] {', '.join(config.supported_formats)}")
    rprint(f"[blue]Default fit:[/blue] {config.default_fit}")


@app.command()
def config():
    """Show current service configuration"""
    settings = get_config()

    table = Table(title="Service Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("API", f"{settings.api_host}:{settings.api_port}")
    table.add_row("Max File Size", f"{settings.max_file_size:,} bytes")
    table.add_row("JPEG / WebP / AVIF Quality", f"{settings.jpeg_quality} / {settings.webp_quality} / {settings.avif_quality}")
    table.add_row("Default Fit", settings.default_fit)
    table.add_row("Workers", str(settings.max_workers))
    table.add_row("Step Timeout", f"{settings.step_timeout}s" if settings.step_timeout else "none")
    table.add_row("Log Path", settings.log_path)
    table.add_row("Users File", settings.users_file or "(in-memory)")
    table.add_row("JWT Secret", "default (insecure)" if settings.uses_default_secret else "set")

    console.print(table)


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind host"),
    port: Optional[int] = typer.Option(None, "--port", help="Bind port"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes"),
):
    """Run the REST API with uvicorn"""
    import uvicorn

    settings = get_config()
    uvicorn.run(
        "image_api.api:get_app",
        factory=True,
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


@app.command()
def register(
    email: str = typer.Option(..., "--email", prompt=True),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True, confirmation_prompt=True),
    base_url: Optional[str] = typer.Option(None, "--base-url", envvar="IMAGE_API_BASE_URL"),
):
    """Register a user on a running API"""
    with ImageApiClient(base_url or get_config().api_base_url) as client:
        try:
            data = client.register(email, password)
        except (ApiClientError, OSError) as e:
            rprint(f"[red]{e}[/red]")
            raise typer.Exit(1)
    rprint(f"[green]✓ Registered {data.get('email', email)}[/green]")


@app.command()
def login(
    email: str = typer.Option(..., "--email", prompt=True),
    password: str = typer.Option(..., "--password", prompt=True, hide_input=True),
    base_url: Optional[str] = typer.Option(None, "--base-url", envvar="IMAGE_API_BASE_URL"),
):
    """Login and print a bearer token (export it as IMAGE_API_TOKEN)"""
    with ImageApiClient(base_url or get_config().api_base_url) as client:
        try:
            token = client.login(email, password)
        except (ApiClientError, OSError) as e:
            rprint(f"[red]{e}[/red]")
            raise typer.Exit(1)
    typer.echo(token)


@app.command()
def remote(
    image_path: str = typer.Argument(..., help="Path to image file"),
    operations: str = typer.Option(..., "--operations", "-p", help="JSON array of {type, params} hoặc @file.json"),
    output_file: str = typer.Option(..., "--output", "-o", help="Output image path"),
    token: str = typer.Option(..., "--token", envvar="IMAGE_API_TOKEN", help="Bearer token"),
    base_url: Optional[str] = typer.Option(None, "--base-url", envvar="IMAGE_API_BASE_URL"),
):
    """Run a pipeline on a running API"""
    try:
        payload = json.loads(load_operations(operations))
    except (OSError, ValueError) as e:
        rprint(f"[red]Invalid operations: {e}[/red]")
        raise typer.Exit(1)

    with ImageApiClient(base_url or get_config().api_base_url, token=token) as client:
        try:
            data, media_type = client.pipeline(Path(image_path), payload)
        except (ApiClientError, OSError) as e:
            rprint(f"[red]{e}[/red]")
            raise typer.Exit(1)

    Path(output_file).write_bytes(data)
    rprint(f"[green]✓ Saved {len(data):,} bytes ({media_type}) to {output_file}[/green]")


@app.command()
def version():
    """Show version information"""
    rprint("[blue]Image API CLI[/blue]")
    rprint(f"Version: {__version__}")


if __name__ == "__main__":
    app()
