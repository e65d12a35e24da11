"""Console front end: submit one image and wait for its resized copy."""

import asyncio
import mimetypes
import sys
from pathlib import Path

import click

from pixel_pusher import __version__
from pixel_pusher.clients import create_http_client
from pixel_pusher.clients.broker import LocationBrokerClient
from pixel_pusher.clients.storage import StorageClient
from pixel_pusher.config import settings
from pixel_pusher.errors import PixelPusherError
from pixel_pusher.jobs.models import ErrorKind, JobState
from pixel_pusher.logging_config import setup_logging
from pixel_pusher.services.job_controller import JobCallbacks, JobController


def _echo_error(kind: ErrorKind, message: str) -> None:
    click.echo(f"[{kind.value}] {message}", err=True)


def _echo_progress(text: str) -> None:
    if text:
        click.echo(text)


async def _run(
    image: Path, quality: int, width: int, height: int, output_dir: Path
) -> JobState:
    content_type = mimetypes.guess_type(image.name)[0] or settings.default_content_type
    callbacks = JobCallbacks(on_progress_message=_echo_progress, on_error=_echo_error)

    async with create_http_client() as http:
        controller = JobController(
            LocationBrokerClient(http), StorageClient(http), callbacks=callbacks
        )
        job = await controller.submit(
            {
                "file_name": image.name,
                "quality": quality,
                "max_width": width,
                "max_height": height,
                "content_type": content_type,
            },
            image.read_bytes(),
        )
        if job.state is not JobState.SUCCEEDED:
            return job.state

        artifact = await controller.download()
        output_dir.mkdir(parents=True, exist_ok=True)
        target = output_dir / artifact.file_name
        target.write_bytes(artifact.content)
        click.echo(f"Saved {target}")
        return job.state


@click.command()
@click.version_option(__version__, prog_name="pixel-pusher")
@click.argument("image", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--quality", "-q", default=settings.default_quality, show_default=True, help="Quality (1-100)."
)
@click.option(
    "--width", "-w", default=settings.default_dimension, show_default=True, help="Maximum width."
)
@click.option(
    "--height", "-h", default=settings.default_dimension, show_default=True, help="Maximum height."
)
@click.option(
    "--output-dir",
    "-o",
    type=click.Path(file_okay=False, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Where to save the resized image.",
)
@click.option("--log-level", default=None, help="Override PIXEL_PUSHER_LOG_LEVEL.")
def main(
    image: Path, quality: int, width: int, height: int, output_dir: Path, log_level: str | None
) -> None:
    """Upload IMAGE, wait for the resize worker, and download the result."""
    setup_logging(log_level)
    try:
        state = asyncio.run(_run(image, quality, width, height, output_dir))
    except PixelPusherError:
        # already reported through on_error
        sys.exit(1)
    if state is not JobState.SUCCEEDED:
        sys.exit(1)


if __name__ == "__main__":
    main()
