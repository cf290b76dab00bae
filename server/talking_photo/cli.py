"""Command-line front end for generating a talking-photo video.

Examples::

    talking-photo avatar.jpg --text "Hello world" --output hello.mp4
    talking-photo avatar.png --audio narration.mp3 --remember
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import httpx

from .config import Settings, forget_credentials, get_settings, remember_credentials
from .errors import PipelineError, ValidationFailure
from .models.entities import AudioSource, Credentials, MediaFile, PipelineRequest
from .services.orchestration import PipelineOrchestrator

logger = logging.getLogger(__name__)

DEFAULT_SETTINGS_FILE = Path(__file__).resolve().parent.parent / ".env.local"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="talking-photo",
        description="Generate a talking-head video from a photo with HeyGen and ElevenLabs.",
    )
    parser.add_argument("image", type=Path, help="Avatar image (jpg or png)")
    narration = parser.add_mutually_exclusive_group(required=True)
    narration.add_argument("--text", help="Script text to synthesize with ElevenLabs")
    narration.add_argument("--text-file", type=Path, help="Read the script text from a file")
    narration.add_argument("--audio", type=Path, help="Pre-recorded narration (mp3, wav or m4a)")
    parser.add_argument("--output", type=Path, help="Download the finished video to this path")
    parser.add_argument("--heygen-key", help="HeyGen API key (defaults to HEYGEN_API_KEY)")
    parser.add_argument("--elevenlabs-key", help="ElevenLabs API key (defaults to ELEVENLABS_API_KEY)")
    remember = parser.add_mutually_exclusive_group()
    remember.add_argument("--remember", action="store_true", help="Save the API keys for next time")
    remember.add_argument("--forget", action="store_true", help="Remove any saved API keys")
    parser.add_argument(
        "--settings-file",
        type=Path,
        default=DEFAULT_SETTINGS_FILE,
        help="Dotenv file used by --remember/--forget",
    )
    parser.add_argument("--quiet", action="store_true", help="Only print the result")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")
    return parser


def _read_file(path: Path, what: str) -> MediaFile:
    if not path.is_file():
        raise ValidationFailure(f"{what} not found: {path}")
    return MediaFile(content=path.read_bytes(), filename=path.name)


def build_request(args: argparse.Namespace, settings: Settings) -> PipelineRequest:
    configured = settings.credentials()
    credentials = Credentials(
        heygen_api_key=(args.heygen_key or "").strip() or configured.heygen_api_key,
        elevenlabs_api_key=(args.elevenlabs_key or "").strip() or configured.elevenlabs_api_key,
    )

    if args.audio is not None:
        return PipelineRequest(
            image=_read_file(args.image, "Avatar image"),
            audio=_read_file(args.audio, "Audio file"),
            audio_source=AudioSource.UPLOAD,
            credentials=credentials,
        )

    script = args.text
    if args.text_file is not None:
        if not args.text_file.is_file():
            raise ValidationFailure(f"Script file not found: {args.text_file}")
        script = args.text_file.read_text(encoding="utf-8")
    return PipelineRequest(
        image=_read_file(args.image, "Avatar image"),
        script_text=(script or "").strip(),
        audio_source=AudioSource.TEXT,
        credentials=credentials,
    )


async def download_video(url: str, destination: Path, *, timeout: float = 300.0) -> Path:
    """Stream the rendered video to a local file."""

    destination.parent.mkdir(parents=True, exist_ok=True)
    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        async with client.stream("GET", url) as resp:
            resp.raise_for_status()
            with destination.open("wb") as fh:
                async for chunk in resp.aiter_bytes():
                    fh.write(chunk)
    logger.info("Video saved to %s", destination)
    return destination


class ConsoleLog:
    """Prints run log lines to stdout, prefixed with the last reported progress."""

    def __init__(self, quiet: bool = False) -> None:
        self.quiet = quiet
        self.percent = 0
        self.last_line: Optional[str] = None

    def progress(self, value: int, message: str) -> None:
        self.percent = value

    def line(self, text: str) -> None:
        if self.quiet:
            return
        self.last_line = text
        print(f"[{self.percent:3d}%] {text}", flush=True)

    def report(self, exc: PipelineError) -> None:
        # A failed run already logged this line unless output is quiet.
        if self.last_line != f"Error: {exc.message}":
            print(f"Error: {exc.message}", file=sys.stderr)


async def generate(args: argparse.Namespace, settings: Settings, console: ConsoleLog) -> str:
    request = build_request(args, settings)

    if args.forget:
        forget_credentials(args.settings_file)
    elif args.remember:
        remember_credentials(args.settings_file, request.credentials)

    orchestrator = PipelineOrchestrator(settings, on_progress=console.progress, on_log=console.line)
    video_url = await orchestrator.run(request)
    if args.output is not None:
        await download_video(video_url, args.output, timeout=settings.http_timeout_seconds)
        return str(args.output)
    return video_url


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)
    # Pipeline lines reach stdout through the run log only.
    package_logger = logging.getLogger("talking_photo")
    propagate = package_logger.propagate
    package_logger.propagate = False
    console = ConsoleLog(quiet=args.quiet)

    try:
        result = asyncio.run(generate(args, settings, console))
    except ValidationFailure as exc:
        console.report(exc)
        return 2
    except PipelineError as exc:
        console.report(exc)
        return 1
    except httpx.HTTPError as exc:
        print(f"Error: could not download video: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130
    finally:
        package_logger.propagate = propagate

    print(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
