"""
Screen Studio command line.

Usage:
    screen-studio record [--no-mic] [--output-dir DIR]   # capture, then upload/download
    screen-studio list                                   # show uploaded recordings
    screen-studio delete ID [--yes]                      # delete one recording
    screen-studio serve [--host HOST] [--port PORT]      # run the backend
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Awaitable, Callable

from screen_studio.client.api_client import APIClient
from screen_studio.client.capture import CaptureOptions, create_capture_backend
from screen_studio.client.catalog import RecordingCatalog
from screen_studio.client.session import CaptureSession, SessionState
from screen_studio.client.timer import IntervalTimer
from screen_studio.core.config import Settings, get_settings
from screen_studio.core.utils import (
    format_date,
    format_elapsed,
    format_file_size,
    recordings_count_label,
)

logger = logging.getLogger(__name__)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _client(settings: Settings) -> APIClient:
    return APIClient(
        base_url=settings.api_base_url,
        timeout=settings.request_timeout,
        upload_timeout=settings.upload_timeout,
    )


async def _prompt(text: str) -> str:
    """Read one line without blocking the event loop (timer keeps ticking)."""
    return (await asyncio.to_thread(input, text)).strip().lower()


async def _confirm(message: str) -> bool:
    return await _prompt(f"{message} [y/N] ") in ("y", "yes")


async def _wait_for_stop(
    session: CaptureSession,
    prompt: Callable[[str], Awaitable[str]] = _prompt,
) -> bool:
    """Wait for Enter or for the capture to end on its own.

    ``input()`` cannot be interrupted, so when the screen share is revoked
    the user is asked to press Enter once more to release the prompt.

    Returns:
        True if the recording ended without the user pressing Enter.
    """
    typed = asyncio.ensure_future(prompt("Recording in progress... press Enter to stop\n"))
    stopped = asyncio.ensure_future(session.wait_stopped())
    done, _ = await asyncio.wait({typed, stopped}, return_when=asyncio.FIRST_COMPLETED)
    if typed in done:
        stopped.cancel()
        return False

    print("\nScreen sharing ended. Press Enter to continue")
    await typed
    return True


def _print_catalog(catalog: RecordingCatalog, client: APIClient) -> None:
    if catalog.error:
        print(f"Error: {catalog.error}")
        return
    print(f"Uploaded Recordings ({recordings_count_label(len(catalog.records))})")
    if not catalog.records:
        print("  No recordings yet. Upload your first screen recording to get started!")
    for record in catalog.records:
        print(f"  [{record.id}] {record.original_name or record.filename}")
        details = f"Size: {format_file_size(record.size)}  Created: {format_date(record.created_at)}"
        if record.mimetype:
            details += f"  Type: {record.mimetype}"
        print(f"      {details}")
        print(f"      {client.recording_url(record.filename)}")


def _render_status(session: CaptureSession) -> None:
    if session.state is SessionState.RECORDING:
        size = format_file_size(sum(len(f) for f in session.fragments))
        sys.stdout.write(f"\r● REC {format_elapsed(session.elapsed)}  {size}   ")
        sys.stdout.flush()
    elif session.state is SessionState.UPLOADING:
        sys.stdout.write(f"\rUploading {session.upload_progress}%   ")
        sys.stdout.flush()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def _record(settings: Settings, args: argparse.Namespace) -> int:
    backend = create_capture_backend(
        settings.capture_provider,
        ffmpeg_path=settings.ffmpeg_path,
        display_input=settings.display_input,
        microphone_input=settings.microphone_input,
        system_audio_input=settings.system_audio_input,
    )
    options = CaptureOptions.from_settings(settings, use_microphone=not args.no_mic)
    output_dir = args.output_dir or settings.downloads_dir
    refresh_token = 0

    def _on_upload_success() -> None:
        nonlocal refresh_token
        refresh_token += 1

    async with _client(settings) as client:
        catalog = RecordingCatalog(client, confirm=_confirm, alert=lambda m: print(f"Error: {m}"))
        session = CaptureSession(
            backend,
            client,
            options,
            timer=IntervalTimer(1.0),
            on_upload_success=_on_upload_success,
            on_change=_render_status,
        )
        async with session:
            while True:
                if not await session.start():
                    print(session.error or "Could not start recording")
                    return 1
                await _wait_for_stop(session)
                await session.stop()
                await session.wait_stopped()

                artifact = session.artifact
                print(
                    f"\nRecorded {format_elapsed(session.elapsed)}"
                    f" ({format_file_size(artifact.size if artifact else 0)})"
                )

                while session.state is SessionState.STOPPED:
                    if session.error:
                        print(session.error)
                    options_text = "[u]pload, [d]ownload, [n]ew recording, [q]uit: "
                    if not session.can_upload:
                        options_text = "[n]ew recording, [q]uit: "
                    choice = await _prompt(options_text)
                    if choice.startswith("u") and session.can_upload:
                        if await session.upload():
                            print("\nRecording uploaded successfully!")
                            await catalog.refresh(refresh_token)
                            _print_catalog(catalog, client)
                    elif choice.startswith("d") and session.can_download:
                        print(f"Saved {session.download(output_dir)}")
                    elif choice.startswith("n"):
                        await session.reset()
                    elif choice.startswith("q"):
                        return 0

                if not await _confirm("Start a new recording?"):
                    return 0


async def _list(settings: Settings, _args: argparse.Namespace) -> int:
    async with _client(settings) as client:
        catalog = RecordingCatalog(client, confirm=_confirm)
        await catalog.mount()
        _print_catalog(catalog, client)
        return 1 if catalog.error else 0


async def _delete(settings: Settings, args: argparse.Namespace) -> int:
    async with _client(settings) as client:
        catalog = RecordingCatalog(
            client,
            confirm=(lambda _message: True) if args.yes else _confirm,
            alert=lambda message: print(f"Error: {message}"),
        )
        if await catalog.delete(args.id):
            print(f"Deleted recording {args.id}")
            return 0
        return 1


def _serve(settings: Settings, args: argparse.Namespace) -> int:
    import uvicorn

    uvicorn.run(
        "screen_studio.api.app:app",
        host=args.host or settings.app_host,
        port=args.port or settings.app_port,
        log_level=settings.log_level.lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="screen-studio",
        description="Record your screen and manage uploaded recordings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    record = sub.add_parser("record", help="Record the screen (and microphone)")
    record.add_argument("--no-mic", action="store_true", help="Do not capture the microphone")
    record.add_argument(
        "--output-dir",
        type=str,
        default=None,
        help="Directory for downloaded recordings (default: settings.downloads_dir)",
    )

    sub.add_parser("list", help="List uploaded recordings")

    delete = sub.add_parser("delete", help="Delete an uploaded recording")
    delete.add_argument("id", type=int, help="Recording ID")
    delete.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")

    serve = sub.add_parser("serve", help="Run the backend API server")
    serve.add_argument("--host", type=str, default=None)
    serve.add_argument("--port", type=int, default=None)

    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    _configure_logging(settings.log_level)

    if args.command == "serve":
        sys.exit(_serve(settings, args))

    commands = {"record": _record, "list": _list, "delete": _delete}
    try:
        code = asyncio.run(commands[args.command](settings, args))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
