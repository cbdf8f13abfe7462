"""Main application entry point for longscribe."""

import sys
import asyncio
import argparse
import logging
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from . import __version__
from .config import LongscribeConfig
from .errors import TranscriptionError
from .models.backends import BackendKind
from .models.transcription import TranscriptionProgress, TranscriptionResult
from .services.transcription_service import TranscriptionService

logger = logging.getLogger(__name__)

console = Console()


def setup_logging(config, level: str = "INFO") -> None:
    """Set up logging configuration from YAML config."""
    # Get log file path from config
    log_file_path = config.get('logging.file_path', 'data/logs/longscribe.log')
    console_output = config.get('logging.console_output', True)

    # Create logs directory if it doesn't exist
    log_dir = Path(log_file_path).parent
    log_dir.mkdir(parents=True, exist_ok=True)

    handlers = []

    # File handler - always write to file
    file_handler = logging.FileHandler(log_file_path)
    file_handler.setLevel(logging.DEBUG)
    file_formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'
    )
    file_handler.setFormatter(file_formatter)
    handlers.append(file_handler)

    # Console handler - only if enabled in config
    if console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.WARNING)  # Only show warnings and above on console
        console_formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        console_handler.setFormatter(console_formatter)
        handlers.append(console_handler)

    # Configure root logger
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in handlers:
        root_logger.addHandler(handler)

    logger.info("=" * 50)
    logger.info("longscribe starting up")
    logger.info(f"Log file: {log_file_path}")
    logger.info(f"Log level set to: {level}")
    logger.info("=" * 50)


def format_timestamp(seconds: float) -> str:
    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def render_transcript(result: TranscriptionResult) -> str:
    """Plain-text transcript, one timestamped line per segment."""
    if not result.segments:
        return result.full_text + "\n"
    lines = [
        f"[{format_timestamp(segment.start_time)}] {segment.speaker}: {segment.text}"
        for segment in result.segments
    ]
    return "\n".join(lines) + "\n"


def print_error(error: TranscriptionError) -> None:
    console.print(f"❌ {error.description}", style="bold red")
    if error.remediation_hint:
        console.print(f"   💡 {error.remediation_hint}", style="yellow")


def print_progress(progress: TranscriptionProgress) -> None:
    if progress.is_complete:
        console.print(f"🧩 All {progress.total_chunks} chunks processed", style="blue")
    else:
        console.print(f"🧩 Chunk {progress.current_chunk + 1}/{progress.total_chunks} "
                      f"({int(progress.processed_duration)}s of {int(progress.total_duration)}s)", style="blue")


async def run_transcribe(service: TranscriptionService,
                         audio_file: str,
                         backend: Optional[str],
                         output: Optional[str]) -> int:
    service.orchestrator.progress_publisher.subscribe(print_progress)
    await service.start()
    try:
        console.print(f"🔧 Transcribing {audio_file}...", style="blue")
        result = await service.transcribe(audio_file, backend)
    except TranscriptionError as e:
        print_error(e)
        return 1
    finally:
        await service.shutdown()

    console.print(f"✅ Done in {result.processing_time:.1f}s ({result.chunk_count} chunk(s))", style="green")
    transcript = render_transcript(result)
    if output:
        Path(output).write_text(transcript, encoding='utf-8')
        console.print(f"📝 Transcript written to {output}")
    else:
        console.print(transcript)
    return 0


async def run_check_jobs(service: TranscriptionService, output_dir: Optional[str]) -> int:
    try:
        resolved = await service.check_jobs()
    finally:
        await service.shutdown()

    if not resolved:
        console.print(f"⏳ No completed jobs ({len(service.pending_jobs())} still pending)")
        return 0

    for result, job in resolved:
        console.print(f"✅ {job.recording_name} ({job.job_id})", style="green")
        transcript = render_transcript(result)
        if output_dir:
            target = Path(output_dir) / f"{job.recording_name}.txt"
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(transcript, encoding='utf-8')
            console.print(f"   📝 {target}")
        else:
            console.print(transcript)
    return 0


def show_jobs(service: TranscriptionService) -> int:
    table = Table(title="Pending transcription jobs")
    table.add_column("Job")
    table.add_column("Backend")
    table.add_column("Recording")
    table.add_column("Submitted")
    for job in service.pending_jobs():
        table.add_row(job.job_id, job.backend, job.recording_name, job.submitted_at.strftime("%Y-%m-%d %H:%M"))
    console.print(table)

    backends = Table(title="Backends")
    backends.add_column("Backend")
    backends.add_column("Status")
    for name, status in service.backend_status().items():
        backends.add_row(name, status, style="green" if status == "ready" else None)
    console.print(backends)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="longscribe - transcription of long recordings",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to configuration YAML file (default: looks for longscribe.yaml)"
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Set logging level (default: from config, else INFO)"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"longscribe v{__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    transcribe = subparsers.add_parser("transcribe", help="Transcribe an audio file")
    transcribe.add_argument("file", help="Recording file name, path or file:// URI")
    transcribe.add_argument(
        "--backend",
        choices=[kind.value for kind in BackendKind],
        help="Backend to use (default: transcription.default_backend)"
    )
    transcribe.add_argument("--output", help="Write the transcript to this file")

    check = subparsers.add_parser("check-jobs", help="Check pending asynchronous jobs now")
    check.add_argument("--output-dir", help="Write completed transcripts into this directory")

    subparsers.add_parser("jobs", help="List pending jobs and backend status")
    return parser


def main() -> None:
    """Main entry point for longscribe."""
    args = build_parser().parse_args()

    try:
        config = LongscribeConfig(args.config)
        setup_logging(config, args.log_level or config.get('logging.level', 'INFO'))
        service = TranscriptionService(config)

        if args.command == "transcribe":
            exit_code = asyncio.run(run_transcribe(service, args.file, args.backend, args.output))
        elif args.command == "check-jobs":
            exit_code = asyncio.run(run_check_jobs(service, args.output_dir))
        else:
            exit_code = show_jobs(service)
    except KeyboardInterrupt:
        console.print("\n👋 Goodbye!")
        exit_code = 130
    except (FileNotFoundError, ValueError) as e:
        console.print(f"❌ Error: {e}", style="bold red")
        logging.error(f"Application error: {e}")
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
