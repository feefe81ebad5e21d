"""Command-line interface for the Reddit bot detection service."""

import asyncio
import json
import logging
from typing import Any, Callable, List, Optional

import typer
from sqlalchemy.exc import SQLAlchemyError
from typing_extensions import Annotated

from bot_detector.config import Config
from bot_detector.core.service import BotDetectionService, build_service
from bot_detector.exceptions import BotDetectionError
from bot_detector.storage import check_connection, create_db_engine, init_schema
from bot_detector.utils.logging_utils import DEFAULT_LOG_FILE, setup_logging

app = typer.Typer(help="Reddit Bot Detection - Score subreddit authors for bot-like behaviour")
logger = logging.getLogger(__name__)

ConfigOption = Annotated[str, typer.Option("--config", "-c", help="Path to configuration file")]
LogLevelOption = Annotated[str, typer.Option("--loglevel", "-l", help="Logging level")]
LogFileOption = Annotated[str, typer.Option("--log-file", help="Rotating log file (empty for console only)")]


def _echo_json(data: Any) -> None:
    typer.echo(json.dumps(data, indent=2, default=str))


def _fail(error: Exception) -> None:
    typer.echo(f"Error: {error}", err=True)
    raise typer.Exit(code=1)


def _load_service(config_path: str, loglevel: str, log_file: str) -> BotDetectionService:
    setup_logging(loglevel, log_file or None)
    try:
        return build_service(Config.from_files(config_path))
    except (BotDetectionError, SQLAlchemyError) as e:
        _fail(e)


def _execute(service: BotDetectionService, operation: Callable[[], Any]) -> Any:
    """Run ``operation`` (sync or async) on an event loop, closing the service afterwards."""
    async def runner() -> Any:
        try:
            result = operation()
            if asyncio.iscoroutine(result):
                result = await result
            return result
        finally:
            await service.close()

    return asyncio.run(runner())


@app.command("init-db")
def init_db(
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
    log_file: LogFileOption = DEFAULT_LOG_FILE,
) -> None:
    """Create the database tables if they do not exist."""
    setup_logging(loglevel, log_file or None)
    config_obj = Config.from_files(config)

    try:
        engine = create_db_engine(config_obj.database)
        if not check_connection(engine):
            _fail(BotDetectionError("Could not connect to the database"))
        init_schema(engine)
    except (BotDetectionError, SQLAlchemyError) as e:
        _fail(e)

    _echo_json({
        "success": True,
        "database": engine.url.render_as_string(hide_password=True),
        "message": "Database schema is ready",
    })


@app.command()
def create(
    subreddit: Annotated[str, typer.Option("--subreddit", "-s", help="Subreddit to analyse")],
    name: Annotated[Optional[str], typer.Option("--name", "-n", help="Session name")] = None,
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
    log_file: LogFileOption = DEFAULT_LOG_FILE,
) -> None:
    """Create a pending analysis session."""
    service = _load_service(config, loglevel, log_file)
    try:
        session = _execute(service, lambda: service.create_session(subreddit, name=name))
    except BotDetectionError as e:
        _fail(e)
    _echo_json(session.model_dump(mode="json"))


@app.command()
def get(
    session_id: Annotated[str, typer.Argument(help="Session id")],
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
    log_file: LogFileOption = DEFAULT_LOG_FILE,
) -> None:
    """Show one analysis session."""
    service = _load_service(config, loglevel, log_file)
    try:
        session = _execute(service, lambda: service.get_session(session_id))
    except BotDetectionError as e:
        _fail(e)
    _echo_json(session.model_dump(mode="json"))


@app.command("list")
def list_sessions(
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
    log_file: LogFileOption = DEFAULT_LOG_FILE,
) -> None:
    """List analysis sessions, newest first."""
    service = _load_service(config, loglevel, log_file)
    try:
        sessions = _execute(service, service.list_sessions)
    except BotDetectionError as e:
        _fail(e)
    _echo_json([session.model_dump(mode="json") for session in sessions])


@app.command()
def delete(
    session_id: Annotated[str, typer.Argument(help="Session id")],
    force: Annotated[bool, typer.Option("--force", help="Delete even if the session looks mid-flight")] = False,
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
    log_file: LogFileOption = DEFAULT_LOG_FILE,
) -> None:
    """Delete an analysis session that is not running."""
    service = _load_service(config, loglevel, log_file)
    try:
        _execute(service, lambda: service.delete_session(session_id, force=force))
    except BotDetectionError as e:
        _fail(e)
    _echo_json({"success": True, "session_id": session_id})


@app.command()
def run(
    session_id: Annotated[str, typer.Argument(help="Session id")],
    limit: Annotated[Optional[int], typer.Option("--limit", help="Number of feed items to extract")] = None,
    username: Annotated[Optional[List[str]], typer.Option("--username", "-u", help="Only score these accounts")] = None,
    force: Annotated[bool, typer.Option("--force", help="Restart a session left mid-flight by an interrupted run")] = False,
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
    log_file: LogFileOption = DEFAULT_LOG_FILE,
) -> None:
    """Run extraction and bot detection for a session."""
    service = _load_service(config, loglevel, log_file)
    try:
        result = _execute(service, lambda: service.run_pipeline(
            session_id, usernames=username, limit=limit, force=force,
        ))
    except BotDetectionError as e:
        _fail(e)
    _echo_json(result.model_dump(mode="json"))


@app.command()
def detect(
    username: Annotated[Optional[List[str]], typer.Option("--username", "-u", help="Only score these accounts")] = None,
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
    log_file: LogFileOption = DEFAULT_LOG_FILE,
) -> None:
    """Score already extracted accounts without running extraction."""
    service = _load_service(config, loglevel, log_file)
    try:
        result = _execute(service, lambda: service.run_detection(username))
    except BotDetectionError as e:
        _fail(e)
    _echo_json(result.model_dump(mode="json"))


@app.command()
def action(
    name: Annotated[str, typer.Argument(help="create, get, list, delete or run-full-analysis")],
    payload: Annotated[str, typer.Option("--payload", "-p", help="JSON object with the action's parameters")] = "{}",
    config: ConfigOption = "config.yaml",
    loglevel: LogLevelOption = "INFO",
    log_file: LogFileOption = DEFAULT_LOG_FILE,
) -> None:
    """Run an action the way a request/response transport would."""
    try:
        params = json.loads(payload)
    except json.JSONDecodeError as e:
        _fail(ValueError(f"Invalid JSON payload: {e}"))
    if not isinstance(params, dict):
        _fail(ValueError("Payload must be a JSON object"))

    service = _load_service(config, loglevel, log_file)
    try:
        response = _execute(service, lambda: service.dispatch(name, params))
    except BotDetectionError as e:
        _fail(e)
    _echo_json(response)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
