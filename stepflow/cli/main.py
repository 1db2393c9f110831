#!/usr/bin/env python3
"""Stepflow CLI - management utility for the Stepflow service.

Runs the server, prepares the database, and works with templates and
pipeline files offline.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from stepflow.exceptions import StepflowError
from stepflow.models import Step, TemplateCustomizations
from stepflow.repositories import TemplateRepository
from stepflow.services.pipeline_service import plan_steps
from stepflow.services.templates import TemplateRegistry, TemplateService, generate_pipeline
from stepflow.settings import settings
from stepflow.utils.db_manager import db_manager
from stepflow.utils.logger import logger

SETTINGS_TEMPLATE = """# Stepflow Configuration File

# Server settings
port = 8000
host = "127.0.0.1"
debug = true

# Database settings
database_driver = "sqlite"
database_name = "stepflow"

# Storage settings
storage_path = "./data"
projects_root = "./projects"

# Remote executor broker
rabbitmq_host = "localhost"
executor_queue = "stepflow.executor"

# Secret vault
vault_url = "http://127.0.0.1:8200"

# Orchestration
step_timeout_seconds = 3600
"""


def init_project(path: str) -> None:
    """Create a settings file and the data directories in ``path``."""
    project_path = Path(path).resolve()

    for directory in (project_path / "data", project_path / "projects"):
        directory.mkdir(parents=True, exist_ok=True)
        logger.info(f"Created directory: {directory}")

    settings_file = project_path / "settings.toml"
    if not settings_file.exists():
        settings_file.write_text(SETTINGS_TEMPLATE)
        logger.info(f"Created settings file: {settings_file}")

    logger.info(f"Project initialized at {project_path}")


def run_server(host: str | None = None, port: int | None = None) -> None:
    """Run the Stepflow API server."""
    import uvicorn

    host = host or settings.host
    port = port or settings.port

    logger.info(f"Starting Stepflow server at http://{host}:{port}")

    uvicorn.run(
        "stepflow.api.app:app",
        host=host,
        port=port,
        reload=settings.debug,
        log_level="info" if settings.debug else "warning",
    )


async def init_database() -> None:
    """Create the database tables."""
    logger.info("Initializing database...")
    await db_manager.create_db_and_tables_async()
    await db_manager.close()
    logger.info("Database initialized successfully")


async def _load_registry() -> TemplateRegistry:
    registry = TemplateRegistry()
    await db_manager.create_db_and_tables_async()
    async with db_manager.get_async_session_context() as session:
        await TemplateService(TemplateRepository(session), registry).load()
    await db_manager.close()
    return registry


async def list_templates(framework: str | None) -> None:
    registry = await _load_registry()
    if framework:
        templates = registry.templates_for_framework(framework)
    else:
        templates = registry.list_templates()
    for template in templates:
        origin = "built-in" if template.is_builtin else "user"
        framework_name = template.framework or "-"
        print(f"{template.key:<24} {framework_name:<10} {origin:<8} {template.name}")


async def export_template(key: str, output: str | None) -> None:
    registry = await _load_registry()
    document = registry.export_json(key)
    if output:
        Path(output).write_text(document)
        logger.info(f"Template '{key}' exported to {output}")
    else:
        print(document)


async def import_template(path: str) -> None:
    text = Path(path).read_text()
    registry = await _load_registry()
    async with db_manager.get_async_session_context() as session:
        template = await TemplateService(TemplateRepository(session), registry).import_json(text)
    await db_manager.close()
    logger.info(f"Template '{template.key}' imported")


def generate_from_template(
    key: str, project_id: str, project_name: str, variables: list[str]
) -> None:
    """Print the pipeline generated from a built-in template."""
    values: dict[str, str] = {}
    for item in variables:
        name, sep, value = item.partition("=")
        if not sep:
            raise StepflowError(f"Variable override '{item}' must look like NAME=VALUE")
        values[name] = value

    template = TemplateRegistry().get(key)
    pipeline = generate_pipeline(
        template, project_id, project_name, TemplateCustomizations(variables=values)
    )
    print(pipeline.model_dump_json(indent=2))


def validate_file(path: str) -> bool:
    """Validate a pipeline JSON file and print its waves.

    The file holds either a pipeline document with a ``steps`` list or a bare
    list of steps.

    Returns:
        True when the step graph is valid
    """
    document = json.loads(Path(path).read_text())
    raw_steps = document.get("steps", []) if isinstance(document, dict) else document
    try:
        steps = [Step.model_validate(raw) for raw in raw_steps]
    except PydanticValidationError as e:
        print(f"Invalid step definition: {e}")
        return False

    plan = plan_steps(Path(path).stem, steps)
    if not plan.valid:
        for error in plan.errors:
            print(f"error: {error}")
        return False

    for number, wave in enumerate(plan.waves, start=1):
        print(f"wave {number}: {', '.join(wave)}")
    return True


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="stepflow", description="Stepflow CLI - pipeline planning and orchestration"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Initialize a new Stepflow deployment")
    init_parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path where to create the settings file (default: current directory)",
    )

    # run command
    run_parser = subparsers.add_parser("run", help="Run the API server")
    run_parser.add_argument(
        "--host", type=str, default=None, help="Host to bind to (default: 127.0.0.1)"
    )
    run_parser.add_argument(
        "--port", type=int, default=None, help="Port to bind to (default: 8000)"
    )

    # db command
    db_parser = subparsers.add_parser("db", help="Database management")
    db_subparsers = db_parser.add_subparsers(dest="db_command")
    db_subparsers.add_parser("init", help="Initialize database with tables")

    # templates command
    templates_parser = subparsers.add_parser("templates", help="Pipeline template management")
    templates_subparsers = templates_parser.add_subparsers(dest="templates_command")

    templates_list = templates_subparsers.add_parser("list", help="List templates")
    templates_list.add_argument("--framework", type=str, default=None, help="Filter by framework")

    templates_export = templates_subparsers.add_parser("export", help="Export a template as JSON")
    templates_export.add_argument("key", help="Template key")
    templates_export.add_argument(
        "-o", "--output", type=str, default=None, help="Write to this file instead of stdout"
    )

    templates_import = templates_subparsers.add_parser("import", help="Import a template file")
    templates_import.add_argument("path", help="Path to the template JSON document")

    templates_generate = templates_subparsers.add_parser(
        "generate", help="Print the pipeline generated from a built-in template"
    )
    templates_generate.add_argument("key", help="Template key")
    templates_generate.add_argument("--project-id", required=True, help="Target project ID")
    templates_generate.add_argument("--project-name", required=True, help="Target project name")
    templates_generate.add_argument(
        "--var",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Override a template variable (repeatable)",
    )

    # validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a pipeline JSON file")
    validate_parser.add_argument("path", help="Path to the pipeline JSON file")

    args = parser.parse_args()

    try:
        if args.command == "init":
            init_project(args.path)
        elif args.command == "run":
            run_server(args.host, args.port)
        elif args.command == "db":
            if args.db_command == "init":
                asyncio.run(init_database())
            else:
                db_parser.print_help()
        elif args.command == "templates":
            if args.templates_command == "list":
                asyncio.run(list_templates(args.framework))
            elif args.templates_command == "export":
                asyncio.run(export_template(args.key, args.output))
            elif args.templates_command == "import":
                asyncio.run(import_template(args.path))
            elif args.templates_command == "generate":
                generate_from_template(args.key, args.project_id, args.project_name, args.var)
            else:
                templates_parser.print_help()
        elif args.command == "validate":
            if not validate_file(args.path):
                sys.exit(1)
        else:
            parser.print_help()
            sys.exit(1)
    except StepflowError as e:
        logger.error(str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
