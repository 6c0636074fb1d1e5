from __future__ import annotations

from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich import print
from rich.table import Table

from validai.core.config import settings
from validai.database.config import SessionLocal, init_db
from validai.services.project_store import ProjectNotFoundError, ProjectStore
from validai.services.report_export import export_report
from validai.services.spreadsheet import SpreadsheetParseError, export_test_plan
from validai.services.workflow import ViewController

app = typer.Typer(add_completion=False, help="ValidAI CLI")


def _info(msg: str) -> None:
    print(f"[cyan][ValidAI][/cyan] {msg}")


def _ok(msg: str) -> None:
    print(f"[green][ValidAI][OK][/green] {msg}")


def _fail(msg: str, code: int = 1) -> NoReturn:
    print(f"[red][ValidAI][FAIL][/red] {msg}")
    raise typer.Exit(code)


@app.command()
def serve(host: str = "127.0.0.1", port: int = 8000, reload: bool = False):
    """Run FastAPI server."""
    import uvicorn

    uvicorn.run("validai.main:app", host=host, port=port, reload=reload)


@app.command()
def history():
    """List saved validation projects (newest first)."""
    init_db()
    with SessionLocal() as db:
        projects = ProjectStore(db).list_all()

    if not projects:
        _info("No saved projects.")
        return

    table = Table(title="Validation History")
    table.add_column("ID", style="cyan")
    table.add_column("Name")
    table.add_column("Version")
    table.add_column("Status")
    table.add_column("Requirements", justify="right")
    table.add_column("Test Cases", justify="right")
    table.add_column("Created")
    for p in projects:
        table.add_row(
            p.id,
            p.name,
            p.platform_version,
            p.status.value,
            str(len(p.requirements)),
            str(len(p.test_cases)),
            p.created_at.strftime("%Y-%m-%d %H:%M"),
        )
    print(table)


@app.command("import-requirements")
def import_requirements(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="xlsx / xls / csv file"),
):
    """Create a draft project from a requirements spreadsheet."""
    init_db()
    controller = ViewController(session_factory=SessionLocal)
    try:
        project = controller.import_spreadsheet(file.read_bytes(), file.name)
    except SpreadsheetParseError as e:
        _fail(str(e))
    _ok(f"Created {project.id} '{project.name}' with {len(project.requirements)} requirements")


@app.command("export-plan")
def export_plan(
    project_id: str = typer.Argument(..., help="Project ID"),
    out_dir: Optional[Path] = typer.Option(None, "--out", help="Output directory (default: export dir)"),
    report: bool = typer.Option(False, "--report/--no-report", help="Also export the validation report"),
):
    """Export a project's test plan spreadsheet (and optionally its report)."""
    init_db()
    with SessionLocal() as db:
        try:
            project = ProjectStore(db).require(project_id)
        except ProjectNotFoundError:
            _fail(f"Project not found: {project_id}")

    target = out_dir or Path(settings.EXPORT_DIR)
    target.mkdir(parents=True, exist_ok=True)

    content, filename = export_test_plan(project)
    (target / filename).write_bytes(content)
    _ok(f"Wrote {target / filename}")

    if report:
        document = export_report(project)
        (target / document.filename).write_bytes(document.content)
        _ok(f"Wrote {target / document.filename}")


if __name__ == "__main__":
    app()
