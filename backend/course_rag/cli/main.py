"""CLI entrypoint for the course assistant backend."""

from __future__ import annotations

import json
import mimetypes
import os
from pathlib import Path
from typing import Optional

import requests
import typer

app = typer.Typer(name="crag", help="Course RAG command-line interface")
courses_app = typer.Typer(name="courses")
app.add_typer(courses_app, name="courses")

DEFAULT_HOST = "http://127.0.0.1:8000"


def _resolve_host(override: Optional[str]) -> str:
    if override:
        return override.rstrip('/')
    env_host = os.environ.get("CRAG_HOST")
    if env_host:
        return env_host.rstrip('/')
    return DEFAULT_HOST


def _request(method: str, path: str, host: Optional[str] = None, **kwargs) -> requests.Response:
    base = _resolve_host(host)
    url = f"{base}{path}"
    resp = requests.request(method, url, timeout=300, **kwargs)
    if not resp.ok:
        try:
            detail = resp.json()
        except ValueError:
            detail = resp.text
        typer.echo(f"Request failed ({resp.status_code}): {detail}", err=True)
        raise typer.Exit(code=1)
    return resp


def _echo(resp: requests.Response) -> None:
    typer.echo(json.dumps(resp.json(), indent=2, ensure_ascii=False))


@courses_app.command("list")
def list_courses(
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List courses."""
    _echo(_request("GET", "/courses", host=host))


@courses_app.command("add")
def add_course(
    name: str = typer.Argument(..., help="Course name"),
    description: str = typer.Option("", "--description", help="Short description"),
    color: str = typer.Option("blue", "--color", help="Display colour"),
    icon: str = typer.Option("📚", "--icon", help="Display icon"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Create a course."""
    payload = {"name": name, "description": description, "color": color, "icon": icon}
    _echo(_request("POST", "/courses", host=host, json=payload))


@courses_app.command("remove")
def remove_course(
    course_id: str = typer.Argument(..., help="Course identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Delete a course with all of its files and embeddings."""
    _request("DELETE", f"/courses/{course_id}", host=host)
    typer.echo(json.dumps({"status": "ok"}))


@app.command()
def files(
    course_id: str = typer.Argument(..., help="Course identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """List the files indexed for a course."""
    _echo(_request("GET", f"/files/{course_id}", host=host))


@app.command()
def upload(
    course_id: str = typer.Argument(..., help="Course identifier"),
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to upload"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Upload a file and index it into a course."""
    path = path.expanduser()
    mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
    with path.open("rb") as handle:
        resp = _request(
            "POST",
            "/files/upload",
            host=host,
            files={"file": (path.name, handle, mime_type)},
            data={"courseId": course_id},
        )
    _echo(resp)


@app.command()
def youtube(
    course_id: str = typer.Argument(..., help="Course identifier"),
    url: str = typer.Argument(..., help="YouTube video URL"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Index a YouTube video's transcript into a course."""
    _echo(_request("POST", "/files/youtube", host=host, json={"courseId": course_id, "url": url}))


@app.command()
def ask(
    course_id: str = typer.Argument(..., help="Course identifier"),
    question: str = typer.Argument(..., help="Question to answer"),
    max_sources: int = typer.Option(5, "--max-sources", help="Chunks to retrieve"),
    cross_reference: bool = typer.Option(False, "--cross-reference", help="Force key-term cross-referencing"),
    web_search: bool = typer.Option(False, "--web-search", help="Allow general knowledge in the answer"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Ask a question against a course's material."""
    payload = {
        "courseId": course_id,
        "query": question,
        "maxSources": max_sources,
        "requireCrossReference": cross_reference,
        "useWebSearch": web_search,
    }
    _echo(_request("POST", "/chat/send", host=host, json=payload))


@app.command()
def search(
    course_id: str = typer.Argument(..., help="Course identifier"),
    q: str = typer.Argument(..., help="Query text"),
    limit: int = typer.Option(5, "--limit", help="Number of results to return"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show the raw nearest chunks for a query."""
    payload = {"courseId": course_id, "query": q, "limit": limit}
    _echo(_request("POST", "/embeddings/search", host=host, json=payload))


@app.command()
def stats(
    course_id: str = typer.Argument(..., help="Course identifier"),
    host: Optional[str] = typer.Option(None, "--host", help="Override backend host"),
) -> None:
    """Show index statistics for a course."""
    _echo(_request("GET", f"/embeddings/stats/{course_id}", host=host))


if __name__ == "__main__":
    app()
