"""Schedules CLI: manage schedules on a running Schedule Reminder API server."""

from __future__ import annotations

import calendar as pycalendar
import json
import sys
from typing import Any

import click
import httpx
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

console = Console()
err_console = Console(stderr=True)

_PRIORITY_COLOR: dict[str, str] = {
    "high": "red",
    "medium": "yellow",
    "low": "green",
}
_MAX_DAY_ITEMS = 3


# ── Internal helpers ──────────────────────────────────────────────────────────


def _color(priority: str) -> str:
    return _PRIORITY_COLOR.get(priority, "white")


def _client(url: str) -> httpx.Client:
    return httpx.Client(base_url=url.rstrip("/"), timeout=30)


def _load_file(path: str) -> dict:
    with open(path) as f:
        return yaml.safe_load(f) if path.endswith((".yaml", ".yml")) else json.load(f)


def _die(msg: str, code: int = 1) -> None:
    err_console.print(f"[red]Error:[/] {msg}")
    sys.exit(code)


def _check(resp: httpx.Response) -> None:
    if resp.status_code == 404:
        _die(resp.json().get("detail", "Not found"))
    if resp.status_code == 422:
        detail = resp.json().get("detail")
        errors = detail.get("errors") if isinstance(detail, dict) else None
        if errors:
            _die("; ".join(f"{field}: {msg}" for field, msg in errors.items()))
        _die(f"Invalid schedule: {detail}")
    if resp.is_error:
        _die(f"HTTP {resp.status_code}: {resp.text}")


def _when(s: dict) -> str:
    kind = s.get("scheduleType") or "single"
    if kind == "period":
        text = f"{s.get('periodStartDate', '?')} → {s.get('periodEndDate', '?')}"
        if s.get("periodStartTime") or s.get("periodEndTime"):
            text += f" ({s.get('periodStartTime', '')}-{s.get('periodEndTime', '')})"
        return text
    when = (s.get("date") or "-").replace("T", " ")[:16]
    if kind == "recurring":
        interval = s.get("recurringInterval", 1)
        every = s.get("recurringType", "?") if interval == 1 else f"{interval}×{s.get('recurringType', '?')}"
        return f"{when}, every {every} until {s.get('recurringEndDate', '-')}"
    return when


def _schedule_fields(
    title: str | None,
    description: str | None,
    location: str | None,
    priority: str | None,
    schedule_type: str | None,
    date: str | None,
    recurring_type: str | None,
    interval: int | None,
    until: str | None,
    start: str | None,
    end: str | None,
    start_time: str | None,
    end_time: str | None,
) -> dict[str, Any]:
    fields = {
        "title": title,
        "description": description,
        "location": location,
        "priority": priority,
        "scheduleType": schedule_type,
        "date": date,
        "recurringType": recurring_type,
        "recurringInterval": interval,
        "recurringEndDate": until,
        "periodStartDate": start,
        "periodEndDate": end,
        "periodStartTime": start_time,
        "periodEndTime": end_time,
    }
    return {k: v for k, v in fields.items() if v is not None}


def _schedule_options(func):
    options = [
        click.option("--title", help="Schedule title."),
        click.option("--description", help="Free-text description."),
        click.option("--location", help="Where it happens."),
        click.option("--priority", type=click.Choice(["low", "medium", "high"])),
        click.option("--type", "schedule_type", type=click.Choice(["single", "recurring", "period"])),
        click.option("--date", metavar="YYYY-MM-DDTHH:MM", help="Instant, or recurrence start."),
        click.option("--recurring-type", type=click.Choice(["daily", "weekly", "monthly", "yearly"])),
        click.option("--interval", type=click.IntRange(min=1), help="Recurrence stride."),
        click.option("--until", metavar="YYYY-MM-DD", help="Last day of the recurrence."),
        click.option("--start", metavar="YYYY-MM-DD", help="First day of a period."),
        click.option("--end", metavar="YYYY-MM-DD", help="Last day of a period."),
        click.option("--start-time", metavar="HH:MM"),
        click.option("--end-time", metavar="HH:MM"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _print_saved(data: dict, verb: str) -> None:
    s = data["schedule"]
    line = f"{verb}  {s['id']}  {s.get('title', '')}"
    if data.get("reminderScheduled"):
        line += "  [push reminder booked]"
    click.echo(line)
    for warning in data.get("warnings", []):
        err_console.print(f"[yellow]Warning:[/] {warning}")


# ── Root group ────────────────────────────────────────────────────────────────


@click.group()
@click.option(
    "--url", "-u",
    default="http://localhost:8000",
    envvar="SCHEDULES_URL",
    show_default=True,
    help="Schedule Reminder API base URL.",
)
@click.option("--json", "json_output", is_flag=True, help="Output raw JSON.")
@click.pass_context
def cli(ctx: click.Context, url: str, json_output: bool) -> None:
    """Personal schedule and reminder CLI."""
    ctx.ensure_object(dict)
    ctx.obj["url"] = url
    ctx.obj["json_output"] = json_output


# ── schedules list ────────────────────────────────────────────────────────────


@cli.command("list")
@click.option(
    "--filter", "filter_",
    type=click.Choice(["all", "today", "upcoming"]),
    default="all",
    show_default=True,
)
@click.pass_obj
def list_schedules(obj: dict, filter_: str) -> None:
    """List schedules."""
    with _client(obj["url"]) as c:
        resp = c.get("/schedules", params={"filter": filter_})
    _check(resp)
    data = resp.json()

    if obj["json_output"]:
        click.echo(json.dumps(data, indent=2))
        return

    if not data:
        click.echo("No schedules found.")
        return

    table = Table(box=box.SIMPLE)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("When")
    table.add_column("Location")
    table.add_column("Priority")
    for s in data:
        priority = s.get("priority", "medium")
        table.add_row(
            s["id"],
            s.get("title", ""),
            _when(s),
            s.get("location") or "",
            f"[{_color(priority)}]{priority}[/]",
        )
    console.print(table)


# ── schedules show ────────────────────────────────────────────────────────────


@cli.command("show")
@click.argument("schedule_id")
@click.pass_obj
def show(obj: dict, schedule_id: str) -> None:
    """Show one schedule."""
    with _client(obj["url"]) as c:
        resp = c.get(f"/schedules/{schedule_id}")
    _check(resp)
    s = resp.json()

    if obj["json_output"]:
        click.echo(json.dumps(s, indent=2))
        return

    priority = s.get("priority", "medium")
    console.print(f"[bold]{s.get('title', '')}[/]  [{_color(priority)}]{priority}[/]")
    console.print(f"When: {_when(s)}")
    if s.get("location"):
        console.print(f"Location: {s['location']}")
    if s.get("description"):
        console.print(f"\n{s['description']}")


# ── schedules add / edit ──────────────────────────────────────────────────────


@cli.command("add")
@click.option("--file", "file", type=click.Path(exists=True),
              help="YAML or JSON file with the schedule fields.")
@_schedule_options
@click.pass_obj
def add(obj: dict, file: str | None, **fields: Any) -> None:
    """Create a schedule from options or a YAML/JSON file.

    \b
    File format (YAML example):
      title: Team sync
      scheduleType: recurring
      date: "2024-01-01T09:00"
      recurringType: weekly
      recurringInterval: 2
      recurringEndDate: "2024-03-01"
    """
    payload = _load_file(file) if file else {}
    payload.update(_schedule_fields(**fields))
    with _client(obj["url"]) as c:
        resp = c.post("/schedules", json=payload)
    _check(resp)
    data = resp.json()

    if obj["json_output"]:
        click.echo(json.dumps(data, indent=2))
        return
    _print_saved(data, "Created")


@cli.command("edit")
@click.argument("schedule_id")
@click.option("--file", "file", type=click.Path(exists=True),
              help="YAML or JSON file with the fields to change.")
@_schedule_options
@click.pass_obj
def edit(obj: dict, schedule_id: str, file: str | None, **fields: Any) -> None:
    """Change fields of an existing schedule."""
    changes = _load_file(file) if file else {}
    changes.update(_schedule_fields(**fields))
    with _client(obj["url"]) as c:
        current = c.get(f"/schedules/{schedule_id}")
        _check(current)
        payload = {**current.json(), **changes}
        resp = c.put(f"/schedules/{schedule_id}", json=payload)
    _check(resp)
    data = resp.json()

    if obj["json_output"]:
        click.echo(json.dumps(data, indent=2))
        return
    _print_saved(data, "Updated")


# ── schedules delete ──────────────────────────────────────────────────────────


@cli.command("delete")
@click.argument("schedule_id")
@click.pass_obj
def delete(obj: dict, schedule_id: str) -> None:
    """Delete a schedule."""
    with _client(obj["url"]) as c:
        resp = c.delete(f"/schedules/{schedule_id}")
    _check(resp)
    click.echo(f"Deleted  {schedule_id}")


# ── schedules calendar ────────────────────────────────────────────────────────


@cli.command("calendar")
@click.argument("year", type=int)
@click.argument("month", type=click.IntRange(1, 12))
@click.pass_obj
def calendar_view(obj: dict, year: int, month: int) -> None:
    """Show a month grid with the schedules on each day."""
    with _client(obj["url"]) as c:
        resp = c.get(f"/calendar/{year}/{month}")
    _check(resp)
    days = resp.json()

    if obj["json_output"]:
        click.echo(json.dumps(days, indent=2))
        return

    table = Table(title=f"{pycalendar.month_name[month]} {year}", box=box.SQUARE, show_lines=True)
    for name in ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"):
        table.add_column(name, width=14, vertical="top")

    # Leading blanks so the 1st lands under its weekday (Sunday first).
    cells = [""] * ((pycalendar.weekday(year, month, 1) + 1) % 7)
    for d in days:
        day_no = int(d["day"][-2:])
        head = f"[reverse]{day_no}[/]" if d.get("isToday") else f"[bold]{day_no}[/]"
        lines = [head]
        for s in d["schedules"][:_MAX_DAY_ITEMS]:
            lines.append(f"[{_color(s.get('priority', 'medium'))}]•[/] {s.get('title', '')[:11]}")
        if len(d["schedules"]) > _MAX_DAY_ITEMS:
            lines.append(f"[dim]+{len(d['schedules']) - _MAX_DAY_ITEMS}[/]")
        cells.append("\n".join(lines))
    cells += [""] * (-len(cells) % 7)
    for i in range(0, len(cells), 7):
        table.add_row(*cells[i:i + 7])
    console.print(table)


# ── schedules reset-notified ──────────────────────────────────────────────────


@cli.command("reset-notified")
@click.pass_obj
def reset_notified(obj: dict) -> None:
    """Forget delivered reminders so due schedules remind again."""
    with _client(obj["url"]) as c:
        resp = c.post("/notifications/reset")
    _check(resp)
    click.echo("Notified reminders cleared")


# ── schedules push ────────────────────────────────────────────────────────────


@cli.command("push")
@click.argument("subscription_id")
@click.argument("title")
@click.argument("message")
@click.option("--at", "send_after", metavar="ISO-8601",
              help="Delivery instant (defaults to one minute from now).")
@click.pass_obj
def push(obj: dict, subscription_id: str, title: str, message: str, send_after: str | None) -> None:
    """Book a push notification through the relay."""
    body = {"subscriptionId": subscription_id, "title": title, "message": message}
    if send_after:
        body["sendAfterISO"] = send_after
    with _client(obj["url"]) as c:
        resp = c.post("/api/schedule-push", json=body)
    if resp.is_error:
        data = resp.json()
        _die(f"HTTP {resp.status_code}: {data.get('error', resp.text)}")
    data = resp.json()

    if obj["json_output"]:
        click.echo(json.dumps(data, indent=2))
        return
    click.echo(f"Push scheduled  {data.get('data', {}).get('id', '-')}")
