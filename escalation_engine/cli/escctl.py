#!/usr/bin/env python3
"""
Escalation Control CLI - Command Line Interface for the Escalation Engine.

Provides commands for running the API server, managing employees and the
configuration sets, listing escalations and reading the audit trail.
Commands act as a local system administrator.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Confirm
from rich.table import Table

from ..config import load_config
from ..errors import EngineError
from ..models import EmployeeAction, NewEmployeeRequest, Principal, SettingKind
from ..services import Services, create_services
from ..workflows.helpers import create_audit_summary

# Setup logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Rich console for pretty output
console = Console()

SYSTEM_PRINCIPAL = Principal(
    id="system-cli",
    email="escctl@localhost",
    is_admin=True,
    display_name="escctl",
)


class EscalationController:
    """Main controller for CLI operations."""

    def __init__(self, config_path: Optional[str] = None, mock_mode: Optional[bool] = None):
        self.config = load_config(config_path)
        if mock_mode is not None:
            self.config.mock_mode = mock_mode
        self._services: Optional[Services] = None

    @property
    def services(self) -> Services:
        if self._services is None:
            self._services = create_services(self.config)
            console.print(f"[green]Escalation Engine initialized (mock_mode={self.config.mock_mode})[/green]")
        return self._services


def _print_workflow(result):
    summary = create_audit_summary(result)
    table = Table(title="Workflow Execution Summary")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="magenta")

    table.add_row("Workflow ID", summary['workflow_id'])
    table.add_row("Operation", summary['operation'])
    table.add_row("Target", summary['target_id'])
    table.add_row("Total Steps", str(summary['total_actions']))
    table.add_row("Successful", str(summary['successful_actions']))
    table.add_row("Failed", str(summary['failed_actions']))
    console.print(table)

    if result.errors:
        console.print("[yellow]Step errors:[/yellow]")
        for error in result.errors:
            console.print(f"  - {error}")


def _fail(error: EngineError):
    console.print(f"[red]{error.message}[/red]")
    raise SystemExit(1)


@click.group()
@click.option('--config', '-c', help='Path to YAML configuration file')
@click.option('--mock/--real', default=None, help='Override mock mode from the configuration')
@click.pass_context
def cli(ctx, config, mock):
    """Escalation Engine control utility."""
    ctx.ensure_object(dict)
    ctx.obj['controller'] = EscalationController(config, mock)


@cli.command()
@click.option('--host', default='0.0.0.0', help='Bind address')
@click.option('--port', default=8000, help='Port')
@click.option('--reload', is_flag=True, help='Reload on code changes')
def serve(host, port, reload):
    """Run the HTTP API server."""
    from ..api.server import start_server

    console.print(f"[blue]Starting API server on {host}:{port}[/blue]")
    start_server(host=host, port=port, reload=reload)


@cli.command('list-employees')
@click.option('--department', help='Filter by department')
@click.option('--role', help='Filter by role')
@click.pass_context
def list_employees(ctx, department, role):
    """List employees."""
    services = ctx.obj['controller'].services
    employees = services.lifecycle.list_employees(SYSTEM_PRINCIPAL)

    if department:
        employees = [e for e in employees if e.department == department]
    if role:
        employees = [e for e in employees if e.role == role]

    if not employees:
        console.print("[yellow]No employees found[/yellow]")
        return

    table = Table(title=f"Employees ({len(employees)})")
    table.add_column("ID", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Email", style="green")
    table.add_column("Role", style="yellow")
    table.add_column("Affiliation", style="blue")
    table.add_column("Flags", style="red")

    for employee in employees:
        flags = ", ".join(f for f, on in (("admin", employee.is_admin),
                                          ("oversight", employee.is_oversight),
                                          ("inactive", not employee.is_active)) if on)
        table.add_row(employee.id, employee.name, employee.email, employee.role,
                      employee.department or employee.hostel or "-", flags or "-")

    console.print(table)


@cli.command('add-employee')
@click.option('--name', 'full_name', prompt='Full Name')
@click.option('--email', prompt='Email Address')
@click.option('--role', help='Role from the configured roles')
@click.option('--department', help='Department (non-oversight roles)')
@click.option('--hostel', help='Hostel (oversight role)')
@click.option('--admin', 'is_admin', is_flag=True, help='Grant administrator rights')
@click.option('--oversight', 'is_oversight', is_flag=True, help='Grant the oversight capability')
@click.pass_context
def add_employee(ctx, full_name, email, role, department, hostel, is_admin, is_oversight):
    """Invite a new employee."""
    services = ctx.obj['controller'].services
    request = NewEmployeeRequest(full_name=full_name, email=email, role=role, department=department,
                                 hostel=hostel, is_admin=is_admin, is_oversight=is_oversight)
    try:
        result = services.lifecycle.add_employee(SYSTEM_PRINCIPAL, request)
    except EngineError as e:
        _fail(e)

    console.print(Panel.fit(f"[bold blue]{full_name}[/bold blue]\n{result.email}\nID: {result.employee_id}"))
    console.print(f"[green]✓ {result.message}[/green]")
    _print_workflow(result.workflow)


def _set_status(ctx, employee_id: str, action: EmployeeAction):
    services = ctx.obj['controller'].services
    try:
        result = services.lifecycle.set_employee_status(SYSTEM_PRINCIPAL, employee_id, action)
    except EngineError as e:
        _fail(e)
    console.print(f"[green]✓ {result.message}[/green]")
    _print_workflow(result)


@cli.command('disable-employee')
@click.argument('employee_id')
@click.pass_context
def disable_employee(ctx, employee_id):
    """Disable login for an employee."""
    _set_status(ctx, employee_id, EmployeeAction.DISABLE)


@cli.command('delete-employee')
@click.argument('employee_id')
@click.option('--yes', is_flag=True, help='Do not ask for confirmation')
@click.pass_context
def delete_employee(ctx, employee_id, yes):
    """Delete an employee record and login account."""
    if not yes and not Confirm.ask(f"Delete employee {employee_id}?"):
        console.print("[yellow]Aborted[/yellow]")
        return
    _set_status(ctx, employee_id, EmployeeAction.DELETE)


@cli.command('list-escalations')
@click.option('--status', help='Filter by status')
@click.option('--department', help='Filter by department')
@click.option('--limit', default=50, help='Maximum number of escalations to show')
@click.pass_context
def list_escalations(ctx, status, department, limit):
    """List escalations, newest first."""
    services = ctx.obj['controller'].services
    escalations = services.escalations.list_escalations(SYSTEM_PRINCIPAL, status, department)[:limit]

    if not escalations:
        console.print("[yellow]No escalations found[/yellow]")
        return

    table = Table(title=f"Escalations ({len(escalations)})")
    table.add_column("ID", style="cyan")
    table.add_column("Student", style="magenta")
    table.add_column("Department", style="blue")
    table.add_column("Status", style="yellow")
    table.add_column("Supervisor", style="green")
    table.add_column("Created", style="white")

    for escalation in escalations:
        table.add_row(escalation.id[:8], escalation.student_name, escalation.department,
                      escalation.status, escalation.assigned_to,
                      escalation.created_at.strftime('%Y-%m-%d %H:%M'))

    console.print(table)


@cli.command()
@click.argument('kind', required=False, type=click.Choice([k.value for k in SettingKind]))
@click.option('--add', 'to_add', help='Add a value')
@click.option('--remove', 'to_remove', help='Remove a value')
@click.option('--rename', nargs=2, help='Rename OLD NEW')
@click.option('--seed', is_flag=True, help='Fill empty lists from the shipped defaults')
@click.pass_context
def settings(ctx, kind, to_add, to_remove, rename, seed):
    """Show or edit the configuration sets."""
    services = ctx.obj['controller'].services
    manager = services.settings

    try:
        if seed:
            manager.seed_settings()
        if (to_add or to_remove or rename) and not kind:
            raise click.UsageError("KIND is required to edit a configuration set")
        if to_add:
            manager.add_setting(SYSTEM_PRINCIPAL, SettingKind(kind), to_add)
        if to_remove:
            manager.remove_setting(SYSTEM_PRINCIPAL, SettingKind(kind), to_remove)
        if rename:
            manager.rename_setting(SYSTEM_PRINCIPAL, SettingKind(kind), rename[0], rename[1])
    except EngineError as e:
        _fail(e)

    current = manager.get_settings()
    kinds = [SettingKind(kind)] if kind else list(SettingKind)
    for setting_kind in kinds:
        console.print(f"[bold blue]{setting_kind.value.title()}[/bold blue]")
        for index, value in enumerate(current.values_for(setting_kind)):
            marker = " [dim](initial)[/dim]" if setting_kind == SettingKind.STATUSES and index == 0 else ""
            console.print(f"  {value}{marker}")


@cli.command()
@click.option('--target', help='Employee or escalation ID')
@click.option('--operation', help='Operation name, e.g. add_employee')
@click.option('--days', default=7, help='Number of days to look back')
@click.option('--limit', default=100, help='Maximum number of records')
@click.pass_context
def audit(ctx, target, operation, days, limit):
    """Show the audit trail."""
    services = ctx.obj['controller'].services
    start = datetime.now(timezone.utc) - timedelta(days=days)
    records = services.audit_logger.get_events(target_id=target, event_type=operation,
                                               start_date=start, limit=limit)

    if not records:
        console.print("[yellow]No audit records found[/yellow]")
        return

    table = Table(title=f"Audit Trail ({len(records)})")
    table.add_column("Timestamp", style="cyan")
    table.add_column("Operation", style="magenta")
    table.add_column("Actor", style="blue")
    table.add_column("Step", style="yellow")
    table.add_column("Target", style="white")
    table.add_column("Result", style="green")

    for record in records:
        result = "[green]✓[/green]" if record.success else f"[red]✗ {record.error_message or ''}[/red]"
        table.add_row(record.timestamp.strftime('%Y-%m-%d %H:%M:%S'), record.event_type,
                      record.actor, f"{record.system}.{record.action}", record.target_id, result)

    console.print(table)


@cli.command('activity-report')
@click.option('--days', default=30, help='Number of days to report on')
@click.pass_context
def activity_report(ctx, days):
    """Summarize audited activity and the stored records."""
    services = ctx.obj['controller'].services
    end_date = datetime.now(timezone.utc)
    start_date = end_date - timedelta(days=days)

    report = services.audit_logger.generate_activity_report(start_date, end_date)
    records = services.store.get_state_summary()

    console.print("[bold blue]Activity Report[/bold blue]")
    console.print(f"Period: {start_date.strftime('%Y-%m-%d')} to {end_date.strftime('%Y-%m-%d')}")

    console.print("\n[bold]Records[/bold]")
    console.print(f"Employees: {records['total_employees']} ({records['active_employees']} active)")
    console.print(f"Escalations: {records['total_escalations']}")
    for status, count in records['escalations_by_status'].items():
        console.print(f"  {status}: {count}")

    console.print("\n[bold]Audited Steps[/bold]")
    console.print(f"Total Events: {report['summary']['total_events']}")
    console.print(f"Successful Steps: {report['summary']['successful_steps']}")
    console.print(f"Failed Steps: {report['summary']['failed_steps']}")

    if report['failures']:
        console.print(f"\n[bold]Failures ({len(report['failures'])})[/bold]")
        for failure in report['failures'][:10]:
            console.print(f"• {failure['event_type']} {failure['system']}.{failure['action']}: "
                          f"{failure['error_message']}")


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
