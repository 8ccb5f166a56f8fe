# Copyright 2025 IBM Corp.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

from typing import Iterable

import typer
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .config import Settings, get_settings
from .environment import EnvKey, PersistentEnvironment, ProfileEnvironment
from .errors import AcsInstError, NotConnected, PermissionDenied
from .ledger import Ledger
from .logging_config import console, setup_logging
from .models import StepStatus, WorkflowResult
from .resources import KubernetesResourceStore, ResourceStore
from .workflow import Orchestrator, StepContext
from .workflows import INSTALL_ORDER, WorkflowName, build

app = typer.Typer(
    help="Install and configure Red Hat Advanced Cluster Security on an OpenShift cluster.",
    add_completion=False,
)


def make_env(settings: Settings) -> PersistentEnvironment:
    return ProfileEnvironment(settings.resolved_profile_path)


def make_store(settings: Settings) -> ResourceStore:
    return KubernetesResourceStore(context=settings.kubeconfig_context)


def _cause(error: BaseException) -> BaseException:
    return getattr(error, "cause", None) or error


def report(result: WorkflowResult) -> None:
    for warning in result.warnings:
        console.log(f"[bold yellow]![/bold yellow] {warning}")
    if result.error is None:
        if result.failed_steps:
            console.log(
                f"[bold yellow]Workflow '{result.workflow}' finished with "
                f"{len(result.failed_steps)} failed non-critical step(s).[/bold yellow]"
            )
        else:
            console.log(f"[bold green]✓[/bold green] Workflow '{result.workflow}' [bold green]done[/bold green].")
        return

    cause = _cause(result.error)
    if isinstance(cause, NotConnected):
        console.log(f"[bold red]✗ Not connected:[/bold red] {cause}")
        console.log("Check that you are logged in to the cluster and that Central is reachable.")
    elif isinstance(cause, PermissionDenied):
        console.log(f"[bold red]✗ Permission denied:[/bold red] {cause}")
        console.log("The current credentials lack the rights for this operation.")
    else:
        console.log(f"[bold red]✗ {result.error}[/bold red]")
    last_state = getattr(result.error, "last_state", None)
    if last_state is not None:
        console.log("Last observed state:", last_state)


def run_workflows(names: Iterable[WorkflowName]) -> None:
    """Run workflows in order; stop at the first one that aborts."""
    setup_logging()
    settings = get_settings()
    failed = False
    try:
        env = make_env(settings)
        saved_namespace = env.get(EnvKey.NAMESPACE)
        if saved_namespace and "namespace" not in settings.model_fields_set:
            settings = settings.model_copy(update={"namespace": saved_namespace})

        context = StepContext(store=make_store(settings), env=env, settings=settings)
        orchestrator = Orchestrator(context, Ledger.load(settings.resolved_state_file), console=console)

        for name in names:
            workflow = build(name, settings)
            console.print(Panel(f"Running {workflow.name}", style="bold cyan", expand=False))
            result = orchestrator.run(workflow)
            report(result)
            console.print()
            if result.failed_steps:
                failed = True
            if result.error is not None:
                break
    except (NotConnected, PermissionDenied) as e:
        label = "Not connected" if isinstance(e, NotConnected) else "Permission denied"
        console.log(f"[bold red]✗ {label}:[/bold red] {e}")
        raise typer.Exit(1)
    except AcsInstError as e:
        console.log(f"[bold red]✗ {e}[/bold red]")
        raise typer.Exit(1)

    if failed:
        raise typer.Exit(1)


@app.command()
def central():
    """Install the RHACS operator and Central; save endpoint and credentials."""
    run_workflows([WorkflowName.CENTRAL])


@app.command("secured-cluster")
def secured_cluster():
    """Register this cluster with Central and deploy the secured cluster services."""
    run_workflows([WorkflowName.SECURED_CLUSTER])


@app.command()
def compliance():
    """Install the compliance operator and the daily scan configuration."""
    run_workflows([WorkflowName.COMPLIANCE])


@app.command()
def scan():
    """Trigger a compliance run and wait for it to finish."""
    run_workflows([WorkflowName.SCAN])


@app.command()
def tls():
    """Issue a trusted certificate for the Central route."""
    run_workflows([WorkflowName.TLS])


@app.command()
def monitoring():
    """Set up metrics collection and the Perses datasource."""
    run_workflows([WorkflowName.MONITORING])


@app.command()
def settings():
    """Enable telemetry and Prometheus metrics in Central."""
    run_workflows([WorkflowName.SETTINGS])


@app.command()
def cleanup():
    """Remove everything the install workflows created."""
    run_workflows([WorkflowName.CLEANUP])


@app.command("all")
def install_all():
    """Run every install workflow in order."""
    console.print(
        Panel(Text("RHACS Installer", justify="center", style="bold blue"), expand=False)
    )
    run_workflows(INSTALL_ORDER)


_STATUS_STYLE = {
    StepStatus.DONE: "green",
    StepStatus.FAILED: "red",
    StepStatus.IN_PROGRESS: "yellow",
    StepStatus.PENDING: "dim",
}


@app.command()
def status():
    """Show the recorded state of every workflow step and which values are saved."""
    settings = get_settings()
    ledger = Ledger.load(settings.resolved_state_file)
    records = sorted(ledger.records(), key=lambda r: r.key)
    if not records:
        console.print("[yellow]No workflow steps recorded yet.[/yellow]")
    else:
        table = Table(title="Workflow steps")
        table.add_column("Step")
        table.add_column("Status")
        table.add_column("Updated")
        table.add_column("Detail")
        for record in records:
            style = _STATUS_STYLE.get(record.status, "")
            detail = record.error or str(record.outputs.get("result", ""))
            table.add_row(
                record.key,
                f"[{style}]{record.status.value}[/{style}]",
                record.updated_at,
                detail,
            )
        console.print(table)

    # presence only; values may be credentials
    saved = Table(title="Saved environment")
    saved.add_column("Variable")
    saved.add_column("Set")
    for key, present in make_env(settings).snapshot().items():
        saved.add_row(key.value, "[green]yes[/green]" if present else "[dim]no[/dim]")
    console.print(saved)
