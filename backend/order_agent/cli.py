"""
Order agent CLI.

Operator commands for the database: create tables, seed a demo hotel,
inspect a hotel's orders and move an order through the kitchen workflow.
"""

import asyncio

import typer
from rich.console import Console
from rich.table import Table
from sqlalchemy import select

from order_agent.models import Base, Order
from order_agent.repositories import OrderRepository
from order_agent.seed import DEMO_TENANT_ID, seed
from order_agent.services.conversation.cart import format_amount
from shared.config.constants import OrderStatus
from shared.infrastructure.db import SessionLocal, engine, get_db_context, safe_commit

app = typer.Typer(
    name="order-agent",
    help="Hotel order agent CLI",
    add_completion=False,
)
console = Console()


# =============================================================================
# Database Commands
# =============================================================================

@app.command()
def init_db():
    """Create all tables."""
    console.print(f"[blue]Creating tables on: {engine.url.render_as_string(hide_password=True)}[/blue]")
    Base.metadata.create_all(bind=engine)
    console.print("[green]✓ Tables created[/green]")


@app.command()
def seed_demo(
    tenant_id: str = typer.Option(DEMO_TENANT_ID, "--tenant", "-t", help="Hotel ID to create"),
):
    """Seed a demo hotel with a small menu."""
    Base.metadata.create_all(bind=engine)
    with get_db_context() as db:
        created = seed(db, tenant_id)

    if created:
        console.print(f"[green]✓ Demo hotel '{tenant_id}' created[/green]")
    else:
        console.print(f"[yellow]Hotel '{tenant_id}' already exists[/yellow]")


# =============================================================================
# Order Commands
# =============================================================================

@app.command()
def list_orders(
    tenant_id: str = typer.Argument(..., help="Hotel ID"),
    limit: int = typer.Option(20, help="Max orders to show"),
):
    """Show the newest orders of a hotel."""
    orders = asyncio.run(OrderRepository(SessionLocal).list_for_tenant(tenant_id, limit))

    if not orders:
        console.print("[yellow]No orders found[/yellow]")
        return

    table = Table(title=f"Orders for {tenant_id}")
    table.add_column("Order ID", style="cyan")
    table.add_column("Customer")
    table.add_column("Total", justify="right")
    table.add_column("Payment")
    table.add_column("Status", style="green")
    table.add_column("Notified")

    for order in orders:
        table.add_row(
            order.order_id,
            order.sender,
            format_amount(order.total_cents),
            f"{order.payment_method} ({order.payment_status})",
            order.status,
            order.last_notified_status,
        )

    console.print(table)


@app.command()
def set_status(
    tenant_id: str = typer.Argument(..., help="Hotel ID"),
    order_id: str = typer.Argument(..., help="8-digit order ID"),
    status: str = typer.Argument(..., help=f"One of: {', '.join(OrderStatus.ALL)}"),
):
    """Update an order's status; the customer is notified on the next notifier pass."""
    if status not in OrderStatus.ALL:
        console.print(f"[red]✗ Unknown status '{status}'[/red]")
        raise typer.Exit(1)

    with get_db_context() as db:
        order = db.scalar(
            select(Order).where(Order.tenant_id == tenant_id, Order.order_id == order_id)
        )
        if order is None:
            console.print(f"[red]✗ Order {order_id} not found for hotel {tenant_id}[/red]")
            raise typer.Exit(1)

        previous = order.status
        order.status = status
        safe_commit(db)

    console.print(f"[green]✓ Order {order_id}: {previous} → {status}[/green]")


if __name__ == "__main__":
    app()
