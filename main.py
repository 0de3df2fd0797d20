#!/usr/bin/env python3
"""proxywatch - CLI Entry Point."""
import sys
import time
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__

console = Console()

SEVERITY_STYLES = {"critical": "bold red", "warning": "bold yellow", "info": "bold blue"}


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all components."""
    from utils.logger import setup_logging
    from config import load_config
    from models.database import Database
    from alerts.channels import NotificationSender
    from alerts.cooldown import RuleTracker
    from alerts.engine import AlertMonitor
    from certs.acme import AcmeClient
    from certs.renewal import SSLRenewalScheduler

    config = load_config(config_path)
    log_cfg = config.get("logging", {})
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))

    db = Database(config["database"]["path"])
    db.connect()

    sched_cfg = config["scheduler"]
    alert_cfg = config["alerts"]
    probe_cfg = config["probes"]

    from monitor import probes
    tracker = RuleTracker(
        default_cooldown=alert_cfg.get("cooldown_default_seconds", 300),
        ssl_cooldown=alert_cfg.get("cooldown_ssl_seconds", 86400),
    )
    alert_monitor = AlertMonitor(
        db,
        NotificationSender(config),
        tracker=tracker,
        metrics_probe=lambda: probes.sample_system_metrics(probe_cfg.get("disk_command")),
        upstream_probe=lambda: probes.probe_upstreams(
            db, probe_cfg.get("upstream_timeout", 5), probe_cfg.get("upstream_hard_timeout", 6)),
        skip_overlapping=sched_cfg.get("skip_overlapping", False),
        poll_seconds=sched_cfg.get("poll_seconds", 1),
    )

    acme = AcmeClient(config["acme"].get("acme_sh", "acme.sh"), config["acme"].get("home", "~/.acme.sh"))
    ssl_scheduler = SSLRenewalScheduler(
        db, acme,
        auto_renew_issuer=config["ssl"].get("auto_renew_issuer", "Let's Encrypt"),
        skip_overlapping=sched_cfg.get("skip_overlapping", False),
        poll_seconds=sched_cfg.get("poll_seconds", 1),
    )
    ssl_scheduler.check_interval_ms = config["ssl"]["check_interval_ms"]
    ssl_scheduler.renew_threshold_days = config["ssl"]["renew_threshold_days"]

    return {
        "config": config, "db": db, "alert_monitor": alert_monitor,
        "ssl_scheduler": ssl_scheduler, "sender": alert_monitor.sender,
    }


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="proxywatch")
@click.pass_context
def cli(ctx, config_path, verbose):
    """proxywatch - alert monitoring and SSL auto-renewal for an nginx reverse proxy."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


# ──────────────────────────────────────────────────────
# RUN
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--alert-interval", default=None, type=int, help="Global alert scan interval in seconds")
@click.option("--ssl-interval-ms", default=None, type=int, help="SSL check interval in milliseconds")
@click.option("--renew-threshold", default=None, type=int, help="Renew certificates expiring within N days")
@click.pass_context
def run(ctx, alert_interval, ssl_interval_ms, renew_threshold):
    """Run alert monitoring and SSL auto-renewal until interrupted."""
    c = _get_components(ctx)
    config = c["config"]
    alert_monitor = c["alert_monitor"]
    ssl_scheduler = c["ssl_scheduler"]

    alert_monitor.start(alert_interval or config["alerts"]["scan_interval"])
    ssl_scheduler.start(
        ssl_interval_ms or config["ssl"]["check_interval_ms"],
        renew_threshold or config["ssl"]["renew_threshold_days"],
    )
    console.print("[bold green]proxywatch running[/bold green] - press Ctrl-C to stop")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        console.print("\nStopping...")
    finally:
        alert_monitor.stop()
        ssl_scheduler.stop()
        c["db"].close()


# ──────────────────────────────────────────────────────
# ALERTS
# ──────────────────────────────────────────────────────
@cli.group()
def alerts():
    """Alert monitoring."""
    pass


@alerts.command("check")
@click.pass_context
def alerts_check(ctx):
    """Run one alert monitoring cycle now."""
    c = _get_components(ctx)
    dispatched = c["alert_monitor"].trigger_check()
    if dispatched:
        console.print(f"[bold yellow]{len(dispatched)} alert(s) dispatched[/bold yellow]")
    else:
        console.print("[green]All clear - no alerts dispatched[/green]")


@alerts.command("rules")
@click.pass_context
def alerts_rules(ctx):
    """List all configured alert rules."""
    c = _get_components(ctx)
    rules = c["db"].list_rules()
    table = Table(title="Alert Rules", show_header=True)
    table.add_column("Name")
    table.add_column("Condition")
    table.add_column("Kind", style="dim")
    table.add_column("Threshold", justify="right")
    table.add_column("Severity")
    table.add_column("Interval", justify="right")
    table.add_column("Channels")
    table.add_column("Enabled")
    for r in rules:
        sev_style = SEVERITY_STYLES.get(r.severity, "")
        channels = ", ".join(ch.name for ch in r.channels) or "[dim]none[/dim]"
        table.add_row(r.name, r.condition, r.kind.value, f"{r.threshold:g}",
                      f"[{sev_style}]{r.severity}[/]" if sev_style else r.severity,
                      f"{r.check_interval}s", channels,
                      "[green]✓[/green]" if r.enabled else "[red]✗[/red]")
    console.print(table)


@alerts.command("metrics")
@click.pass_context
def alerts_metrics(ctx):
    """Show the facts alert rules are evaluated against."""
    c = _get_components(ctx)
    metrics, upstreams, certs = c["alert_monitor"].collect_facts()

    console.print(f"[bold]CPU[/bold] {metrics.cpu}%   [bold]Memory[/bold] {metrics.memory}%   "
                  f"[bold]Disk[/bold] {metrics.disk}%\n")

    if upstreams:
        table = Table(title="Upstreams", show_header=True)
        table.add_column("Target")
        table.add_column("Status")
        for u in upstreams:
            table.add_row(u.name, "[red]down[/red]" if u.is_down else "[green]up[/green]")
        console.print(table)

    if certs:
        table = Table(title="Certificates", show_header=True)
        table.add_column("Domain")
        table.add_column("Days Remaining", justify="right")
        for cert in certs:
            style = "red" if cert.days_remaining < 7 else "yellow" if cert.days_remaining < 30 else "green"
            table.add_row(cert.domain, f"[{style}]{cert.days_remaining}[/{style}]")
        console.print(table)


# ──────────────────────────────────────────────────────
# SSL
# ──────────────────────────────────────────────────────
@cli.group()
def ssl():
    """SSL certificate auto-renewal."""
    pass


@ssl.command("check")
@click.option("--wait", is_flag=True, help="Wait for started renewals to finish")
@click.pass_context
def ssl_check(ctx, wait):
    """Run one renewal scan now."""
    c = _get_components(ctx)
    scheduler = c["ssl_scheduler"]
    started = scheduler.trigger_check()
    if not started:
        console.print("[green]No certificates due for renewal[/green]")
        return
    console.print(f"[bold yellow]{len(started)} renewal(s) started[/bold yellow]")
    if wait:
        scheduler.wait_for_renewals()
        for cert_id in started:
            cert = c["db"].get_certificate(cert_id)
            style = "green" if cert.status == "valid" else "red"
            console.print(f"  {cert.domain_name}: [{style}]{cert.status}[/{style}] "
                          f"(valid to {cert.valid_to:%Y-%m-%d})")


@ssl.command("status")
@click.pass_context
def ssl_status(ctx):
    """Show auto-renew scheduler settings."""
    c = _get_components(ctx)
    status = c["ssl_scheduler"].get_status()
    console.print(f"Running: {'yes' if status['is_running'] else 'no'}")
    console.print(f"Check interval: {status['check_interval_ms']}ms")
    console.print(f"Renew threshold: {status['renew_threshold_days']} days")


@ssl.command("list")
@click.pass_context
def ssl_list(ctx):
    """List stored certificates, soonest expiry first."""
    c = _get_components(ctx)
    certs = c["db"].list_certificates()
    if not certs:
        console.print("[dim]No certificates stored[/dim]")
        return
    table = Table(title="SSL Certificates", show_header=True)
    table.add_column("Domain")
    table.add_column("Issuer")
    table.add_column("Valid To")
    table.add_column("Status")
    table.add_column("Auto-Renew")
    for cert in certs:
        table.add_row(cert.domain_name, cert.issuer, f"{cert.valid_to:%Y-%m-%d %H:%M}", cert.status,
                      "[green]✓[/green]" if cert.auto_renew else "[red]✗[/red]")
    console.print(table)


# ──────────────────────────────────────────────────────
# CHANNELS
# ──────────────────────────────────────────────────────
@cli.group()
def channels():
    """Notification channels."""
    pass


@channels.command("list")
@click.pass_context
def channels_list(ctx):
    """List notification channels."""
    c = _get_components(ctx)
    rows = c["db"].list_notification_channels()
    if not rows:
        console.print("[dim]No notification channels configured[/dim]")
        return
    table = Table(title="Notification Channels", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Enabled")
    for ch in rows:
        table.add_row(ch.id, ch.name, ch.type, "[green]✓[/green]" if ch.enabled else "[red]✗[/red]")
    console.print(table)


@channels.command("verify")
@click.argument("channel_id")
@click.pass_context
def channels_verify(ctx, channel_id):
    """Check a channel's credentials without sending an alert."""
    c = _get_components(ctx)
    channel = c["db"].get_notification_channel(channel_id)
    if channel is None:
        console.print(f"[red]Channel {channel_id} not found[/red]")
        raise SystemExit(1)

    result = c["sender"].verify(channel)
    if result["success"]:
        console.print(f"[green]✓[/green] {channel.name} ({channel.type}): {result['message']}")
    else:
        console.print(f"[red]✗[/red] {channel.name} ({channel.type}): {result.get('error')}")
        raise SystemExit(1)


@channels.command("test")
@click.argument("channel_id")
@click.pass_context
def channels_test(ctx, channel_id):
    """Send a test notification through one channel."""
    c = _get_components(ctx)
    channel = c["db"].get_notification_channel(channel_id)
    if channel is None:
        console.print(f"[red]Channel {channel_id} not found[/red]")
        raise SystemExit(1)

    result = c["sender"].send_test(channel)["results"][0]
    if result["success"]:
        console.print(f"[green]Test notification sent via {channel.name} ({channel.type})[/green]")
    else:
        console.print(f"[red]Failed:[/red] {result.get('error')}")
        raise SystemExit(1)


# ──────────────────────────────────────────────────────
# DATABASE
# ──────────────────────────────────────────────────────
@cli.group()
def db():
    """Database management."""
    pass


@db.command("init")
@click.pass_context
def db_init(ctx):
    """Create the database and its tables."""
    c = _get_components(ctx)
    console.print(f"[green]✓[/green] Database ready at {c['db'].db_path}")


if __name__ == "__main__":
    cli()
