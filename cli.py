#!/usr/bin/env python3
"""
Luno CLI - Command-line interface for common operations.

Usage:
    python cli.py init-db              # Initialize database
    python cli.py reset-db             # Reset database (DESTRUCTIVE!)
    python cli.py health               # Check system health
    python cli.py check-notifications  # Send due bill/subscription reminders
    python cli.py expire-invitations   # Expire stale household invitations
    python cli.py cleanup-sessions     # Deactivate expired Tool Router sessions
    python cli.py stats                # Show database stats
"""
import asyncio
import sys
from typing import Any

from luno.config import get_settings
from luno.db.database import check_db_health, init_db
from luno.tasks.jobs import (
    job_check_notifications,
    job_cleanup_sessions,
    job_expire_invitations,
)


def print_header(text: str):
    """Print formatted header."""
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def print_status(key: str, value: Any, indent: int = 0):
    """Print formatted status line."""
    spaces = "  " * indent
    print(f"{spaces}{key:30s}: {value}")


def _configured(value: bool) -> str:
    return "✓ Configured" if value else "✗ Not configured"


async def cmd_init_db(reset: bool = False):
    """Initialize or reset database."""
    print_header("Database Initialization")

    if reset:
        print("⚠️  WARNING: This will delete all data!")
        confirm = input("Type 'yes' to confirm: ")
        if confirm.lower() != "yes":
            print("Aborted.")
            return

    init_db(drop_all=reset)
    print("✓ Database initialized successfully")


async def cmd_health():
    """Check system health."""
    print_header("System Health Check")

    settings = get_settings()

    print("Integrations:")
    print_status("Email (Resend)", _configured(settings.email_configured), 1)
    print_status("Billing (Lemon Squeezy)", _configured(settings.billing_configured), 1)
    print_status("Chat (OpenAI/Gemini)", _configured(settings.chat_configured), 1)
    print_status("Tool Router (Composio)", _configured(settings.tool_router_configured), 1)
    print_status("Encryption Key", "✓ Set" if settings.ENCRYPTION_KEY else "✗ Not set", 1)
    print_status("Scheduler", "✓ Enabled" if settings.ENABLE_SCHEDULER else "✗ Disabled", 1)

    print("\nDatabase:")
    db_health = check_db_health()

    if db_health.get("status") == "healthy":
        print_status("Status", "✓ Healthy", 1)
        counts = db_health.get("counts", {})
        print_status("Users", counts.get("users", 0), 1)
        print_status("Transactions", counts.get("transactions", 0), 1)
    else:
        print_status("Status", f"✗ Unhealthy: {db_health.get('error')}", 1)

    print()


async def cmd_check_notifications():
    """Run the reminder scan."""
    print_header("Checking Notifications")

    result = await job_check_notifications()

    if result["status"] == "success":
        print(f"✓ {result['message']}\n")
        print_status("Items Checked", result["items_checked"])
        print_status("Notifications Created", result["processed"])
        print_status("Emails Sent", result["emails_sent"])
    else:
        print(f"✗ Failed: {result.get('error')}")

    print()


async def cmd_expire_invitations():
    """Expire stale household invitations."""
    print_header("Expiring Invitations")

    result = await job_expire_invitations()

    if result["status"] == "success":
        print_status("Invitations Expired", result["expired"])
    else:
        print(f"✗ Failed: {result.get('error')}")

    print()


async def cmd_cleanup_sessions():
    """Deactivate expired Tool Router sessions."""
    print_header("Cleaning Up Tool Router Sessions")

    result = await job_cleanup_sessions()

    if result["status"] == "success":
        print_status("Sessions Deactivated", result["deactivated"])
    else:
        print(f"✗ Failed: {result.get('error')}")

    print()


async def cmd_stats():
    """Show database statistics."""
    print_header("Database Statistics")

    db_health = check_db_health()

    if db_health.get("status") == "healthy":
        counts = db_health.get("counts", {})

        print("Finance:")
        print_status("Accounts", counts.get("accounts", 0), 1)
        print_status("Transactions", counts.get("transactions", 0), 1)
        print_status("Categories", counts.get("categories", 0), 1)
        print_status("Budgets", counts.get("budgets", 0), 1)
        print_status("Goals", counts.get("goals", 0), 1)
        print_status("Bills & Subscriptions", counts.get("bills", 0), 1)

        print("\nPeople:")
        print_status("Users", counts.get("users", 0), 1)
        print_status("Households", counts.get("households", 0), 1)
        print_status("Notifications", counts.get("notifications", 0), 1)

        users = counts.get("users", 0)
        print("\nRatios:")
        if users > 0:
            print_status("Transactions per User", f"{counts.get('transactions', 0)/users:.2f}", 1)
    else:
        print(f"✗ Database error: {db_health.get('error')}")

    print()


def print_help():
    """Print help message."""
    print("""
Luno CLI

Usage:
    python cli.py <command>

Commands:
    init-db              Initialize database
    reset-db             Reset database (DESTRUCTIVE!)
    health               Check system health
    check-notifications  Send due bill, subscription and trial reminders
    expire-invitations   Expire stale household invitations
    cleanup-sessions     Deactivate expired Tool Router sessions
    stats                Show database statistics
    help                 Show this help message

Examples:
    python cli.py init-db
    python cli.py health
    python cli.py check-notifications
    python cli.py stats
""")


async def main():
    """Main CLI entry point."""
    if len(sys.argv) < 2:
        print_help()
        return

    command = sys.argv[1].lower()

    try:
        if command == "init-db":
            await cmd_init_db(reset=False)
        elif command == "reset-db":
            await cmd_init_db(reset=True)
        elif command == "health":
            await cmd_health()
        elif command == "check-notifications":
            await cmd_check_notifications()
        elif command == "expire-invitations":
            await cmd_expire_invitations()
        elif command == "cleanup-sessions":
            await cmd_cleanup_sessions()
        elif command == "stats":
            await cmd_stats()
        elif command == "help":
            print_help()
        else:
            print(f"Unknown command: {command}")
            print_help()
            sys.exit(1)
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        print(f"\n✗ Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
