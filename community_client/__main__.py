"""
Command line front end for the community client.

Every command drives the same services an application would use; the
session is persisted in the credentials database configured by
``CREDENTIALS_PATH`` so that consecutive invocations share a login.

Usage:
    python -m community_client register --name "Ada Lovelace" --email ada@example.com
    python -m community_client verify --email ada@example.com --code 123456
    python -m community_client events --search python
    python -m community_client join <event-id> --field team=Owls --field terms=yes
    python -m community_client logout

If --password is omitted, you will be prompted to enter it securely.
"""

import argparse
import asyncio
import getpass
import sys
from typing import Dict, List, Optional

from community_client.app.core.config import settings
from community_client.app.core.errors import ClientError, EmailNotVerified, ValidationError
from community_client.app.core.logging_config import setup_logging
from community_client.app.main import CommunityClient, create_client
from community_client.app.schemas.auth import OTPPurpose
from community_client.app.schemas.event import Event, EventFilters, FieldType
from community_client.app.services.timers import format_seconds


_TRUE_WORDS = {"1", "true", "yes", "y", "on"}


def _password(args: argparse.Namespace, prompt: str = "Password: ", confirm: bool = False) -> str:
    if args.password:
        return args.password
    password = getpass.getpass(prompt)
    if confirm and getpass.getpass("Repeat password: ") != password:
        print("[!] Passwords do not match.", file=sys.stderr)
        sys.exit(1)
    return password


def _parse_fields(pairs: List[str], event: Event) -> Dict[str, object]:
    checkboxes = {field.name for field in event.registration_fields if field.field_type is FieldType.CHECKBOX}
    values: Dict[str, object] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep:
            raise ValidationError(f"Expected NAME=VALUE, got {pair!r}")
        values[name] = value.strip().lower() in _TRUE_WORDS if name in checkboxes else value
    return values


def _print_event(event: Event) -> None:
    state = "full" if event.is_full else f"{event.spots_left} spots left"
    if not event.registration_open:
        state = "registration closed"
    when = event.start_date.strftime("%Y-%m-%d %H:%M") if event.start_date else "TBA"
    print(f"{event.id}  {when}  {event.title}  [{event.current_attendees}/{event.max_attendees}, {state}]")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def cmd_login(client: CommunityClient, args: argparse.Namespace) -> int:
    try:
        result = await client.auth.login(args.email, _password(args))
    except EmailNotVerified as exc:
        print(f"[!] {exc.message}", file=sys.stderr)
        print("[i] Request a code with 'resend' and confirm it with 'verify'.", file=sys.stderr)
        return 1
    print(f"[+] Logged in as {result.user.name or result.user.email}")
    return 0


async def cmd_register(client: CommunityClient, args: argparse.Namespace) -> int:
    password = _password(args, confirm=not args.password)
    result = await client.auth.register({
        "name": args.name,
        "email": args.email,
        "password": password,
        "confirm_password": password,
        "username": args.username,
    })
    print(f"[+] Account created for {result.user.email}")
    if result.requires_verification:
        pending = client.auth.pending
        window = format_seconds(pending.remaining) if pending else format_seconds(client.settings.otp_window_seconds)
        print(f"[i] Enter the code sent to your email with 'verify' within {window}.")
    return 0


async def cmd_verify(client: CommunityClient, args: argparse.Namespace) -> int:
    result = await client.auth.verify(args.email, args.code)
    print(f"[+] Email verified; logged in as {result.user.name or result.user.email}")
    return 0


async def cmd_resend(client: CommunityClient, args: argparse.Namespace) -> int:
    purpose = OTPPurpose.PASSWORD_RESET if args.reset else OTPPurpose.EMAIL_VERIFICATION
    await client.auth.resend(args.email, purpose)
    print(f"[+] A new code was sent to {args.email}")
    return 0


async def cmd_forgot_password(client: CommunityClient, args: argparse.Namespace) -> int:
    await client.auth.forgot_password(args.email)
    print(f"[+] If {args.email} has an account, a reset code is on its way")
    return 0


async def cmd_reset_password(client: CommunityClient, args: argparse.Namespace) -> int:
    password = _password(args, "New password: ", confirm=not args.password)
    await client.auth.reset_password(args.email, args.code, password)
    print("[+] Password updated. You can log in now.")
    return 0


async def cmd_logout(client: CommunityClient, args: argparse.Namespace) -> int:
    await client.auth.logout()
    print("[+] Logged out")
    return 0


async def cmd_whoami(client: CommunityClient, args: argparse.Namespace) -> int:
    user = await client.profile.refresh_user()
    if user is None:
        print("Not logged in")
        return 1
    print(f"{user.name} <{user.email}>" + (f" (@{user.username})" if user.username else ""))
    return 0


async def cmd_events(client: CommunityClient, args: argparse.Namespace) -> int:
    filters = EventFilters(page=args.page, limit=args.limit, search=args.search, category=args.category)
    page = await client.events.list_events(filters)
    if page.source != "live":
        print(f"[!] Showing {page.source} data; the server could not be reached.", file=sys.stderr)
    for event in page.events:
        _print_event(event)
    print(f"Page {page.pagination.page} of {max(page.pagination.pages, 1)} ({page.pagination.total} events)")
    return 0


async def cmd_featured(client: CommunityClient, args: argparse.Namespace) -> int:
    for event in await client.events.featured_events():
        _print_event(event)
    return 0


async def cmd_show(client: CommunityClient, args: argparse.Namespace) -> int:
    event, registration = await client.events.get_event(args.event_id)
    _print_event(event)
    if event.description:
        print(event.description)
    for field in event.registration_fields:
        marker = "*" if field.required else " "
        print(f"  {marker} {field.name} ({field.field_type.value})")
    if registration is not None:
        print(f"[i] Your registration: {registration.status.value}")
    return 0


async def cmd_join(client: CommunityClient, args: argparse.Namespace) -> int:
    event, _ = await client.events.get_event(args.event_id)
    registration = await client.registrations.register(event, _parse_fields(args.field, event))
    print(f"[+] Registered for {event.title} ({registration.status.value})")
    return 0


async def cmd_cancel(client: CommunityClient, args: argparse.Namespace) -> int:
    if await client.registrations.cancel_registration(args.event_id):
        print("[+] Registration cancelled")
    else:
        print("[i] No active registration to cancel")
    return 0


async def cmd_my_registrations(client: CommunityClient, args: argparse.Namespace) -> int:
    for registration in await client.registrations.load_user_registrations():
        print(f"{registration.event_id}  {registration.status.value}")
    return 0


COMMANDS = {
    "login": cmd_login,
    "register": cmd_register,
    "verify": cmd_verify,
    "resend": cmd_resend,
    "forgot-password": cmd_forgot_password,
    "reset-password": cmd_reset_password,
    "logout": cmd_logout,
    "whoami": cmd_whoami,
    "events": cmd_events,
    "featured": cmd_featured,
    "show": cmd_show,
    "join": cmd_join,
    "cancel": cmd_cancel,
    "my-registrations": cmd_my_registrations,
}


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="community_client", description="Community events client.")
    ap.add_argument("--log-level", default=None, help="Override LOG_LEVEL (e.g. DEBUG)")
    sub = ap.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Log in with email and password")
    login.add_argument("--email", required=True)
    login.add_argument("--password", help="If omitted, you'll be prompted securely.")

    register = sub.add_parser("register", help="Create an account")
    register.add_argument("--name", required=True)
    register.add_argument("--email", required=True)
    register.add_argument("--username", help="Derived from the email when omitted")
    register.add_argument("--password", help="If omitted, you'll be prompted securely.")

    verify = sub.add_parser("verify", help="Confirm the emailed verification code")
    verify.add_argument("--email", required=True)
    verify.add_argument("--code", required=True)

    resend = sub.add_parser("resend", help="Request a new one-time code")
    resend.add_argument("--email", required=True)
    resend.add_argument("--reset", action="store_true", help="Send a password-reset code instead")

    forgot = sub.add_parser("forgot-password", help="Email a password-reset code")
    forgot.add_argument("--email", required=True)

    reset = sub.add_parser("reset-password", help="Set a new password with a reset code")
    reset.add_argument("--email", required=True)
    reset.add_argument("--code", required=True)
    reset.add_argument("--password", help="If omitted, you'll be prompted securely.")

    sub.add_parser("logout", help="End the current session")
    sub.add_parser("whoami", help="Show the logged-in user")

    events = sub.add_parser("events", help="List events")
    events.add_argument("--page", type=int, default=1)
    events.add_argument("--limit", type=int, default=10)
    events.add_argument("--search")
    events.add_argument("--category")

    sub.add_parser("featured", help="List featured events")

    show = sub.add_parser("show", help="Show one event")
    show.add_argument("event_id")

    join = sub.add_parser("join", help="Register for an event")
    join.add_argument("event_id")
    join.add_argument("--field", action="append", default=[], metavar="NAME=VALUE")

    cancel = sub.add_parser("cancel", help="Cancel your registration for an event")
    cancel.add_argument("event_id")

    sub.add_parser("my-registrations", help="List your registrations")
    return ap


async def run(client: CommunityClient, args: argparse.Namespace) -> int:
    """Execute one parsed command against ``client``."""
    try:
        return await COMMANDS[args.command](client, args)
    except ClientError as exc:
        print(f"[!] {exc.message}", file=sys.stderr)
        for error in exc.errors:
            if isinstance(error, dict) and error.get("field"):
                print(f"    {error['field']}: {error.get('message', '')}", file=sys.stderr)
        return 1


async def _main(args: argparse.Namespace) -> int:
    client = create_client(settings)
    try:
        return await run(client, args)
    finally:
        await client.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    try:
        return asyncio.run(_main(args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
