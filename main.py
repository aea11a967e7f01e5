#!/usr/bin/env python3
"""
LunaTransfer -- administrative command line for the authorization engine.

Operates directly on the JSON collections under DATA_DIR, so it works while
the API is down (first admin, lost API key, account removal).

Usage:
  python main.py create-user alice --email alice@example.com --role admin
  python main.py list-users
  python main.py rotate-key alice
  python main.py delete-user alice
  python main.py list-groups
  python main.py repair-group <group-id>

Environment variables:
  SECRET_KEY  Signing key (required unless DEBUG=true).
  DATA_DIR    Directory holding the JSON collections (default ./data).
  STORAGE_DIR Root of per-user and per-group storage (default ./storage).
"""

import argparse
import getpass
import sys

from auth.engine import AuthEngine
from auth.errors import LunaError


def _cmd_create_user(engine: AuthEngine, args: argparse.Namespace) -> int:
    password = args.password or getpass.getpass(f"Password for {args.username}: ")
    user, api_key = engine.users.create_user(args.username, password, args.email, args.role)
    print(f"  Created {user.username} (role={user.role.value}).")
    print(f"  API key: {api_key}")
    return 0


def _cmd_list_users(engine: AuthEngine, args: argparse.Namespace) -> int:
    users = engine.users.list_users()
    if not users:
        print("  No users. Run 'create-user' to add the first admin.")
        return 0
    for user in users:
        print(f"  {user.username:<32} {user.role.value:<6} {user.email or '-':<30} last_login={user.last_login or 'never'}")
    return 0


def _cmd_rotate_key(engine: AuthEngine, args: argparse.Namespace) -> int:
    print(f"  New API key for {args.username}: {engine.users.rotate_credential(args.username)}")
    return 0


def _cmd_delete_user(engine: AuthEngine, args: argparse.Namespace) -> int:
    report = engine.delete_user(args.username)
    print(
        f"  Deleted {args.username}: {report.memberships} membership(s), "
        f"{report.access_rules} access rule(s), {report.shares} share(s) removed."
    )
    return 0


def _cmd_list_groups(engine: AuthEngine, args: argparse.Namespace) -> int:
    for group in engine.groups.list_groups():
        members = engine.groups.list_members(group.id)
        print(f"  {group.id}  {group.name:<24} created_by={group.created_by} members={len(members)}")
    return 0


def _cmd_repair_group(engine: AuthEngine, args: argparse.Namespace) -> int:
    if engine.groups.ensure_creator_membership(args.group_id):
        print("  Creator re-enrolled as group admin.")
    else:
        print("  Nothing to repair.")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="lunatransfer",
        description="Manage LunaTransfer users and groups.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-user", help="Create an account")
    p.add_argument("username")
    p.add_argument("--email", default="")
    p.add_argument("--role", default="user", help="admin, user or guest (unknown values become guest)")
    p.add_argument("--password", help="Prompted for when omitted")
    p.set_defaults(func=_cmd_create_user)

    p = sub.add_parser("list-users", help="List accounts")
    p.set_defaults(func=_cmd_list_users)

    p = sub.add_parser("rotate-key", help="Issue a new API key for a user")
    p.add_argument("username")
    p.set_defaults(func=_cmd_rotate_key)

    p = sub.add_parser("delete-user", help="Delete an account and everything that names it")
    p.add_argument("username")
    p.set_defaults(func=_cmd_delete_user)

    p = sub.add_parser("list-groups", help="List groups with member counts")
    p.set_defaults(func=_cmd_list_groups)

    p = sub.add_parser("repair-group", help="Re-enroll a group's creator as admin if missing")
    p.add_argument("group_id")
    p.set_defaults(func=_cmd_repair_group)

    args = parser.parse_args(argv)
    try:
        return args.func(AuthEngine(), args)
    except LunaError as exc:
        print(f"  [!] {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
