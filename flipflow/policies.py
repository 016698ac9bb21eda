"""
Row-level security policy table.

This table is the only description of who may touch which rows. The
permission validator evaluates it in Python to decide what the UI offers,
and ``render_policy_sql`` turns the same entries into the ``CREATE POLICY``
statements applied on the server (``flask policies sql``).
"""

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import click
from flask.cli import AppGroup

PDF_BUCKET = 'flipbook-pdfs'
ASSET_BUCKET = 'flipbook-assets'

COMMANDS = ('SELECT', 'INSERT', 'UPDATE', 'DELETE', 'ALL')


@dataclass(frozen=True)
class Predicate:
    sql: str
    # check(policy, user_id, context, command) -> bool
    check: Callable


@dataclass(frozen=True)
class Policy:
    name: str
    table: str
    command: str
    roles: Tuple[str, ...]
    predicate: str
    schema: str = 'public'
    bucket: Optional[str] = None

    @property
    def qualified_table(self) -> str:
        return f"{self.schema}.{self.table}"

    def applies_to(self, command: str, role: str) -> bool:
        return self.command in (command, 'ALL') and role in self.roles


def _row_owner(policy, uid, ctx, command):
    if not uid:
        return False
    if ctx.flipbook is None:
        # a new row is stamped with the requester's id
        return command == 'INSERT'
    return ctx.flipbook.user_id == uid


def _row_public(policy, uid, ctx, command):
    return ctx.flipbook is not None and bool(ctx.flipbook.is_public)


def _target_self(policy, uid, ctx, command):
    return bool(uid) and (ctx.target_user_id or uid) == uid


def _parent_owner(policy, uid, ctx, command):
    return bool(uid) and ctx.flipbook is not None and ctx.flipbook.user_id == uid


def _parent_public(policy, uid, ctx, command):
    return ctx.flipbook is not None and bool(ctx.flipbook.is_public)


def _admin_role(policy, uid, ctx, command):
    return bool(uid) and 'admin' in (ctx.roles or ())


def _bucket_read(policy, uid, ctx, command):
    return ctx.bucket == policy.bucket


def _folder_owner(policy, uid, ctx, command):
    if not uid or ctx.bucket != policy.bucket or not ctx.storage_path:
        return False
    return ctx.storage_path.split('/', 1)[0] == uid


PREDICATES: Dict[str, Predicate] = {
    'owner': Predicate('auth.uid() = user_id', _row_owner),
    'public': Predicate('is_public = true', _row_public),
    'self': Predicate('auth.uid() = id', _target_self),
    'role_self': Predicate('auth.uid() = user_id', _target_self),
    'parent_owner': Predicate(
        'EXISTS (SELECT 1 FROM public.flipbooks WHERE flipbooks.id = flipbook_views.flipbook_id '
        'AND flipbooks.user_id = auth.uid())', _parent_owner),
    'parent_public': Predicate(
        'EXISTS (SELECT 1 FROM public.flipbooks WHERE flipbooks.id = flipbook_views.flipbook_id '
        'AND flipbooks.is_public = true)', _parent_public),
    'admin': Predicate("public.has_role(auth.uid(), 'admin'::app_role)", _admin_role),
    'bucket_read': Predicate("bucket_id = '{bucket}'", _bucket_read),
    'folder_owner': Predicate(
        "bucket_id = '{bucket}' AND auth.uid()::text = (storage.foldername(name))[1]", _folder_owner),
}

ANYONE = ('anon', 'authenticated')
SIGNED_IN = ('authenticated',)

POLICIES: List[Policy] = [
    Policy('flipbooks_select_owner', 'flipbooks', 'SELECT', SIGNED_IN, 'owner'),
    Policy('flipbooks_select_public', 'flipbooks', 'SELECT', ANYONE, 'public'),
    Policy('flipbooks_insert_owner', 'flipbooks', 'INSERT', SIGNED_IN, 'owner'),
    Policy('flipbooks_update_owner', 'flipbooks', 'UPDATE', SIGNED_IN, 'owner'),
    Policy('flipbooks_delete_owner', 'flipbooks', 'DELETE', SIGNED_IN, 'owner'),

    Policy('profiles_select_self', 'profiles', 'SELECT', SIGNED_IN, 'self'),
    Policy('profiles_insert_self', 'profiles', 'INSERT', SIGNED_IN, 'self'),
    Policy('profiles_update_self', 'profiles', 'UPDATE', SIGNED_IN, 'self'),

    Policy('flipbook_views_insert_owner', 'flipbook_views', 'INSERT', SIGNED_IN, 'parent_owner'),
    Policy('flipbook_views_insert_public', 'flipbook_views', 'INSERT', ANYONE, 'parent_public'),
    Policy('flipbook_views_select_owner', 'flipbook_views', 'SELECT', SIGNED_IN, 'parent_owner'),

    Policy('user_roles_select_self', 'user_roles', 'SELECT', SIGNED_IN, 'role_self'),
    Policy('user_roles_all_admin', 'user_roles', 'ALL', SIGNED_IN, 'admin'),
]

for _bucket, _label in ((PDF_BUCKET, 'pdfs'), (ASSET_BUCKET, 'assets')):
    POLICIES.extend([
        Policy(f'storage_{_label}_select_public', 'objects', 'SELECT', ANYONE, 'bucket_read',
               schema='storage', bucket=_bucket),
        Policy(f'storage_{_label}_insert_owner', 'objects', 'INSERT', SIGNED_IN, 'folder_owner',
               schema='storage', bucket=_bucket),
        Policy(f'storage_{_label}_update_owner', 'objects', 'UPDATE', SIGNED_IN, 'folder_owner',
               schema='storage', bucket=_bucket),
        Policy(f'storage_{_label}_delete_owner', 'objects', 'DELETE', SIGNED_IN, 'folder_owner',
               schema='storage', bucket=_bucket),
    ])


def policies_for(table: str, command: str, role: Optional[str] = None) -> List[Policy]:
    """Policies on ``table`` covering ``command``, optionally limited to a role."""
    return [p for p in POLICIES
            if p.table == table and p.command in (command, 'ALL')
            and (role is None or role in p.roles)]


def evaluate(policy: Policy, user_id: Optional[str], context, command: str) -> bool:
    return PREDICATES[policy.predicate].check(policy, user_id, context, command)


def predicate_sql(policy: Policy) -> str:
    return PREDICATES[policy.predicate].sql.format(bucket=policy.bucket)


def _policy_statement(policy: Policy) -> str:
    condition = predicate_sql(policy)
    lines = [
        f'DROP POLICY IF EXISTS "{policy.name}" ON {policy.qualified_table};',
        f'CREATE POLICY "{policy.name}"',
        f'  ON {policy.qualified_table} FOR {policy.command}',
        f'  TO {", ".join(policy.roles)}',
    ]
    if policy.command == 'INSERT':
        lines.append(f'  WITH CHECK ({condition});')
    elif policy.command == 'UPDATE':
        lines.append(f'  USING ({condition})')
        lines.append(f'  WITH CHECK ({condition});')
    else:
        lines.append(f'  USING ({condition});')
    return '\n'.join(lines)


def render_policy_sql(policies: Optional[Iterable[Policy]] = None) -> str:
    policies = list(POLICIES if policies is None else policies)
    tables = []
    for policy in policies:
        if policy.schema == 'public' and policy.qualified_table not in tables:
            tables.append(policy.qualified_table)

    parts = [f'ALTER TABLE {table} ENABLE ROW LEVEL SECURITY;' for table in tables]
    parts.extend(_policy_statement(policy) for policy in policies)
    return '\n\n'.join(parts) + '\n'


policies_cli = AppGroup('policies', help='Row-level security policies.')


@policies_cli.command('sql')
@click.option('--table', default=None, help='Only render policies for this table.')
def policies_sql(table):
    """Print the CREATE POLICY statements for the server."""
    selected = [p for p in POLICIES if table is None or p.table == table]
    click.echo(render_policy_sql(selected), nl=False)
