#!/usr/bin/env python3
"""
mcphost command line.

    mcphost [-c CONFIG] list
    mcphost [-c CONFIG] start SERVER_ID
    mcphost [-c CONFIG] test SERVER_ID
    mcphost [-c CONFIG] discover
    mcphost [-c CONFIG] import
    mcphost [-c CONFIG] export PATH
"""

import argparse
import asyncio
import logging
import sys

from .config import ConfigError, load_settings, setup_logging
from .connection.errors import MCPError
from .context import AppContext
from .storage.discovery import discover_servers, group_by_source, import_discovered
from .storage.errors import StorageError
from .storage.legacy import write_legacy_servers

logger = logging.getLogger('mcphost')


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='mcphost', description='MCP server host')
    parser.add_argument('-c', '--config', help='JSON or YAML settings file')
    sub = parser.add_subparsers(dest='command', required=True)

    sub.add_parser('list', help='List configured servers')

    start = sub.add_parser('start', help='Start a server and print its catalog')
    start.add_argument('server_id')

    test = sub.add_parser('test', help='Launch a server briefly to check that it works')
    test.add_argument('server_id')

    sub.add_parser('discover', help='List servers configured in other MCP clients')
    sub.add_parser('import', help='Import servers configured in other MCP clients')

    export = sub.add_parser('export', help='Write configured servers to a legacy JSON file')
    export.add_argument('path')
    return parser


async def cmd_list(ctx: AppContext) -> int:
    servers = ctx.registry.list()
    if not servers:
        print('No servers configured')
        return 0
    for server in servers:
        command = ' '.join((server.command,) + server.args)
        print(f'{server.id}\t{server.name}\t{command}')
    return 0


async def cmd_start(ctx: AppContext, server_id: str) -> int:
    if server_id not in ctx.registry:
        print(f'Unknown server: {server_id}', file=sys.stderr)
        return 1
    try:
        await ctx.manager.start_server(server_id)
    except MCPError as e:
        print(f'Failed to start {server_id}: {e}', file=sys.stderr)
        return 1

    catalog = ctx.manager.catalog
    print('Tools:')
    for tool in catalog.tools(server_id):
        print(f'  {tool.name}: {tool.description}')
    print('Resources:')
    for resource in catalog.resources(server_id):
        print(f'  {resource.uri} ({resource.name})')
    print('Prompts:')
    for prompt in catalog.prompts(server_id):
        print(f'  {prompt.name}: {prompt.description or ""}')
    return 0


async def cmd_test(ctx: AppContext, server_id: str) -> int:
    if server_id not in ctx.registry:
        print(f'Unknown server: {server_id}', file=sys.stderr)
        return 1
    ok, message = await ctx.manager.test_connection(server_id)
    print(message, file=sys.stdout if ok else sys.stderr)
    return 0 if ok else 1


async def cmd_discover(ctx: AppContext) -> int:
    found = discover_servers(ctx.registry.list())
    if not found:
        print('No servers found in other MCP clients')
        return 0
    for source, servers in group_by_source(found).items():
        print(f'{source.display_name}:')
        for server in servers:
            status = 'imported' if server.already_imported else 'new'
            command = ' '.join((server.command,) + server.args)
            line = f'  [{status}] {server.name}\t{command}'
            if server.security_warning:
                line += f'\t({server.security_warning})'
            print(line)
    return 0


async def cmd_import(ctx: AppContext) -> int:
    found = [s for s in discover_servers(ctx.registry.list()) if not s.already_imported]
    added = await import_discovered(ctx.registry, found)
    for descriptor in added:
        print(f'Imported {descriptor.name} ({descriptor.id})')
    print(f'Imported {len(added)} servers')
    return 0


async def cmd_export(ctx: AppContext, path: str) -> int:
    servers = ctx.registry.list()
    write_legacy_servers(path, servers)
    print(f'Exported {len(servers)} servers to {path}')
    return 0


async def run(args) -> int:
    settings = load_settings(args.config)
    setup_logging(settings)

    async with AppContext(settings) as ctx:
        if args.command == 'list':
            return await cmd_list(ctx)
        if args.command == 'start':
            return await cmd_start(ctx, args.server_id)
        if args.command == 'test':
            return await cmd_test(ctx, args.server_id)
        if args.command == 'discover':
            return await cmd_discover(ctx)
        if args.command == 'import':
            return await cmd_import(ctx)
        return await cmd_export(ctx, args.path)


def main(argv=None) -> int:
    """Entry point"""
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run(args))
    except (ConfigError, StorageError) as e:
        print(f'ERROR: {e}', file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == '__main__':
    sys.exit(main())
